from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Generic, NoReturn, TypeVar, Union

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NodeClientError(str, Enum):
    InternalError = "InternalError"
    BadRequest = "BadRequest"
    NotFound = "NotFound"
    EntityExists = "EntityExists"
    NoSuchSession = "NoSuchSession"
    BadAuth = "BadAuth"
    InsufficientStorage = "InsufficientStorage"
    NotEmpty = "NotEmpty"
    RangeUnsatisfiable = "RangeUnsatisfiable"
    # never sent by a node: the failure could not be read as a node response
    LocalInternalError = "LocalInternalError"


class ConnectorError(Exception):
    def __init__(self, api_error: NodeClientError, cause: Exception) -> None:
        super().__init__(f"Connector Error: {api_error.value} | {cause}")
        self.api_error = api_error
        self.cause = cause
        self.__cause__ = cause


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def error(self) -> None:
        return None

    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: ConnectorError

    @property
    def value(self) -> None:
        return None

    def is_ok(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        raise self.error


Result = Union[Ok[T], Err]


def _error_code(response: httpx.Response) -> NodeClientError | None:
    try:
        body = response.json()
    except (ValueError, httpx.ResponseNotRead):
        return None
    if not isinstance(body, dict):
        return None
    try:
        return NodeClientError(body.get("code"))
    except ValueError:
        return None


def handle_error(exc: Exception) -> Err:
    """Turn any failure raised while talking to a node into an ``Err``."""
    kind = None
    if isinstance(exc, httpx.HTTPStatusError):
        kind = _error_code(exc.response)
    if kind is None:
        logger.warning("node request failed: %r", exc)
        kind = NodeClientError.LocalInternalError
    else:
        logger.debug("node rejected request: %s", kind.value)
    return Err(ConnectorError(kind, exc))
