from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Union
from urllib.parse import quote

from httpx import AsyncClient, HTTPError, InvalidURL, Response, StreamError

from meowith.entity import (
    Bucket,
    BucketId,
    DeleteDirectoryRequest,
    Entity,
    FileEntity,
    Range,
    RawBucket,
    RawEntity,
    RawEntityList,
    RenameEntityRequest,
    Resource,
    UploadSessionInfo,
    UploadSessionRequest,
    UploadSessionResumeRequest,
    UploadSessionResumeResponse,
)
from meowith.error import Ok, Result, handle_error

logger = logging.getLogger(__name__)

Payload = Union[bytes, AsyncIterable[bytes]]

# everything a single exchange can fail with, short of a programming error
_FAILURES = (HTTPError, InvalidURL, StreamError, ValueError, KeyError)

_FILENAME = re.compile(r'filename="(.+)"')


def range_header(range: Range) -> str:
    if range.start is not None and range.end is not None:
        return f"bytes={range.start}-{range.end}"
    if range.start is not None:
        return f"bytes={range.start}-"
    if range.end is not None:
        return f"bytes=-{range.end}"
    raise ValueError("Invalid range object")


def pagination_query(range: Range | None) -> str:
    if range is None:
        return ""
    if range.start is not None and range.end is not None:
        return f"?start={range.start}&end={range.end}"
    if range.start is not None:
        # the node expects the byte range style trailing hyphen here
        return f"?start={range.start}-"
    if range.end is not None:
        return f"?end={range.end}"
    return ""


def _resource_path(prefix: str, resource: Resource) -> str:
    # `?`, `#` and `%` in a path must not leave the path component
    return f"{_bucket_path(prefix, resource)}/{quote(resource.path, safe='/')}"


def _bucket_path(prefix: str, bucket_id: BucketId) -> str:
    return f"{prefix}/{quote(bucket_id.app_id, safe='')}/{quote(bucket_id.bucket_id, safe='')}"


def _file_entity(response: Response) -> FileEntity:
    disposition = response.headers["Content-Disposition"]
    match = _FILENAME.search(disposition)
    if match is None:
        raise ValueError(f"no filename in Content-Disposition: {disposition!r}")
    # chunked responses carry no Content-Length
    length = response.headers.get("Content-Length")
    return FileEntity(
        name=match.group(1),
        mime=response.headers.get("Content-Type", "application/octet-stream"),
        size=int(length) if length is not None else None,
        content=response.aiter_bytes(),
        _close=response.aclose,
    )


def _entities(response: Response) -> list[Entity]:
    listing = RawEntityList.model_validate(response.json())
    return [Entity.from_raw(raw) for raw in listing.entities]


@dataclass
class MeowithApiAccessor:
    """Access layer for a meowith storage node.

    One coroutine per node endpoint. None of them raise: failures come back as
    an ``Err`` carrying a ``ConnectorError``.
    """

    client: AsyncClient

    @classmethod
    @asynccontextmanager
    async def connect(
        cls, api_token: str, base_url: str, **client_options: Any
    ) -> AsyncIterator[MeowithApiAccessor]:
        headers = {"Authorization": f"Bearer {api_token}"}
        async with AsyncClient(base_url=base_url, headers=headers, **client_options) as client:
            yield cls(client)

    async def _send(self, method: str, url: str, **kwargs: Any) -> Response:
        logger.debug("%s %s", method, url)
        response = await self.client.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    async def download_file(self, resource: Resource, range: Range | None = None) -> Result[FileEntity]:
        """Download a file.

        The returned entity streams its content; the caller must ``aclose`` it.
        """
        headers = {}
        if range is not None:
            headers["Range"] = range_header(range)
        url = _resource_path("/api/file/download", resource)
        try:
            logger.debug("GET %s", url)
            request = self.client.build_request("GET", url, headers=headers)
            response = await self.client.send(request, stream=True)
            try:
                if response.is_error:
                    await response.aread()
                response.raise_for_status()
                return Ok(_file_entity(response))
            except BaseException:
                # also on cancellation, nothing else will release the stream
                await response.aclose()
                raise
        except _FAILURES as exc:
            return handle_error(exc)

    async def upload_file(self, resource: Resource, data: Payload, size: int) -> Result[None]:
        """One shot upload.

        The node discards the partial file if the upload fails, including when
        ``size`` does not match the length of ``data``.
        """
        try:
            await self._send(
                "POST",
                _resource_path("/api/file/upload/oneshot", resource),
                content=data,
                headers={"Content-Length": str(size)},
            )
        except _FAILURES as exc:
            return handle_error(exc)
        return Ok(None)

    async def start_upload_session(self, resource: Resource, size: int) -> Result[UploadSessionInfo]:
        """Start a durable upload session, which may be interrupted and resumed later."""
        try:
            response = await self._send(
                "POST",
                _resource_path("/api/file/upload/oneshot", resource),
                json=UploadSessionRequest(size=size).model_dump(),
            )
            return Ok(UploadSessionInfo.model_validate(response.json()))
        except _FAILURES as exc:
            return handle_error(exc)

    async def put_file(self, bucket_id: BucketId, session: UploadSessionInfo, data: Payload) -> Result[None]:
        try:
            await self._send(
                "PUT",
                f"{_bucket_path('/api/file/upload/put', bucket_id)}/{quote(session.code, safe='')}",
                content=data,
            )
        except _FAILURES as exc:
            return handle_error(exc)
        return Ok(None)

    async def resume_upload_session(
        self, bucket_id: BucketId, session: UploadSessionInfo
    ) -> Result[UploadSessionResumeResponse]:
        """Look up how many bytes of an interrupted session the node already holds."""
        try:
            response = await self._send(
                "POST",
                _bucket_path("/api/file/upload/resume", bucket_id),
                json=UploadSessionResumeRequest(session_id=session.code).model_dump(),
            )
            return Ok(UploadSessionResumeResponse.model_validate(response.json()))
        except _FAILURES as exc:
            return handle_error(exc)

    async def rename_file(self, resource: Resource, to: str) -> Result[None]:
        try:
            await self._send(
                "POST",
                _resource_path("/api/file/rename", resource),
                json=RenameEntityRequest(to=to).model_dump(),
            )
        except _FAILURES as exc:
            return handle_error(exc)
        return Ok(None)

    async def rename_directory(self, resource: Resource, to: str) -> Result[None]:
        try:
            await self._send(
                "POST",
                _resource_path("/api/directory/rename", resource),
                json=RenameEntityRequest(to=to).model_dump(),
            )
        except _FAILURES as exc:
            return handle_error(exc)
        return Ok(None)

    async def delete_file(self, resource: Resource) -> Result[None]:
        try:
            await self._send("DELETE", _resource_path("/api/file/delete", resource))
        except _FAILURES as exc:
            return handle_error(exc)
        return Ok(None)

    async def delete_directory(self, resource: Resource, recursive: bool) -> Result[None]:
        try:
            await self._send(
                "DELETE",
                _resource_path("/api/directory/delete", resource),
                json=DeleteDirectoryRequest(recursive=recursive).model_dump(),
            )
        except _FAILURES as exc:
            return handle_error(exc)
        return Ok(None)

    async def create_directory(self, resource: Resource) -> Result[None]:
        try:
            await self._send("POST", _resource_path("/api/directory/create", resource))
        except _FAILURES as exc:
            return handle_error(exc)
        return Ok(None)

    async def list_bucket_files(self, bucket_id: BucketId, paginate: Range | None = None) -> Result[list[Entity]]:
        url = _bucket_path("/api/bucket/list/files", bucket_id) + pagination_query(paginate)
        try:
            return Ok(_entities(await self._send("GET", url)))
        except _FAILURES as exc:
            return handle_error(exc)

    async def list_bucket_directories(
        self, bucket_id: BucketId, paginate: Range | None = None
    ) -> Result[list[Entity]]:
        url = _bucket_path("/api/bucket/list/directories", bucket_id) + pagination_query(paginate)
        try:
            return Ok(_entities(await self._send("GET", url)))
        except _FAILURES as exc:
            return handle_error(exc)

    async def list_directory(self, resource: Resource, paginate: Range | None = None) -> Result[list[Entity]]:
        url = _resource_path("/api/directory/list", resource) + pagination_query(paginate)
        try:
            return Ok(_entities(await self._send("GET", url)))
        except _FAILURES as exc:
            return handle_error(exc)

    async def stat_resource(self, resource: Resource) -> Result[Entity]:
        try:
            response = await self._send("GET", _resource_path("/api/bucket/stat", resource))
            return Ok(Entity.from_raw(RawEntity.model_validate(response.json())))
        except _FAILURES as exc:
            return handle_error(exc)

    async def fetch_bucket_info(self, bucket_id: BucketId) -> Result[Bucket]:
        """Fetch a bucket's description, including its quota and the space taken."""
        try:
            response = await self._send("GET", _bucket_path("/api/bucket/info", bucket_id))
            return Ok(Bucket.from_raw(RawBucket.model_validate(response.json())))
        except _FAILURES as exc:
            return handle_error(exc)
