from typing import Annotated, Any, TypeVar

from fastapi import Depends, FastAPI, Request

T = TypeVar("T")


def bind(app: FastAPI, tp: type[T], value: T) -> None:
    if not hasattr(app.state, "bindings"):
        app.state.bindings = {}
    app.state.bindings[tp] = value


class _Injected:
    """``Injected[T]`` resolves to the value bound to ``T`` on the running app."""

    def __getitem__(self, tp: Any) -> Any:
        def resolve(request: Request) -> Any:
            return request.app.state.bindings[tp]

        return Annotated[tp, Depends(resolve)]


Injected = _Injected()
