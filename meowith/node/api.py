import logging
import mimetypes
import os
from dataclasses import dataclass
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from meowith.entity import (
    DeleteDirectoryRequest,
    Range,
    RawBucket,
    RawEntity,
    RawEntityList,
    RenameEntityRequest,
    UploadSessionRequest,
    UploadSessionResumeRequest,
    UploadSessionResumeResponse,
)
from meowith.error import NodeClientError
from meowith.node.depends import Injected
from meowith.node.storage import InMemoryStorage, NodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeConfig:
    api_token: str
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "NodeConfig":
        return cls(
            api_token=os.getenv("MEOWITH_NODE_TOKEN", "dev-token"),
            host=os.getenv("MEOWITH_NODE_HOST", "127.0.0.1"),
            port=int(os.getenv("MEOWITH_NODE_PORT", "8000")),
        )


def authenticate(
    config: Injected[NodeConfig],
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    if authorization != f"Bearer {config.api_token}":
        raise NodeError(NodeClientError.BadAuth)


router = APIRouter()
api = APIRouter(prefix="/api", dependencies=[Depends(authenticate)])


async def node_error_handler(request: Request, exc: NodeError) -> JSONResponse:
    logger.debug("%s %s -> %s", request.method, request.url.path, exc)
    return JSONResponse({"code": exc.code.value}, status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.debug("%s %s -> invalid request: %s", request.method, request.url.path, exc)
    return JSONResponse({"code": NodeClientError.BadRequest.value}, status_code=400)


EXCEPTION_HANDLERS = {
    NodeError: node_error_handler,
    RequestValidationError: validation_error_handler,
    ValidationError: validation_error_handler,
}


@router.get("/health")
async def health() -> Response:
    return Response(status_code=200)


def range_from_header(range: Annotated[str | None, Header()] = None) -> Range | None:
    if range is None:
        return None
    if not range.startswith("bytes="):
        raise NodeError(NodeClientError.BadRequest, "Invalid range header")
    start, sep, end = range[6:].partition("-")
    if not sep or not (start or end):
        raise NodeError(NodeClientError.BadRequest, "Invalid range header")
    try:
        return Range(start=int(start) if start else None, end=int(end) if end else None)
    except ValueError:
        raise NodeError(NodeClientError.BadRequest, "Invalid range header") from None


def range_from_query(start: str | None = None, end: int | None = None) -> Range | None:
    if start is None and end is None:
        return None
    try:
        # clients send the open ended form as `start=5-`
        return Range(start=int(start.rstrip("-")) if start is not None else None, end=end)
    except ValueError:
        raise NodeError(NodeClientError.BadRequest, "Invalid pagination") from None


Paginate = Annotated[Range | None, Depends(range_from_query)]


@api.get("/file/download/{app_id}/{bucket_id}/{path:path}")
async def download_file(
    app_id: str,
    bucket_id: str,
    path: str,
    storage: Injected[InMemoryStorage],
    range: Annotated[Range | None, Depends(range_from_header)],
) -> Response:
    body = storage.get(app_id, bucket_id, path, range=range)
    name = path.rstrip("/").rpartition("/")[2]
    headers = {
        "Content-Disposition": f'attachment; filename="{name}"',
        "Content-Length": str(len(body.data)),
        "Accept-Ranges": "bytes",
    }
    media_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
    if range:
        headers["Content-Range"] = f"bytes {body.start}-{body.end}/{body.total}"
        return Response(status_code=206, content=body.data, media_type=media_type, headers=headers)
    return Response(content=body.data, media_type=media_type, headers=headers)


@api.post("/file/upload/oneshot/{app_id}/{bucket_id}/{path:path}")
async def upload_oneshot(
    request: Request,
    app_id: str,
    bucket_id: str,
    path: str,
    storage: Injected[InMemoryStorage],
) -> Response:
    body = await request.body()
    # a JSON body opens a durable session instead of carrying the file
    if request.headers.get("content-type", "").startswith("application/json"):
        session_request = UploadSessionRequest.model_validate_json(body)
        info = storage.start_session(app_id, bucket_id, path, session_request.size)
        return JSONResponse(info.model_dump())
    declared = request.headers.get("content-length")
    if declared is not None and int(declared) != len(body):
        raise NodeError(NodeClientError.BadRequest, "payload does not match Content-Length")
    storage.put(app_id, bucket_id, path, body)
    return Response(status_code=200)


@api.put("/file/upload/put/{app_id}/{bucket_id}/{code}")
async def upload_put(
    request: Request,
    app_id: str,
    bucket_id: str,
    code: str,
    storage: Injected[InMemoryStorage],
) -> Response:
    storage.put_chunk(app_id, bucket_id, code, await request.body())
    return Response(status_code=200)


@api.post("/file/upload/resume/{app_id}/{bucket_id}")
async def upload_resume(
    app_id: str,
    bucket_id: str,
    body: UploadSessionResumeRequest,
    storage: Injected[InMemoryStorage],
) -> UploadSessionResumeResponse:
    return UploadSessionResumeResponse(uploaded=storage.resume_session(app_id, bucket_id, body.session_id))


@api.post("/file/rename/{app_id}/{bucket_id}/{path:path}")
async def rename_file(
    app_id: str,
    bucket_id: str,
    path: str,
    body: RenameEntityRequest,
    storage: Injected[InMemoryStorage],
) -> Response:
    storage.rename(app_id, bucket_id, path, body.to, directory=False)
    return Response(status_code=200)


@api.post("/directory/rename/{app_id}/{bucket_id}/{path:path}")
async def rename_directory(
    app_id: str,
    bucket_id: str,
    path: str,
    body: RenameEntityRequest,
    storage: Injected[InMemoryStorage],
) -> Response:
    storage.rename(app_id, bucket_id, path, body.to, directory=True)
    return Response(status_code=200)


@api.delete("/file/delete/{app_id}/{bucket_id}/{path:path}")
async def delete_file(app_id: str, bucket_id: str, path: str, storage: Injected[InMemoryStorage]) -> Response:
    storage.delete(app_id, bucket_id, path)
    return Response(status_code=200)


@api.delete("/directory/delete/{app_id}/{bucket_id}/{path:path}")
async def delete_directory(
    app_id: str,
    bucket_id: str,
    path: str,
    storage: Injected[InMemoryStorage],
    body: DeleteDirectoryRequest | None = None,
) -> Response:
    recursive = body.recursive if body is not None else False
    storage.delete_directory(app_id, bucket_id, path, recursive)
    return Response(status_code=200)


@api.post("/directory/create/{app_id}/{bucket_id}/{path:path}")
async def create_directory(app_id: str, bucket_id: str, path: str, storage: Injected[InMemoryStorage]) -> Response:
    storage.create_directory(app_id, bucket_id, path)
    return Response(status_code=200)


@api.get("/bucket/list/files/{app_id}/{bucket_id}")
async def list_bucket_files(
    app_id: str, bucket_id: str, storage: Injected[InMemoryStorage], paginate: Paginate
) -> RawEntityList:
    return RawEntityList(entities=storage.list_files(app_id, bucket_id, paginate))


@api.get("/bucket/list/directories/{app_id}/{bucket_id}")
async def list_bucket_directories(
    app_id: str, bucket_id: str, storage: Injected[InMemoryStorage], paginate: Paginate
) -> RawEntityList:
    return RawEntityList(entities=storage.list_directories(app_id, bucket_id, paginate))


@api.get("/directory/list/{app_id}/{bucket_id}/{path:path}")
async def list_directory(
    app_id: str, bucket_id: str, path: str, storage: Injected[InMemoryStorage], paginate: Paginate
) -> RawEntityList:
    return RawEntityList(entities=storage.list_directory(app_id, bucket_id, path, paginate))


@api.get("/bucket/stat/{app_id}/{bucket_id}/{path:path}")
async def stat_resource(app_id: str, bucket_id: str, path: str, storage: Injected[InMemoryStorage]) -> RawEntity:
    return storage.stat(app_id, bucket_id, path)


@api.get("/bucket/info/{app_id}/{bucket_id}")
async def bucket_info(app_id: str, bucket_id: str, storage: Injected[InMemoryStorage]) -> RawBucket:
    return storage.bucket(app_id, bucket_id).raw()


router.include_router(api)
