from __future__ import annotations

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from meowith.api import MeowithApiAccessor, Payload
from meowith.entity import Bucket, Entity, FileEntity, Range, Resource, UploadSessionInfo, UploadSessionResumeResponse
from meowith.error import Result


@dataclass(frozen=True)
class ConnectorConfiguration:
    # access token sent with every call
    api_token: str
    app_id: str
    bucket_id: str
    # host[:port] of the storage node
    node_address: str
    use_ssl: bool = True

    @property
    def base_url(self) -> str:
        return f"http{'s' if self.use_ssl else ''}://{self.node_address}"

    @classmethod
    def from_env(cls) -> ConnectorConfiguration:
        missing = [
            name
            for name in ("MEOWITH_API_TOKEN", "MEOWITH_APP_ID", "MEOWITH_BUCKET_ID", "MEOWITH_NODE_ADDRESS")
            if not os.getenv(name)
        ]
        if missing:
            raise ValueError(f"missing environment variables: {', '.join(missing)}")
        return cls(
            api_token=os.environ["MEOWITH_API_TOKEN"],
            app_id=os.environ["MEOWITH_APP_ID"],
            bucket_id=os.environ["MEOWITH_BUCKET_ID"],
            node_address=os.environ["MEOWITH_NODE_ADDRESS"],
            use_ssl=os.getenv("MEOWITH_USE_SSL", "true").lower() in ("1", "true", "yes"),
        )


@dataclass
class MeowithConnector:
    """Wrapper for ``MeowithApiAccessor`` that passes the configured app and bucket to every call."""

    config: ConnectorConfiguration
    accessor: MeowithApiAccessor

    @classmethod
    @asynccontextmanager
    async def connect(cls, config: ConnectorConfiguration, **client_options: Any) -> AsyncIterator[MeowithConnector]:
        async with MeowithApiAccessor.connect(config.api_token, config.base_url, **client_options) as accessor:
            yield cls(config, accessor)

    def _resource(self, path: str) -> Resource:
        return Resource(app_id=self.config.app_id, bucket_id=self.config.bucket_id, path=path)

    async def download_file(self, path: str, range: Range | None = None) -> Result[FileEntity]:
        return await self.accessor.download_file(self._resource(path), range)

    async def upload_file(self, path: str, data: Payload, size: int) -> Result[None]:
        return await self.accessor.upload_file(self._resource(path), data, size)

    async def start_upload_session(self, path: str, size: int) -> Result[UploadSessionInfo]:
        return await self.accessor.start_upload_session(self._resource(path), size)

    async def put_file(self, session: UploadSessionInfo, data: Payload) -> Result[None]:
        return await self.accessor.put_file(self._resource(""), session, data)

    async def resume_upload_session(self, session: UploadSessionInfo) -> Result[UploadSessionResumeResponse]:
        return await self.accessor.resume_upload_session(self._resource(""), session)

    async def rename_file(self, path: str, to: str) -> Result[None]:
        return await self.accessor.rename_file(self._resource(path), to)

    async def rename_directory(self, path: str, to: str) -> Result[None]:
        return await self.accessor.rename_directory(self._resource(path), to)

    async def delete_file(self, path: str) -> Result[None]:
        return await self.accessor.delete_file(self._resource(path))

    async def delete_directory(self, path: str, recursive: bool = False) -> Result[None]:
        return await self.accessor.delete_directory(self._resource(path), recursive)

    async def create_directory(self, path: str) -> Result[None]:
        return await self.accessor.create_directory(self._resource(path))

    async def list_bucket_files(self, paginate: Range | None = None) -> Result[list[Entity]]:
        return await self.accessor.list_bucket_files(self._resource(""), paginate)

    async def list_bucket_directories(self, paginate: Range | None = None) -> Result[list[Entity]]:
        return await self.accessor.list_bucket_directories(self._resource(""), paginate)

    async def list_directory(self, path: str, paginate: Range | None = None) -> Result[list[Entity]]:
        return await self.accessor.list_directory(self._resource(path), paginate)

    async def stat_resource(self, path: str) -> Result[Entity]:
        return await self.accessor.stat_resource(self._resource(path))

    async def fetch_bucket_info(self) -> Result[Bucket]:
        return await self.accessor.fetch_bucket_info(self._resource(""))
