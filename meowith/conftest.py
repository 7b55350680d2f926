import socket
from typing import AsyncIterator

import anyio
import pytest
import uvicorn
from fastapi import FastAPI
from httpx import ASGITransport

from meowith.api import MeowithApiAccessor
from meowith.entity import BucketId, Resource
from meowith.node import InMemoryStorage, NodeConfig, make_app


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def storage() -> InMemoryStorage:
    storage = InMemoryStorage()
    storage.create_bucket("app", "bucket", name="photos", quota=1024)
    return storage


@pytest.fixture
def node_config() -> NodeConfig:
    return NodeConfig(api_token="secret-token")


@pytest.fixture
def app(storage: InMemoryStorage, node_config: NodeConfig) -> FastAPI:
    return make_app(storage, node_config)


@pytest.fixture
def bucket() -> BucketId:
    return BucketId(app_id="app", bucket_id="bucket")


@pytest.fixture
def resource() -> Resource:
    return Resource(app_id="app", bucket_id="bucket", path="notes.txt")


@pytest.fixture
async def accessor(app: FastAPI, node_config: NodeConfig) -> AsyncIterator[MeowithApiAccessor]:
    """An accessor wired straight into an in-memory node."""
    transport = ASGITransport(app=app)
    async with MeowithApiAccessor.connect(node_config.api_token, "http://node", transport=transport) as accessor:
        yield accessor


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
async def served_node(app: FastAPI) -> AsyncIterator[str]:
    """The in-memory node behind a real uvicorn server; yields its ``host:port``."""
    port = free_port()
    server = uvicorn.Server(uvicorn.Config(app, host="127.0.0.1", port=port, log_level="warning"))
    async with anyio.create_task_group() as tg:
        tg.start_soon(server.serve)
        with anyio.fail_after(10):
            while not server.started:
                await anyio.sleep(0.05)

        yield f"127.0.0.1:{port}"

        server.should_exit = True
