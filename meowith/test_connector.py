import httpx
import pytest

from meowith.connector import ConnectorConfiguration, MeowithConnector
from meowith.entity import Range
from meowith.error import NodeClientError
from meowith.node import NodeConfig


@pytest.fixture
def config(served_node: str, node_config: NodeConfig) -> ConnectorConfiguration:
    return ConnectorConfiguration(
        api_token=node_config.api_token,
        app_id="app",
        bucket_id="bucket",
        node_address=served_node,
        use_ssl=False,
    )


def test_base_url() -> None:
    config = ConnectorConfiguration(api_token="t", app_id="a", bucket_id="b", node_address="node:8080", use_ssl=True)
    assert config.base_url == "https://node:8080"
    assert ConnectorConfiguration("t", "a", "b", "node:8080", use_ssl=False).base_url == "http://node:8080"


def test_configuration_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MEOWITH_API_TOKEN", "token")
    monkeypatch.setenv("MEOWITH_APP_ID", "app")
    monkeypatch.setenv("MEOWITH_BUCKET_ID", "bucket")
    monkeypatch.setenv("MEOWITH_NODE_ADDRESS", "storage.local:4000")
    monkeypatch.setenv("MEOWITH_USE_SSL", "false")

    config = ConnectorConfiguration.from_env()

    assert config == ConnectorConfiguration("token", "app", "bucket", "storage.local:4000", use_ssl=False)


def test_configuration_from_env_requires_values(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("MEOWITH_API_TOKEN", "MEOWITH_APP_ID", "MEOWITH_BUCKET_ID", "MEOWITH_NODE_ADDRESS"):
        monkeypatch.delenv(name, raising=False)

    with pytest.raises(ValueError, match="MEOWITH_NODE_ADDRESS"):
        ConnectorConfiguration.from_env()


@pytest.mark.anyio
async def test_connector_binds_app_and_bucket() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(f"{request.method} {request.url.raw_path.decode()}")
        assert request.headers["Authorization"] == "Bearer token"
        return httpx.Response(200, json={"entities": []})

    config = ConnectorConfiguration("token", "my-app", "my-bucket", "node", use_ssl=True)
    async with MeowithConnector.connect(config, transport=httpx.MockTransport(handler)) as connector:
        await connector.delete_file("a/b.txt")
        await connector.list_bucket_files(Range(start=2))
        await connector.list_directory("a", Range(end=3))
        await connector.create_directory("a/c")

    assert paths == [
        "DELETE /api/file/delete/my-app/my-bucket/a/b.txt",
        "GET /api/bucket/list/files/my-app/my-bucket?start=2-",
        "GET /api/directory/list/my-app/my-bucket/a?end=3",
        "POST /api/directory/create/my-app/my-bucket/a/c",
    ]


@pytest.mark.anyio
async def test_connector_against_served_node(config: ConnectorConfiguration) -> None:
    async with MeowithConnector.connect(config) as connector:
        assert (await connector.create_directory("docs")).is_ok()
        assert (await connector.upload_file("docs/hello.txt", b"Hello, World!", 13)).is_ok()

        file = (await connector.download_file("docs/hello.txt", Range(start=7))).unwrap()
        try:
            assert file.name == "hello.txt"
            assert await file.read() == b"World!"
        finally:
            await file.aclose()

        session = (await connector.start_upload_session("docs/big.bin", 6)).unwrap()
        assert (await connector.put_file(session, b"abc")).is_ok()
        assert (await connector.resume_upload_session(session)).unwrap().uploaded == 3
        assert (await connector.put_file(session, b"def")).is_ok()

        assert [e.name for e in (await connector.list_directory("docs")).unwrap()] == ["hello.txt", "big.bin"]
        assert (await connector.rename_file("docs/big.bin", "small.bin")).is_ok()
        assert (await connector.stat_resource("docs/small.bin")).unwrap().size == 6

        info = (await connector.fetch_bucket_info()).unwrap()
        assert info.file_count == 2
        assert info.space_taken == 19

        not_empty = await connector.delete_directory("docs")
        assert not_empty.error is not None
        assert not_empty.error.api_error is NodeClientError.NotEmpty

        assert (await connector.rename_directory("docs", "archive")).is_ok()
        assert [e.name for e in (await connector.list_bucket_directories()).unwrap()] == ["archive"]
        assert (await connector.delete_file("archive/hello.txt")).is_ok()
        assert (await connector.delete_directory("archive", recursive=True)).is_ok()
        assert (await connector.list_bucket_files()).unwrap() == []
