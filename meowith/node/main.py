import logging
import os

import anyio
from fastapi import FastAPI

from meowith.node.api import EXCEPTION_HANDLERS, NodeConfig, router
from meowith.node.depends import bind
from meowith.node.storage import InMemoryStorage

logger = logging.getLogger(__name__)


def make_app(storage: InMemoryStorage, config: NodeConfig) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    for exc_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exc_class, handler)
    bind(app, InMemoryStorage, storage)
    bind(app, NodeConfig, config)
    return app


async def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    config = NodeConfig.from_env()
    storage = InMemoryStorage()
    # MEOWITH_NODE_BUCKETS=app/bucket,app/other provisions buckets at startup
    for entry in filter(None, os.getenv("MEOWITH_NODE_BUCKETS", "dev/dev").split(",")):
        app_id, _, bucket_id = entry.partition("/")
        storage.create_bucket(app_id, bucket_id)
        logger.info("provisioned bucket %s/%s", app_id, bucket_id)

    app = make_app(storage, config)
    server = uvicorn.Server(uvicorn.Config(app, host=config.host, port=config.port))
    await server.serve()


if __name__ == "__main__":
    anyio.run(main)
