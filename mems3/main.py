import logging

import anyio
from fastapi import FastAPI

from mems3.api import router, storage_error_handler
from mems3.config import Config, load_config
from mems3.depends import bind
from mems3.logging_config import setup_logging
from mems3.storage import StorageBackend
from mems3.storage.errors import StorageError

logger = logging.getLogger(__name__)


def make_app(
    storage: StorageBackend,
    config: Config,
) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    app.add_exception_handler(StorageError, storage_error_handler)  # type: ignore[arg-type]
    bind(app, StorageBackend, storage)
    bind(app, Config, config)
    return app


async def main() -> None:
    import uvicorn

    from mems3.storage.memory import InMemoryBackend

    config = load_config()
    setup_logging(config.log_level)

    fs = InMemoryBackend(access_key=config.access_key, secret_key=config.secret_key)
    app = make_app(fs, config)

    logger.info("serving on port %d", config.port)
    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=config.port, log_level=config.log_level.lower()))
    await server.serve()


def run() -> None:
    anyio.run(main)


if __name__ == "__main__":
    run()
