import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException as StarletteHTTPException

from flatstore.buckets import BucketManager
from flatstore.config import StorageConfig, load_config
from flatstore.consistency import reconcile
from flatstore.errors import StorageError, StorageFault
from flatstore.logging import setup_logging
from flatstore.objects import ObjectManager
from flatstore.s3_routes import router as s3_routes
from flatstore.xml_responses import error_response, http_error_response

logger = logging.getLogger(__name__)


def ensure_data_dir(data_dir: str):
    if os.path.isdir(data_dir):
        return
    try:
        os.makedirs(data_dir)
    except OSError as e:
        raise StorageFault(f"error creating data directory: {e}", cause=e) from e
    logger.info(f"Directory {data_dir} created")


async def storage_error_handler(request: Request, exc: StorageError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return error_response(exc)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.info(f"{request.method} {request.url.path} rejected: {exc.status_code} {exc.detail}")
    return http_error_response(exc.status_code, str(exc.detail))


def create_app(config: StorageConfig | None = None) -> FastAPI:
    config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ensure_data_dir(config.data_dir)
        logger.info(f"Using directory: {config.data_dir}")
        if config.reconcile_on_startup:
            try:
                reconcile(app.state.buckets)
            except StorageError as e:
                # Serving stays possible; the affected catalogs will answer 500 on their own
                logger.error(f"Consistency sweep failed: {e}")
        yield

    # Bucket names share the root namespace, so the docs routes are switched off
    app = FastAPI(
        title="flatstore",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.config = config
    app.state.buckets = BucketManager(config.data_dir)
    app.state.objects = ObjectManager(app.state.buckets)

    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.include_router(s3_routes)
    return app


app = create_app()


def run():
    config = load_config()
    setup_logging(config.log_level)
    logger.info(f"Starting server on port {config.port}")
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_config=None)


if __name__ == "__main__":
    run()
