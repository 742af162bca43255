"""Main application entrypoint for DocVault."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from docvault.api.middleware import HTTPErrorLoggingMiddleware
from docvault.api.v1 import routes_health
from docvault.api.v1.routes_files import router as files_router
from docvault.api.v1.routes_storage import router as storage_router
from docvault.api.v1.routes_upload import router as upload_router
from docvault.core.config import Settings, settings as default_settings
from docvault.core.logging import setup_logging
from docvault.db.repository import DocumentRepository
from docvault.db.session import create_db_engine, create_session_factory, create_tables
from docvault.ingest import CompletionDispatcher, UploadCompletionProcessor
from docvault.storage.factory import get_storage_backend
from docvault.storage.upload_store import UploadStore
from docvault.tus.handler import TusHandler

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Every component is built here and attached to ``app.state``; routes
    reach them through ``docvault.api.deps``.

    Args:
        settings: Settings to use, defaults to the environment-derived ones

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    settings = settings or default_settings

    # Initialize logging first
    setup_logging(settings)

    storage = get_storage_backend(settings)
    upload_store = UploadStore(settings.UPLOAD_STATE_DIR)
    tus_handler = TusHandler(upload_store, storage, max_size=settings.max_upload_bytes)

    engine = create_db_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
    if settings.DB_CREATE_TABLES:
        create_tables(engine)
    repository = DocumentRepository(create_session_factory(engine))

    processor = UploadCompletionProcessor(repository)
    dispatcher = CompletionDispatcher(tus_handler.completed_uploads, processor)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        dispatcher.start()
        logger.info(
            "DocVault started",
            extra={
                "storage_backend": storage.get_backend_name(),
                "db_backend": engine.dialect.name,
                "max_upload_bytes": settings.max_upload_bytes,
            },
        )
        yield
        await dispatcher.stop()
        engine.dispose()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.storage = storage
    app.state.upload_store = upload_store
    app.state.tus_handler = tus_handler
    app.state.engine = engine
    app.state.repository = repository
    app.state.processor = processor
    app.state.dispatcher = dispatcher

    app.add_middleware(HTTPErrorLoggingMiddleware)

    # Register routers
    app.include_router(routes_health.router, tags=["health"])
    app.include_router(upload_router)
    app.include_router(storage_router)
    app.include_router(files_router)

    return app


# Export app instance for ASGI servers
app = create_app()
