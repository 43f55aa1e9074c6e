### advanced_export/main.py

"""
FastAPI application exposing the export endpoints under ``/api``.

    uvicorn advanced_export.main:app
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from advanced_export import __version__
from advanced_export.core.config import get_export_config, settings
from advanced_export.core.db import Base, engine
from advanced_export.exports.entities import load_entity_modules
from advanced_export.exports.router import router as exports_router
from advanced_export.utils.logger import configure_logging, get_logger

# Tables must be registered on Base before create_all
import advanced_export.exports.models  # noqa: F401
import advanced_export.notifications.models  # noqa: F401

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, json_output=settings.log_json)
    load_entity_modules(settings.export_entity_modules)
    if settings.environment == "local":
        Base.metadata.create_all(bind=engine)
    get_export_config()
    logger.info("Export API started", environment=settings.environment, version=__version__)
    yield


def create_app() -> FastAPI:
    application = FastAPI(title="Advanced Export", version=__version__, lifespan=lifespan)
    application.include_router(exports_router, prefix="/api")

    @application.get("/health", tags=["Health"])
    def health():
        return {"status": "ok"}

    return application


app = create_app()
