"""
FastAPI application for the wizard engine.

Development HTTP driver for the horse-registration and movement wizards.
Production deployment configuration via environment variables.
"""

import logging
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.services import (
    ObjectStorageService,
    RecordService,
    get_object_storage,
    get_record_service,
)
from core.wizard.errors import WizardError
from utils.config import Config
from web.wizard_routes import WizardSessionRegistry, router as wizard_router, wizard_error_handler

logger = logging.getLogger(__name__)

# =============================================================================
# Environment Configuration
# =============================================================================

IS_PRODUCTION = os.getenv("PRODUCTION", "").lower() == "true"

# CORS configuration - locked down for production
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []
if not ALLOWED_ORIGINS and not IS_PRODUCTION:
    # Development fallback only
    ALLOWED_ORIGINS = ["http://localhost:8000", "http://127.0.0.1:8000"]


def create_app(
    config: Optional[Config] = None,
    records: Optional[RecordService] = None,
    storage: Optional[ObjectStorageService] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or Config.load()

    app = FastAPI(
        title="Stable Wizard Engine",
        description="Staged creation of horses and location movements",
        version="0.1.0",
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None if IS_PRODUCTION else "/redoc",
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
        debug=config.debug and not IS_PRODUCTION,
    )

    # Healthcheck endpoints: no dependencies, no IO
    @app.get("/", include_in_schema=False)
    def root():
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        return {"status": "healthy"}

    if ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "DELETE"],
            allow_headers=["*"],
        )

    app.state.config = config
    app.state.records = records or get_record_service(config.records_path)
    app.state.storage = storage or get_object_storage(config.storage_root)
    app.state.wizard_sessions = WizardSessionRegistry()

    app.add_exception_handler(WizardError, wizard_error_handler)
    app.include_router(wizard_router)

    @app.get("/api/health")
    async def api_health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": "0.1.0",
            "environment": "production" if IS_PRODUCTION else "development",
            "open_sessions": len(app.state.wizard_sessions),
        }

    logger.debug("Wizard app created with config %s", config.to_dict())
    return app
