"""
GroupLedger - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import Settings, get_settings
from app.database import close_db, create_engine_from_settings, create_session_factory, init_db
from app.utils.error_handling import setup_exception_handlers

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Creates the database engine on startup and disposes it on shutdown.
    """
    settings: Settings = app.state.settings
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")

    engine = create_engine_from_settings(settings)
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)

    # Migrations own the schema outside development and tests
    if settings.create_tables_on_startup:
        await init_db(engine)
        logger.info("Database tables initialized")

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    await close_db(engine)
    logger.info("Database connections closed")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application for a settings object (defaults to the environment)."""
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Financial consolidation and KPI engine for multi-entity groups",
        version="0.1.0",
        docs_url="/api/docs" if settings.is_development else None,
        redoc_url="/api/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "app": settings.app_name,
            "environment": settings.app_env,
        }

    # ===========================================
    # INCLUDE ROUTERS
    # ===========================================

    from app.routers import (
        assistant,
        cashflow,
        consolidation,
        kpis,
        organizations,
        reports,
        sales,
        uploads,
    )

    app.include_router(organizations.router)
    app.include_router(uploads.router)
    app.include_router(consolidation.router)
    app.include_router(kpis.router)
    app.include_router(cashflow.router)
    app.include_router(reports.router)
    app.include_router(assistant.router)
    app.include_router(sales.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().is_development,
    )
