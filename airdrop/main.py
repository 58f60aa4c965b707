"""Holder Airdrop API - Main Application"""
import logging

import structlog
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from airdrop.config import get_settings
from airdrop.api.v1.router import api_router
from airdrop.models.database import init_db, close_db
from airdrop.services.runtime import AirdropRuntime
from airdrop.services.scheduler import AirdropScheduler
from airdrop.services.solana_client import close_solana_client

settings = get_settings()


def configure_logging() -> None:
    """Configure structured logging, console or JSON output"""
    logging.basicConfig(format="%(message)s", level=getattr(logging, settings.log_level.upper(), logging.INFO))
    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info(
        "Starting Holder Airdrop API",
        version=settings.app_version,
        cluster=settings.solana_cluster,
        mock_transactions=settings.mock_transactions,
    )

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    runtime = await AirdropRuntime.from_settings()
    app.state.runtime = runtime

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = AirdropScheduler(runtime, interval_seconds=settings.scheduler_interval_seconds)
        await scheduler.start()
    else:
        logger.info("Airdrop scheduler disabled")

    yield

    # Cleanup
    if scheduler is not None:
        await scheduler.stop()
    await close_solana_client()
    await close_db()
    logger.info("Holder Airdrop API shutdown complete")


def create_app() -> FastAPI:
    """Create FastAPI application"""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Holder reward calculation and batched airdrop execution",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "cluster": settings.solana_cluster,
            "mock_transactions": settings.mock_transactions,
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "airdrop.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
