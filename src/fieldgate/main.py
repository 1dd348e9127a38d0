"""FieldGate main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fieldgate import __version__
from fieldgate.api import public_router, router
from fieldgate.api.deps import validate_auth_config
from fieldgate.config import Environment, settings
from fieldgate.db.base import close_db, init_db

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("fieldgate")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting FieldGate server...")
    logger.info("Environment: %s", settings.env.value)

    # Fail fast on insecure configuration
    validate_auth_config()

    # Schema is owned by alembic outside development
    if settings.env == Environment.DEVELOPMENT:
        await init_db()
        logger.info("Database initialized")

    yield

    logger.info("Shutting down FieldGate server...")
    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title="FieldGate",
    description="Field-service event ledger and reporting service",
    version=__version__,
    lifespan=lifespan,
)

# Explicit allowlist, no wildcards with credentials
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)

app.include_router(public_router)
app.include_router(router)


def main():
    """Entry point for the application."""
    uvicorn.run(
        "fieldgate.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
