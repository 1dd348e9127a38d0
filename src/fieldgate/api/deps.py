"""API dependencies."""

import logging
import secrets
from typing import AsyncGenerator

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fieldgate.auth.context import AuthContext
from fieldgate.config import Environment, settings
from fieldgate.db.base import async_session_factory
from fieldgate.integrations.identity import Identity, get_identity_client
from fieldgate.integrations.storage import Storage, get_storage_client
from fieldgate.models.worker import Actor

logger = logging.getLogger("fieldgate.api")

ADMIN_ROLE = "admin"
WORKER_ROLE = "worker"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_storage() -> Storage:
    return get_storage_client()


def get_identity() -> Identity:
    return get_identity_client()


def _actor_from_headers(actor_id: str | None, role: str | None) -> Actor:
    if not actor_id:
        raise HTTPException(status_code=401, detail="Missing X-Actor-ID header")
    role = (role or WORKER_ROLE).lower()
    if role not in (ADMIN_ROLE, WORKER_ROLE):
        raise HTTPException(status_code=400, detail=f"Invalid actor role: {role}")
    return Actor(id=actor_id, is_admin=role == ADMIN_ROLE)


async def verify_api_key(
    authorization: str | None = Header(None),
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    x_actor_id: str | None = Header(None, alias="X-Actor-ID"),
    x_actor_role: str | None = Header(None, alias="X-Actor-Role"),
) -> AuthContext:
    """
    Verify the gateway's shared API key and read the asserted actor.

    User authentication happens upstream; the gateway forwards the actor in
    X-Actor-ID / X-Actor-Role. Fails closed unless insecure dev mode is
    explicitly enabled.
    """
    if settings.allow_insecure_dev and settings.env == Environment.DEVELOPMENT:
        return AuthContext(
            actor=_actor_from_headers(x_actor_id, x_actor_role), auth_type="insecure_dev"
        )

    api_key = None
    if authorization and authorization.startswith("Bearer "):
        api_key = authorization[7:]
    elif x_api_key:
        api_key = x_api_key

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing authorization. Use Authorization: Bearer <key> or X-API-Key header",
        )

    if not settings.api_key:
        logger.error("SECURITY VIOLATION: FIELDGATE_API_KEY is not configured")
        raise HTTPException(
            status_code=503,
            detail="Server misconfigured: authentication not properly initialized",
        )
    if not secrets.compare_digest(api_key, settings.api_key):
        raise HTTPException(status_code=401, detail="Invalid API key")

    return AuthContext(actor=_actor_from_headers(x_actor_id, x_actor_role), auth_type="api_key")


async def require_admin(auth: AuthContext = Depends(verify_api_key)) -> AuthContext:
    if not auth.is_admin:
        raise HTTPException(
            status_code=403,
            detail={"kind": "Forbidden", "code": "INSUFFICIENT_PERMISSIONS", "message": "Admin only"},
        )
    return auth


def validate_auth_config() -> None:
    """
    Validate authentication configuration at startup.

    Raises:
        RuntimeError: If configuration is insecure for the current environment
    """
    if settings.allow_insecure_dev and settings.env != Environment.DEVELOPMENT:
        raise RuntimeError(
            f"SECURITY ERROR: allow_insecure_dev=true is only permitted in development. "
            f"Current environment: {settings.env.value}. "
            f"Set FIELDGATE_ALLOW_INSECURE_DEV=false for {settings.env.value}."
        )

    if settings.allow_insecure_dev:
        logger.warning(
            "=" * 80 + "\n"
            "WARNING: Running in INSECURE DEV MODE\n"
            "  - The shared API key is NOT checked\n"
            "  - Actor headers are trusted as sent\n"
            "  - Set FIELDGATE_ALLOW_INSECURE_DEV=false for any deployment\n"
            + "=" * 80
        )
    else:
        logger.info("Authentication enabled: shared API key for %s", settings.env.value)
