"""Identity collaborator - the set of active workers."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from fieldgate.config import settings
from fieldgate.engine.errors import UpstreamFailure
from fieldgate.models.worker import Worker

logger = logging.getLogger(__name__)


class Identity(ABC):
    """Batch lookup of workers."""

    @abstractmethod
    async def list_active_workers(self) -> list[Worker]:
        """All active workers in one call."""


class HttpIdentityClient(Identity):
    """Client for the identity service."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        auth_token: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint or settings.identity_endpoint
        self.auth_token = auth_token or settings.identity_auth_token
        self.timeout = (timeout_ms or settings.identity_timeout_ms) / 1000
        self._transport = transport

    async def list_active_workers(self) -> list[Worker]:
        if not self.endpoint:
            raise UpstreamFailure("Identity endpoint not configured", "IDENTITY_NOT_CONFIGURED")

        url = f"{self.endpoint.rstrip('/')}/v1/users"
        headers = {"Accept": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, params={"active": "true"}, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error("Identity lookup failed: %s", e)
            raise UpstreamFailure("Failed to load workers", "IDENTITY_UNAVAILABLE") from e
        except ValueError as e:
            logger.error("Identity returned a non-JSON response: %s", e)
            raise UpstreamFailure("Failed to load workers", "IDENTITY_UNAVAILABLE") from e

        users = data.get("users", []) if isinstance(data, dict) else data
        try:
            workers = [Worker.model_validate(user) for user in users]
        except (PydanticValidationError, TypeError) as e:
            raise UpstreamFailure("Identity returned malformed users", "IDENTITY_UNAVAILABLE") from e
        return [w for w in workers if w.active]


class CachedIdentity(Identity):
    """TTL cache in front of another Identity."""

    def __init__(self, inner: Identity, ttl_seconds: Optional[float] = None):
        self.inner = inner
        self.ttl_seconds = settings.identity_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._workers: Optional[list[Worker]] = None
        self._loaded_at = 0.0
        self._lock = asyncio.Lock()

    async def list_active_workers(self) -> list[Worker]:
        async with self._lock:
            now = time.monotonic()
            if self._workers is None or now - self._loaded_at >= self.ttl_seconds:
                self._workers = await self.inner.list_active_workers()
                self._loaded_at = now
                logger.debug("Refreshed active worker cache (%d workers)", len(self._workers))
            return list(self._workers)

    def invalidate(self) -> None:
        self._workers = None


# Singleton instance
_identity: Optional[Identity] = None


def get_identity_client() -> Identity:
    """Get the process-wide (cached) identity client."""
    global _identity
    if _identity is None:
        _identity = CachedIdentity(HttpIdentityClient())
    return _identity
