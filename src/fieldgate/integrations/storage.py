"""Storage collaborator - uploads attachments and returns references."""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import httpx

from fieldgate.config import settings
from fieldgate.engine.errors import UpstreamFailure
from fieldgate.models.attachment import AttachmentRef, UploadedFile

logger = logging.getLogger(__name__)


class Storage(ABC):
    """File storage capability used before any ledger write."""

    @abstractmethod
    async def upload(self, files: Sequence[UploadedFile]) -> list[AttachmentRef]:
        """Store ``files``; raises UpstreamFailure when the provider fails."""


class HttpStorageClient(Storage):
    """
    Client for the storage service.

    Usage:
        storage = HttpStorageClient()
        refs = await storage.upload(files)
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        auth_token: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint or settings.storage_endpoint
        self.auth_token = auth_token or settings.storage_auth_token
        self.timeout = (timeout_ms or settings.storage_timeout_ms) / 1000
        self._transport = transport

    async def upload(self, files: Sequence[UploadedFile]) -> list[AttachmentRef]:
        if not files:
            return []
        if not self.endpoint:
            raise UpstreamFailure("Storage endpoint not configured", "STORAGE_NOT_CONFIGURED")

        url = f"{self.endpoint.rstrip('/')}/v1/objects"
        headers = {}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        multipart = [
            ("files", (f.filename, f.data, f.content_type)) for f in files
        ]

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, files=multipart, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error("Storage upload of %d file(s) failed: %s", len(files), e)
            raise UpstreamFailure("Attachment upload failed", "STORAGE_UPLOAD_FAILED") from e

        except ValueError as e:
            logger.error("Storage returned a non-JSON response: %s", e)
            raise UpstreamFailure("Attachment upload failed", "STORAGE_UPLOAD_FAILED") from e

        items = data.get("objects", []) if isinstance(data, dict) else data
        if not isinstance(items, list) or len(items) != len(files):
            logger.error("Storage returned a malformed listing for %d files", len(files))
            raise UpstreamFailure("Storage returned an incomplete upload", "STORAGE_UPLOAD_FAILED")

        try:
            refs = [
                AttachmentRef(
                    ref_id=str(item["id"]),
                    filename=item.get("filename", original.filename),
                    mime_type=item.get("mime_type", original.content_type),
                    size_bytes=item.get("size_bytes", original.size),
                    url=item.get("url"),
                )
                for item, original in zip(items, files)
            ]
        except (KeyError, TypeError) as e:
            raise UpstreamFailure("Storage returned an invalid reference", "STORAGE_UPLOAD_FAILED") from e

        logger.info("Uploaded %d attachment(s)", len(refs))
        return refs


# Singleton instance
_storage: Optional[Storage] = None


def get_storage_client() -> Storage:
    """Get the process-wide storage client."""
    global _storage
    if _storage is None:
        _storage = HttpStorageClient()
    return _storage
