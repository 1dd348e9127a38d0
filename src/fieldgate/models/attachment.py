"""Attachment models - files handed to the storage collaborator."""

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel


@dataclass(frozen=True)
class UploadedFile:
    """Raw file received from a client submission."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class AttachmentRef(BaseModel):
    """Handle to a stored file, as returned by Storage.upload."""

    ref_id: str
    filename: str
    mime_type: str
    size_bytes: int = 0
    url: Optional[str] = None
