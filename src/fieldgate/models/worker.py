"""Worker and actor models."""

from typing import Optional

from pydantic import BaseModel


class Worker(BaseModel):
    """Field worker, owned by the identity collaborator."""

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    active: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class Actor(BaseModel):
    """Authenticated caller of an operation."""

    id: str
    is_admin: bool = False

    def __hash__(self) -> int:
        return hash((self.id, self.is_admin))
