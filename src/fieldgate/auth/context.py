"""Authentication context helpers."""

from dataclasses import dataclass
from typing import Literal

from fieldgate.models.worker import Actor


@dataclass(frozen=True)
class AuthContext:
    """Authentication context for the current request."""

    actor: Actor
    auth_type: Literal["api_key", "insecure_dev"]

    @property
    def is_admin(self) -> bool:
        return self.actor.is_admin
