"""Request authentication."""

from fieldgate.auth.context import AuthContext

__all__ = ["AuthContext"]
