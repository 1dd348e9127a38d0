"""FieldGate HTTP API."""

from fieldgate.api.router import public_router, router

__all__ = ["public_router", "router"]
