"""FieldGate engine - ledger, state machine and aggregation."""

from fieldgate.engine.errors import (
    Conflict,
    FieldGateError,
    Forbidden,
    InvalidTransition,
    NotFound,
    UpstreamFailure,
    ValidationError,
)

__all__ = [
    "Conflict",
    "FieldGateError",
    "Forbidden",
    "InvalidTransition",
    "NotFound",
    "UpstreamFailure",
    "ValidationError",
]
