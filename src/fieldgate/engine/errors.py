"""FieldGate engine errors."""


class FieldGateError(Exception):
    """Base error for FieldGate operations."""

    kind = "Error"

    def __init__(self, message: str, code: str = "FIELDGATE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_detail(self) -> dict[str, str]:
        return {"kind": self.kind, "code": self.code, "message": self.message}


class ValidationError(FieldGateError):
    """Input failed validation."""

    kind = "ValidationError"

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code)


class Forbidden(FieldGateError):
    """Actor is not allowed to perform the operation."""

    kind = "Forbidden"

    def __init__(self, message: str = "Forbidden", code: str = "FORBIDDEN"):
        super().__init__(message, code)


class NotFound(FieldGateError):
    kind = "NotFound"

    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} not found: {entity_id}", f"{entity.upper()}_NOT_FOUND")
        self.entity = entity
        self.entity_id = entity_id


class Conflict(FieldGateError):
    """A concurrent writer changed the record first."""

    kind = "Conflict"

    def __init__(self, message: str, code: str = "CONFLICT"):
        super().__init__(message, code)


class InvalidTransition(FieldGateError):
    """Requested status change is not the next step of the lifecycle."""

    kind = "InvalidTransition"

    def __init__(
        self,
        current_status: str,
        requested_status: str,
        message: str | None = None,
        code: str = "INVALID_TRANSITION",
    ):
        super().__init__(
            message or f"Invalid transition from {current_status} to {requested_status}",
            code,
        )
        self.current_status = current_status
        self.requested_status = requested_status


class UpstreamFailure(FieldGateError):
    """A collaborator (storage, identity, database) failed."""

    kind = "UpstreamFailure"

    def __init__(self, message: str, code: str = "UPSTREAM_FAILURE"):
        super().__init__(message, code)
