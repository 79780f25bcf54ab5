from typing import Any, Dict, Optional


class SprintboardError(Exception):
    """Base class for every error a service can raise to an API caller."""

    kind: str = "error"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            error["details"] = self.details
        return error


class ValidationError(SprintboardError):
    kind = "validation"
    status_code = 400


class ConflictError(SprintboardError):
    kind = "conflict"
    status_code = 409


class NotFoundError(SprintboardError):
    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ForbiddenError(SprintboardError):
    kind = "forbidden"
    status_code = 403


class UnauthorizedError(SprintboardError):
    kind = "unauthorized"
    status_code = 401


class InvalidStatusTransitionError(ConflictError):
    def __init__(self, current: str, new: str) -> None:
        super().__init__(
            f"Invalid transition from {current} to {new}",
            details={"current": current, "requested": new},
        )
        self.current = current
        self.new = new
