"""
Error taxonomy for the application & representation rights engine.

Every operation either succeeds or raises one of these. The HTTP layer maps
them to status codes in ``core.middleware.error_handling``.
"""

from typing import Any


class EngineError(Exception):
    """Base class for all engine errors."""

    code: str = "ENGINE_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class InvalidTransition(EngineError):
    """Target stage is not reachable from the current stage."""

    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, current_stage: str, target_stage: str, message: str | None = None):
        super().__init__(
            message or f"Cannot transition application from '{current_stage}' to '{target_stage}'",
            current_stage=current_stage,
            target_stage=target_stage,
        )
        self.current_stage = current_stage
        self.target_stage = target_stage


class PreconditionFailed(EngineError):
    code = "PRECONDITION_FAILED"
    status_code = 422


class ConflictError(EngineError):
    """Another recruiter already holds the right to represent."""

    code = "CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str,
        conflicting_relationship_id: int | None = None,
        **details: Any,
    ):
        super().__init__(
            message,
            conflicting_relationship_id=conflicting_relationship_id,
            **details,
        )
        self.conflicting_relationship_id = conflicting_relationship_id


class InvalidInput(EngineError):
    code = "INVALID_INPUT"
    status_code = 400


class NotFound(EngineError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} {resource_id} not found",
            resource=resource,
            resource_id=resource_id,
        )
        self.resource = resource
        self.resource_id = resource_id


class Busy(EngineError):
    """Lock or operation timeout. Safe to retry."""

    code = "BUSY"
    status_code = 503
    retryable = True


class Internal(EngineError):
    code = "INTERNAL"
    status_code = 500
