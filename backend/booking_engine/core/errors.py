"""Typed rejections raised by the booking engine.

Every error carries a stable machine-readable ``code`` and a ``context`` dict
(requested window, location, amount where known) so callers can decide whether
to retry, pick another slot or escalate.
"""

from __future__ import annotations

from typing import Any


class EngineError(ValueError):
    """Base class for engine rejections."""

    code = "engine_error"
    retryable = False

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = {key: value for key, value in context.items() if value is not None}

    def as_detail(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "context": {key: _jsonable(value) for key, value in self.context.items()},
        }


class UnknownLocation(EngineError):
    code = "unknown_location"


class OutOfServiceArea(EngineError):
    code = "out_of_service_area"


class Blackout(EngineError):
    code = "blackout"


class InsufficientCapacity(EngineError):
    code = "insufficient_capacity"


class IdempotencyConflict(EngineError):
    code = "idempotency_conflict"


class ValidationError(EngineError):
    code = "validation_error"


class NotFound(EngineError):
    code = "not_found"


class TransientStorageError(EngineError):
    code = "transient_storage_error"
    retryable = True


class AssignmentExceededCapacity(EngineError):
    """Operational alert from batching; never surfaced to booking callers."""

    code = "assignment_exceeded_capacity"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    isoformat = getattr(value, "isoformat", None)
    if callable(isoformat):
        return isoformat()
    return str(value)


__all__ = [
    "AssignmentExceededCapacity",
    "Blackout",
    "EngineError",
    "IdempotencyConflict",
    "InsufficientCapacity",
    "NotFound",
    "OutOfServiceArea",
    "TransientStorageError",
    "UnknownLocation",
    "ValidationError",
]
