"""Typed failures raised by the task engine.

The intent API converts these into structured error responses; storage
failures (OSError) are deliberately not part of this hierarchy and propagate
unchanged.
"""

from typing import Any, Dict, Optional


class TaskError(Exception):
    code = "ERROR"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})


class NotFoundError(TaskError):
    code = "NOT_FOUND"


class ValidationError(TaskError):
    code = "VALIDATION_ERROR"


class StateError(TaskError):
    code = "STATE_ERROR"


class CollisionError(TaskError):
    code = "COLLISION"


__all__ = ["TaskError", "NotFoundError", "ValidationError", "StateError", "CollisionError"]
