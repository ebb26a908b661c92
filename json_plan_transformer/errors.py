from __future__ import annotations

from enum import Enum
from typing import List, Optional


class ErrorReason(str, Enum):
    """Machine-readable reasons for structural failures."""

    NO_RECORDSET_FOUND = "NoRecordsetFound"
    WRONG_SHAPE = "WrongShape"
    PLAN_INVALID = "PlanInvalid"
    PLAN_PARSE_ERROR = "PlanParseError"


class TransformError(Exception):
    reason: Optional[ErrorReason] = None

    def __init__(self, message: str, reason: Optional[ErrorReason] = None):
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class PlanValidationError(TransformError):
    """Raised when a plan is structurally invalid."""

    reason = ErrorReason.PLAN_INVALID

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Plan validation failed: " + "; ".join(self.errors))


class PlanParseError(TransformError):
    """Raised when plan text cannot be decoded into JSON."""

    reason = ErrorReason.PLAN_PARSE_ERROR


class ExpressionSyntaxError(TransformError):
    reason = ErrorReason.PLAN_INVALID

    def __init__(self, message: str, expression: str, position: int):
        self.expression = expression
        self.position = position
        super().__init__(f"{message} at position {position} in '{expression}'")
