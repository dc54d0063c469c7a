"""
Error taxonomy for the pricing pipeline.

Every fatal condition aborts the whole estimate call. Classification misses
are not errors; they surface as Fallback results instead.
"""
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Kinds of fatal pipeline failure."""
    INPUT_VALIDATION = "input_validation"
    INVARIANT_VIOLATION = "invariant_violation"
    AUDIT_WRITE = "audit_write"


class PricingError(Exception):
    """Base exception for the pricing pipeline."""
    kind: ErrorKind

    def __init__(self, reason: str, stage: Optional[str] = None):
        self.reason = reason
        self.stage = stage
        super().__init__(reason)

    def to_dict(self) -> dict[str, Any]:
        """Structured payload for the request-handling layer."""
        return {
            "kind": self.kind.value,
            "reason": self.reason,
            "stage": self.stage,
        }


class InputValidationError(PricingError):
    """Raised when a scope record is missing or malformed."""
    kind = ErrorKind.INPUT_VALIDATION


class InvariantViolation(PricingError):
    """Raised when a computed value breaks a pricing invariant.

    This indicates a configuration bug; no price is returned.
    """
    kind = ErrorKind.INVARIANT_VIOLATION


class AuditWriteError(PricingError):
    """Raised when an audit entry could not be persisted."""
    kind = ErrorKind.AUDIT_WRITE
