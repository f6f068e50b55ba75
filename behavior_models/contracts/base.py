"""
Base Contracts and Shared Types

Foundational error and result types used across every component.
All types here are IMMUTABLE and represent pure data.

ERROR TAXONOMY:
===============
- Validation errors raise ConfigurationError at the call boundary
- Expected, caller-recoverable conditions travel as Result.failure(Error)
- Training failures are re-raised after the version is archived
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple
from enum import Enum, auto


class ConfigurationError(ValueError):
    """Raised for unknown techniques/methods/types and out-of-range parameters."""


class TrainingCancelled(RuntimeError):
    """Raised inside a training run when its cancellation event is set."""


class TrainingInProgressError(RuntimeError):
    """Raised when a second training run targets a trainer that is already busy."""


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for caller-recoverable failures.
    Every structured failure carries exactly one of these.
    """
    VERSION_NOT_FOUND = auto()
    INVALID_STATE_TRANSITION = auto()
    ARTIFACT_NOT_FOUND = auto()
    NO_ROLLBACK_TARGET = auto()
    TRAINING_IN_PROGRESS = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and returned.
    """
    code: ErrorCode
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            context=self.context + ((key, value),)
        )

    def to_dict(self) -> dict:
        return {
            'success': False,
            'message': self.message,
            'errorCode': self.code.name,
            'context': dict(self.context),
        }


@dataclass(frozen=True)
class Result:
    """
    Generic result type for operations that can fail.
    Either contains a value OR an error, never both.
    """
    value: Optional[object] = None
    error: Optional[Error] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @property
    def message(self) -> str:
        if self.error is not None:
            return self.error.message
        return getattr(self.value, 'message', '')

    @staticmethod
    def success(value: object) -> Result:
        return Result(value=value, error=None)

    @staticmethod
    def failure(error: Error) -> Result:
        return Result(value=None, error=error)

    @staticmethod
    def fail(code: ErrorCode, message: str, **context: str) -> Result:
        """Shorthand for a failure carrying a freshly built Error."""
        error = Error(code=code, message=message)
        for key, value in context.items():
            error = error.with_context(key, str(value))
        return Result.failure(error)
