"""
Domain exceptions for the Questline engine.

Purpose
-------
Structured exception hierarchy raised by quest services for missing
entities, unmet preconditions and lost updates. Callers (the surrounding
RPC or HTTP layer) translate these into their own error responses.

Design Notes
------------
- All domain exceptions inherit from `QuestlineDomainException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict-like)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- Best-effort failures (content parsing, completion percentage recompute)
  are logged and never surface as exceptions.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning
    INFO = "info"  # Normal operation (e.g., missing entities, validation)
    WARNING = "warning"  # Concerning but handled (e.g., retryable conflicts)
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # System-level failures requiring immediate action


class QuestlineDomainException(Exception):
    """
    Base exception for all Questline domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class NotFoundError(QuestlineDomainException):
    """
    Raised when a referenced quest, step, subject, skill or profile does
    not exist. Surfaced to the caller, never retried.

    Args:
        resource_type: Type of resource (e.g., "Quest", "QuestStep")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={
                "resource_type": resource_type,
                "identifier": identifier,
            },
            error_code=f"{_code(resource_type)}_NOT_FOUND",
        )


class QuestNotStartedError(NotFoundError):
    """
    Raised when progress is recorded for a quest the user has no attempt for.

    Attempts are created by quest line generation or ``start_quest``; the
    progress tracker never creates them.
    """

    def __init__(self, user_id: str, quest_id: str) -> None:
        super().__init__("QuestAttempt", f"{user_id}/{quest_id}")
        self.user_id = user_id
        self.quest_id = quest_id
        self.message = f"Quest {quest_id} has not been started by user {user_id}"
        self.details.update({"user_id": user_id, "quest_id": quest_id})
        self.error_code = "QUEST_NOT_STARTED"
        self.args = (self.message,)


class InvalidStateError(QuestlineDomainException):
    """
    Raised when a user-correctable precondition is not met, such as a
    profile without a selected route or class.

    Args:
        action: The operation that was refused
        reason: Explanation the user can act on

    Example:
        >>> raise InvalidStateError(
        ...     "generate_quest_line",
        ...     "Select an academic route before generating quests",
        ... )
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        message = f"Invalid state for '{action}': {reason}"
        super().__init__(
            message,
            details={
                "action": action,
                "reason": reason,
            },
            error_code=f"INVALID_STATE_{_code(action)}",
        )


class ValidationError(QuestlineDomainException):
    """
    Raised when caller input fails validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={
                "field": field,
                "validation_message": message,
            },
            error_code=f"VALIDATION_{_code(field)}",
        )


class ConcurrencyConflictError(QuestlineDomainException):
    """
    Raised when an optimistic version check fails because another request
    changed the same row (e.g., a difficulty migration racing an activity
    record). Safe to retry.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        super().__init__(
            f"{resource_type} was modified concurrently: {identifier}",
            details={
                "resource_type": resource_type,
                "identifier": identifier,
            },
            error_code="CONCURRENCY_CONFLICT",
        )


def _code(value: str) -> str:
    """UserQuestAttempt -> USER_QUEST_ATTEMPT, quest_id -> QUEST_ID."""
    out = []
    for index, char in enumerate(value):
        if char.isupper() and index and value[index - 1].islower():
            out.append("_")
        out.append(char)
    return "".join(out).upper()


# Utility functions for exception handling patterns


def is_transient_error(exc: Exception) -> bool:
    """True when the exception is a retryable domain error."""
    if isinstance(exc, QuestlineDomainException):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    """Severity for logging; unknown exceptions are treated as ERROR."""
    if isinstance(exc, QuestlineDomainException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """True if severity is ERROR or CRITICAL."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
