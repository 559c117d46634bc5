"""
Shared building blocks for domain services.

Exports the service and repository base classes and the domain exception
hierarchy used across ``questline.modules``.
"""

from .base_repository import BaseRepository
from .base_service import BaseService
from .exceptions import (
    ConcurrencyConflictError,
    ErrorSeverity,
    InvalidStateError,
    NotFoundError,
    QuestlineDomainException,
    QuestNotStartedError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

__all__ = [
    # Base classes
    "BaseRepository",
    "BaseService",
    # Exceptions
    "ConcurrencyConflictError",
    "ErrorSeverity",
    "InvalidStateError",
    "NotFoundError",
    "QuestlineDomainException",
    "QuestNotStartedError",
    "ValidationError",
    # Helpers
    "get_error_severity",
    "is_transient_error",
    "should_alert",
]
