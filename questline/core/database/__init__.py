"""Database subsystem: declarative base, mixins and the async DatabaseService."""

from questline.core.database.base import Base, IdMixin, JSONType, TimestampMixin
from questline.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "IdMixin",
    "JSONType",
    "TimestampMixin",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
