"""
UserProfile, StudentSubjectRecord: a student's selections and grades.
Schema only.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, IdMixin, TimestampMixin
from questline.database.models.enums import SubjectStatus


class UserProfile(Base, IdMixin, TimestampMixin):
    """
    Learner profile.

    Quest line generation requires both ``route_id`` and ``class_id``.
    """

    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    username: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    route_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    class_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)


class StudentSubjectRecord(Base, IdMixin, TimestampMixin):
    """
    Enrollment status and grade for (user, subject).

    ``grade`` is kept as text because institutions report letter grades as
    well as numeric scores.
    """

    __tablename__ = "student_subject_records"
    __table_args__ = (UniqueConstraint("user_id", "subject_id"),)

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    subject_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=SubjectStatus.NOT_STARTED.value,
    )
    grade: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
