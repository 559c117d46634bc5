"""
UserQuestAttempt, UserQuestStepProgress: per-user quest state.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, IdMixin, JSONType, TimestampMixin
from questline.database.models.enums import QuestAttemptStatus, StepProgressStatus


class UserQuestAttempt(Base, IdMixin, TimestampMixin):
    """
    One user's instance of a quest.

    ``assigned_difficulty`` is changed only by quest line generation;
    ``total_experience_earned`` never decreases. The version column turns a
    lost update between a migration and an activity record into a
    StaleDataError at flush time.
    """

    __tablename__ = "user_quest_attempts"
    __table_args__ = (UniqueConstraint("user_id", "quest_id"),)

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    quest_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("quests.id", ondelete="CASCADE"),
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        nullable=False,
        doc="Optimistic locking version",
    )

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=QuestAttemptStatus.NOT_STARTED.value,
    )
    assigned_difficulty: Mapped[str] = mapped_column(String(32), nullable=False)
    total_experience_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    current_step_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("quest_steps.id", ondelete="SET NULL"),
        nullable=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __mapper_args__ = {"version_id_col": version}


class UserQuestStepProgress(Base, IdMixin, TimestampMixin):
    """
    Progress on one step of an attempt.

    Created lazily on first activity; all rows of an attempt are deleted when
    its difficulty track changes. ``completed_activity_ids`` and
    ``rewarded_activity_ids`` have set semantics; always assign a new list
    rather than mutating in place. Reverting a completion removes the id
    from ``completed_activity_ids`` only, so a re-completion earns no XP.
    """

    __tablename__ = "user_quest_step_progress"
    __table_args__ = (UniqueConstraint("attempt_id", "step_id"),)

    attempt_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_quest_attempts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("quest_steps.id", ondelete="CASCADE"),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=StepProgressStatus.NOT_STARTED.value,
    )
    completed_activity_ids: Mapped[List[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )
    rewarded_activity_ids: Mapped[List[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )
    attempts_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
