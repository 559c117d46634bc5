"""
Quest, QuestStep: master quest templates.
Schema only; quests are authored by an external generation pipeline.
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, IdMixin, JSONType, TimestampMixin
from questline.database.models.enums import QuestType


class Quest(Base, IdMixin, TimestampMixin):
    """
    Master quest for a subject. One active quest per subject is expected.
    """

    __tablename__ = "quests"
    __table_args__ = (Index("ix_quests_subject_active", "subject_id", "is_active"),)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quest_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=QuestType.SUBJECT.value,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    subject_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("subjects.id", ondelete="SET NULL"),
        nullable=True,
    )


class QuestStep(Base, IdMixin, TimestampMixin):
    """
    One step of a quest on a single difficulty track.

    Steps of the same quest partition by ``difficulty_variant`` into
    disjoint tracks. ``content`` holds the externally authored activity
    blob, either as parsed JSON or as a JSON string.
    """

    __tablename__ = "quest_steps"
    __table_args__ = (
        Index("ix_quest_steps_quest_variant", "quest_id", "difficulty_variant"),
    )

    quest_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("quests.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    difficulty_variant: Mapped[str] = mapped_column(String(32), nullable=False)
    experience_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    content: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
