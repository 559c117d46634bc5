"""
UserSkill, UserSkillReward: per-user skill levels and the reward ledger.
Schema only.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, IdMixin, TimestampMixin


class UserSkill(Base, IdMixin, TimestampMixin):
    """
    A user's level and XP in one skill.

    Read by proficiency calculation; written only by skill reward ingestion.
    """

    __tablename__ = "user_skills"
    __table_args__ = (UniqueConstraint("user_id", "skill_id"),)

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    skill_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("skills.id", ondelete="CASCADE"),
        nullable=False,
    )
    skill_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    version: Mapped[int] = mapped_column(
        nullable=False,
        doc="Optimistic locking version",
    )

    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    experience_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __mapper_args__ = {"version_id_col": version}


class UserSkillReward(Base, IdMixin, TimestampMixin):
    """
    One XP grant. The unique key makes ingestion idempotent per source.
    """

    __tablename__ = "user_skill_rewards"
    __table_args__ = (
        UniqueConstraint("user_id", "source_type", "source_id", "skill_id"),
        Index("ix_user_skill_rewards_user_skill", "user_id", "skill_id"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    skill_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("skills.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_type: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str] = mapped_column(String(128), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
