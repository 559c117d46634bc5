"""
Skill, SubjectSkillMapping, SkillDependency: the skill graph.
Schema only. Dependencies form a DAG that is read, never written, here.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, IdMixin, TimestampMixin


class Skill(Base, IdMixin, TimestampMixin):
    __tablename__ = "skills"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    tier: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    domain: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)


class SubjectSkillMapping(Base, IdMixin):
    """Skill taught by a subject, weighted by relevance."""

    __tablename__ = "subject_skill_mappings"
    __table_args__ = (UniqueConstraint("subject_id", "skill_id"),)

    subject_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    skill_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("skills.id", ondelete="CASCADE"),
        nullable=False,
    )
    relevance_weight: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)


class SkillDependency(Base, IdMixin):
    """Edge ``prerequisite_skill_id -> skill_id``."""

    __tablename__ = "skill_dependencies"
    __table_args__ = (UniqueConstraint("skill_id", "prerequisite_skill_id"),)

    skill_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("skills.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    prerequisite_skill_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("skills.id", ondelete="CASCADE"),
        nullable=False,
    )
