"""
Subject, RouteSubject, ClassSubject: curriculum reference data.
Schema only; rows are written by the curriculum import pipeline.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, IdMixin, JSONType, TimestampMixin


class Subject(Base, IdMixin, TimestampMixin):
    """
    A course in the curriculum.

    ``prerequisite_subject_ids`` lists subject ids that must be passed
    before a quest line is generated for this subject.
    """

    __tablename__ = "subjects"

    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    prerequisite_subject_ids: Mapped[Optional[List[str]]] = mapped_column(
        JSONType,
        nullable=True,
        default=list,
    )


class RouteSubject(Base, IdMixin):
    """Subject required by an academic route (program)."""

    __tablename__ = "route_subjects"
    __table_args__ = (UniqueConstraint("route_id", "subject_id"),)

    route_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    subject_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
    )


class ClassSubject(Base, IdMixin):
    """Subject required by a class specialization, optionally per semester."""

    __tablename__ = "class_subjects"
    __table_args__ = (
        UniqueConstraint("class_id", "subject_id"),
        Index("ix_class_subjects_class_semester", "class_id", "semester"),
    )

    class_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    subject_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
    )
    semester: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
