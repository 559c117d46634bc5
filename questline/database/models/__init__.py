"""
Database Models Package
========================

SQLAlchemy ORM models for the quest engine, organized by domain.

All models:
- Are schema-only, no business logic
- Use Mapped[] syntax with mapped_column()
- Inherit IdMixin (UUID string key) and, where rows change, TimestampMixin
- Use optimistic locking via a version column where concurrent writers exist

Domain Organization:
--------------------
- curriculum: Subject, RouteSubject, ClassSubject, UserProfile, StudentSubjectRecord
- skills: Skill, SubjectSkillMapping, SkillDependency, UserSkill, UserSkillReward
- quests: Quest, QuestStep, UserQuestAttempt, UserQuestStepProgress
- enums: Shared type-safe enumerations
"""

from questline.core.database.base import Base

from .curriculum import (
    ClassSubject,
    RouteSubject,
    StudentSubjectRecord,
    Subject,
    UserProfile,
)
from .enums import (
    QuestAttemptStatus,
    QuestType,
    RewardSourceType,
    StepProgressStatus,
    SubjectStatus,
)
from .quests import Quest, QuestStep, UserQuestAttempt, UserQuestStepProgress
from .skills import (
    Skill,
    SkillDependency,
    SubjectSkillMapping,
    UserSkill,
    UserSkillReward,
)

__all__ = [
    "Base",
    # curriculum
    "ClassSubject",
    "RouteSubject",
    "StudentSubjectRecord",
    "Subject",
    "UserProfile",
    # skills
    "Skill",
    "SkillDependency",
    "SubjectSkillMapping",
    "UserSkill",
    "UserSkillReward",
    # quests
    "Quest",
    "QuestStep",
    "UserQuestAttempt",
    "UserQuestStepProgress",
    # enums
    "QuestAttemptStatus",
    "QuestType",
    "RewardSourceType",
    "StepProgressStatus",
    "SubjectStatus",
]
