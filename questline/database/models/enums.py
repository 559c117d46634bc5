"""
Database Model Enums
====================

Type-safe constants for the categorical columns of the quest schema.
Columns store the ``.value`` string; because every enum here is a ``str``
subclass, members compare equal to the stored strings.
"""

from __future__ import annotations

import enum


class SubjectStatus(str, enum.Enum):
    """Enrollment outcome of a student for one subject."""

    NOT_STARTED = "NotStarted"
    STUDYING = "Studying"
    PASSED = "Passed"
    NOT_PASSED = "NotPassed"


class QuestType(str, enum.Enum):
    SUBJECT = "Subject"
    PRACTICE = "Practice"
    PROJECT = "Project"


class QuestAttemptStatus(str, enum.Enum):
    """
    Lifecycle of a user's quest attempt.

    Abandonment is a status; attempts are never deleted.
    """

    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    ABANDONED = "Abandoned"


class StepProgressStatus(str, enum.Enum):
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


class RewardSourceType(str, enum.Enum):
    """Origin of a skill XP grant, part of the reward idempotency key."""

    ACTIVITY_COMPLETE = "ActivityComplete"
    QUEST_COMPLETE = "QuestComplete"
    MANUAL = "Manual"
