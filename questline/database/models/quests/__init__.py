"""Quest templates and per-user quest progress."""

from .attempt import UserQuestAttempt, UserQuestStepProgress
from .quest import Quest, QuestStep

__all__ = [
    "Quest",
    "QuestStep",
    "UserQuestAttempt",
    "UserQuestStepProgress",
]
