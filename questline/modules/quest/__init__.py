"""
Quest progression and reward engine.

- content_extractor: tolerant reader for step activity content
- proficiency: prerequisite skill readiness score
- difficulty_resolver: difficulty track policy
- quest_line_service: quest attempt generation and track migration
- progress_service: activity completion, capped XP ledger, completion %
- reward_service: skill XP ingestion from ``skill.reward_granted``
"""

from .content_extractor import (
    ActivityInfo,
    count_activities,
    extract_activities,
    find_activity,
    normalize_content,
)
from .difficulty_resolver import (
    AcademicAnalysisReport,
    Difficulty,
    DifficultyResolution,
    DifficultyResolver,
    DifficultyThresholds,
)
from .progress_service import ActivityProgressService
from .proficiency import ProficiencyResult, calculate_proficiency
from .quest_line_service import QuestLineResult, QuestLineService
from .reward_service import SkillRewardService

__all__ = [
    # Content
    "ActivityInfo",
    "count_activities",
    "extract_activities",
    "find_activity",
    "normalize_content",
    # Difficulty
    "AcademicAnalysisReport",
    "Difficulty",
    "DifficultyResolution",
    "DifficultyResolver",
    "DifficultyThresholds",
    # Proficiency
    "ProficiencyResult",
    "calculate_proficiency",
    # Services
    "ActivityProgressService",
    "QuestLineResult",
    "QuestLineService",
    "SkillRewardService",
]
