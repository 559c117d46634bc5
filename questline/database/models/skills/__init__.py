"""Skill graph and per-user skill state."""

from .skill import Skill, SkillDependency, SubjectSkillMapping
from .user_skill import UserSkill, UserSkillReward

__all__ = [
    "Skill",
    "SkillDependency",
    "SubjectSkillMapping",
    "UserSkill",
    "UserSkillReward",
]
