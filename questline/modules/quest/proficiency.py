"""
Prerequisite proficiency calculation.

Estimates how ready a user is for a subject from their mastery of the skills
that gate the subject's own skills in the skill dependency graph. Pure
function over plain collections; callers load the rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple

from questline.core.config.manager import ConfigManager

DEFAULT_MASTERY_LEVEL = 2


@dataclass(frozen=True, slots=True)
class ProficiencyResult:
    """Readiness score in [0, 1] with the counts it was derived from."""

    score: float
    met: int
    unknown: int
    total: int

    def describe(self) -> str:
        return (
            f"{self.score:.0%} (met: {self.met}, unknown: {self.unknown}, "
            f"total: {self.total})"
        )


def calculate_proficiency(
    subject_skill_ids: Iterable[str],
    dependencies: Iterable[Tuple[str, str]],
    user_skill_levels: Mapping[str, int],
    *,
    mastery_level: Optional[int] = None,
) -> Optional[ProficiencyResult]:
    """
    Compute prerequisite proficiency for one subject.

    Args:
        subject_skill_ids: Skills mapped to the subject
        dependencies: ``(skill_id, prerequisite_skill_id)`` edges
        user_skill_levels: The user's tracked level per skill id
        mastery_level: Level at which a prerequisite counts as met;
            defaults to ``quest_engine.proficiency.mastery_level``

    Returns:
        None when the subject has no mapped skills or nothing gates them,
        otherwise the proficiency result. Unknown prerequisites count in
        the user's favor; if every prerequisite is unknown the score is 1.0.
    """
    skills = set(subject_skill_ids)
    if not skills:
        return None

    if mastery_level is None:
        mastery_level = int(
            ConfigManager.get(
                "quest_engine.proficiency.mastery_level", DEFAULT_MASTERY_LEVEL
            )
        )

    prerequisites = {prereq for skill, prereq in dependencies if skill in skills}
    if not prerequisites:
        return None

    met = 0
    unknown = 0
    for prereq in prerequisites:
        level = user_skill_levels.get(prereq)
        if level is None:
            unknown += 1
        elif level >= mastery_level:
            met += 1

    total = len(prerequisites)
    if unknown == total:
        return ProficiencyResult(score=1.0, met=0, unknown=unknown, total=total)

    return ProficiencyResult(
        score=(met + unknown) / total,
        met=met,
        unknown=unknown,
        total=total,
    )
