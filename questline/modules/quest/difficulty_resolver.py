"""
Quest Difficulty Resolver
=========================

Purpose
-------
Decides which difficulty track a user gets for a subject's quest and why.

Inputs
------
- The user's grade/enrollment record for the subject (may be absent)
- Prerequisite proficiency from ``calculate_proficiency`` (may be absent)
- An optional academic analysis report naming strong and weak areas
- The subject's code, name and mapped skill names

Policy
------
Grade status drives the base label:

- no record / NotStarted -> Standard, or Supportive when prerequisite
  proficiency is below ``quest_engine.grade_thresholds.low_proficiency``
- Studying               -> Adaptive
- NotPassed              -> Supportive
- Passed                 -> Challenging / Standard / Supportive by numeric
  grade against ``quest_engine.grade_thresholds.{challenging,standard}``

While the subject has no definitive outcome (no record, NotStarted,
Studying) the academic analysis may shift the base label one level down
(matched weakness, checked first) or up (matched strength). Shifted
rationales start with "Aligned with identified" so callers can count
analysis-driven decisions.

The rationale text is persisted verbatim into ``UserQuestAttempt.notes``.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence

from questline.core.config.manager import ConfigManager
from questline.core.logging.logger import get_logger
from questline.database.models.enums import SubjectStatus

if TYPE_CHECKING:
    from questline.database.models import StudentSubjectRecord, Subject
    from questline.modules.quest.proficiency import ProficiencyResult

logger = get_logger(__name__)

AI_MARKER = "Aligned with identified"


# ============================================================================
# Difficulty labels
# ============================================================================


class Difficulty(str, enum.Enum):
    """
    Difficulty track labels.

    ``level`` orders the fixed tracks; Adaptive shares Standard's level so
    moving between them is not a track migration.
    """

    SUPPORTIVE = "Supportive"
    STANDARD = "Standard"
    CHALLENGING = "Challenging"
    ADAPTIVE = "Adaptive"

    @classmethod
    def parse(cls, label: Optional[str]) -> "Difficulty":
        """Map a stored label to a member; unknown or empty labels are Standard."""
        if label:
            wanted = str(label).strip().lower()
            for member in cls:
                if member.value.lower() == wanted:
                    return member
        return cls.STANDARD

    @property
    def level(self) -> int:
        return _LEVELS[self]

    def shifted(self, steps: int) -> "Difficulty":
        """Move ``steps`` levels along Supportive < Standard < Challenging."""
        target = min(max(self.level + steps, 0), len(_BY_LEVEL) - 1)
        return _BY_LEVEL[target]


_LEVELS = {
    Difficulty.SUPPORTIVE: 0,
    Difficulty.STANDARD: 1,
    Difficulty.ADAPTIVE: 1,
    Difficulty.CHALLENGING: 2,
}

_BY_LEVEL = (Difficulty.SUPPORTIVE, Difficulty.STANDARD, Difficulty.CHALLENGING)


def difficulty_level(label: Optional[str]) -> int:
    return Difficulty.parse(label).level


# ============================================================================
# Inputs / outputs
# ============================================================================


@dataclass(frozen=True)
class DifficultyThresholds:
    challenging: float = 8.5
    standard: float = 7.0
    low_proficiency: float = 0.3

    @classmethod
    def from_config(cls) -> "DifficultyThresholds":
        defaults = cls()
        return cls(
            challenging=float(
                ConfigManager.get(
                    "quest_engine.grade_thresholds.challenging", defaults.challenging
                )
            ),
            standard=float(
                ConfigManager.get(
                    "quest_engine.grade_thresholds.standard", defaults.standard
                )
            ),
            low_proficiency=float(
                ConfigManager.get(
                    "quest_engine.grade_thresholds.low_proficiency",
                    defaults.low_proficiency,
                )
            ),
        )


@dataclass
class AcademicAnalysisReport:
    """Externally produced strengths/weaknesses, consumed as plain text."""

    strong_areas: List[str] = field(default_factory=list)
    weak_areas: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DifficultyResolution:
    difficulty: Difficulty
    reason: str
    subject_grade: Optional[str] = None
    subject_status: str = SubjectStatus.NOT_STARTED.value
    ai_adjusted: bool = False


def parse_grade(grade: Optional[str]) -> Optional[float]:
    """Numeric grade or None for empty, letter or non-finite grades."""
    if grade is None or not str(grade).strip():
        return None
    try:
        value = float(str(grade).strip())
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def _matches_any(area: str, terms: Sequence[str]) -> bool:
    if not area or not area.strip():
        return False
    area_lower = area.strip().lower()
    for term in terms:
        term_lower = term.lower()
        if term_lower in area_lower or area_lower in term_lower:
            return True
    return False


# ============================================================================
# Resolver
# ============================================================================


class DifficultyResolver:
    """
    Stateless difficulty policy.

    Example:
        >>> resolver = DifficultyResolver()
        >>> resolver.resolve(record, proficiency, subject).difficulty
        <Difficulty.CHALLENGING: 'Challenging'>
    """

    def __init__(self, thresholds: Optional[DifficultyThresholds] = None) -> None:
        self._thresholds = thresholds

    @property
    def thresholds(self) -> DifficultyThresholds:
        return self._thresholds or DifficultyThresholds.from_config()

    def resolve(
        self,
        grade_record: Optional[StudentSubjectRecord],
        proficiency: Optional[ProficiencyResult],
        subject: Optional[Subject] = None,
        academic_analysis: Optional[AcademicAnalysisReport] = None,
        subject_skill_names: Optional[Iterable[str]] = None,
    ) -> DifficultyResolution:
        thresholds = self.thresholds
        base = self._resolve_base(grade_record, proficiency, thresholds)

        if academic_analysis is None or subject is None:
            return base
        if base.subject_status not in (
            SubjectStatus.NOT_STARTED.value,
            SubjectStatus.STUDYING.value,
        ):
            return base

        terms = [
            term.strip()
            for term in [subject.code, subject.name, *(subject_skill_names or [])]
            if term and term.strip()
        ]

        logger.debug(
            "Checking academic analysis against subject",
            extra={
                "subject_code": subject.code,
                "search_terms": terms,
                "strong_areas": academic_analysis.strong_areas,
                "weak_areas": academic_analysis.weak_areas,
            },
        )

        for kind, areas, steps in (
            ("weakness", academic_analysis.weak_areas, -1),
            ("strength", academic_analysis.strong_areas, 1),
        ):
            for area in areas or []:
                if not _matches_any(area, terms):
                    continue
                shifted = base.difficulty.shifted(steps)
                if shifted is base.difficulty:
                    logger.debug(
                        "Academic analysis match does not move difficulty",
                        extra={"area": area, "difficulty": base.difficulty.value},
                    )
                    return base
                logger.info(
                    "Difficulty aligned with academic analysis",
                    extra={
                        "subject_code": subject.code,
                        "area": area,
                        "match_type": kind,
                        "base_difficulty": base.difficulty.value,
                        "difficulty": shifted.value,
                    },
                )
                return DifficultyResolution(
                    difficulty=shifted,
                    reason=f"{AI_MARKER} {kind}: '{area}' ({base.reason})",
                    subject_grade=base.subject_grade,
                    subject_status=base.subject_status,
                    ai_adjusted=True,
                )

        return base

    def _resolve_base(
        self,
        record: Optional[StudentSubjectRecord],
        proficiency: Optional[ProficiencyResult],
        thresholds: DifficultyThresholds,
    ) -> DifficultyResolution:
        status = record.status if record is not None else SubjectStatus.NOT_STARTED.value
        grade = parse_grade(record.grade) if record is not None else None
        if grade is not None:
            grade_display: Optional[str] = f"{grade:.1f}"
        else:
            grade_display = record.grade if record is not None else None

        def result(difficulty: Difficulty, reason: str) -> DifficultyResolution:
            return DifficultyResolution(
                difficulty=difficulty,
                reason=reason,
                subject_grade=grade_display,
                subject_status=status,
            )

        if status == SubjectStatus.STUDYING:
            return result(
                Difficulty.ADAPTIVE,
                "Currently enrolled - content adapts to your progress",
            )

        if status == SubjectStatus.NOT_PASSED:
            return result(Difficulty.SUPPORTIVE, "Retaking subject - focus on fundamentals")

        if status == SubjectStatus.PASSED:
            if grade is None:
                return result(Difficulty.STANDARD, "Passed - standard learning path")
            if grade >= thresholds.challenging:
                return result(
                    Difficulty.CHALLENGING,
                    f"Excellent score ({grade_display}) - advanced content",
                )
            if grade >= thresholds.standard:
                return result(
                    Difficulty.STANDARD,
                    f"Good score ({grade_display}) - balanced difficulty",
                )
            return result(
                Difficulty.SUPPORTIVE,
                f"Lower score ({grade_display}) - reinforcement included",
            )

        if status != SubjectStatus.NOT_STARTED:
            logger.warning(
                "Unknown subject status; treating as not started",
                extra={"subject_status": status},
            )
            status = SubjectStatus.NOT_STARTED.value

        if (
            proficiency is not None
            and 0.0 <= proficiency.score < thresholds.low_proficiency
        ):
            return result(Difficulty.SUPPORTIVE, "Prerequisite skills need strengthening")

        return result(Difficulty.STANDARD, "First attempt - standard learning path")
