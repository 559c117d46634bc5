"""
Quest Line Service
==================

Purpose
-------
Builds a user's quest line: decides which subjects get a quest attempt, at
which difficulty, and reconciles existing attempts when the resolved
difficulty changes.

Domain
------
- Candidate subjects are the union of the user's route and class subjects
- Non-academic subjects (config ``quest_line.excluded_subject_codes`` and
  ``quest_line.excluded_name_keywords``) are skipped
- A subject is eligible when the user has a grade record for it, it has no
  prerequisites, or every prerequisite subject has been passed
- Difficulty comes from ``calculate_proficiency`` + ``DifficultyResolver``
- Reconciliation per (user, quest):
  * no attempt                    -> create NotStarted
  * different difficulty level    -> track migration (progress cleared,
                                     XP kept)
  * same level, still NotStarted  -> refresh predicted difficulty/notes
  * same level, already started   -> no-op
- Each subject is reconciled in its own transaction; one failing subject
  never aborts the batch

Events
------
- ``quest.difficulty_migrated`` after each committed migration
- ``quest_line.generated`` with the batch summary
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from questline.core.database.base import utcnow
from questline.core.database.service import DatabaseService
from questline.core.logging.logger import LogContext, get_logger
from questline.database.models import (
    Quest,
    SkillDependency,
    StudentSubjectRecord,
    Subject,
    SubjectSkillMapping,
    UserProfile,
    UserQuestAttempt,
    UserQuestStepProgress,
    UserSkill,
)
from questline.database.models.enums import QuestAttemptStatus, SubjectStatus
from questline.modules.quest.difficulty_resolver import (
    AcademicAnalysisReport,
    DifficultyResolution,
    DifficultyResolver,
    difficulty_level,
)
from questline.modules.quest.proficiency import calculate_proficiency
from questline.modules.quest.repository import (
    QuestRepository,
    SkillDependencyRepository,
    StudentSubjectRecordRepository,
    SubjectRepository,
    SubjectSkillMappingRepository,
    UserProfileRepository,
    UserQuestAttemptRepository,
    UserQuestStepProgressRepository,
    UserSkillRepository,
)
from questline.modules.shared.base_service import BaseService
from questline.modules.shared.exceptions import InvalidStateError, NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from questline.core.config.manager import ConfigManager
    from questline.core.event.bus import EventBus

QUEST_LINE_GENERATED_EVENT = "quest_line.generated"
DIFFICULTY_MIGRATED_EVENT = "quest.difficulty_migrated"

DEFAULT_EXCLUDED_CODES = (
    "VOV114",
    "VOV124",
    "VOV134",
    "TMI101",
    "OTP101",
    "TRS601",
    "PEN",
)
DEFAULT_EXCLUDED_KEYWORDS = ("musical instrument", "orientation", "vovinam")

# Reconciliation outcomes
_GENERATED = "generated"
_MIGRATED = "migrated"
_UPDATED = "updated"
_UNCHANGED = "unchanged"
_NO_QUEST = "no_quest"


@dataclass
class QuestLineResult:
    """Counters and attempt ids of one quest line generation pass."""

    user_id: str
    generated: int = 0
    updated: int = 0
    migrated: int = 0
    unchanged: int = 0
    skipped_locked: int = 0
    skipped_no_quest: int = 0
    skipped_excluded: int = 0
    ai_adjusted: int = 0
    failed: int = 0
    attempt_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class _Reconciliation:
    outcome: str
    attempt_id: Optional[str] = None
    resolution: Optional[DifficultyResolution] = None
    migration: Optional[Dict[str, Any]] = None


class QuestLineService(BaseService):
    """
    Quest line generation and quest activation.

    Public Methods
    --------------
    - generate_quest_line() -> Create/refresh/migrate attempts for a user
    - start_quest() -> Activate (or create) a single attempt
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Optional[Logger] = None,
        difficulty_resolver: Optional[DifficultyResolver] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._resolver = difficulty_resolver or DifficultyResolver()

        self._profile_repo = UserProfileRepository(
            model_class=UserProfile,
            logger=get_logger(f"{__name__}.UserProfileRepository"),
        )
        self._subject_repo = SubjectRepository(
            model_class=Subject,
            logger=get_logger(f"{__name__}.SubjectRepository"),
        )
        self._record_repo = StudentSubjectRecordRepository(
            model_class=StudentSubjectRecord,
            logger=get_logger(f"{__name__}.StudentSubjectRecordRepository"),
        )
        self._mapping_repo = SubjectSkillMappingRepository(
            model_class=SubjectSkillMapping,
            logger=get_logger(f"{__name__}.SubjectSkillMappingRepository"),
        )
        self._dependency_repo = SkillDependencyRepository(
            model_class=SkillDependency,
            logger=get_logger(f"{__name__}.SkillDependencyRepository"),
        )
        self._user_skill_repo = UserSkillRepository(
            model_class=UserSkill,
            logger=get_logger(f"{__name__}.UserSkillRepository"),
        )
        self._quest_repo = QuestRepository(
            model_class=Quest,
            logger=get_logger(f"{__name__}.QuestRepository"),
        )
        self._attempt_repo = UserQuestAttemptRepository(
            model_class=UserQuestAttempt,
            logger=get_logger(f"{__name__}.UserQuestAttemptRepository"),
        )
        self._progress_repo = UserQuestStepProgressRepository(
            model_class=UserQuestStepProgress,
            logger=get_logger(f"{__name__}.UserQuestStepProgressRepository"),
        )

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def generate_quest_line(
        self,
        user_id: str,
        academic_analysis: Optional[AcademicAnalysisReport] = None,
    ) -> QuestLineResult:
        """
        Generate or refresh the user's quest attempts.

        Args:
            user_id: Learner id
            academic_analysis: Optional strengths/weaknesses report

        Returns:
            QuestLineResult with per-outcome counters

        Raises:
            NotFoundError: The user has no profile
            InvalidStateError: Route or class not selected
        """
        user_id = self.validate_identifier(user_id, "user_id")
        result = QuestLineResult(user_id=user_id)

        async with LogContext(user_id=user_id, operation="generate_quest_line"):
            self.log_operation(
                "generate_quest_line",
                user_id=user_id,
                has_academic_analysis=academic_analysis is not None,
            )

            async with DatabaseService.get_session() as session:
                profile = await self._profile_repo.find_by_user(session, user_id)
                if profile is None:
                    raise NotFoundError("UserProfile", user_id)
                if not profile.route_id or not profile.class_id:
                    raise InvalidStateError(
                        "generate_quest_line",
                        "Select an academic route and class before generating quests",
                    )

                subjects = await self._subject_repo.find_required_subjects(
                    session, profile.route_id, profile.class_id
                )
                records = await self._record_repo.find_by_user(session, user_id)
                skill_levels = await self._user_skill_repo.find_levels(session, user_id)

            passed = {
                subject_id
                for subject_id, record in records.items()
                if record.status == SubjectStatus.PASSED
            }
            excluded_codes = {
                code.strip().upper()
                for code in self.get_config(
                    "quest_line.excluded_subject_codes", list(DEFAULT_EXCLUDED_CODES)
                )
            }
            excluded_keywords = [
                keyword.strip().lower()
                for keyword in self.get_config(
                    "quest_line.excluded_name_keywords", list(DEFAULT_EXCLUDED_KEYWORDS)
                )
                if keyword and keyword.strip()
            ]

            for subject in subjects:
                if self._is_excluded(subject, excluded_codes, excluded_keywords):
                    result.skipped_excluded += 1
                    continue

                if not self._is_eligible(subject, records, passed):
                    result.skipped_locked += 1
                    self.log.debug(
                        "Subject locked by prerequisites",
                        extra={"subject_code": subject.code},
                    )
                    continue

                try:
                    async with DatabaseService.get_transaction() as session:
                        reconciliation = await self._reconcile_subject(
                            session,
                            user_id,
                            subject,
                            records.get(subject.id),
                            skill_levels,
                            academic_analysis,
                        )
                except Exception as exc:
                    result.failed += 1
                    self.log_error(
                        "generate_quest_line.subject",
                        exc,
                        user_id=user_id,
                        subject_id=subject.id,
                        subject_code=subject.code,
                    )
                    continue

                self._count(result, reconciliation)

                if reconciliation.migration is not None:
                    await self.emit_event(
                        DIFFICULTY_MIGRATED_EVENT, reconciliation.migration
                    )

            self.log.info(
                "Quest line generated",
                extra={
                    "user_id": user_id,
                    "candidate_subjects": len(subjects),
                    "generated": result.generated,
                    "updated": result.updated,
                    "migrated": result.migrated,
                    "skipped_locked": result.skipped_locked,
                    "skipped_no_quest": result.skipped_no_quest,
                    "skipped_excluded": result.skipped_excluded,
                    "ai_adjusted": result.ai_adjusted,
                    "failed": result.failed,
                },
            )
            await self.emit_event(QUEST_LINE_GENERATED_EVENT, result.to_dict())

        return result

    async def start_quest(self, user_id: str, quest_id: str) -> Dict[str, Any]:
        """
        Activate a quest attempt for the user.

        A NotStarted attempt keeps its predicted difficulty and moves to
        InProgress. A started attempt is returned unchanged. Without an
        attempt, difficulty is resolved for the quest's subject and a new
        InProgress attempt is created.

        Raises:
            NotFoundError: Quest does not exist
        """
        user_id = self.validate_identifier(user_id, "user_id")
        quest_id = self.validate_identifier(quest_id, "quest_id")

        self.log_operation("start_quest", user_id=user_id, quest_id=quest_id)

        async with DatabaseService.get_transaction() as session:
            quest = await self._quest_repo.get(session, quest_id)
            if quest is None:
                raise NotFoundError("Quest", quest_id)

            now = utcnow()
            attempt = await self._attempt_repo.find_by_user_and_quest(
                session, user_id, quest_id, for_update=True
            )

            if attempt is not None and attempt.status != QuestAttemptStatus.NOT_STARTED:
                return self._attempt_summary(attempt, is_new=False)

            if attempt is not None:
                attempt.status = QuestAttemptStatus.IN_PROGRESS.value
                attempt.started_at = now
                await self._attempt_repo.flush(session)
                self.log.info(
                    "Quest attempt activated",
                    extra={"attempt_id": attempt.id, "difficulty": attempt.assigned_difficulty},
                )
                return self._attempt_summary(attempt, is_new=True)

            resolution = await self._resolve_for_quest(session, user_id, quest)
            attempt = self._attempt_repo.add(
                session,
                UserQuestAttempt(
                    user_id=user_id,
                    quest_id=quest_id,
                    status=QuestAttemptStatus.IN_PROGRESS.value,
                    assigned_difficulty=resolution.difficulty.value,
                    notes=resolution.reason,
                    total_experience_earned=0,
                    completion_percentage=0.0,
                    started_at=now,
                ),
            )
            await self._attempt_repo.flush(session)

            self.log.info(
                "Quest attempt created on start",
                extra={"attempt_id": attempt.id, "difficulty": attempt.assigned_difficulty},
            )
            return self._attempt_summary(attempt, is_new=True)

    # ========================================================================
    # PRIVATE - Eligibility
    # ========================================================================

    @staticmethod
    def _is_excluded(
        subject: Subject, codes: set, keywords: Sequence[str]
    ) -> bool:
        if (subject.code or "").strip().upper() in codes:
            return True
        name = (subject.name or "").lower()
        return any(keyword in name for keyword in keywords)

    @staticmethod
    def _is_eligible(
        subject: Subject,
        records: Dict[str, StudentSubjectRecord],
        passed: set,
    ) -> bool:
        if subject.id in records:
            return True
        prerequisites = subject.prerequisite_subject_ids or []
        if not prerequisites:
            return True
        return all(prereq in passed for prereq in prerequisites)

    # ========================================================================
    # PRIVATE - Resolution & reconciliation
    # ========================================================================

    async def _resolve_subject_difficulty(
        self,
        session: AsyncSession,
        subject: Subject,
        record: Optional[StudentSubjectRecord],
        skill_levels: Dict[str, int],
        academic_analysis: Optional[AcademicAnalysisReport],
    ) -> DifficultyResolution:
        mappings = await self._mapping_repo.find_for_subject(session, subject.id)
        skill_ids = [mapping.skill_id for mapping in mappings]
        edges = await self._dependency_repo.find_edges_for_skills(session, skill_ids)
        proficiency = calculate_proficiency(skill_ids, edges, skill_levels)

        skill_names: List[str] = []
        if academic_analysis is not None:
            skill_names = await self._mapping_repo.find_skill_names_for_subject(
                session, subject.id
            )

        resolution = self._resolver.resolve(
            record, proficiency, subject, academic_analysis, skill_names
        )

        self.log.debug(
            "Subject difficulty resolved",
            extra={
                "subject_code": subject.code,
                "difficulty": resolution.difficulty.value,
                "reason": resolution.reason,
                "proficiency": proficiency.describe() if proficiency else None,
                "ai_adjusted": resolution.ai_adjusted,
            },
        )
        return resolution

    async def _resolve_for_quest(
        self, session: AsyncSession, user_id: str, quest: Quest
    ) -> DifficultyResolution:
        subject = None
        if quest.subject_id is not None:
            subject = await self._subject_repo.get(session, quest.subject_id)

        if subject is None:
            return self._resolver.resolve(None, None)

        records = await self._record_repo.find_by_user(session, user_id)
        skill_levels = await self._user_skill_repo.find_levels(session, user_id)
        return await self._resolve_subject_difficulty(
            session, subject, records.get(subject.id), skill_levels, None
        )

    async def _reconcile_subject(
        self,
        session: AsyncSession,
        user_id: str,
        subject: Subject,
        record: Optional[StudentSubjectRecord],
        skill_levels: Dict[str, int],
        academic_analysis: Optional[AcademicAnalysisReport],
    ) -> _Reconciliation:
        quest = await self._quest_repo.find_active_for_subject(session, subject.id)
        if quest is None:
            self.log.debug(
                "No active quest for subject", extra={"subject_code": subject.code}
            )
            return _Reconciliation(outcome=_NO_QUEST)

        resolution = await self._resolve_subject_difficulty(
            session, subject, record, skill_levels, academic_analysis
        )
        label = resolution.difficulty.value

        attempt = await self._attempt_repo.find_by_user_and_quest(
            session, user_id, quest.id, for_update=True
        )

        if attempt is None:
            attempt = self._attempt_repo.add(
                session,
                UserQuestAttempt(
                    user_id=user_id,
                    quest_id=quest.id,
                    status=QuestAttemptStatus.NOT_STARTED.value,
                    assigned_difficulty=label,
                    notes=resolution.reason,
                    total_experience_earned=0,
                    completion_percentage=0.0,
                ),
            )
            await self._attempt_repo.flush(session)
            return _Reconciliation(_GENERATED, attempt.id, resolution)

        old_label = attempt.assigned_difficulty
        if difficulty_level(old_label) != resolution.difficulty.level:
            deleted = await self._progress_repo.delete_for_attempt(session, attempt.id)

            attempt.assigned_difficulty = label
            attempt.notes = (
                f"Difficulty updated: {old_label} -> {label} on "
                f"{utcnow():%Y-%m-%d}. {resolution.reason}"
            )
            attempt.status = QuestAttemptStatus.IN_PROGRESS.value
            attempt.completion_percentage = 0.0
            attempt.completed_at = None
            await self._attempt_repo.flush(session)

            self.log.info(
                "Quest attempt migrated to new difficulty track",
                extra={
                    "attempt_id": attempt.id,
                    "quest_id": quest.id,
                    "old_difficulty": old_label,
                    "new_difficulty": label,
                    "deleted_progress_rows": deleted,
                    "total_experience_earned": attempt.total_experience_earned,
                },
            )
            migration = {
                "user_id": user_id,
                "quest_id": quest.id,
                "attempt_id": attempt.id,
                "old_difficulty": old_label,
                "new_difficulty": label,
                "reason": resolution.reason,
                "total_experience_earned": attempt.total_experience_earned,
            }
            return _Reconciliation(_MIGRATED, attempt.id, resolution, migration)

        if attempt.status == QuestAttemptStatus.NOT_STARTED:
            if attempt.assigned_difficulty == label and attempt.notes == resolution.reason:
                return _Reconciliation(_UNCHANGED, attempt.id, resolution)
            attempt.assigned_difficulty = label
            attempt.notes = resolution.reason
            await self._attempt_repo.flush(session)
            return _Reconciliation(_UPDATED, attempt.id, resolution)

        return _Reconciliation(_UNCHANGED, attempt.id, resolution)

    @staticmethod
    def _count(result: QuestLineResult, reconciliation: _Reconciliation) -> None:
        if reconciliation.outcome == _NO_QUEST:
            result.skipped_no_quest += 1
            return

        if reconciliation.outcome == _GENERATED:
            result.generated += 1
        elif reconciliation.outcome == _MIGRATED:
            result.migrated += 1
        elif reconciliation.outcome == _UPDATED:
            result.updated += 1
        else:
            result.unchanged += 1

        if reconciliation.attempt_id is not None:
            result.attempt_ids.append(reconciliation.attempt_id)
        if reconciliation.resolution is not None and reconciliation.resolution.ai_adjusted:
            result.ai_adjusted += 1

    @staticmethod
    def _attempt_summary(attempt: UserQuestAttempt, is_new: bool) -> Dict[str, Any]:
        return {
            "attempt_id": attempt.id,
            "quest_id": attempt.quest_id,
            "status": attempt.status,
            "assigned_difficulty": attempt.assigned_difficulty,
            "total_experience_earned": attempt.total_experience_earned,
            "is_new": is_new,
        }
