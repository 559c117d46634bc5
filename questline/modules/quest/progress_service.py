"""
Activity Progress Service
=========================

Purpose
-------
Records activity completions against quest steps, maintains the attempt's
difficulty-capped XP ledger and recomputes the quest completion percentage.

Domain
------
- Completing an activity adds it to the step's completed set once; repeats
  are no-ops and never award XP twice
- XP earned on an attempt never exceeds the sum of step XP on the attempt's
  current track, and never decreases (no clawback on un-completion)
- An activity earns XP at most once per track; re-completing it after a
  revert records the completion without awarding again
- A step completes on a quiz activity or when every activity in its content
  has been completed
- Skill rewards are published as ``skill.reward_granted`` after the
  progress transaction commits
- Completion percentage is best-effort: it runs in its own transaction and
  a failure there is logged, never raised

Concurrency
-----------
The attempt row is read ``FOR UPDATE`` and carries an optimistic version
column. The assigned difficulty is snapshotted once per call, and every cap
and percentage computation in that call uses the snapshot. A lost update
surfaces as ``ConcurrencyConflictError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from sqlalchemy.orm.exc import StaleDataError

from questline.core.database.base import utcnow
from questline.core.database.service import DatabaseService
from questline.core.logging.logger import LogContext, get_logger
from questline.database.models import (
    Quest,
    QuestStep,
    SubjectSkillMapping,
    UserQuestAttempt,
    UserQuestStepProgress,
)
from questline.database.models.enums import (
    QuestAttemptStatus,
    RewardSourceType,
    StepProgressStatus,
)
from questline.modules.quest.content_extractor import (
    ActivityInfo,
    extract_activities,
    find_activity,
)
from questline.modules.quest.repository import (
    QuestRepository,
    QuestStepRepository,
    SubjectSkillMappingRepository,
    UserQuestAttemptRepository,
    UserQuestStepProgressRepository,
)
from questline.modules.quest.reward_service import REWARD_GRANTED_EVENT
from questline.modules.shared.base_service import BaseService
from questline.modules.shared.exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    NotFoundError,
    QuestNotStartedError,
    ValidationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from questline.core.config.manager import ConfigManager
    from questline.core.event.bus import EventBus


@dataclass(frozen=True)
class _PendingReward:
    skill_id: str
    points: int
    reason: str


class ActivityProgressService(BaseService):
    """
    Per-activity progress tracking for quest attempts.

    Public Methods
    --------------
    - record_activity() -> Mark an activity completed or not completed
    - get_quest_progress() -> Step-by-step progress on the attempt's track
    - get_completed_activities() -> Completed activity ids of one step
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))

        self._quest_repo = QuestRepository(
            model_class=Quest,
            logger=get_logger(f"{__name__}.QuestRepository"),
        )
        self._step_repo = QuestStepRepository(
            model_class=QuestStep,
            logger=get_logger(f"{__name__}.QuestStepRepository"),
        )
        self._attempt_repo = UserQuestAttemptRepository(
            model_class=UserQuestAttempt,
            logger=get_logger(f"{__name__}.UserQuestAttemptRepository"),
        )
        self._progress_repo = UserQuestStepProgressRepository(
            model_class=UserQuestStepProgress,
            logger=get_logger(f"{__name__}.UserQuestStepProgressRepository"),
        )
        self._mapping_repo = SubjectSkillMappingRepository(
            model_class=SubjectSkillMapping,
            logger=get_logger(f"{__name__}.SubjectSkillMappingRepository"),
        )

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def record_activity(
        self,
        user_id: str,
        quest_id: str,
        step_id: str,
        activity_id: str,
        target_status: Union[StepProgressStatus, str],
    ) -> Dict[str, Any]:
        """
        Record an activity as completed (or revert a completion).

        Args:
            user_id: Learner id
            quest_id: Quest the step belongs to
            step_id: Step containing the activity
            activity_id: Activity id from the step content
            target_status: ``Completed`` to complete; any other status
                reverts a previous completion

        Returns:
            Dict with the step status, completed activity ids, XP awarded
            by this call, the attempt's total XP, its completion
            percentage and the rewarded skill (if any).

        Raises:
            ValidationError: Blank identifiers or unknown status
            NotFoundError: Step missing or not part of the quest
            QuestNotStartedError: The user has no attempt for the quest
            InvalidStateError: Step is not on the attempt's difficulty track
            ConcurrencyConflictError: The attempt changed concurrently
        """
        user_id = self.validate_identifier(user_id, "user_id")
        quest_id = self.validate_identifier(quest_id, "quest_id")
        step_id = self.validate_identifier(step_id, "step_id")
        activity_id = self.validate_identifier(activity_id, "activity_id")
        status = self._parse_status(target_status)

        async with LogContext(
            user_id=user_id, quest_id=quest_id, operation="record_activity"
        ):
            self.log_operation(
                "record_activity",
                user_id=user_id,
                quest_id=quest_id,
                step_id=step_id,
                activity_id=activity_id,
                target_status=status.value,
            )

            try:
                async with DatabaseService.get_transaction() as session:
                    outcome = await self._apply_activity(
                        session, user_id, quest_id, step_id, activity_id, status
                    )
            except StaleDataError as exc:
                self.log_error(
                    "record_activity", exc, user_id=user_id, quest_id=quest_id
                )
                raise ConcurrencyConflictError(
                    "UserQuestAttempt", f"{user_id}/{quest_id}"
                ) from exc

            reward: Optional[_PendingReward] = outcome.pop("_reward")
            snapshot: str = outcome["difficulty"]

            if reward is not None:
                await self.emit_event(
                    REWARD_GRANTED_EVENT,
                    {
                        "user_id": user_id,
                        "skill_id": reward.skill_id,
                        "points": reward.points,
                        "source_type": RewardSourceType.ACTIVITY_COMPLETE.value,
                        "source_id": activity_id,
                        "reason": reward.reason,
                    },
                    context={"quest_id": quest_id, "step_id": step_id},
                )

            percentage = await self._recompute_completion(
                outcome["attempt_id"], snapshot
            )
            if percentage is not None:
                outcome["completion_percentage"] = percentage

            return outcome

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_quest_progress(self, user_id: str, quest_id: str) -> List[Dict[str, Any]]:
        """
        Progress of every step on the attempt's current track.

        A step is locked while the previous step is not completed and the
        step itself has not been started. The first step is never locked.

        Raises:
            QuestNotStartedError: The user has no attempt for the quest
        """
        user_id = self.validate_identifier(user_id, "user_id")
        quest_id = self.validate_identifier(quest_id, "quest_id")

        self.log_operation("get_quest_progress", user_id=user_id, quest_id=quest_id)

        async with DatabaseService.get_session() as session:
            attempt = await self._attempt_repo.find_by_user_and_quest(
                session, user_id, quest_id
            )
            if attempt is None:
                raise QuestNotStartedError(user_id, quest_id)

            steps = await self._step_repo.find_track(
                session, quest_id, attempt.assigned_difficulty
            )
            rows = await self._progress_repo.find_for_attempt(session, attempt.id)

        progress: List[Dict[str, Any]] = []
        previous_status: Optional[str] = None
        for index, step in enumerate(steps):
            row = rows.get(step.id)
            status = row.status if row is not None else StepProgressStatus.NOT_STARTED.value
            total = len(extract_activities(step.content))
            completed = self._completed_count(row, total)

            is_locked = (
                index > 0
                and previous_status != StepProgressStatus.COMPLETED
                and status == StepProgressStatus.NOT_STARTED
            )

            progress.append(
                {
                    "step_id": step.id,
                    "step_number": step.step_number,
                    "title": step.title,
                    "difficulty_variant": step.difficulty_variant,
                    "experience_points": step.experience_points,
                    "status": status,
                    "completed_activities": completed,
                    "total_activities": total,
                    "is_locked": is_locked,
                }
            )
            previous_status = status

        return progress

    async def get_completed_activities(
        self, user_id: str, quest_id: str, step_id: str
    ) -> List[str]:
        """
        Completed activity ids of one step; empty if the step is untouched.

        Raises:
            QuestNotStartedError: The user has no attempt for the quest
        """
        user_id = self.validate_identifier(user_id, "user_id")
        quest_id = self.validate_identifier(quest_id, "quest_id")
        step_id = self.validate_identifier(step_id, "step_id")

        async with DatabaseService.get_session() as session:
            attempt = await self._attempt_repo.find_by_user_and_quest(
                session, user_id, quest_id
            )
            if attempt is None:
                raise QuestNotStartedError(user_id, quest_id)

            row = await self._progress_repo.find_for_step(session, attempt.id, step_id)
            if row is None:
                return []
            return list(row.completed_activity_ids or [])

    # ========================================================================
    # PRIVATE - Activity recording
    # ========================================================================

    async def _apply_activity(
        self,
        session: AsyncSession,
        user_id: str,
        quest_id: str,
        step_id: str,
        activity_id: str,
        status: StepProgressStatus,
    ) -> Dict[str, Any]:
        step = await self._step_repo.get(session, step_id)
        if step is None or step.quest_id != quest_id:
            raise NotFoundError("QuestStep", step_id)

        attempt = await self._attempt_repo.find_by_user_and_quest(
            session, user_id, quest_id, for_update=True
        )
        if attempt is None:
            raise QuestNotStartedError(user_id, quest_id)

        difficulty = attempt.assigned_difficulty
        if not self._same_track(step.difficulty_variant, difficulty):
            raise InvalidStateError(
                "record_activity",
                f"Step {step_id} is on the {step.difficulty_variant} track "
                f"but the attempt is on {difficulty}",
            )

        now = utcnow()
        progress = await self._progress_repo.find_for_step(session, attempt.id, step_id)
        if progress is None:
            progress = self._progress_repo.add(
                session,
                UserQuestStepProgress(
                    attempt_id=attempt.id,
                    step_id=step_id,
                    status=StepProgressStatus.IN_PROGRESS.value,
                    completed_activity_ids=[],
                    rewarded_activity_ids=[],
                    attempts_count=0,
                    started_at=now,
                ),
            )
        completed_ids = list(progress.completed_activity_ids or [])
        already_completed = self._index_of(completed_ids, activity_id) is not None
        rewarded_ids = list(progress.rewarded_activity_ids or [])
        already_rewarded = self._index_of(rewarded_ids, activity_id) is not None

        xp_awarded = 0
        reward: Optional[_PendingReward] = None

        if status is StepProgressStatus.COMPLETED and not already_completed:
            completed_ids.append(activity_id)
            progress.completed_activity_ids = completed_ids
            progress.attempts_count = (progress.attempts_count or 0) + 1

            activity = find_activity(step.content, activity_id)
            if activity is None:
                self.log.warning(
                    "Completed activity not found in step content",
                    extra={"step_id": step_id, "activity_id": activity_id},
                )

            xp = activity.experience_points if activity is not None else 0
            if already_rewarded:
                self.log.info(
                    "Activity re-completed after revert; no XP awarded",
                    extra={"attempt_id": attempt.id, "activity_id": activity_id},
                )
            else:
                rewarded_ids.append(activity_id)
                progress.rewarded_activity_ids = rewarded_ids

            if xp > 0 and not already_rewarded:
                xp_awarded = await self._award_xp(session, attempt, difficulty, xp)
                if xp_awarded > 0:
                    reward = await self._build_reward(
                        session, attempt, step, activity, xp_awarded
                    )

            if self._is_step_complete(step, completed_ids, activity):
                progress.status = StepProgressStatus.COMPLETED.value
                progress.completed_at = now
            else:
                progress.status = StepProgressStatus.IN_PROGRESS.value

        elif status is not StepProgressStatus.COMPLETED and already_completed:
            index = self._index_of(completed_ids, activity_id)
            completed_ids.pop(index)
            progress.completed_activity_ids = completed_ids
            progress.status = StepProgressStatus.IN_PROGRESS.value
            progress.completed_at = None

        elif progress.status == StepProgressStatus.NOT_STARTED:
            progress.status = StepProgressStatus.IN_PROGRESS.value

        if attempt.status == QuestAttemptStatus.NOT_STARTED:
            attempt.status = QuestAttemptStatus.IN_PROGRESS.value
            attempt.started_at = attempt.started_at or now
        attempt.current_step_id = step_id

        await self._progress_repo.flush(session)

        self.log.info(
            "Activity progress recorded",
            extra={
                "user_id": user_id,
                "quest_id": quest_id,
                "step_id": step_id,
                "activity_id": activity_id,
                "target_status": status.value,
                "step_status": progress.status,
                "xp_awarded": xp_awarded,
                "total_experience_earned": attempt.total_experience_earned,
                "difficulty": difficulty,
            },
        )

        return {
            "attempt_id": attempt.id,
            "step_id": step_id,
            "activity_id": activity_id,
            "step_status": progress.status,
            "completed_activity_ids": list(completed_ids),
            "xp_awarded": xp_awarded,
            "total_experience_earned": attempt.total_experience_earned,
            "completion_percentage": attempt.completion_percentage,
            "difficulty": difficulty,
            "skill_id": reward.skill_id if reward is not None else None,
            "_reward": reward,
        }

    async def _award_xp(
        self,
        session: AsyncSession,
        attempt: UserQuestAttempt,
        difficulty: str,
        xp: int,
    ) -> int:
        """Add XP up to the track cap; returns the points actually added."""
        track = await self._step_repo.find_track(session, attempt.quest_id, difficulty)
        track_cap = sum(step.experience_points or 0 for step in track)

        current = attempt.total_experience_earned or 0
        new_total = min(current + xp, track_cap)
        if new_total <= current:
            self.log.info(
                "Track XP cap reached; no XP awarded",
                extra={
                    "attempt_id": attempt.id,
                    "difficulty": difficulty,
                    "track_cap": track_cap,
                    "total_experience_earned": current,
                },
            )
            return 0

        attempt.total_experience_earned = new_total
        return new_total - current

    async def _build_reward(
        self,
        session: AsyncSession,
        attempt: UserQuestAttempt,
        step: QuestStep,
        activity: ActivityInfo,
        points: int,
    ) -> Optional[_PendingReward]:
        skill_id = activity.skill_id
        if skill_id is None:
            quest = await self._quest_repo.get(session, attempt.quest_id)
            if quest is not None and quest.subject_id is not None:
                mappings = await self._mapping_repo.find_for_subject(
                    session, quest.subject_id
                )
                if mappings:
                    skill_id = mappings[0].skill_id

        if skill_id is None:
            self.log.info(
                "No skill to reward for activity",
                extra={"attempt_id": attempt.id, "activity_id": activity.activity_id},
            )
            return None

        label = activity.title or activity.activity_id
        return _PendingReward(
            skill_id=skill_id,
            points=points,
            reason=f"Completed activity '{label}' in quest step: {step.title}",
        )

    @staticmethod
    def _is_step_complete(
        step: QuestStep, completed_ids: List[str], activity: Optional[ActivityInfo]
    ) -> bool:
        if activity is not None and activity.is_quiz:
            return True
        content_ids = {a.activity_id.lower() for a in extract_activities(step.content)}
        if not content_ids:
            return False
        return content_ids <= {str(i).lower() for i in completed_ids}

    @staticmethod
    def _same_track(variant: Optional[str], difficulty: str) -> bool:
        return (variant or "").strip().lower() == (difficulty or "").strip().lower()

    @staticmethod
    def _index_of(completed_ids: List[str], activity_id: str) -> Optional[int]:
        wanted = activity_id.lower()
        for index, value in enumerate(completed_ids):
            if str(value).lower() == wanted:
                return index
        return None

    @staticmethod
    def _completed_count(row: Optional[UserQuestStepProgress], total: int) -> int:
        if row is None:
            return 0
        if row.status == StepProgressStatus.COMPLETED:
            return total
        return min(len(row.completed_activity_ids or []), total)

    @staticmethod
    def _parse_status(value: Union[StepProgressStatus, str]) -> StepProgressStatus:
        if isinstance(value, StepProgressStatus):
            return value
        text = str(value or "").strip().lower()
        for member in StepProgressStatus:
            if member.value.lower() == text:
                return member
        raise ValidationError(
            "target_status",
            f"must be one of {[m.value for m in StepProgressStatus]}, got {value!r}",
        )

    # ========================================================================
    # PRIVATE - Completion percentage
    # ========================================================================

    async def _recompute_completion(
        self, attempt_id: str, difficulty: str
    ) -> Optional[float]:
        """
        Recompute completion percentage on the snapshotted track.

        Returns the new percentage, or None when nothing was written.
        """
        try:
            async with DatabaseService.get_transaction() as session:
                attempt = await self._attempt_repo.get_for_update(session, attempt_id)
                if attempt is None:
                    return None
                if attempt.assigned_difficulty != difficulty:
                    self.log.info(
                        "Difficulty track changed since activity was recorded; "
                        "skipping completion recompute",
                        extra={
                            "attempt_id": attempt_id,
                            "snapshot_difficulty": difficulty,
                            "current_difficulty": attempt.assigned_difficulty,
                        },
                    )
                    return None

                steps = await self._step_repo.find_track(
                    session, attempt.quest_id, difficulty
                )
                rows = await self._progress_repo.find_for_attempt(session, attempt_id)

                total = 0
                completed = 0
                for step in steps:
                    count = len(extract_activities(step.content))
                    total += count
                    completed += self._completed_count(rows.get(step.id), count)

                if total == 0:
                    return None

                percentage = round(100.0 * completed / total, 2)
                attempt.completion_percentage = percentage
                if percentage >= 100.0 and attempt.status != QuestAttemptStatus.COMPLETED:
                    attempt.status = QuestAttemptStatus.COMPLETED.value
                    attempt.completed_at = utcnow()
                    self.log.info(
                        "Quest attempt completed",
                        extra={"attempt_id": attempt_id, "difficulty": difficulty},
                    )
                elif percentage < 100.0 and attempt.status == QuestAttemptStatus.COMPLETED:
                    attempt.status = QuestAttemptStatus.IN_PROGRESS.value
                    attempt.completed_at = None
                    self.log.info(
                        "Quest attempt reopened after a reverted activity",
                        extra={"attempt_id": attempt_id, "percentage": percentage},
                    )

                return percentage

        except Exception as exc:
            self.log_error("recompute_completion", exc, attempt_id=attempt_id)
            return None
