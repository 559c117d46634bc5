"""
Skill Reward Service
====================

Purpose
-------
Consumes skill reward grants and applies them to ``UserSkill`` rows.

Domain
------
- Record every grant in the ``UserSkillReward`` ledger
- Ignore a grant whose (user, source_type, source_id, skill) was already
  recorded, so redelivered events never double-count
- Create the user's skill row on first grant
- Recompute the level from total XP

The activity progress tracker publishes ``skill.reward_granted`` once its
transaction commits; ``register()`` wires this service to that event.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from questline.core.database.service import DatabaseService
from questline.core.event.types import ListenerPriority
from questline.core.logging.logger import get_logger
from questline.database.models import Skill, UserSkill, UserSkillReward
from questline.database.models.enums import RewardSourceType
from questline.modules.quest.repository import (
    SkillRepository,
    UserSkillRepository,
    UserSkillRewardRepository,
)
from questline.modules.shared.base_service import BaseService
from questline.modules.shared.exceptions import (
    ConcurrencyConflictError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from questline.core.config.manager import ConfigManager
    from questline.core.event.bus import EventBus

REWARD_GRANTED_EVENT = "skill.reward_granted"
DEFAULT_XP_PER_LEVEL = 1000


class SkillRewardService(BaseService):
    """
    Applies skill XP grants idempotently.

    Public Methods
    --------------
    - ingest() -> Apply one grant payload
    - register() -> Subscribe ingest to ``skill.reward_granted``
    - level_for() -> Level for a total XP amount
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))

        self._skill_repo = SkillRepository(
            model_class=Skill,
            logger=get_logger(f"{__name__}.SkillRepository"),
        )
        self._user_skill_repo = UserSkillRepository(
            model_class=UserSkill,
            logger=get_logger(f"{__name__}.UserSkillRepository"),
        )
        self._reward_repo = UserSkillRewardRepository(
            model_class=UserSkillReward,
            logger=get_logger(f"{__name__}.UserSkillRewardRepository"),
        )

    def register(self, event_bus: Optional[EventBus] = None) -> str:
        """Subscribe to reward grants; returns the listener id."""
        bus = event_bus or self._events
        return bus.subscribe(
            REWARD_GRANTED_EVENT,
            self.ingest,
            priority=ListenerPriority.HIGH,
            identifier="skill_reward_service.ingest",
        )

    def level_for(self, experience_points: int) -> int:
        xp_per_level = int(
            self.get_config("quest_engine.skill_levels.xp_per_level", DEFAULT_XP_PER_LEVEL)
        )
        if xp_per_level <= 0:
            xp_per_level = DEFAULT_XP_PER_LEVEL
        return 1 + max(0, experience_points) // xp_per_level

    async def ingest(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply one skill reward grant.

        Payload keys: ``user_id``, ``skill_id``, ``points``, ``source_type``
        (defaults to ActivityComplete), ``source_id`` and optional ``reason``.

        Returns:
            Dict with ``granted`` (False for a duplicate), ``skill_id``,
            ``level`` and ``experience_points``.

        Raises:
            ValidationError: Missing identifiers or non-integer points
            NotFoundError: Unknown skill
            ConcurrencyConflictError: The skill row changed concurrently
        """
        user_id = self.validate_identifier(payload.get("user_id"), "user_id")
        skill_id = self.validate_identifier(payload.get("skill_id"), "skill_id")
        source_id = self.validate_identifier(payload.get("source_id"), "source_id")
        source_type = self.validate_identifier(
            payload.get("source_type") or RewardSourceType.ACTIVITY_COMPLETE.value,
            "source_type",
        )
        points = payload.get("points")
        if not isinstance(points, int) or isinstance(points, bool):
            raise ValidationError("points", f"points must be an integer, got {points!r}")
        reason = payload.get("reason")

        self.log_operation(
            "ingest_skill_reward",
            user_id=user_id,
            skill_id=skill_id,
            source_type=source_type,
            source_id=source_id,
            points=points,
        )

        try:
            async with DatabaseService.get_transaction() as session:
                existing = await self._reward_repo.find_by_source(
                    session, user_id, source_type, source_id, skill_id
                )
                if existing is not None:
                    self.log.info(
                        "Duplicate skill reward ignored",
                        extra={
                            "user_id": user_id,
                            "skill_id": skill_id,
                            "source_type": source_type,
                            "source_id": source_id,
                        },
                    )
                    user_skill = await self._user_skill_repo.find_by_user_and_skill(
                        session, user_id, skill_id
                    )
                    return self._result(skill_id, user_skill, granted=False)

                skill = await self._skill_repo.get(session, skill_id)
                if skill is None:
                    raise NotFoundError("Skill", skill_id)

                self._reward_repo.add(
                    session,
                    UserSkillReward(
                        user_id=user_id,
                        skill_id=skill_id,
                        source_type=source_type,
                        source_id=source_id,
                        points=points,
                        reason=reason,
                    ),
                )

                user_skill = await self._user_skill_repo.find_by_user_and_skill(
                    session, user_id, skill_id, for_update=True
                )
                if user_skill is None:
                    user_skill = self._user_skill_repo.add(
                        session,
                        UserSkill(
                            user_id=user_id,
                            skill_id=skill_id,
                            skill_name=skill.name,
                            level=1,
                            experience_points=0,
                        ),
                    )

                user_skill.experience_points = max(
                    0, (user_skill.experience_points or 0) + points
                )
                user_skill.level = self.level_for(user_skill.experience_points)
                await self._user_skill_repo.flush(session)

                result = self._result(skill_id, user_skill, granted=True)

        except IntegrityError:
            # Lost the insert race on the ledger's unique key
            self.log.info(
                "Concurrent duplicate skill reward ignored",
                extra={"user_id": user_id, "skill_id": skill_id, "source_id": source_id},
            )
            async with DatabaseService.get_session() as session:
                user_skill = await self._user_skill_repo.find_by_user_and_skill(
                    session, user_id, skill_id
                )
                return self._result(skill_id, user_skill, granted=False)

        except StaleDataError as exc:
            self.log_error("ingest_skill_reward", exc, user_id=user_id, skill_id=skill_id)
            raise ConcurrencyConflictError("UserSkill", f"{user_id}/{skill_id}") from exc

        self.log.info(
            "Skill reward applied",
            extra={
                "user_id": user_id,
                "skill_id": skill_id,
                "points": points,
                "level": result["level"],
                "experience_points": result["experience_points"],
            },
        )
        return result

    @staticmethod
    def _result(
        skill_id: str, user_skill: Optional[UserSkill], granted: bool
    ) -> Dict[str, Any]:
        return {
            "granted": granted,
            "skill_id": skill_id,
            "level": user_skill.level if user_skill is not None else 1,
            "experience_points": (
                user_skill.experience_points if user_skill is not None else 0
            ),
        }
