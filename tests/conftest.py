"""
Pytest Configuration and Fixtures for the Questline Test Suite
==============================================================

Purpose
-------
Centralized fixtures for unit and integration tests.

Responsibilities
----------------
- Force the testing environment before any ``questline`` import
- Throwaway SQLite database (aiosqlite) per integration test
- Fresh ConfigManager and EventBus per test
- Factories for curriculum, skill and quest rows

Architecture Notes
------------------
- Unit tests use plain objects and mocks (fast, isolated)
- Integration tests run the real services against a temp-file SQLite
  database created through ``DatabaseService.create_schema()``
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]

os.environ["ENVIRONMENT"] = "testing"
os.environ["TESTING"] = "true"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_TO_FILE"] = "false"
os.environ["LOG_JSON"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CONFIG_DIR"] = str(PROJECT_ROOT / "config")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from questline.core.config.manager import ConfigManager  # noqa: E402
from questline.core.database.service import DatabaseService  # noqa: E402
from questline.core.event.bus import EventBus  # noqa: E402
from questline.database.models import (  # noqa: E402
    ClassSubject,
    Quest,
    QuestStep,
    RouteSubject,
    Skill,
    SkillDependency,
    StudentSubjectRecord,
    Subject,
    SubjectSkillMapping,
    UserProfile,
    UserQuestAttempt,
    UserSkill,
)


# ============================================================================
# CONFIG / EVENT FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def reset_config_manager():
    """Every test starts from the shipped YAML with no overrides."""
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus(config_manager=ConfigManager)


@pytest.fixture
def captured_events(event_bus: EventBus) -> List[Dict[str, Any]]:
    """Records every published event as ``{"name": ..., "data": ...}``."""
    events: List[Dict[str, Any]] = []

    def _capture(name: str):
        def listener(data: Dict[str, Any]) -> None:
            events.append({"name": name, "data": dict(data)})

        return listener

    for name in (
        "skill.reward_granted",
        "quest_line.generated",
        "quest.difficulty_migrated",
    ):
        event_bus.subscribe(name, _capture(name), identifier=f"capture.{name}")
    return events


@pytest.fixture
def mock_event_bus(mocker):
    """EventBus double for unit tests."""
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock(return_value="listener-id")
    return mock_bus


# ============================================================================
# DATABASE FIXTURES (Integration Tests)
# ============================================================================


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[None, None]:
    """
    Initialize DatabaseService against a fresh SQLite file.

    Scope: function (clean schema per test)
    """
    await DatabaseService.shutdown()
    await DatabaseService.initialize(url=f"sqlite+aiosqlite:///{tmp_path / 'questline.db'}")
    await DatabaseService.create_schema()
    yield
    await DatabaseService.shutdown()


# ============================================================================
# FACTORIES
# ============================================================================


class Factory:
    """Inserts rows in their own committed transactions."""

    async def _add(self, instance: Any) -> Any:
        async with DatabaseService.get_transaction() as session:
            session.add(instance)
            await session.flush()
        return instance

    async def subject(
        self,
        code: str,
        name: Optional[str] = None,
        prerequisites: Optional[List[str]] = None,
    ) -> Subject:
        return await self._add(
            Subject(
                code=code,
                name=name or f"Subject {code}",
                credits=3,
                prerequisite_subject_ids=prerequisites or [],
            )
        )

    async def profile(
        self,
        user_id: str,
        route_id: Optional[str] = "route-1",
        class_id: Optional[str] = "class-1",
    ) -> UserProfile:
        return await self._add(
            UserProfile(user_id=user_id, username=user_id, route_id=route_id, class_id=class_id)
        )

    async def route_subject(self, route_id: str, subject: Subject) -> RouteSubject:
        return await self._add(RouteSubject(route_id=route_id, subject_id=subject.id))

    async def class_subject(self, class_id: str, subject: Subject) -> ClassSubject:
        return await self._add(ClassSubject(class_id=class_id, subject_id=subject.id))

    async def grade(
        self, user_id: str, subject: Subject, status: str, grade: Optional[str] = None
    ) -> StudentSubjectRecord:
        return await self._add(
            StudentSubjectRecord(
                user_id=user_id, subject_id=subject.id, status=status, grade=grade
            )
        )

    async def skill(self, name: str) -> Skill:
        return await self._add(Skill(name=name, tier=1, domain="general"))

    async def map_skill(
        self, subject: Subject, skill: Skill, weight: float = 1.0
    ) -> SubjectSkillMapping:
        return await self._add(
            SubjectSkillMapping(subject_id=subject.id, skill_id=skill.id, relevance_weight=weight)
        )

    async def depends(self, skill: Skill, prerequisite: Skill) -> SkillDependency:
        return await self._add(
            SkillDependency(skill_id=skill.id, prerequisite_skill_id=prerequisite.id)
        )

    async def user_skill(self, user_id: str, skill: Skill, level: int) -> UserSkill:
        return await self._add(
            UserSkill(
                user_id=user_id,
                skill_id=skill.id,
                skill_name=skill.name,
                level=level,
                experience_points=(level - 1) * 1000,
            )
        )

    async def quest(self, subject: Optional[Subject] = None, title: str = "Quest") -> Quest:
        return await self._add(
            Quest(
                title=title,
                description="",
                is_active=True,
                subject_id=subject.id if subject is not None else None,
            )
        )

    async def step(
        self,
        quest: Quest,
        step_number: int,
        difficulty: str,
        experience_points: int,
        content: Any = None,
        title: Optional[str] = None,
    ) -> QuestStep:
        return await self._add(
            QuestStep(
                quest_id=quest.id,
                step_number=step_number,
                title=title or f"Step {step_number}",
                difficulty_variant=difficulty,
                experience_points=experience_points,
                content=content,
            )
        )

    async def attempt(
        self,
        user_id: str,
        quest: Quest,
        difficulty: str,
        status: str = "InProgress",
        total_experience_earned: int = 0,
    ) -> UserQuestAttempt:
        return await self._add(
            UserQuestAttempt(
                user_id=user_id,
                quest_id=quest.id,
                status=status,
                assigned_difficulty=difficulty,
                total_experience_earned=total_experience_earned,
                completion_percentage=0.0,
                notes="",
            )
        )


@pytest.fixture
def factory(database) -> Factory:
    return Factory()


def activity_content(*activities: Dict[str, Any]) -> Dict[str, Any]:
    """Build step content ``{"activities": [...]}``."""
    return {"activities": list(activities)}


def activity(
    activity_id: str,
    xp: Any = 0,
    activity_type: str = "Reading",
    skill_id: Optional[str] = None,
    title: Optional[str] = None,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "activityId": activity_id,
        "type": activity_type,
        "payload": {"experiencePoints": xp},
    }
    if skill_id is not None:
        entry["skillId"] = skill_id
    if title is not None:
        entry["payload"]["title"] = title
    return entry
