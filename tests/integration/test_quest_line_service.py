"""
Integration Tests for QuestLineService
======================================

Test Coverage
-------------
- Candidate subjects (route + class union), exclusion and prerequisite locks
- Difficulty resolution from grades and prerequisite proficiency
- Reconciliation: create, refresh, migrate, unchanged
- Academic analysis overlay and its counter
- Per-subject failure isolation
- start_quest activation
"""

import pytest

from questline.core.config.manager import ConfigManager
from questline.core.database.service import DatabaseService
from questline.database.models import UserQuestAttempt, UserQuestStepProgress
from questline.modules.quest.difficulty_resolver import AcademicAnalysisReport
from questline.modules.quest.progress_service import ActivityProgressService
from questline.modules.quest.quest_line_service import QuestLineService
from questline.modules.shared.exceptions import InvalidStateError, NotFoundError
from tests.conftest import activity, activity_content

USER = "student-42"


@pytest.fixture
def service(event_bus):
    return QuestLineService(ConfigManager, event_bus)


async def attempts_by_quest():
    async with DatabaseService.get_session() as session:
        rows = (await session.execute(UserQuestAttempt.__table__.select())).all()
    return {row.quest_id: row for row in rows}


@pytest.fixture
async def curriculum(factory):
    """Profile on route-1/class-1 with one quest-backed subject per route."""
    await factory.profile(USER)

    async def add(code, name=None, via="route", prerequisites=None, with_quest=True):
        subject = await factory.subject(code, name, prerequisites)
        if via == "route":
            await factory.route_subject("route-1", subject)
        else:
            await factory.class_subject("class-1", subject)
        quest = await factory.quest(subject, f"{code} quest") if with_quest else None
        return subject, quest

    return add


# ============================================================================
# PRECONDITIONS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestPreconditions:
    async def test_missing_profile(self, factory, service):
        with pytest.raises(NotFoundError):
            await service.generate_quest_line("nobody")

    @pytest.mark.parametrize(
        "route_id, class_id", [(None, "class-1"), ("route-1", None), ("", "class-1")]
    )
    async def test_route_and_class_required(self, factory, service, route_id, class_id):
        await factory.profile(USER, route_id=route_id, class_id=class_id)

        with pytest.raises(InvalidStateError):
            await service.generate_quest_line(USER)


# ============================================================================
# SELECTION
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestSubjectSelection:
    async def test_route_and_class_subjects_are_merged(self, factory, service, curriculum):
        route_subject, route_quest = await curriculum("PRF192")
        class_subject, class_quest = await curriculum("MAE101", via="class")
        # same subject on both sides is considered once
        await factory.class_subject("class-1", route_subject)

        result = await service.generate_quest_line(USER)

        assert result.generated == 2
        assert set((await attempts_by_quest()).keys()) == {route_quest.id, class_quest.id}

    async def test_excluded_subjects(self, service, curriculum):
        await curriculum("VOV114", "Vovinam 1")
        await curriculum("XYZ100", "Traditional Musical Instrument")
        await curriculum("PRF192")

        result = await service.generate_quest_line(USER)

        assert result.skipped_excluded == 2
        assert result.generated == 1

    async def test_exclusion_list_comes_from_config(self, service, curriculum):
        await ConfigManager.set("quest_line.excluded_subject_codes", ["PRF192"])
        await curriculum("PRF192")
        await curriculum("VOV114", "Martial arts")

        result = await service.generate_quest_line(USER)

        assert result.skipped_excluded == 1
        assert result.generated == 1

    async def test_prerequisite_lock(self, factory, service, curriculum):
        base, _ = await curriculum("PRO192")
        locked, _ = await curriculum("PRJ301", prerequisites=[base.id])

        result = await service.generate_quest_line(USER)
        assert result.skipped_locked == 1
        assert result.generated == 1

        await factory.grade(USER, base, "Passed", "8.0")
        result = await service.generate_quest_line(USER)
        assert result.skipped_locked == 0
        assert result.generated == 1

    async def test_grade_record_bypasses_prerequisites(self, factory, service, curriculum):
        base, _ = await curriculum("PRO192")
        advanced, _ = await curriculum("PRJ301", prerequisites=[base.id])
        await factory.grade(USER, advanced, "Studying")

        result = await service.generate_quest_line(USER)

        assert result.skipped_locked == 0
        assert result.generated == 2

    async def test_subject_without_quest(self, service, curriculum):
        await curriculum("JPD113", with_quest=False)

        result = await service.generate_quest_line(USER)

        assert result.skipped_no_quest == 1
        assert result.attempt_ids == []


# ============================================================================
# DIFFICULTY & RECONCILIATION
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestReconciliation:
    async def test_new_attempt_uses_grade(self, factory, service, curriculum):
        subject, quest = await curriculum("PRO192")
        await factory.grade(USER, subject, "Passed", "9.0")

        result = await service.generate_quest_line(USER)

        attempt = (await attempts_by_quest())[quest.id]
        assert result.generated == 1
        assert result.attempt_ids == [attempt.id]
        assert attempt.status == "NotStarted"
        assert attempt.assigned_difficulty == "Challenging"
        assert attempt.notes == "Excellent score (9.0) - advanced content"
        assert attempt.total_experience_earned == 0

    async def test_low_prerequisite_proficiency_is_supportive(
        self, factory, service, curriculum
    ):
        subject, quest = await curriculum("PRJ301")
        java = await factory.skill("Java Web")
        oop = await factory.skill("OOP")
        basics = await factory.skill("Programming Basics")
        await factory.map_skill(subject, java)
        await factory.depends(java, oop)
        await factory.depends(java, basics)
        await factory.user_skill(USER, oop, level=1)
        await factory.user_skill(USER, basics, level=1)

        await service.generate_quest_line(USER)

        attempt = (await attempts_by_quest())[quest.id]
        assert attempt.assigned_difficulty == "Supportive"
        assert attempt.notes == "Prerequisite skills need strengthening"

    async def test_unknown_prerequisites_do_not_penalize(
        self, factory, service, curriculum
    ):
        subject, quest = await curriculum("PRJ301")
        java = await factory.skill("Java Web")
        oop = await factory.skill("OOP")
        await factory.map_skill(subject, java)
        await factory.depends(java, oop)

        await service.generate_quest_line(USER)

        assert (await attempts_by_quest())[quest.id].assigned_difficulty == "Standard"

    async def test_second_run_is_unchanged(self, service, curriculum):
        await curriculum("PRO192")
        await service.generate_quest_line(USER)

        result = await service.generate_quest_line(USER)

        assert result.generated == 0
        assert result.unchanged == 1
        assert len(result.attempt_ids) == 1

    async def test_not_started_attempt_is_refreshed(self, factory, service, curriculum):
        subject, quest = await curriculum("PRO192")
        await service.generate_quest_line(USER)

        # Standard -> Adaptive keeps the level, so this is a refresh
        await factory.grade(USER, subject, "Studying")
        result = await service.generate_quest_line(USER)

        attempt = (await attempts_by_quest())[quest.id]
        assert result.updated == 1
        assert attempt.assigned_difficulty == "Adaptive"
        assert attempt.status == "NotStarted"

    async def test_started_attempt_same_level_is_left_alone(
        self, factory, service, curriculum
    ):
        subject, quest = await curriculum("PRO192")
        await factory.attempt(USER, quest, "Standard")
        await factory.grade(USER, subject, "Studying")

        result = await service.generate_quest_line(USER)

        attempt = (await attempts_by_quest())[quest.id]
        assert result.unchanged == 1
        assert attempt.assigned_difficulty == "Standard"

    async def test_migration_clears_progress_and_keeps_xp(
        self, factory, service, curriculum, event_bus, captured_events
    ):
        subject, quest = await curriculum("PRO192")
        step = await factory.step(quest, 1, "Standard", 10, activity_content(activity("a1", 10)))
        await factory.step(quest, 1, "Supportive", 10, activity_content(activity("p1", 10)))
        attempt = await factory.attempt(USER, quest, "Standard")
        tracker = ActivityProgressService(ConfigManager, event_bus)
        await tracker.record_activity(USER, quest.id, step.id, "a1", "Completed")

        await factory.grade(USER, subject, "NotPassed", "4.0")
        result = await service.generate_quest_line(USER)

        migrated = (await attempts_by_quest())[quest.id]
        assert result.migrated == 1
        assert migrated.assigned_difficulty == "Supportive"
        assert migrated.status == "InProgress"
        assert migrated.completion_percentage == 0.0
        assert migrated.completed_at is None
        assert migrated.total_experience_earned == 10
        assert migrated.notes.startswith("Difficulty updated: Standard -> Supportive on ")
        assert migrated.notes.endswith(". Retaking subject - focus on fundamentals")

        async with DatabaseService.get_session() as session:
            rows = (await session.execute(UserQuestStepProgress.__table__.select())).all()
        assert rows == []

        migration_events = [
            e["data"] for e in captured_events if e["name"] == "quest.difficulty_migrated"
        ]
        assert migration_events == [
            {
                "user_id": USER,
                "quest_id": quest.id,
                "attempt_id": attempt.id,
                "old_difficulty": "Standard",
                "new_difficulty": "Supportive",
                "reason": "Retaking subject - focus on fundamentals",
                "total_experience_earned": 10,
            }
        ]

    async def test_summary_event(self, service, curriculum, captured_events):
        await curriculum("PRO192")

        result = await service.generate_quest_line(USER)

        (summary,) = [e["data"] for e in captured_events if e["name"] == "quest_line.generated"]
        assert summary == result.to_dict()
        assert summary["generated"] == 1

    async def test_failing_subject_does_not_abort_batch(
        self, service, curriculum, mocker
    ):
        first, _ = await curriculum("AAA101")
        await curriculum("BBB101")

        original = service._resolve_subject_difficulty

        async def flaky(session, subject, *args):
            if subject.id == first.id:
                raise RuntimeError("resolver exploded")
            return await original(session, subject, *args)

        mocker.patch.object(service, "_resolve_subject_difficulty", side_effect=flaky)

        result = await service.generate_quest_line(USER)

        assert result.failed == 1
        assert result.generated == 1
        assert len(await attempts_by_quest()) == 1


# ============================================================================
# ACADEMIC ANALYSIS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestAcademicAnalysis:
    async def test_weakness_lowers_difficulty(self, factory, service, curriculum):
        subject, quest = await curriculum("PRJ301", "Java Web Application")
        skill = await factory.skill("Servlets")
        await factory.map_skill(subject, skill)

        result = await service.generate_quest_line(
            USER, AcademicAnalysisReport(weak_areas=["servlets"])
        )

        attempt = (await attempts_by_quest())[quest.id]
        assert result.ai_adjusted == 1
        assert attempt.assigned_difficulty == "Supportive"
        assert attempt.notes.startswith("Aligned with identified weakness: 'servlets'")

    async def test_definitive_grade_is_not_overridden(self, factory, service, curriculum):
        subject, quest = await curriculum("PRJ301", "Java Web Application")
        await factory.grade(USER, subject, "Passed", "6.0")

        result = await service.generate_quest_line(
            USER, AcademicAnalysisReport(strong_areas=["Java"])
        )

        assert result.ai_adjusted == 0
        assert (await attempts_by_quest())[quest.id].assigned_difficulty == "Supportive"


# ============================================================================
# START QUEST
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestStartQuest:
    async def test_unknown_quest(self, database, service):
        with pytest.raises(NotFoundError):
            await service.start_quest(USER, "missing")

    async def test_creates_attempt(self, factory, service):
        subject = await factory.subject("PRO192")
        await factory.grade(USER, subject, "Passed", "8.9")
        quest = await factory.quest(subject)

        result = await service.start_quest(USER, quest.id)

        assert result["is_new"] is True
        assert result["status"] == "InProgress"
        assert result["assigned_difficulty"] == "Challenging"
        assert result["total_experience_earned"] == 0

    async def test_activates_predicted_attempt(self, service, curriculum):
        _, quest = await curriculum("PRO192")
        await service.generate_quest_line(USER)

        result = await service.start_quest(USER, quest.id)

        attempt = (await attempts_by_quest())[quest.id]
        assert result["is_new"] is True
        assert result["assigned_difficulty"] == "Standard"
        assert attempt.status == "InProgress"
        assert attempt.started_at is not None

    async def test_started_attempt_is_returned(self, factory, service):
        quest = await factory.quest(None, "Side quest")
        attempt = await factory.attempt(USER, quest, "Challenging", total_experience_earned=7)

        result = await service.start_quest(USER, quest.id)

        assert result == {
            "attempt_id": attempt.id,
            "quest_id": quest.id,
            "status": "InProgress",
            "assigned_difficulty": "Challenging",
            "total_experience_earned": 7,
            "is_new": False,
        }

    async def test_quest_without_subject_defaults_to_standard(self, factory, service):
        quest = await factory.quest(None, "Side quest")

        result = await service.start_quest(USER, quest.id)

        assert result["assigned_difficulty"] == "Standard"
