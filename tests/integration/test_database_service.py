"""
Integration Tests for DatabaseService
=====================================

Purpose
-------
Exercise the engine/session layer against a real SQLite database file.

Test Coverage
-------------
- Connection and schema creation
- Transaction commit and rollback
- Optimistic version checks on attempt rows
- BaseRepository helpers used by the quest services
"""

import pytest
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import text
from sqlalchemy.orm.exc import StaleDataError

from questline.core.database.service import DatabaseNotInitializedError, DatabaseService
from questline.core.logging.logger import get_logger
from questline.database.models import Subject, UserQuestAttempt
from questline.modules.shared.base_repository import BaseRepository


# ============================================================================
# CONNECTION / SCHEMA
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestDatabaseConnection:
    async def test_health_check(self, database):
        assert DatabaseService.is_initialized()
        assert await DatabaseService.health_check() is True

    async def test_schema_created(self, database):
        async with DatabaseService.get_session() as session:
            tables = await session.run_sync(
                lambda sync_session: sa_inspect(sync_session.connection()).get_table_names()
            )

        for table in (
            "subjects",
            "user_profiles",
            "skills",
            "user_skills",
            "user_skill_rewards",
            "quests",
            "quest_steps",
            "user_quest_attempts",
            "user_quest_step_progress",
        ):
            assert table in tables

    async def test_requires_initialization(self):
        await DatabaseService.shutdown()

        assert await DatabaseService.health_check() is False
        with pytest.raises(DatabaseNotInitializedError):
            async with DatabaseService.get_session():
                pass


# ============================================================================
# TRANSACTION TESTS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestTransactions:
    async def test_commit(self, factory):
        await factory.subject("PRF192", "Programming Fundamentals")

        async with DatabaseService.get_session() as session:
            result = await session.execute(text("SELECT code FROM subjects"))
            assert [row.code for row in result] == ["PRF192"]

    async def test_rollback_on_error(self, database):
        with pytest.raises(RuntimeError):
            async with DatabaseService.get_transaction() as session:
                session.add(Subject(code="PRO192", name="OOP", credits=3))
                await session.flush()
                raise RuntimeError("abort")

        async with DatabaseService.get_session() as session:
            count = await session.scalar(text("SELECT COUNT(*) FROM subjects"))
        assert count == 0

    async def test_version_check_detects_lost_update(self, factory):
        subject = await factory.subject("PRJ301")
        quest = await factory.quest(subject)
        attempt = await factory.attempt("user-1", quest, "Standard")

        with pytest.raises(StaleDataError):
            async with DatabaseService.get_transaction() as stale:
                loaded = await stale.get(UserQuestAttempt, attempt.id)

                async with DatabaseService.get_transaction() as winner:
                    row = await winner.get(UserQuestAttempt, attempt.id)
                    row.assigned_difficulty = "Challenging"

                loaded.total_experience_earned = 10
                await stale.flush()

        async with DatabaseService.get_session() as session:
            row = await session.get(UserQuestAttempt, attempt.id)
        assert row.assigned_difficulty == "Challenging"
        assert row.total_experience_earned == 0


# ============================================================================
# REPOSITORY HELPERS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestBaseRepository:
    @pytest.fixture
    def repo(self):
        return BaseRepository(model_class=Subject, logger=get_logger("tests.SubjectRepository"))

    async def test_queries(self, factory, repo):
        first = await factory.subject("MAE101")
        await factory.subject("MAD101")

        async with DatabaseService.get_session() as session:
            assert (await repo.get(session, first.id)).code == "MAE101"
            assert await repo.count(session) == 2
            assert await repo.exists(session, Subject.code == "MAD101")
            assert not await repo.exists(session, Subject.code == "NOPE")
            ordered = await repo.find_many_where(session, order_by=[Subject.code])

        assert [s.code for s in ordered] == ["MAD101", "MAE101"]

    async def test_delete_where(self, factory, repo):
        await factory.subject("CSI104")
        await factory.subject("CSD201")

        async with DatabaseService.get_transaction() as session:
            deleted = await repo.delete_where(session, Subject.code.like("CS%"))

        async with DatabaseService.get_session() as session:
            remaining = await repo.count(session)

        assert deleted == 2
        assert remaining == 0
