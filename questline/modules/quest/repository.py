"""
Quest engine repositories.

Thin ``BaseRepository`` subclasses carrying the named queries the quest
services need. No business logic and no transaction management.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from questline.database.models import (
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
    UserQuestStepProgress,
    UserSkill,
    UserSkillReward,
)
from questline.modules.shared.base_repository import BaseRepository


# ============================================================================
# Curriculum
# ============================================================================


class UserProfileRepository(BaseRepository[UserProfile]):
    async def find_by_user(
        self, session: AsyncSession, user_id: str
    ) -> Optional[UserProfile]:
        return await self.find_one_where(session, UserProfile.user_id == user_id)


class SubjectRepository(BaseRepository[Subject]):
    async def find_required_subjects(
        self, session: AsyncSession, route_id: str, class_id: str
    ) -> List[Subject]:
        """Subjects required by the route or the class, de-duplicated by id."""
        route_ids = select(RouteSubject.subject_id).where(RouteSubject.route_id == route_id)
        class_ids = select(ClassSubject.subject_id).where(ClassSubject.class_id == class_id)
        return await self.find_many_where(
            session,
            or_(Subject.id.in_(route_ids), Subject.id.in_(class_ids)),
            order_by=[Subject.code],
        )


class StudentSubjectRecordRepository(BaseRepository[StudentSubjectRecord]):
    async def find_by_user(
        self, session: AsyncSession, user_id: str
    ) -> Dict[str, StudentSubjectRecord]:
        """The user's grade records keyed by subject id."""
        records = await self.find_many_where(
            session, StudentSubjectRecord.user_id == user_id
        )
        return {record.subject_id: record for record in records}


# ============================================================================
# Skills
# ============================================================================


class SkillRepository(BaseRepository[Skill]):
    pass


class SubjectSkillMappingRepository(BaseRepository[SubjectSkillMapping]):
    async def find_for_subject(
        self, session: AsyncSession, subject_id: str
    ) -> List[SubjectSkillMapping]:
        """Mappings ordered by relevance, highest first."""
        return await self.find_many_where(
            session,
            SubjectSkillMapping.subject_id == subject_id,
            order_by=[SubjectSkillMapping.relevance_weight.desc(), SubjectSkillMapping.id],
        )

    async def find_skill_names_for_subject(
        self, session: AsyncSession, subject_id: str
    ) -> List[str]:
        stmt = (
            select(Skill.name)
            .join(SubjectSkillMapping, SubjectSkillMapping.skill_id == Skill.id)
            .where(SubjectSkillMapping.subject_id == subject_id)
        )
        result = await session.execute(stmt)
        return [name for name in result.scalars().all() if name]


class SkillDependencyRepository(BaseRepository[SkillDependency]):
    async def find_edges_for_skills(
        self, session: AsyncSession, skill_ids: Iterable[str]
    ) -> List[Tuple[str, str]]:
        """``(skill_id, prerequisite_skill_id)`` edges into the given skills."""
        ids = list(skill_ids)
        if not ids:
            return []
        edges = await self.find_many_where(session, SkillDependency.skill_id.in_(ids))
        return [(edge.skill_id, edge.prerequisite_skill_id) for edge in edges]


class UserSkillRepository(BaseRepository[UserSkill]):
    async def find_levels(self, session: AsyncSession, user_id: str) -> Dict[str, int]:
        skills = await self.find_many_where(session, UserSkill.user_id == user_id)
        return {skill.skill_id: skill.level for skill in skills}

    async def find_by_user_and_skill(
        self,
        session: AsyncSession,
        user_id: str,
        skill_id: str,
        for_update: bool = False,
    ) -> Optional[UserSkill]:
        return await self.find_one_where(
            session,
            UserSkill.user_id == user_id,
            UserSkill.skill_id == skill_id,
            for_update=for_update,
        )


class UserSkillRewardRepository(BaseRepository[UserSkillReward]):
    async def find_by_source(
        self,
        session: AsyncSession,
        user_id: str,
        source_type: str,
        source_id: str,
        skill_id: str,
    ) -> Optional[UserSkillReward]:
        return await self.find_one_where(
            session,
            UserSkillReward.user_id == user_id,
            UserSkillReward.source_type == source_type,
            UserSkillReward.source_id == source_id,
            UserSkillReward.skill_id == skill_id,
        )


# ============================================================================
# Quests
# ============================================================================


class QuestRepository(BaseRepository[Quest]):
    async def find_active_for_subject(
        self, session: AsyncSession, subject_id: str
    ) -> Optional[Quest]:
        """Oldest active quest of a subject."""
        quests = await self.find_many_where(
            session,
            Quest.subject_id == subject_id,
            Quest.is_active.is_(True),
            order_by=[Quest.created_at, Quest.id],
            limit=1,
        )
        return quests[0] if quests else None


class QuestStepRepository(BaseRepository[QuestStep]):
    async def find_track(
        self, session: AsyncSession, quest_id: str, difficulty: str
    ) -> List[QuestStep]:
        """Steps of one difficulty track in step order; labels match case-insensitively."""
        return await self.find_many_where(
            session,
            QuestStep.quest_id == quest_id,
            func.lower(func.trim(QuestStep.difficulty_variant)) == difficulty.strip().lower(),
            order_by=[QuestStep.step_number, QuestStep.id],
        )


class UserQuestAttemptRepository(BaseRepository[UserQuestAttempt]):
    async def find_by_user_and_quest(
        self,
        session: AsyncSession,
        user_id: str,
        quest_id: str,
        for_update: bool = False,
    ) -> Optional[UserQuestAttempt]:
        return await self.find_one_where(
            session,
            UserQuestAttempt.user_id == user_id,
            UserQuestAttempt.quest_id == quest_id,
            for_update=for_update,
        )


class UserQuestStepProgressRepository(BaseRepository[UserQuestStepProgress]):
    async def find_for_step(
        self, session: AsyncSession, attempt_id: str, step_id: str
    ) -> Optional[UserQuestStepProgress]:
        return await self.find_one_where(
            session,
            UserQuestStepProgress.attempt_id == attempt_id,
            UserQuestStepProgress.step_id == step_id,
        )

    async def find_for_attempt(
        self, session: AsyncSession, attempt_id: str
    ) -> Dict[str, UserQuestStepProgress]:
        """Progress rows of an attempt keyed by step id."""
        rows = await self.find_many_where(
            session, UserQuestStepProgress.attempt_id == attempt_id
        )
        return {row.step_id: row for row in rows}

    async def delete_for_attempt(self, session: AsyncSession, attempt_id: str) -> int:
        return await self.delete_where(
            session, UserQuestStepProgress.attempt_id == attempt_id
        )
