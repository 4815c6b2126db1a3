"""Repository for Cohort documents."""

from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy_sync.config import settings
from academy_sync.core.documents import Filter
from academy_sync.models.collection import Collection
from academy_sync.repositories.document_repository import DocumentRepository, UpdateResult

ACTIVE = {"isDeleted": {"$ne": True}}


class CohortRepository(DocumentRepository):
    """Repository for Cohort documents and their two rosters"""

    KEY_FIELDS = ("cohortId", "id", "courseId")

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = settings.STORE_TIMEOUT_SECONDS,
        key_fields: Iterable[str] = (),
    ):
        super().__init__(session_factory, Collection.COHORTS, timeout, key_fields)

    @staticmethod
    def by_id(cohort_id: str) -> Filter:
        return {"cohortId": cohort_id}

    @staticmethod
    def by_legacy_id(cohort_id: str) -> Filter:
        """Older cohorts were addressed by an `id` field instead of `cohortId`"""
        return {"id": cohort_id}

    async def get_by_cohort_id(self, cohort_id: str, tenant_id: str) -> dict | None:
        """Get cohort by cohortId, or None if not found in this tenant"""
        return await self.find_one(tenant_id, self.by_id(cohort_id))

    async def get_active(self, tenant_id: str, projection: list[str] | None = None) -> list[dict]:
        """All cohorts that are not soft-deleted"""
        return await self.find_many(tenant_id, ACTIVE, projection=projection)

    async def get_active_for_course(self, course_id: str, tenant_id: str) -> list[dict]:
        """Active cohorts running a course"""
        return await self.find_many(tenant_id, {"courseId": course_id, **ACTIVE})

    async def get_active_by_ids(self, cohort_ids: list[str], tenant_id: str) -> list[dict]:
        return await self.find_many(tenant_id, {"cohortId": {"$in": cohort_ids}, **ACTIVE})

    async def get_listing_student(self, student_id: str, tenant_id: str) -> list[dict]:
        """Cohorts whose roster, name roster or waitlist mention the student"""
        query = {
            "$or": [
                {"currentStudents": student_id},
                {"members.id": student_id},
                {"waitlist": student_id},
            ]
        }
        return await self.find_many(tenant_id, query, projection=["cohortId"])

    async def distinct_course_ids(self, tenant_id: str) -> list[str]:
        """Course ids referenced by any active cohort"""
        return await self.distinct(tenant_id, "courseId", ACTIVE)

    async def add_member(
        self, query: Filter, student_id: str, name: str, tenant_id: str
    ) -> UpdateResult:
        """
        Add a student to both rosters of the cohort matching query.

        The name roster entry is pulled and pushed again in the same write,
        so repeated calls leave exactly one {id, name} pair and refresh the
        name.
        """
        return await self.update_one(
            tenant_id,
            query,
            {
                "$addToSet": {"currentStudents": student_id},
                "$pull": {"members": {"id": student_id}},
                "$push": {"members": {"id": student_id, "name": name}},
            },
        )

    async def remove_member(self, cohort_id: str, student_id: str, tenant_id: str) -> UpdateResult:
        """Remove a student from the roster, name roster and waitlist"""
        return await self.update_one(
            tenant_id,
            self.by_id(cohort_id),
            {
                "$pull": {
                    "currentStudents": student_id,
                    "members": {"id": student_id},
                    "waitlist": student_id,
                }
            },
        )

    async def set_roster(self, cohort_id: str, student_ids: list[str], tenant_id: str) -> UpdateResult:
        """Overwrite the id roster wholesale"""
        return await self.update_one(
            tenant_id, self.by_id(cohort_id), {"$set": {"currentStudents": list(student_ids)}}
        )
