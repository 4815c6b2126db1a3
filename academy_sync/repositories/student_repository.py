"""Repository for Student documents."""

from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy_sync.config import settings
from academy_sync.core.documents import Filter
from academy_sync.models.collection import Collection
from academy_sync.repositories.document_repository import DocumentRepository, UpdateResult

# Two legacy fields that together form one membership set
MEMBERSHIP_FIELDS = ("cohorts", "enrolledCohorts")
PRIMARY_FIELD = "cohortId"


def membership_set(student: dict) -> list[str]:
    """
    Ordered union of a student's membership fields.

    Args:
        student: Student document

    Returns:
        Cohort ids, first-seen order, without duplicates
    """
    cohorts: list[str] = []
    for field in MEMBERSHIP_FIELDS:
        for cohort_id in student.get(field) or []:
            if cohort_id not in cohorts:
                cohorts.append(cohort_id)
    return cohorts


def _member_of(cohort_id: str) -> Filter:
    return {"$or": [{field: cohort_id} for field in MEMBERSHIP_FIELDS]}


class StudentRepository(DocumentRepository):
    """Repository for Student documents with membership helpers"""

    KEY_FIELDS = ("studentId",)

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = settings.STORE_TIMEOUT_SECONDS,
        key_fields: Iterable[str] = (),
    ):
        super().__init__(session_factory, Collection.STUDENTS, timeout, key_fields)

    @staticmethod
    def by_id(student_id: str) -> Filter:
        return {"studentId": student_id}

    async def get_by_student_id(self, student_id: str, tenant_id: str) -> dict | None:
        """Get student by studentId, or None if not found in this tenant"""
        return await self.find_one(tenant_id, self.by_id(student_id))

    async def get_members_of(self, cohort_id: str, tenant_id: str) -> list[dict]:
        """
        Students whose membership set contains the cohort.

        This is the student-side view of a cohort's membership.
        """
        return await self.find_many(
            tenant_id, _member_of(cohort_id), projection=["studentId", *MEMBERSHIP_FIELDS]
        )

    async def get_active_for_cohort(self, cohort_id: str, tenant_id: str) -> list[dict]:
        """
        Active students that reference the cohort as primary or as a membership.

        This is the authoritative membership used to rebuild a roster.
        """
        query = {
            "$or": [{PRIMARY_FIELD: cohort_id}, *_member_of(cohort_id)["$or"]],
            "isDeleted": {"$ne": True},
        }
        return await self.find_many(
            tenant_id, query, projection=["studentId", PRIMARY_FIELD, *MEMBERSHIP_FIELDS]
        )

    async def add_membership(
        self, student_id: str, cohort_id: str, tenant_id: str
    ) -> UpdateResult:
        """Make the cohort the student's primary and add it to the membership set"""
        return await self.update_one(
            tenant_id,
            self.by_id(student_id),
            {
                "$set": {PRIMARY_FIELD: cohort_id},
                "$addToSet": {field: cohort_id for field in MEMBERSHIP_FIELDS},
            },
        )

    async def remove_membership(
        self, student_id: str, cohort_id: str, tenant_id: str
    ) -> UpdateResult:
        """Remove the cohort from the student's membership set"""
        return await self.update_one(
            tenant_id,
            self.by_id(student_id),
            {"$pull": {field: cohort_id for field in MEMBERSHIP_FIELDS}},
        )

    async def replace_primary(
        self, student_id: str, old_primary: str, new_primary: str | None, tenant_id: str
    ) -> UpdateResult:
        """
        Move the primary reference away from old_primary.

        Only applies while the primary still equals old_primary, so a primary
        changed concurrently by another call is left alone. None clears it.
        """
        query = {**self.by_id(student_id), PRIMARY_FIELD: old_primary}
        if new_primary is None:
            update = {"$unset": {PRIMARY_FIELD: ""}}
        else:
            update = {"$set": {PRIMARY_FIELD: new_primary}}
        return await self.update_one(tenant_id, query, update)
