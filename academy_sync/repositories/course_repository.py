from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy_sync.config import settings
from academy_sync.models.collection import Collection
from academy_sync.repositories.document_repository import DocumentRepository


class CourseRepository(DocumentRepository):
    """Repository for Course documents"""

    KEY_FIELDS = ("courseId",)

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = settings.STORE_TIMEOUT_SECONDS,
        key_fields: Iterable[str] = (),
    ):
        super().__init__(session_factory, Collection.COURSES, timeout, key_fields)

    async def get_by_course_id(self, course_id: str, tenant_id: str) -> dict | None:
        """Get course by courseId, or None if not found in this tenant"""
        return await self.find_one(tenant_id, {"courseId": course_id})
