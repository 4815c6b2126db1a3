"""
Attribute cascade updater.

Propagates a canonical attribute change (a student's name, a course title, ...)
to every denormalized copy listed in the cascade registry. Each registry row is
one independent store call; a failure on one row is recorded and the remaining
rows still run. Nothing is rolled back.
"""

import asyncio
from typing import Any

import structlog

from academy_sync.config import settings
from academy_sync.core.cascade_registry import DependentField, Registry, rows_for
from academy_sync.models.entity import EntityType, CanonicalField, MatchBy
from academy_sync.repositories.collection_set import CollectionSet
from academy_sync.repositories.document_repository import DocumentRepository
from academy_sync.schemas.sync_schemas import CascadeResult, CollectionUpdate

logger = structlog.get_logger(__name__)


def build_display_name(
    first_name: str | None = None,
    middle_name: str | None = None,
    last_name: str | None = None,
) -> str:
    """
    Canonical display name from name parts.

    Parts are joined by single spaces, empty or absent parts are skipped.
    Used identically for students, instructors and non-instructor staff.
    """
    return " ".join(part for part in (first_name, middle_name, last_name) if part).strip()


class CascadeService:
    """Service that keeps denormalized copies equal to their canonical value"""

    def __init__(
        self,
        collections: CollectionSet,
        registry: Registry | None = None,
        max_concurrency: int = settings.CASCADE_MAX_CONCURRENCY,
    ):
        self.collections = collections
        self.registry = registry if registry is not None else collections.registry
        self.max_concurrency = max(1, max_concurrency)

    async def cascade(
        self,
        entity_type: EntityType,
        entity_id: str,
        old_value: Any,
        new_value: Any,
        tenant_id: str,
        field: CanonicalField = CanonicalField.DISPLAY_NAME,
    ) -> CascadeResult:
        """
        Propagate a canonical attribute change to all dependent collections.

        Args:
            entity_type: Type of the canonical entity that changed
            entity_id: Its id
            old_value: Previous attribute value (used by value-matched rows)
            new_value: New attribute value
            tenant_id: Tenant ID for multi-tenant isolation
            field: Which canonical attribute changed

        Returns:
            CascadeResult; success is False when any row failed, and callers
            should log it rather than fail the request that triggered it
        """
        log = logger.bind(
            tenant_id=tenant_id,
            entity_type=entity_type.value,
            entity_id=entity_id,
            field=field.value,
        )
        if old_value == new_value:
            log.debug("cascade_skipped_unchanged")
            return CascadeResult(success=True)

        rows = rows_for(entity_type, field, self.registry)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(row: DependentField) -> tuple[CollectionUpdate, str | None]:
            async with semaphore:
                try:
                    count = await self._apply_row(row, entity_id, old_value, new_value, tenant_id)
                    return CollectionUpdate(collection=row.collection.value, field=row.field, count=count), None
                except Exception as e:
                    log.warning(
                        "cascade_row_failed",
                        collection=row.label,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    return (
                        CollectionUpdate(collection=row.collection.value, field=row.field, count=0),
                        f"{row.label}: {e}",
                    )

        outcomes = await asyncio.gather(*(run(row) for row in rows))

        updated = [update for update, error in outcomes if error is None]
        errors = [error for _, error in outcomes if error is not None]
        result = CascadeResult(success=not errors, updated=updated, errors=errors)

        if errors:
            log.warning("cascade_partial_failure", failed=len(errors), succeeded=len(updated))
        else:
            log.info(
                "cascade_completed",
                collections=len(updated),
                documents=sum(u.count for u in updated),
            )
        return result

    async def _apply_row(
        self,
        row: DependentField,
        entity_id: str,
        old_value: Any,
        new_value: Any,
        tenant_id: str,
    ) -> int:
        handle = self.collections[row.collection]

        if row.match_by == MatchBy.ELEMENT:
            return await self._rename_elements(handle, row, entity_id, new_value, tenant_id)

        if row.match_by == MatchBy.VALUE:
            if old_value in (None, ""):
                # An empty old value would match every record lacking the field
                logger.warning(
                    "cascade_value_row_skipped",
                    tenant_id=tenant_id,
                    collection=row.label,
                    reason="empty old value",
                )
                return 0
            query = {row.match_field: old_value}
        else:
            query = {row.match_field: entity_id}

        result = await handle.update_many(tenant_id, query, {"$set": {row.field: new_value}})
        return result.modified_count

    async def _rename_elements(
        self,
        handle: DocumentRepository,
        row: DependentField,
        entity_id: str,
        new_value: Any,
        tenant_id: str,
    ) -> int:
        """Rewrite the name of every {id, name} element whose id is entity_id"""
        id_key = row.match_field.rsplit(".", 1)[-1]

        def rename(document: dict) -> dict:
            document[row.field] = [
                {**element, "name": new_value}
                if isinstance(element, dict) and element.get(id_key) == entity_id
                else element
                for element in document.get(row.field) or []
            ]
            return document

        result = await handle.rewrite_many(tenant_id, {row.match_field: entity_id}, rename)
        return result.modified_count

    # Convenience wrappers for the common attribute changes

    async def cascade_student_name(self, student_id: str, old_name: str, new_name: str, tenant_id: str) -> CascadeResult:
        return await self.cascade(EntityType.STUDENT, student_id, old_name, new_name, tenant_id)

    async def cascade_student_email(self, student_id: str, old_email: str, new_email: str, tenant_id: str) -> CascadeResult:
        return await self.cascade(
            EntityType.STUDENT, student_id, old_email, new_email, tenant_id, CanonicalField.EMAIL
        )

    async def cascade_student_category(
        self, student_id: str, old_category: str, new_category: str, tenant_id: str
    ) -> CascadeResult:
        return await self.cascade(
            EntityType.STUDENT, student_id, old_category, new_category, tenant_id, CanonicalField.CATEGORY
        )

    async def cascade_student_course_type(
        self, student_id: str, old_course_type: str, new_course_type: str, tenant_id: str
    ) -> CascadeResult:
        return await self.cascade(
            EntityType.STUDENT,
            student_id,
            old_course_type,
            new_course_type,
            tenant_id,
            CanonicalField.COURSE_TYPE,
        )

    async def cascade_instructor_name(
        self, instructor_id: str, old_name: str, new_name: str, tenant_id: str
    ) -> CascadeResult:
        return await self.cascade(EntityType.INSTRUCTOR, instructor_id, old_name, new_name, tenant_id)

    async def cascade_non_instructor_name(
        self, non_instructor_id: str, old_name: str, new_name: str, tenant_id: str
    ) -> CascadeResult:
        return await self.cascade(EntityType.NON_INSTRUCTOR, non_instructor_id, old_name, new_name, tenant_id)

    async def cascade_course_name(self, course_id: str, old_name: str, new_name: str, tenant_id: str) -> CascadeResult:
        return await self.cascade(EntityType.COURSE, course_id, old_name, new_name, tenant_id)

    async def cascade_cohort_name(self, cohort_id: str, old_name: str, new_name: str, tenant_id: str) -> CascadeResult:
        return await self.cascade(EntityType.COHORT, cohort_id, old_name, new_name, tenant_id)
