"""Static capability map: one repository handle per collection."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy_sync.config import settings
from academy_sync.core.cascade_registry import (
    CASCADE_REGISTRY,
    Registry,
    dependent_collections,
    match_fields,
    resolve_registry,
)
from academy_sync.core.exceptions import ConfigurationException
from academy_sync.models.collection import Collection, CORE_COLLECTIONS
from academy_sync.repositories.cohort_repository import CohortRepository
from academy_sync.repositories.course_repository import CourseRepository
from academy_sync.repositories.document_repository import DocumentRepository
from academy_sync.repositories.student_repository import StudentRepository

logger = structlog.get_logger(__name__)


class CollectionSet:
    """
    Collection handles resolved once at startup.

    Services receive the handles they need from here instead of looking
    collections up by name at call time. Dependent collections switched off
    by configuration have no handle, and their registry rows are dropped from
    `registry`.
    """

    def __init__(
        self,
        handles: dict[Collection, DocumentRepository],
        registry: Registry,
    ):
        missing = CORE_COLLECTIONS - handles.keys()
        if missing:
            names = ", ".join(sorted(c.value for c in missing))
            raise ConfigurationException(f"Core collections cannot be disabled: {names}")
        self.handles = handles
        self.registry = registry

    @classmethod
    def build(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        disabled: list[str] | None = None,
        registry: Registry = CASCADE_REGISTRY,
        timeout: float = settings.STORE_TIMEOUT_SECONDS,
    ) -> "CollectionSet":
        """
        Create handles for every core and registry-referenced collection.

        Args:
            session_factory: Async session factory for the document store
            disabled: Names of dependent collections not deployed here
            registry: Cascade registry to resolve against
            timeout: Per-call store timeout in seconds

        Raises:
            ConfigurationException: If a name is unknown or a core collection is disabled
        """
        try:
            disabled_set = {Collection(name) for name in (disabled or [])}
        except ValueError as e:
            raise ConfigurationException(f"Unknown collection in DISABLED_COLLECTIONS: {e}") from e

        typed = {
            Collection.STUDENTS: StudentRepository,
            Collection.COHORTS: CohortRepository,
            Collection.COURSES: CourseRepository,
        }
        handles: dict[Collection, DocumentRepository] = {}
        for collection in sorted(
            CORE_COLLECTIONS | dependent_collections(registry), key=lambda c: c.value
        ):
            if collection in disabled_set:
                continue
            key_fields = match_fields(collection, registry)
            if collection in typed:
                handles[collection] = typed[collection](session_factory, timeout, key_fields)
            else:
                handles[collection] = DocumentRepository(
                    session_factory, collection, timeout, key_fields
                )

        if disabled_set:
            logger.info(
                "collections_disabled",
                collections=sorted(c.value for c in disabled_set),
            )
        return cls(handles, resolve_registry(disabled_set, registry))

    def __getitem__(self, collection: Collection) -> DocumentRepository:
        return self.handles[collection]

    def __contains__(self, collection: Collection) -> bool:
        return collection in self.handles

    @property
    def students(self) -> StudentRepository:
        return self.handles[Collection.STUDENTS]

    @property
    def cohorts(self) -> CohortRepository:
        return self.handles[Collection.COHORTS]

    @property
    def courses(self) -> CourseRepository:
        return self.handles[Collection.COURSES]
