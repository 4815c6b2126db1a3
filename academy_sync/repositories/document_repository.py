"""Document-collection capability over the shared documents table."""

import asyncio
from contextlib import asynccontextmanager
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Iterable

import structlog
from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from academy_sync.config import settings
from academy_sync.core.documents import Filter, Update, apply_update, matches, project, values_at
from academy_sync.core.exceptions import DependencyUnavailableException
from academy_sync.models.collection import Collection
from academy_sync.models.document import Document

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of an update call"""

    matched_count: int
    modified_count: int


class DocumentRepository:
    """
    Repository for one document collection.

    Every call takes the tenant id explicitly and filters on it in SQL, so a
    filter can never reach another tenant's documents even when ids collide.
    Each call runs in its own short transaction: writes to a single document
    are atomic, a call touching many documents is not grouped with any other.

    Updates are read-modify-write on the JSON body guarded by the document's
    version column. A write that lost the race to a concurrent write is
    re-read and re-applied, so concurrent $addToSet / $pull calls on the same
    document all take effect.

    Key fields are top-level fields known to hold scalar strings (ids and the
    values cascades match on). Equality and $in clauses on them are evaluated
    in SQL; every other clause is evaluated on the loaded bodies.
    """

    KEY_FIELDS: tuple[str, ...] = ()

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        collection: Collection,
        timeout: float = settings.STORE_TIMEOUT_SECONDS,
        key_fields: Iterable[str] = (),
        write_attempts: int = settings.STORE_WRITE_ATTEMPTS,
    ):
        self.session_factory = session_factory
        self.collection = collection
        self.timeout = timeout
        self.key_fields = frozenset(self.KEY_FIELDS) | frozenset(key_fields)
        self.write_attempts = max(1, write_attempts)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """
        Open a transaction, translating store failures.

        Raises:
            DependencyUnavailableException: On SQLAlchemy errors or timeout
            StaleDataError: When a versioned write lost a race (retried by callers)
        """
        try:
            async with asyncio.timeout(self.timeout):
                async with self.session_factory() as session:
                    async with session.begin():
                        yield session
        except TimeoutError as e:
            raise DependencyUnavailableException(
                f"{self.collection.value}: store call timed out after {self.timeout}s"
            ) from e
        except StaleDataError:
            raise
        except SQLAlchemyError as e:
            raise DependencyUnavailableException(f"{self.collection.value}: {e}") from e

    @staticmethod
    def _require_tenant(tenant_id: str) -> None:
        if not tenant_id:
            raise ValueError("tenant_id is required for every store call")

    def _scoped(self, tenant_id: str) -> Select:
        self._require_tenant(tenant_id)
        return (
            select(Document)
            .where(
                Document.collection == self.collection.value,
                Document.tenant_id == tenant_id,
            )
            .order_by(Document.id)
        )

    def _key_clauses(self, query: Filter | None) -> list:
        clauses = []
        for field, condition in (query or {}).items():
            if field not in self.key_fields:
                continue
            column = Document.body[field].as_string()
            if isinstance(condition, str):
                clauses.append(column == condition)
            elif (
                isinstance(condition, dict)
                and set(condition) == {"$in"}
                and all(isinstance(value, str) for value in condition["$in"])
            ):
                clauses.append(column.in_(condition["$in"]))
        return clauses

    def select_candidates(self, tenant_id: str, query: Filter | None = None) -> Select:
        """
        SELECT of the tenant's documents that can match the filter.

        Narrowed in SQL by the key-field clauses only; the full filter is
        applied afterwards by matches().
        """
        statement = self._scoped(tenant_id)
        clauses = self._key_clauses(query)
        if clauses:
            statement = statement.where(*clauses)
        return statement

    async def _matching(
        self, session: AsyncSession, tenant_id: str, query: Filter | None
    ) -> list[Document]:
        result = await session.execute(self.select_candidates(tenant_id, query))
        return [doc for doc in result.scalars().all() if matches(doc.body, query)]

    async def insert_many(self, tenant_id: str, documents: list[dict[str, Any]]) -> int:
        """
        Insert documents for a tenant.

        The consistency engine never creates documents; this exists for the
        CRUD flows that own them and for fixtures.
        """
        self._require_tenant(tenant_id)
        async with self._session() as session:
            session.add_all(
                Document(collection=self.collection.value, tenant_id=tenant_id, body=dict(body))
                for body in documents
            )
        return len(documents)

    async def find_one(self, tenant_id: str, query: Filter | None = None) -> dict | None:
        """Get the first document matching the filter, or None"""
        async with self._session() as session:
            docs = await self._matching(session, tenant_id, query)
        return project(docs[0].body, None) if docs else None

    async def find_many(
        self,
        tenant_id: str,
        query: Filter | None = None,
        projection: list[str] | None = None,
    ) -> list[dict]:
        """
        Get all documents matching the filter.

        Args:
            tenant_id: Tenant ID for isolation
            query: Filter (None matches every document of the tenant)
            projection: Top-level fields to return (None returns all)

        Returns:
            List of document bodies in insertion order
        """
        async with self._session() as session:
            docs = await self._matching(session, tenant_id, query)
        return [project(doc.body, projection) for doc in docs]

    async def distinct(self, tenant_id: str, field: str, query: Filter | None = None) -> list[Any]:
        """Distinct non-null values of a field; array values are flattened"""
        seen: list[Any] = []
        for body in await self.find_many(tenant_id, query):
            for value in values_at(body, field):
                for item in value if isinstance(value, list) else [value]:
                    if item is not None and item not in seen:
                        seen.append(item)
        return seen

    async def _rewrite_once(
        self,
        tenant_id: str,
        query: Filter,
        rewrite: Callable[[dict], dict],
        first_only: bool,
    ) -> UpdateResult:
        async with self._session() as session:
            docs = await self._matching(session, tenant_id, query)
            if first_only:
                docs = docs[:1]
            modified = 0
            for doc in docs:
                body = rewrite(doc.body)
                if body != doc.body:
                    doc.body = body
                    modified += 1
        return UpdateResult(matched_count=len(docs), modified_count=modified)

    async def _rewrite(
        self,
        tenant_id: str,
        query: Filter,
        rewrite: Callable[[dict], dict],
        first_only: bool,
    ) -> UpdateResult:
        """
        Apply rewrite to the matching documents, re-reading on version conflicts.

        Raises:
            DependencyUnavailableException: On store errors, or when every
                attempt lost to a concurrent write
        """
        for attempt in range(1, self.write_attempts + 1):
            try:
                return await self._rewrite_once(tenant_id, query, rewrite, first_only)
            except StaleDataError:
                logger.debug(
                    "document_write_conflict",
                    collection=self.collection.value,
                    tenant_id=tenant_id,
                    attempt=attempt,
                )
        raise DependencyUnavailableException(
            f"{self.collection.value}: write kept conflicting with concurrent writes "
            f"after {self.write_attempts} attempts"
        )

    async def update_one(self, tenant_id: str, query: Filter, update: Update) -> UpdateResult:
        """Apply an update to the first matching document"""
        return await self._rewrite(
            tenant_id, query, lambda body: apply_update(body, update)[0], first_only=True
        )

    async def update_many(self, tenant_id: str, query: Filter, update: Update) -> UpdateResult:
        """Apply an update to every matching document"""
        return await self._rewrite(
            tenant_id, query, lambda body: apply_update(body, update)[0], first_only=False
        )

    async def rewrite_many(
        self, tenant_id: str, query: Filter, rewrite: Callable[[dict], dict]
    ) -> UpdateResult:
        """
        Replace each matching document with rewrite(document).

        For changes that differ per document, such as renaming one element of
        an embedded array. rewrite receives a copy it may return modified.
        """
        return await self._rewrite(
            tenant_id, query, lambda body: rewrite(deepcopy(body)), first_only=False
        )
