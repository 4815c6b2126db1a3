"""Document model backing every collection of the document store."""

from typing import Any

from sqlalchemy import String, Integer, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from academy_sync.models.base import Base, TimestampMixin


class Document(Base, TimestampMixin):
    """
    One JSON document in a named collection.

    Collections (students, cohorts, payments, ...) share this table and are
    told apart by the collection column. The tenant lives in its own column
    so every read and write filters on it in SQL, never only in the body.
    """

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(String(100), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    body: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    # Bumped on every write; an UPDATE against a stale version matches no row
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Every query is scoped by (collection, tenant_id)
    __table_args__ = (
        Index("ix_documents_collection_tenant", "collection", "tenant_id"),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, collection='{self.collection}', tenant_id='{self.tenant_id}')>"
