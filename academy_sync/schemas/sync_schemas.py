from pydantic import BaseModel, Field

from academy_sync.core.exceptions import PartialCascadeFailure


class CollectionUpdate(BaseModel):
    """Documents rewritten in one dependent collection"""

    collection: str
    field: str
    count: int = Field(0, ge=0)


class CascadeResult(BaseModel):
    """
    Outcome of propagating one canonical attribute change.

    success is True only when every dependent-collection update succeeded.
    Updates already applied are kept when others fail.
    """

    success: bool
    updated: list[CollectionUpdate] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def raise_for_errors(self) -> None:
        """Raise PartialCascadeFailure for callers that prefer exceptions"""
        if self.errors:
            raise PartialCascadeFailure(self.errors)


class SyncResult(BaseModel):
    """
    Outcome of a membership or roster operation.

    updated_count reflects only what actually changed; a failed result may
    still carry a non-zero count when one side was written before the other
    failed.
    """

    success: bool
    updated_count: int = 0
    error: str | None = None
    errors: list[str] = Field(default_factory=list)
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    @classmethod
    def failed(cls, error: str, updated_count: int = 0) -> "SyncResult":
        return cls(success=False, error=error, errors=[error], updated_count=updated_count)


class RosterDrift(BaseModel):
    """Difference between a cohort's stored roster and its authoritative membership"""

    cohort_id: str
    missing: list[str] = Field(default_factory=list, description="Authoritative members absent from the roster")
    extra: list[str] = Field(default_factory=list, description="Roster entries with no backing student record")

    @property
    def in_sync(self) -> bool:
        return not self.missing and not self.extra


class SweepScheduledResponse(BaseModel):
    """Response after scheduling a tenant-wide roster rebuild"""

    status: str = "scheduled"
    tenant_id: str
