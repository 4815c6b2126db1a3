"""
Roster reconciliation sweep.

Re-derives cohort id rosters from the student records, which are the
authoritative side of the membership relation. This is the repair step for
the two-sided writes of MembershipService: whatever interleaving or partial
failure happened before, a rebuild leaves each roster equal to
{s : s.primary == c or c in s.memberships} over active students.

rebuild_all_rosters makes one sequential pass over every active cohort and
belongs in an operator-triggered or scheduled job, never inline in a
user-facing request.
"""

import structlog

from academy_sync.core.exceptions import AcademySyncException
from academy_sync.repositories.cohort_repository import CohortRepository
from academy_sync.repositories.student_repository import StudentRepository
from academy_sync.schemas.sync_schemas import RosterDrift, SyncResult

logger = structlog.get_logger(__name__)


class RosterReconciliationService:
    """Service that rebuilds cohort rosters from student records"""

    def __init__(self, students: StudentRepository, cohorts: CohortRepository):
        self.students = students
        self.cohorts = cohorts

    async def authoritative_members(self, cohort_id: str, tenant_id: str) -> list[str]:
        """Active student ids that reference the cohort as primary or membership"""
        students = await self.students.get_active_for_cohort(cohort_id, tenant_id)
        return list(dict.fromkeys(s["studentId"] for s in students if s.get("studentId")))

    async def rebuild_cohort_roster(self, cohort_id: str, tenant_id: str) -> SyncResult:
        """
        Overwrite a cohort's id roster with its authoritative membership.

        The name roster is not touched. An empty membership empties the
        roster.

        Args:
            cohort_id: Cohort's cohortId
            tenant_id: Tenant ID for multi-tenant isolation

        Returns:
            SyncResult with updated_count 1 when the roster changed, else 0
        """
        log = logger.bind(tenant_id=tenant_id, cohort_id=cohort_id)
        try:
            student_ids = await self.authoritative_members(cohort_id, tenant_id)
            result = await self.cohorts.set_roster(cohort_id, student_ids, tenant_id)
        except AcademySyncException as e:
            log.error("roster_rebuild_failed", error=str(e))
            return SyncResult.failed(str(e))

        if result.matched_count == 0:
            message = f"Cohort {cohort_id} not found"
            log.warning("roster_rebuild_cohort_not_found")
            return SyncResult.failed(message)

        log.info("roster_rebuilt", members=len(student_ids), changed=bool(result.modified_count))
        return SyncResult(success=True, updated_count=result.modified_count)

    async def rebuild_all_rosters(self, tenant_id: str) -> SyncResult:
        """
        Rebuild the roster of every active cohort of a tenant, one at a time.

        Args:
            tenant_id: Tenant ID for multi-tenant isolation

        Returns:
            SyncResult whose updated_count is the number of rosters changed
        """
        log = logger.bind(tenant_id=tenant_id)
        try:
            cohorts = await self.cohorts.get_active(tenant_id, projection=["cohortId"])
        except AcademySyncException as e:
            log.error("roster_sweep_failed", error=str(e))
            return SyncResult.failed(str(e))

        log.info("roster_sweep_started", cohorts=len(cohorts))
        updated = 0
        errors: list[str] = []
        for cohort in cohorts:
            cohort_id = cohort.get("cohortId")
            if not cohort_id:
                continue
            result = await self.rebuild_cohort_roster(cohort_id, tenant_id)
            if result.success:
                updated += result.updated_count
            else:
                errors.append(f"{cohort_id}: {result.error}")

        log.info("roster_sweep_completed", updated=updated, failed=len(errors))
        return SyncResult(
            success=not errors,
            updated_count=updated,
            error=errors[0] if errors else None,
            errors=errors,
        )

    async def detect_drift(self, cohort_id: str, tenant_id: str) -> RosterDrift | None:
        """
        Compare a cohort's stored roster with its authoritative membership.

        Read-only. Returns None when the cohort does not exist.

        Raises:
            DependencyUnavailableException: If the store errors
        """
        cohort = await self.cohorts.get_by_cohort_id(cohort_id, tenant_id)
        if cohort is None:
            return None
        roster = cohort.get("currentStudents") or []
        members = await self.authoritative_members(cohort_id, tenant_id)
        return RosterDrift(
            cohort_id=cohort_id,
            missing=[sid for sid in members if sid not in roster],
            extra=[sid for sid in roster if sid not in members],
        )
