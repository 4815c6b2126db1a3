"""
Bidirectional student <-> cohort membership synchronizer.

Membership is stored on both sides: the student carries a primary cohort
reference and a membership set, the cohort carries an id roster, an
{id, name} roster and a waitlist. Each operation writes the two sides with
two independent store calls. A failure between them leaves the sides
disagreeing until the next call for the same pair or a roster rebuild
(see RosterReconciliationService) repairs it.
"""

import structlog

from academy_sync.core.exceptions import AcademySyncException
from academy_sync.repositories.cohort_repository import CohortRepository
from academy_sync.repositories.student_repository import (
    PRIMARY_FIELD,
    StudentRepository,
    membership_set,
)
from academy_sync.schemas.sync_schemas import SyncResult
from academy_sync.services.cascade_service import build_display_name

logger = structlog.get_logger(__name__)


def student_display_name(student: dict) -> str:
    """Stored name, else the name built from its parts, else the student id"""
    return (
        student.get("name")
        or build_display_name(
            student.get("firstName"), student.get("middleName"), student.get("lastName")
        )
        or student.get("studentId", "")
    )


class MembershipService:
    """Service that keeps student memberships and cohort rosters in step"""

    def __init__(self, students: StudentRepository, cohorts: CohortRepository):
        self.students = students
        self.cohorts = cohorts

    async def add_to_cohort(self, cohort_id: str, student_id: str, tenant_id: str) -> SyncResult:
        """
        Add a student to a cohort on both sides.

        Cohort side: student id added to the roster, {id, name} pair replaced
        in the name roster. Student side: cohort becomes the primary and joins
        the membership set. Safe to repeat.

        Args:
            cohort_id: Cohort's cohortId
            student_id: Student's studentId
            tenant_id: Tenant ID for multi-tenant isolation

        Returns:
            SyncResult; NotFound and store failures are reported, not raised
        """
        log = logger.bind(tenant_id=tenant_id, cohort_id=cohort_id, student_id=student_id)
        updated = 0
        try:
            student = await self.students.get_by_student_id(student_id, tenant_id)
            if student is None:
                return self._not_found(log, f"Student {student_id} not found")

            cohort_update = await self.cohorts.add_member(
                self.cohorts.by_id(cohort_id), student_id, student_display_name(student), tenant_id
            )
            if cohort_update.matched_count == 0:
                return self._not_found(log, f"Cohort {cohort_id} not found")
            updated += cohort_update.modified_count

            student_update = await self.students.add_membership(student_id, cohort_id, tenant_id)
            updated += student_update.modified_count
        except AcademySyncException as e:
            return self._failed(log, "add_to_cohort", str(e), updated)

        log.info("student_added_to_cohort", updated_count=updated)
        return SyncResult(success=True, updated_count=updated)

    async def remove_from_cohort(self, cohort_id: str, student_id: str, tenant_id: str) -> SyncResult:
        """
        Remove a student from a cohort on both sides.

        Student side first: the cohort leaves the membership set and, when it
        was the primary, the primary moves to the first remaining membership
        or is cleared. Cohort side second: the student leaves the roster,
        name roster and waitlist. A missing cohort is reported after the
        student side has been cleaned.

        Args:
            cohort_id: Cohort's cohortId
            student_id: Student's studentId
            tenant_id: Tenant ID for multi-tenant isolation

        Returns:
            SyncResult
        """
        log = logger.bind(tenant_id=tenant_id, cohort_id=cohort_id, student_id=student_id)
        updated = 0
        try:
            student = await self.students.get_by_student_id(student_id, tenant_id)
            if student is None:
                return self._not_found(log, f"Student {student_id} not found")

            student_update = await self.students.remove_membership(student_id, cohort_id, tenant_id)
            updated += student_update.modified_count

            if student.get(PRIMARY_FIELD) == cohort_id:
                remaining = [c for c in membership_set(student) if c != cohort_id]
                new_primary = remaining[0] if remaining else None
                primary_update = await self.students.replace_primary(
                    student_id, cohort_id, new_primary, tenant_id
                )
                updated += primary_update.modified_count
                log.info("primary_cohort_reassigned", new_primary=new_primary)

            cohort_update = await self.cohorts.remove_member(cohort_id, student_id, tenant_id)
            if cohort_update.matched_count == 0:
                return self._not_found(log, f"Cohort {cohort_id} not found", updated)
            updated += cohort_update.modified_count
        except AcademySyncException as e:
            return self._failed(log, "remove_from_cohort", str(e), updated)

        log.info("student_removed_from_cohort", updated_count=updated)
        return SyncResult(success=True, updated_count=updated)

    async def enroll(self, student_id: str, cohort_id: str, tenant_id: str) -> SyncResult:
        """
        Assign a student to a cohort; used by student create/update flows.

        Same effect as add_to_cohort, but the student side is written first
        and the cohort may be addressed by cohortId or, failing that, by its
        legacy id field.

        Args:
            student_id: Student's studentId
            cohort_id: Cohort's cohortId or legacy id
            tenant_id: Tenant ID for multi-tenant isolation

        Returns:
            SyncResult; when the cohort cannot be found the student side has
            already been written and updated_count says so
        """
        log = logger.bind(tenant_id=tenant_id, cohort_id=cohort_id, student_id=student_id)
        updated = 0
        try:
            student = await self.students.get_by_student_id(student_id, tenant_id)
            if student is None:
                return self._not_found(log, f"Student {student_id} not found")

            student_update = await self.students.add_membership(student_id, cohort_id, tenant_id)
            updated += student_update.modified_count

            name = student_display_name(student)
            cohort_update = await self.cohorts.add_member(
                self.cohorts.by_id(cohort_id), student_id, name, tenant_id
            )
            if cohort_update.matched_count == 0:
                log.info("cohort_lookup_fallback", field="id")
                cohort_update = await self.cohorts.add_member(
                    self.cohorts.by_legacy_id(cohort_id), student_id, name, tenant_id
                )
            if cohort_update.matched_count == 0:
                return self._not_found(
                    log,
                    f"Cohort {cohort_id} not found (tried both cohortId and id fields)",
                    updated,
                )
            updated += cohort_update.modified_count
        except AcademySyncException as e:
            return self._failed(log, "enroll", str(e), updated)

        log.info("student_enrolled", updated_count=updated)
        return SyncResult(success=True, updated_count=updated)

    async def set_membership(
        self, cohort_id: str, desired_student_ids: list[str], tenant_id: str
    ) -> SyncResult:
        """
        Make a cohort's membership equal to desired_student_ids.

        The current membership is derived from the student side (students
        whose membership set contains the cohort). Only the symmetric
        difference is touched: ids in desired but not current are added,
        ids in current but not desired are removed, everyone else is left
        alone.

        Args:
            cohort_id: Cohort's cohortId
            desired_student_ids: Student ids the cohort should contain
            tenant_id: Tenant ID for multi-tenant isolation

        Returns:
            SyncResult with added / removed ids and per-student errors
        """
        log = logger.bind(tenant_id=tenant_id, cohort_id=cohort_id)
        try:
            current_students = await self.students.get_members_of(cohort_id, tenant_id)
        except AcademySyncException as e:
            return self._failed(log, "set_membership", str(e), 0)

        current = {s["studentId"] for s in current_students if s.get("studentId")}
        desired = list(dict.fromkeys(desired_student_ids))
        to_add = [sid for sid in desired if sid not in current]
        to_remove = sorted(current - set(desired))

        updated = 0
        added: list[str] = []
        removed: list[str] = []
        errors: list[str] = []

        for student_id in to_add:
            result = await self.add_to_cohort(cohort_id, student_id, tenant_id)
            updated += result.updated_count
            if result.success:
                added.append(student_id)
            else:
                errors.append(f"add {student_id}: {result.error}")

        for student_id in to_remove:
            result = await self.remove_from_cohort(cohort_id, student_id, tenant_id)
            updated += result.updated_count
            if result.success:
                removed.append(student_id)
            else:
                errors.append(f"remove {student_id}: {result.error}")

        log.info(
            "cohort_membership_set",
            added=len(added),
            removed=len(removed),
            failed=len(errors),
        )
        return SyncResult(
            success=not errors,
            updated_count=updated,
            error=errors[0] if errors else None,
            errors=errors,
            added=added,
            removed=removed,
        )

    async def detach_student(self, student_id: str, tenant_id: str) -> SyncResult:
        """
        Remove a student from every cohort, e.g. before deleting the student.

        Covers cohorts in the student's membership set as well as cohorts
        whose roster, name roster or waitlist still list the student.
        """
        log = logger.bind(tenant_id=tenant_id, student_id=student_id)
        try:
            student = await self.students.get_by_student_id(student_id, tenant_id)
            listing = await self.cohorts.get_listing_student(student_id, tenant_id)
        except AcademySyncException as e:
            return self._failed(log, "detach_student", str(e), 0)

        cohort_ids = membership_set(student) if student else []
        if student and student.get(PRIMARY_FIELD) and student[PRIMARY_FIELD] not in cohort_ids:
            cohort_ids.append(student[PRIMARY_FIELD])
        for cohort in listing:
            if cohort.get("cohortId") and cohort["cohortId"] not in cohort_ids:
                cohort_ids.append(cohort["cohortId"])

        updated = 0
        removed: list[str] = []
        errors: list[str] = []
        for cohort_id in cohort_ids:
            if student is None:
                # Student record already gone: only the cohort side remains
                try:
                    result = await self.cohorts.remove_member(cohort_id, student_id, tenant_id)
                except AcademySyncException as e:
                    errors.append(f"{cohort_id}: {e}")
                    continue
                updated += result.modified_count
                removed.append(cohort_id)
                continue

            result = await self.remove_from_cohort(cohort_id, student_id, tenant_id)
            updated += result.updated_count
            if result.success:
                removed.append(cohort_id)
            else:
                errors.append(f"{cohort_id}: {result.error}")

        log.info("student_detached", cohorts=len(removed), failed=len(errors))
        return SyncResult(
            success=not errors,
            updated_count=updated,
            error=errors[0] if errors else None,
            errors=errors,
            removed=removed,
        )

    @staticmethod
    def _not_found(log, message: str, updated_count: int = 0) -> SyncResult:
        log.warning("membership_target_not_found", error=message, updated_count=updated_count)
        return SyncResult.failed(message, updated_count)

    @staticmethod
    def _failed(log, operation: str, message: str, updated_count: int) -> SyncResult:
        log.error("membership_sync_failed", operation=operation, error=message, updated_count=updated_count)
        return SyncResult.failed(message, updated_count)
