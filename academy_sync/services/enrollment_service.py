import structlog

from academy_sync.core.exceptions import AcademySyncException
from academy_sync.repositories.cohort_repository import CohortRepository
from academy_sync.repositories.course_repository import CourseRepository
from academy_sync.repositories.student_repository import StudentRepository, membership_set
from academy_sync.schemas.enrollment_schemas import (
    CohortEnrollment,
    EnrollmentSummary,
    StudentEnrollment,
)

logger = structlog.get_logger(__name__)


def _course_name(course: dict | None) -> str:
    if not course:
        return ""
    return course.get("title") or course.get("name") or ""


class EnrollmentService:
    """
    Read-only enrollment rollups computed from cohort rosters.

    Figures reflect whatever the rosters hold at read time, which may be
    momentarily stale relative to the student records. Store failures are
    logged and reported as "no data" (None or an empty list).
    """

    def __init__(
        self,
        courses: CourseRepository,
        cohorts: CohortRepository,
        students: StudentRepository,
    ):
        self.courses = courses
        self.cohorts = cohorts
        self.students = students

    async def course_enrollment(self, course_id: str, tenant_id: str) -> EnrollmentSummary | None:
        """
        Enrollment summary for one course.

        Args:
            course_id: Course's courseId
            tenant_id: Tenant ID for multi-tenant isolation

        Returns:
            EnrollmentSummary, or None if the course does not exist or the
            store could not be read
        """
        try:
            return await self._course_enrollment(course_id, tenant_id)
        except AcademySyncException as e:
            logger.error(
                "enrollment_query_failed",
                operation="course_enrollment",
                tenant_id=tenant_id,
                course_id=course_id,
                error=str(e),
            )
            return None

    async def _course_enrollment(self, course_id: str, tenant_id: str) -> EnrollmentSummary | None:
        course = await self.courses.get_by_course_id(course_id, tenant_id)
        if course is None:
            logger.info("enrollment_course_not_found", tenant_id=tenant_id, course_id=course_id)
            return None

        cohorts = await self.cohorts.get_active_for_course(course_id, tenant_id)

        details = [
            CohortEnrollment(
                cohort_id=cohort.get("cohortId", ""),
                enrolled=len(cohort.get("currentStudents") or []),
                capacity=int(cohort.get("maxStudents") or 0),
                instructor=cohort.get("instructor") or "",
                status=cohort.get("status") or "Active",
            )
            for cohort in cohorts
        ]
        total_enrolled = sum(d.enrolled for d in details)
        total_capacity = sum(d.capacity for d in details)

        return EnrollmentSummary(
            course_id=course_id,
            course_name=_course_name(course),
            total_enrolled=total_enrolled,
            total_capacity=total_capacity,
            enrollment_rate=(total_enrolled / total_capacity) * 100 if total_capacity > 0 else 0.0,
            active_cohorts=sum(1 for cohort in cohorts if cohort.get("status") == "Active"),
            cohorts=details,
        )

    async def all_enrollments(self, tenant_id: str) -> list[EnrollmentSummary]:
        """Summaries for every existing course referenced by an active cohort"""
        try:
            course_ids = await self.cohorts.distinct_course_ids(tenant_id)
        except AcademySyncException as e:
            logger.error(
                "enrollment_query_failed",
                operation="all_enrollments",
                tenant_id=tenant_id,
                error=str(e),
            )
            return []

        summaries = []
        for course_id in course_ids:
            summary = await self.course_enrollment(course_id, tenant_id)
            if summary:
                summaries.append(summary)
        return summaries

    async def student_enrollments(self, student_id: str, tenant_id: str) -> list[StudentEnrollment]:
        """
        Active cohorts a student belongs to, with course details.

        Returns an empty list when the student does not exist or the store
        could not be read.
        """
        try:
            return await self._student_enrollments(student_id, tenant_id)
        except AcademySyncException as e:
            logger.error(
                "enrollment_query_failed",
                operation="student_enrollments",
                tenant_id=tenant_id,
                student_id=student_id,
                error=str(e),
            )
            return []

    async def _student_enrollments(self, student_id: str, tenant_id: str) -> list[StudentEnrollment]:
        student = await self.students.get_by_student_id(student_id, tenant_id)
        if not student:
            return []
        cohort_ids = membership_set(student)
        if not cohort_ids:
            return []

        enrollments = []
        for cohort in await self.cohorts.get_active_by_ids(cohort_ids, tenant_id):
            course_id = cohort.get("courseId")
            course = await self.courses.get_by_course_id(course_id, tenant_id) if course_id else None
            enrollments.append(
                StudentEnrollment(
                    cohort_id=cohort.get("cohortId", ""),
                    course_id=course_id,
                    course_name=_course_name(course) or "Unknown Course",
                    instructor=cohort.get("instructor") or "",
                    status=cohort.get("status") or "Active",
                    enrolled_at=cohort.get("createdAt"),
                )
            )
        return enrollments
