from fastapi import APIRouter, Depends

from academy_sync.core.exceptions import NotFoundException
from academy_sync.dependencies import get_enrollment_service
from academy_sync.schemas.enrollment_schemas import EnrollmentSummary, StudentEnrollment
from academy_sync.services.enrollment_service import EnrollmentService

router = APIRouter()


@router.get("/enrollments", response_model=list[EnrollmentSummary])
async def list_enrollments(
    tenant_id: str, service: EnrollmentService = Depends(get_enrollment_service)
):
    """Enrollment summary for every course with active cohorts"""
    return await service.all_enrollments(tenant_id)


@router.get("/courses/{course_id}/enrollment", response_model=EnrollmentSummary)
async def get_course_enrollment(
    tenant_id: str,
    course_id: str,
    service: EnrollmentService = Depends(get_enrollment_service),
):
    """Enrollment summary for one course"""
    summary = await service.course_enrollment(course_id, tenant_id)
    if summary is None:
        raise NotFoundException(f"Course {course_id} not found")
    return summary


@router.get("/students/{student_id}/enrollments", response_model=list[StudentEnrollment])
async def list_student_enrollments(
    tenant_id: str,
    student_id: str,
    service: EnrollmentService = Depends(get_enrollment_service),
):
    """Active cohorts the student belongs to"""
    return await service.student_enrollments(student_id, tenant_id)
