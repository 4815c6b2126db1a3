from datetime import datetime
from pydantic import BaseModel, Field


class CohortEnrollment(BaseModel):
    """Enrollment figures for one cohort"""

    cohort_id: str
    enrolled: int
    capacity: int
    instructor: str = ""
    status: str = "Active"


class EnrollmentSummary(BaseModel):
    """Enrollment rollup for one course across its active cohorts"""

    course_id: str
    course_name: str = ""
    total_enrolled: int = 0
    total_capacity: int = 0
    enrollment_rate: float = Field(0.0, description="Enrolled / capacity as a percentage")
    active_cohorts: int = 0
    cohorts: list[CohortEnrollment] = Field(default_factory=list)


class StudentEnrollment(BaseModel):
    """One cohort a student belongs to, with its course"""

    cohort_id: str
    course_id: str | None = None
    course_name: str = "Unknown Course"
    instructor: str = ""
    status: str = "Active"
    enrolled_at: datetime | None = None
