"""Collection names of the document store."""

from enum import Enum as PyEnum


class Collection(str, PyEnum):
    """
    Every collection the consistency engine reads or writes.

    Canonical collections hold the authoritative records; the rest hold
    denormalized copies of canonical attributes.
    """

    # Canonical
    STUDENTS = "students"
    COHORTS = "cohorts"
    COURSES = "courses"
    INSTRUCTORS = "instructors"

    # Dependent
    INSTRUCTOR_ATTENDANCE = "instructor_attendance"
    INSTRUCTOR_ATTENDANCE_DRAFTS = "instructor_attendance_drafts"
    INSTRUCTOR_DRAFTS = "instructor_drafts"
    STUDENT_ATTENDANCE = "student_attendance"
    STUDENT_ATTENDANCE_DRAFTS = "student_attendance_drafts"
    NON_INSTRUCTOR_ATTENDANCE = "non_instructor_attendance"
    NON_INSTRUCTOR_ATTENDANCE_DRAFTS = "non_instructor_attendance_drafts"
    NON_INSTRUCTOR_DRAFTS = "non_instructor_drafts"
    ENROLLMENTS = "enrollments"
    SCHEDULES = "schedules"
    PAYMENTS = "payments"
    PAYMENT_RECORDS = "payment_records"
    PAYMENT_TRANSACTIONS = "payment_transactions"
    MONTHLY_SUBSCRIPTIONS = "monthly_subscriptions"


# Collections the engine cannot run without
CORE_COLLECTIONS = frozenset(
    {
        Collection.STUDENTS,
        Collection.COHORTS,
        Collection.COURSES,
        Collection.INSTRUCTORS,
    }
)
