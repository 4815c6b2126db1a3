"""
Collection capability registry.

Single source of truth for which denormalized copies must be rewritten when a
canonical attribute changes. Pure data: the cascade service walks these rows,
tests audit them, nothing here performs I/O.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping

from academy_sync.models.collection import Collection
from academy_sync.models.entity import EntityType, CanonicalField, MatchBy


@dataclass(frozen=True)
class DependentField:
    """
    One denormalized copy of a canonical attribute.

    Attributes:
        collection: Collection holding the copy
        field: Field to overwrite with the new value
        match_field: Field used to locate the records to update
        match_by: Whether match_field holds the entity id or the old value
    """

    collection: Collection
    field: str
    match_field: str
    match_by: MatchBy = MatchBy.ID

    @property
    def label(self) -> str:
        return f"{self.collection.value}.{self.field}"


RegistryKey = tuple[EntityType, CanonicalField]
Registry = Mapping[RegistryKey, tuple[DependentField, ...]]


def _by_id(collections: Iterable[Collection], field: str, match_field: str) -> tuple[DependentField, ...]:
    return tuple(DependentField(c, field, match_field) for c in collections)


CASCADE_REGISTRY: Registry = {
    (EntityType.INSTRUCTOR, CanonicalField.DISPLAY_NAME): (
        DependentField(Collection.INSTRUCTOR_ATTENDANCE, "instructorName", "instructorId"),
        DependentField(Collection.INSTRUCTOR_ATTENDANCE_DRAFTS, "instructorName", "instructorId"),
        DependentField(
            Collection.INSTRUCTOR_DRAFTS, "instructorName", "instructorName", MatchBy.VALUE
        ),
        DependentField(Collection.ENROLLMENTS, "instructorName", "instructorId"),
        DependentField(Collection.SCHEDULES, "instructorName", "instructor"),
        # Courses and cohorts never stored the instructor's id
        DependentField(Collection.COURSES, "instructor", "instructor", MatchBy.VALUE),
        DependentField(Collection.COHORTS, "instructor", "instructor", MatchBy.VALUE),
    ),
    (EntityType.STUDENT, CanonicalField.DISPLAY_NAME): (
        *_by_id(
            (
                Collection.STUDENT_ATTENDANCE,
                Collection.STUDENT_ATTENDANCE_DRAFTS,
                Collection.ENROLLMENTS,
                Collection.PAYMENTS,
                Collection.PAYMENT_RECORDS,
                Collection.PAYMENT_TRANSACTIONS,
                Collection.MONTHLY_SUBSCRIPTIONS,
            ),
            field="studentName",
            match_field="studentId",
        ),
        # Other students referred by this one
        DependentField(Collection.STUDENTS, "referringStudentName", "referringStudentId"),
    ),
    (EntityType.STUDENT, CanonicalField.EMAIL): (
        DependentField(Collection.PAYMENTS, "studentEmail", "studentId"),
    ),
    (EntityType.STUDENT, CanonicalField.CATEGORY): (
        DependentField(Collection.PAYMENTS, "studentCategory", "studentId"),
    ),
    (EntityType.STUDENT, CanonicalField.COURSE_TYPE): (
        DependentField(Collection.PAYMENTS, "courseType", "studentId"),
    ),
    (EntityType.COURSE, CanonicalField.DISPLAY_NAME): (
        *_by_id(
            (
                Collection.ENROLLMENTS,
                Collection.STUDENT_ATTENDANCE,
                Collection.STUDENT_ATTENDANCE_DRAFTS,
                Collection.PAYMENT_RECORDS,
                Collection.PAYMENT_TRANSACTIONS,
                Collection.MONTHLY_SUBSCRIPTIONS,
            ),
            field="courseName",
            match_field="courseId",
        ),
        DependentField(Collection.STUDENTS, "enrolledCourseName", "enrolledCourse"),
        DependentField(Collection.PAYMENTS, "enrolledCourseName", "courseId"),
    ),
    (EntityType.COHORT, CanonicalField.DISPLAY_NAME): (
        *_by_id(
            (
                Collection.STUDENT_ATTENDANCE,
                Collection.STUDENT_ATTENDANCE_DRAFTS,
                Collection.MONTHLY_SUBSCRIPTIONS,
                Collection.PAYMENTS,
            ),
            field="cohortName",
            match_field="cohortId",
        ),
        DependentField(Collection.INSTRUCTORS, "cohorts", "cohorts.id", MatchBy.ELEMENT),
    ),
    (EntityType.NON_INSTRUCTOR, CanonicalField.DISPLAY_NAME): (
        DependentField(Collection.NON_INSTRUCTOR_ATTENDANCE, "instructorName", "instructorId"),
        DependentField(
            Collection.NON_INSTRUCTOR_ATTENDANCE_DRAFTS, "instructorName", "instructorId"
        ),
        DependentField(
            Collection.NON_INSTRUCTOR_DRAFTS, "instructorName", "instructorName", MatchBy.VALUE
        ),
    ),
}


def rows_for(
    entity_type: EntityType,
    field: CanonicalField = CanonicalField.DISPLAY_NAME,
    registry: Registry = CASCADE_REGISTRY,
) -> tuple[DependentField, ...]:
    """Dependent copies for one canonical attribute (empty when none)."""
    return registry.get((entity_type, field), ())


def dependent_collections(registry: Registry = CASCADE_REGISTRY) -> set[Collection]:
    """Every collection named by at least one registry row."""
    return {row.collection for rows in registry.values() for row in rows}


def match_fields(collection: Collection, registry: Registry = CASCADE_REGISTRY) -> set[str]:
    """Scalar top-level fields rows use to locate records in a collection."""
    return {
        row.match_field
        for rows in registry.values()
        for row in rows
        if row.collection == collection and row.match_by != MatchBy.ELEMENT
    }


def resolve_registry(
    disabled: Iterable[Collection], registry: Registry = CASCADE_REGISTRY
) -> dict[RegistryKey, tuple[DependentField, ...]]:
    """
    Drop rows that target collections not deployed in this installation.

    Called once at startup; the result is what the cascade service walks.

    Args:
        disabled: Collections switched off by configuration
        registry: Registry to filter

    Returns:
        New registry without rows for disabled collections
    """
    disabled = set(disabled)
    return {
        key: tuple(row for row in rows if row.collection not in disabled)
        for key, rows in registry.items()
    }
