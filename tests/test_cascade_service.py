import pytest

from academy_sync.config import settings
from academy_sync.core.cascade_registry import rows_for
from academy_sync.core.exceptions import PartialCascadeFailure
from academy_sync.models.collection import Collection
from academy_sync.models.entity import EntityType, CanonicalField
from academy_sync.repositories.collection_set import CollectionSet
from academy_sync.repositories.document_repository import DocumentRepository
from academy_sync.services.cascade_service import CascadeService, build_display_name
from factories import TENANT_A, TENANT_B, FailingRepository, seed


class BrokenRepository(DocumentRepository):
    async def update_many(self, tenant_id, query, update):
        raise RuntimeError("unexpected document shape")


class TestBuildDisplayName:
    """Tests for the canonical display name helper"""

    def test_all_parts(self):
        assert build_display_name("John", "A.", "Doe") == "John A. Doe"

    def test_missing_middle_name(self):
        """Absent parts are skipped, not rendered as double spaces"""
        assert build_display_name("John", None, "Doe") == "John Doe"
        assert build_display_name("John", "", "Doe") == "John Doe"

    def test_no_parts(self):
        assert build_display_name() == ""


class TestInstructorRename:
    """Renaming an instructor rewrites id- and value-matched copies"""

    @pytest.fixture
    async def seeded(self, collections):
        await seed(collections, Collection.COURSES, [
            {"courseId": "K1", "title": "Piano", "instructor": "John Doe"},
            {"courseId": "K2", "title": "Violin", "instructor": "Jane Roe"},
        ])
        await seed(collections, Collection.COHORTS, [
            {"cohortId": "C1", "name": "Mon", "instructor": "John Doe"},
            {"cohortId": "C2", "name": "Tue", "instructor": "Jane Roe"},
        ])
        await seed(collections, Collection.INSTRUCTOR_ATTENDANCE, [
            {"instructorId": "I1", "instructorName": "John Doe", "date": "2026-01-05"},
            {"instructorId": "I1", "instructorName": "John Doe", "date": "2026-01-12"},
            {"instructorId": "I2", "instructorName": "Jane Roe", "date": "2026-01-05"},
        ])
        await seed(collections, Collection.SCHEDULES, [
            {"instructor": "I1", "instructorName": "John Doe"},
        ])
        return collections

    async def test_rename_propagates_to_all_copies(self, seeded, cascade_service):
        """Value-matched courses and cohorts, id-matched attendance and schedules"""
        result = await cascade_service.cascade_instructor_name("I1", "John Doe", "John A. Doe", TENANT_A)

        assert result.success
        assert result.errors == []

        courses = await seeded[Collection.COURSES].find_many(TENANT_A)
        assert {c["courseId"]: c["instructor"] for c in courses} == {
            "K1": "John A. Doe",
            "K2": "Jane Roe",
        }
        cohorts = await seeded[Collection.COHORTS].find_many(TENANT_A)
        assert {c["cohortId"]: c["instructor"] for c in cohorts} == {
            "C1": "John A. Doe",
            "C2": "Jane Roe",
        }
        attendance = await seeded[Collection.INSTRUCTOR_ATTENDANCE].find_many(TENANT_A)
        assert [a["instructorName"] for a in attendance] == ["John A. Doe", "John A. Doe", "Jane Roe"]
        schedule = await seeded[Collection.SCHEDULES].find_one(TENANT_A)
        assert schedule["instructorName"] == "John A. Doe"

    async def test_result_reports_counts_per_row_in_registry_order(self, seeded, cascade_service):
        result = await cascade_service.cascade_instructor_name("I1", "John Doe", "John A. Doe", TENANT_A)

        assert [(u.collection, u.field) for u in result.updated] == [
            (row.collection.value, row.field) for row in rows_for(EntityType.INSTRUCTOR)
        ]
        counts = {u.collection: u.count for u in result.updated}
        assert counts["instructor_attendance"] == 2
        assert counts["courses"] == 1
        assert counts["cohorts"] == 1
        assert counts["enrollments"] == 0

    async def test_unchanged_value_is_a_noop(self, seeded, cascade_service):
        result = await cascade_service.cascade_instructor_name("I1", "John Doe", "John Doe", TENANT_A)

        assert result.success
        assert result.updated == []

    async def test_empty_old_value_skips_value_matched_rows(self, collections, cascade_service):
        """An empty old name must not rename every course lacking an instructor"""
        await seed(collections, Collection.COURSES, [{"courseId": "K1", "title": "Piano"}])

        result = await cascade_service.cascade_instructor_name("I1", "", "John Doe", TENANT_A)

        assert result.success
        course = await collections.courses.get_by_course_id("K1", TENANT_A)
        assert "instructor" not in course


class TestStudentCascade:
    """Student attribute changes"""

    async def test_rename_updates_every_dependent_collection(self, collections, cascade_service):
        """Every registry row for the student name is rewritten"""
        rows = rows_for(EntityType.STUDENT)
        for row in rows:
            await seed(collections, row.collection, [
                {row.match_field: "S1", row.field: "Old Name"},
                {row.match_field: "S2", row.field: "Someone Else"},
            ])

        result = await cascade_service.cascade_student_name("S1", "Old Name", "New Name", TENANT_A)

        assert result.success
        assert len(result.updated) == len(rows)
        for row in rows:
            docs = await collections[row.collection].find_many(TENANT_A, {row.match_field: "S1"})
            assert [d[row.field] for d in docs] == ["New Name"], row.label
            others = await collections[row.collection].find_many(TENANT_A, {row.match_field: "S2"})
            assert [d[row.field] for d in others] == ["Someone Else"], row.label

    async def test_referring_student_name_updated_on_other_students(self, collections, cascade_service):
        await seed(collections, Collection.STUDENTS, [
            {"studentId": "S1", "name": "Ann Lee"},
            {"studentId": "S2", "name": "Bob Lee", "referringStudentId": "S1", "referringStudentName": "Ann Lee"},
        ])

        await cascade_service.cascade_student_name("S1", "Ann Lee", "Ann Park", TENANT_A)

        referred = await collections.students.get_by_student_id("S2", TENANT_A)
        assert referred["referringStudentName"] == "Ann Park"
        # The canonical record itself is owned by the caller
        referrer = await collections.students.get_by_student_id("S1", TENANT_A)
        assert referrer["name"] == "Ann Lee"

    async def test_email_cascades_to_payments_only(self, collections, cascade_service):
        await seed(collections, Collection.PAYMENTS, [
            {"studentId": "S1", "studentEmail": "old@example.com"},
        ])
        await seed(collections, Collection.ENROLLMENTS, [
            {"studentId": "S1", "studentEmail": "old@example.com"},
        ])

        result = await cascade_service.cascade_student_email("S1", "old@example.com", "new@example.com", TENANT_A)

        assert result.success
        payment = await collections[Collection.PAYMENTS].find_one(TENANT_A)
        assert payment["studentEmail"] == "new@example.com"
        enrollment = await collections[Collection.ENROLLMENTS].find_one(TENANT_A)
        assert enrollment["studentEmail"] == "old@example.com"

    async def test_category_and_course_type(self, collections, cascade_service):
        await seed(collections, Collection.PAYMENTS, [
            {"studentId": "S1", "studentCategory": "child", "courseType": "group"},
        ])

        await cascade_service.cascade_student_category("S1", "child", "adult", TENANT_A)
        await cascade_service.cascade_student_course_type("S1", "group", "private", TENANT_A)

        payment = await collections[Collection.PAYMENTS].find_one(TENANT_A)
        assert payment["studentCategory"] == "adult"
        assert payment["courseType"] == "private"


class TestCourseAndCohortCascade:
    """Course titles and cohort names"""

    async def test_course_name_reaches_student_enrolled_course(self, collections, cascade_service):
        await seed(collections, Collection.STUDENTS, [
            {"studentId": "S1", "enrolledCourse": "K1", "enrolledCourseName": "Piano"},
        ])
        await seed(collections, Collection.PAYMENTS, [
            {"studentId": "S1", "courseId": "K1", "enrolledCourseName": "Piano"},
        ])

        result = await cascade_service.cascade_course_name("K1", "Piano", "Piano I", TENANT_A)

        assert result.success
        student = await collections.students.get_by_student_id("S1", TENANT_A)
        assert student["enrolledCourseName"] == "Piano I"
        payment = await collections[Collection.PAYMENTS].find_one(TENANT_A)
        assert payment["enrolledCourseName"] == "Piano I"

    async def test_cohort_rename_rewrites_only_matching_assignment(self, collections, cascade_service):
        """Only the renamed cohort's element changes; order and other elements survive"""
        await seed(collections, Collection.INSTRUCTORS, [
            {
                "instructorId": "I1",
                "name": "John Doe",
                "cohorts": [{"id": "C1", "name": "Mon"}, {"id": "C2", "name": "Tue"}],
            },
            {"instructorId": "I2", "name": "Jane Roe", "cohorts": [{"id": "C3", "name": "Wed"}]},
        ])

        result = await cascade_service.cascade_cohort_name("C2", "Tue", "Tuesday", TENANT_A)

        assert result.success
        counts = {u.collection: u.count for u in result.updated}
        assert counts["instructors"] == 1
        instructors = await collections[Collection.INSTRUCTORS].find_many(TENANT_A)
        assert instructors[0]["cohorts"] == [{"id": "C1", "name": "Mon"}, {"id": "C2", "name": "Tuesday"}]
        assert instructors[1]["cohorts"] == [{"id": "C3", "name": "Wed"}]

    async def test_non_instructor_drafts_matched_by_old_name(self, collections, cascade_service):
        await seed(collections, Collection.NON_INSTRUCTOR_DRAFTS, [
            {"instructorName": "Pat Kim"},
            {"instructorName": "Sam Kim"},
        ])
        await seed(collections, Collection.NON_INSTRUCTOR_ATTENDANCE, [
            {"instructorId": "N1", "instructorName": "Pat Kim"},
        ])

        result = await cascade_service.cascade_non_instructor_name("N1", "Pat Kim", "Pat Park", TENANT_A)

        assert result.success
        drafts = await collections[Collection.NON_INSTRUCTOR_DRAFTS].find_many(TENANT_A)
        assert [d["instructorName"] for d in drafts] == ["Pat Park", "Sam Kim"]
        attendance = await collections[Collection.NON_INSTRUCTOR_ATTENDANCE].find_one(TENANT_A)
        assert attendance["instructorName"] == "Pat Park"


class TestCascadeFailures:
    """Per-row failure isolation"""

    async def test_failed_row_does_not_stop_others(self, session_factory, collections):
        """One collection down: its error is reported, the others are still updated"""
        collections.handles[Collection.PAYMENTS] = FailingRepository(session_factory, Collection.PAYMENTS)
        await seed(collections, Collection.ENROLLMENTS, [{"studentId": "S1", "studentName": "Old"}])
        await seed(collections, Collection.MONTHLY_SUBSCRIPTIONS, [{"studentId": "S1", "studentName": "Old"}])
        service = CascadeService(collections, max_concurrency=1)

        result = await service.cascade_student_name("S1", "Old", "New", TENANT_A)

        assert not result.success
        assert len(result.errors) == 1
        assert result.errors[0].startswith("payments.studentName:")
        assert "payments" not in {u.collection for u in result.updated}
        assert len(result.updated) == len(rows_for(EntityType.STUDENT)) - 1

        enrollment = await collections[Collection.ENROLLMENTS].find_one(TENANT_A)
        assert enrollment["studentName"] == "New"
        subscription = await collections[Collection.MONTHLY_SUBSCRIPTIONS].find_one(TENANT_A)
        assert subscription["studentName"] == "New"

    async def test_unexpected_error_is_isolated(self, session_factory, collections):
        """An error outside the store layer is recorded for its row like any other failure"""
        collections.handles[Collection.PAYMENTS] = BrokenRepository(session_factory, Collection.PAYMENTS)
        await seed(collections, Collection.ENROLLMENTS, [{"studentId": "S1", "studentName": "Old"}])
        service = CascadeService(collections, max_concurrency=1)

        result = await service.cascade_student_name("S1", "Old", "New", TENANT_A)

        assert not result.success
        assert result.errors == ["payments.studentName: unexpected document shape"]
        assert len(result.updated) == len(rows_for(EntityType.STUDENT)) - 1
        enrollment = await collections[Collection.ENROLLMENTS].find_one(TENANT_A)
        assert enrollment["studentName"] == "New"

    async def test_missing_tenant_fails_every_row(self, cascade_service):
        result = await cascade_service.cascade_student_name("S1", "Old", "New", "")

        assert not result.success
        assert result.updated == []
        assert len(result.errors) == len(rows_for(EntityType.STUDENT))
        assert all("tenant_id is required" in error for error in result.errors)

    async def test_raise_for_errors(self, session_factory, collections):
        collections.handles[Collection.PAYMENTS] = FailingRepository(session_factory, Collection.PAYMENTS)
        service = CascadeService(collections, max_concurrency=1)

        result = await service.cascade_student_email("S1", "a@example.com", "b@example.com", TENANT_A)

        with pytest.raises(PartialCascadeFailure) as exc_info:
            result.raise_for_errors()
        assert exc_info.value.errors == result.errors

    async def test_disabled_collection_is_not_attempted(self, session_factory):
        collections = CollectionSet.build(session_factory, disabled=["payments"])
        service = CascadeService(collections, max_concurrency=1)

        result = await service.cascade(
            EntityType.STUDENT, "S1", "a@example.com", "b@example.com", TENANT_A, CanonicalField.EMAIL
        )

        assert result.success
        assert result.updated == []


class TestCascadeTenantIsolation:
    """A cascade never touches another tenant's records"""

    async def test_same_ids_in_other_tenant_untouched(self, collections, cascade_service):
        await seed(collections, Collection.ENROLLMENTS, [{"studentId": "S1", "studentName": "Old"}], TENANT_A)
        await seed(collections, Collection.ENROLLMENTS, [{"studentId": "S1", "studentName": "Old"}], TENANT_B)
        await seed(collections, Collection.COURSES, [{"courseId": "K1", "instructor": "John Doe"}], TENANT_B)

        await cascade_service.cascade_student_name("S1", "Old", "New", TENANT_A)
        await cascade_service.cascade_instructor_name("I1", "John Doe", "John A. Doe", TENANT_A)

        other = await collections[Collection.ENROLLMENTS].find_one(TENANT_B)
        assert other["studentName"] == "Old"
        course = await collections.courses.get_by_course_id("K1", TENANT_B)
        assert course["instructor"] == "John Doe"

    async def test_empty_tenant_is_rejected(self, collections):
        with pytest.raises(ValueError):
            await collections[Collection.ENROLLMENTS].update_many(
                "", {"studentId": "S1"}, {"$set": {"studentName": "New"}}
            )


class TestConcurrentCascade:
    """Rows applied in parallel on a file-backed database"""

    async def test_default_concurrency_updates_every_row(self, file_collections):
        rows = rows_for(EntityType.STUDENT)
        for row in rows:
            await seed(file_collections, row.collection, [
                {row.match_field: "S1", row.field: "Old"},
                {row.match_field: "S2", row.field: "Other"},
            ])
        service = CascadeService(file_collections)

        result = await service.cascade_student_name("S1", "Old", "New", TENANT_A)

        assert service.max_concurrency == settings.CASCADE_MAX_CONCURRENCY > 1
        assert result.success
        assert [u.collection for u in result.updated] == [row.collection.value for row in rows]
        assert all(u.count == 1 for u in result.updated)
        for row in rows:
            documents = await file_collections[row.collection].find_many(TENANT_A)
            assert {d[row.match_field]: d[row.field] for d in documents} == {"S1": "New", "S2": "Other"}
