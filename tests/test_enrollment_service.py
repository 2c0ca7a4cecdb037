import asyncio
import logging
from datetime import timedelta
from uuid import uuid4

import pytest

from campusdesk.core.exceptions import ConstraintViolation, NotFoundError, ValidationError
from campusdesk.models import RollScope
from campusdesk.services.enrollment_service import EnrollmentService
from campusdesk.services.roll_number_service import RollNumberRecalculator

from helpers import YEAR_START, add_student, get_enrollment, roll_numbers


async def enroll_via_service(database, school, *names, class_section_id=None):
    ids = {}
    for name in names:
        first_name, last_name = name.split(" ")
        student_id = await add_student(database, first_name, last_name)
        async with database() as session:
            service = EnrollmentService(session, RollNumberRecalculator(database))
            enrollment = await service.create_enrollment(
                student_id=student_id,
                class_section_id=class_section_id or school.class_section_a_id,
                academic_year_id=school.year_id,
                start_date=YEAR_START,
            )
            ids[first_name] = enrollment.id
    return ids


def test_create_enrollment_renumbers_scope_after_commit(database, school):
    async def scenario():
        await enroll_via_service(database, school, "Bobby Clark")
        student_id = await add_student(database, "Aaron", "Brown")

        async with database() as session:
            service = EnrollmentService(session, RollNumberRecalculator(database))
            enrollment = await service.create_enrollment(
                student_id=student_id,
                class_section_id=school.class_section_a_id,
                academic_year_id=school.year_id,
                start_date=YEAR_START,
            )

            assert enrollment.roll_number == 1
            assert service.roll_numbers_recalculated
            assert [outcome.scope for outcome in service.recalculation_outcomes] == [
                RollScope(school.class_section_a_id, school.year_id)
            ]

        assert await roll_numbers(database, school.class_section_a_id, school.year_id) == {"Aaron": 1, "Bobby": 2}

    asyncio.run(scenario())


def test_create_enrollment_rejects_unknown_student(database, school):
    async def scenario():
        async with database() as session:
            await EnrollmentService(session).create_enrollment(
                student_id=uuid4(),
                class_section_id=school.class_section_a_id,
                academic_year_id=school.year_id,
                start_date=YEAR_START,
            )

    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.field == "student_id"


def test_create_enrollment_rejects_class_section_of_another_year(database, school):
    async def scenario():
        student_id = await add_student(database, "Aaron", "Brown")
        async with database() as session:
            await EnrollmentService(session).create_enrollment(
                student_id=student_id,
                class_section_id=school.next_class_section_id,
                academic_year_id=school.year_id,
                start_date=YEAR_START,
            )

    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.field == "class_section_id"
    assert exc_info.value.status_code == 422


def test_create_enrollment_rejects_unknown_academic_year(database, school):
    async def scenario():
        student_id = await add_student(database, "Aaron", "Brown")
        async with database() as session:
            await EnrollmentService(session).create_enrollment(
                student_id=student_id,
                class_section_id=school.class_section_a_id,
                academic_year_id=uuid4(),
                start_date=YEAR_START,
            )

    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.field == "academic_year_id"


def test_second_active_enrollment_in_same_year_is_rejected(database, school):
    async def scenario():
        ids = await enroll_via_service(database, school, "Aaron Brown")
        enrollment = await get_enrollment(database, ids["Aaron"])
        async with database() as session:
            await EnrollmentService(session).create_enrollment(
                student_id=enrollment.student_id,
                class_section_id=school.class_section_b_id,
                academic_year_id=school.year_id,
                start_date=YEAR_START,
            )

    with pytest.raises(ValidationError, match="already has an active enrollment"):
        asyncio.run(scenario())


def test_transfer_retightens_both_scopes(database, school):
    async def scenario():
        ids = await enroll_via_service(database, school, "Aaron Brown", "Bobby Clark", "Chitra Das")
        await enroll_via_service(database, school, "Dev Iyer", class_section_id=school.class_section_b_id)

        async with database() as session:
            service = EnrollmentService(session, RollNumberRecalculator(database))
            enrollment = await service.update_enrollment(ids["Bobby"], {"class_section_id": school.class_section_b_id})

            assert enrollment.class_section_id == school.class_section_b_id
            assert enrollment.roll_number == 1
            assert len(service.recalculation_outcomes) == 2
            assert service.roll_numbers_recalculated

        assert await roll_numbers(database, school.class_section_a_id, school.year_id) == {"Aaron": 1, "Chitra": 2}
        assert await roll_numbers(database, school.class_section_b_id, school.year_id) == {"Bobby": 1, "Dev": 2}

    asyncio.run(scenario())


def test_transfer_to_another_year_is_rejected(database, school):
    async def scenario():
        ids = await enroll_via_service(database, school, "Aaron Brown")
        async with database() as session:
            await EnrollmentService(session).update_enrollment(
                ids["Aaron"], {"class_section_id": school.next_class_section_id}
            )

    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.field == "class_section_id"


def test_withdrawal_closes_the_gap(database, school):
    async def scenario():
        ids = await enroll_via_service(database, school, "Aaron Brown", "Bobby Clark", "Chitra Das")

        async with database() as session:
            service = EnrollmentService(session, RollNumberRecalculator(database))
            enrollment = await service.update_enrollment(
                ids["Aaron"], {"status": "withdrawn", "end_date": YEAR_START}
            )
            assert enrollment.status == "withdrawn"
            assert enrollment.end_date == YEAR_START

        assert await roll_numbers(database, school.class_section_a_id, school.year_id) == {"Bobby": 1, "Chitra": 2}

    asyncio.run(scenario())


def test_reactivation_takes_a_fresh_number(database, school):
    async def scenario():
        ids = await enroll_via_service(database, school, "Aaron Brown", "Bobby Clark", "Chitra Das")
        async with database() as session:
            service = EnrollmentService(session, RollNumberRecalculator(database))
            await service.update_enrollment(ids["Chitra"], {"status": "withdrawn"})
            await enroll_via_service(database, school, "Bina Joshi")

            enrollment = await service.update_enrollment(ids["Chitra"], {"status": "active"})
            assert enrollment.roll_number == 4

        assert await roll_numbers(database, school.class_section_a_id, school.year_id) == {
            "Aaron": 1, "Bina": 2, "Bobby": 3, "Chitra": 4
        }

    asyncio.run(scenario())


def test_update_with_unknown_status_is_rejected(database, school):
    async def scenario():
        ids = await enroll_via_service(database, school, "Aaron Brown")
        async with database() as session:
            await EnrollmentService(session).update_enrollment(ids["Aaron"], {"status": "graduated"})

    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.field == "status"


def test_update_of_missing_enrollment_is_not_found(database, school):
    async def scenario():
        async with database() as session:
            await EnrollmentService(session).update_enrollment(uuid4(), {"status": "withdrawn"})

    with pytest.raises(NotFoundError):
        asyncio.run(scenario())


def test_end_date_change_does_not_recalculate(database, school):
    async def scenario():
        ids = await enroll_via_service(database, school, "Aaron Brown")
        async with database() as session:
            service = EnrollmentService(session, RollNumberRecalculator(database))
            await service.update_enrollment(ids["Aaron"], {"end_date": YEAR_START})
            assert service.recalculation_outcomes == []

    asyncio.run(scenario())


def test_explicit_null_end_date_clears_it(database, school):
    async def scenario():
        ids = await enroll_via_service(database, school, "Aaron Brown")
        async with database() as session:
            service = EnrollmentService(session)
            await service.update_enrollment(ids["Aaron"], {"end_date": YEAR_START + timedelta(days=30)})
        async with database() as session:
            service = EnrollmentService(session)
            await service.update_enrollment(ids["Aaron"], {"status": None})
        assert (await get_enrollment(database, ids["Aaron"])).end_date == YEAR_START + timedelta(days=30)

        async with database() as session:
            await EnrollmentService(session).update_enrollment(ids["Aaron"], {"end_date": None})
        assert (await get_enrollment(database, ids["Aaron"])).end_date is None

    asyncio.run(scenario())


def test_end_date_before_start_date_is_rejected(database, school):
    async def scenario():
        ids = await enroll_via_service(database, school, "Aaron Brown")
        try:
            async with database() as session:
                await EnrollmentService(session).update_enrollment(
                    ids["Aaron"], {"end_date": YEAR_START - timedelta(days=1)}
                )
        finally:
            assert (await get_enrollment(database, ids["Aaron"])).end_date is None

    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.field == "end_date"


def test_delete_enrollment_renumbers_remaining(database, school):
    async def scenario():
        ids = await enroll_via_service(database, school, "Aaron Brown", "Bobby Clark")
        async with database() as session:
            service = EnrollmentService(session, RollNumberRecalculator(database))
            await service.delete_enrollment(ids["Aaron"])
            assert await service.get(ids["Aaron"]) is None
            assert (await service.get(ids["Aaron"], include_deleted=True)).is_deleted

        assert await roll_numbers(database, school.class_section_a_id, school.year_id) == {"Bobby": 1}

    asyncio.run(scenario())


def test_failed_recalculation_does_not_undo_enrollment(database, broken_session_factory, school, caplog):
    async def scenario():
        student_id = await add_student(database, "Aaron", "Brown")
        async with database() as session:
            service = EnrollmentService(session, RollNumberRecalculator(broken_session_factory, retry_backoff=0))
            enrollment = await service.create_enrollment(
                student_id=student_id,
                class_section_id=school.class_section_a_id,
                academic_year_id=school.year_id,
                start_date=YEAR_START,
            )
            assert not service.roll_numbers_recalculated
            return enrollment.id

    with caplog.at_level(logging.ERROR):
        enrollment_id = asyncio.run(scenario())

    stored = asyncio.run(get_enrollment(database, enrollment_id))
    assert stored.status == "active"
    assert stored.roll_number is None
    assert any(getattr(record, "error_type", None) == "RecalculationError" for record in caplog.records)

    # A later recalculation repairs the scope
    asyncio.run(RollNumberRecalculator(database).recalculate(school.class_section_a_id, school.year_id))
    assert asyncio.run(get_enrollment(database, enrollment_id)).roll_number == 1


def test_discarded_scopes_are_not_recalculated(database, school):
    async def scenario():
        async with database() as session:
            service = EnrollmentService(session, RollNumberRecalculator(database))
            service.mark_dirty(RollScope(school.class_section_a_id, school.year_id))
            service.discard_dirty_scopes()
            assert await service.run_post_commit() == []

    asyncio.run(scenario())


def test_duplicate_active_rows_are_rejected_by_the_store(database, school):
    async def scenario():
        student_id = await add_student(database, "Aaron", "Brown")
        async with database() as session:
            service = EnrollmentService(session, RollNumberRecalculator(database))
            service.mark_dirty(RollScope(school.class_section_a_id, school.year_id))
            for class_section_id in (school.class_section_a_id, school.class_section_b_id):
                session.add(service.model(
                    student_id=student_id,
                    class_section_id=class_section_id,
                    academic_year_id=school.year_id,
                    start_date=YEAR_START,
                ))
            try:
                await service.commit_and_recalculate()
            finally:
                assert service.dirty_scopes == set()

    with pytest.raises(ConstraintViolation):
        asyncio.run(scenario())


def test_insertion_order_does_not_affect_numbering(database, school):
    async def scenario():
        ids = await enroll_via_service(database, school, "Aaron Test", "Zack Test", "Bobby Test")
        await RollNumberRecalculator(database).recalculate(school.class_section_a_id, school.year_id)

        enrollments = {name: await get_enrollment(database, enrollment_id) for name, enrollment_id in ids.items()}
        assert {name: enrollment.roll_number for name, enrollment in enrollments.items()} == {
            "Aaron": 1, "Bobby": 2, "Zack": 3
        }
        assert all(enrollment.status == "active" for enrollment in enrollments.values())

    asyncio.run(scenario())
