import uuid
from datetime import date, time

import pytest

from rollcall.backend.models.db_models import AttendanceRecord, AttendanceStatus, Frequency, LeaveStatus
from rollcall.backend.tasks.cron import finalize_finished_occurrences
from tests.fakes import FixedClock, InMemoryDbClient, local, make_leave, make_template

MONDAY = date(2024, 1, 1)


class ExplodingDbClient(InMemoryDbClient):
    """Fails every leave lookup for user 'boom'."""

    async def find_approved_leave(self, user_id, day):
        if user_id == "boom":
            raise RuntimeError("connection reset")
        return await super().find_approved_leave(user_id, day)


async def seed(db, template, *leaves):
    await db.add_session_template(template)
    for leave in leaves:
        await db.add_leave_request(leave)


@pytest.mark.asyncio
class TestFinalizeFinishedOccurrences:

    async def test_writes_on_leave_for_finished_occurrence(self, fake_db, weekly_template):
        await seed(fake_db, weekly_template, make_leave("u2", MONDAY))
        await fake_db.insert_attendance_record(AttendanceRecord(
            record_id=uuid.uuid4(), session_id=weekly_template.session_id, occurrence_date=MONDAY,
            user_id="u1", check_in_time=local(2024, 1, 1, 9, 2), attendance_status=AttendanceStatus.VERIFIED,
        ))
        clock = FixedClock(local(2024, 1, 1, 11, 0))

        assert await finalize_finished_occurrences(fake_db, clock) == 1

        record = fake_db.records[(weekly_template.session_id, MONDAY, "u2")]
        assert record.attendance_status == AttendanceStatus.ON_LEAVE
        assert record.check_in_time == local(2024, 1, 1, 10, 1)
        assert record.approved_by == "manager-1"
        assert record.location_verified is None
        assert fake_db.records[(weekly_template.session_id, MONDAY, "u1")].attendance_status == AttendanceStatus.VERIFIED

    async def test_second_sweep_writes_nothing(self, fake_db, weekly_template):
        await seed(fake_db, weekly_template, make_leave("u2", MONDAY))
        clock = FixedClock(local(2024, 1, 1, 11, 0))
        assert await finalize_finished_occurrences(fake_db, clock) == 1
        assert await finalize_finished_occurrences(fake_db, clock) == 0

    async def test_running_occurrence_is_left_alone(self, fake_db, weekly_template):
        await seed(fake_db, weekly_template, make_leave("u2", MONDAY))
        assert await finalize_finished_occurrences(fake_db, FixedClock(local(2024, 1, 1, 9, 30))) == 0
        assert fake_db.records == {}

    async def test_absences_and_pending_leaves_are_not_written(self, fake_db, weekly_template):
        await seed(fake_db, weekly_template, make_leave("u2", MONDAY, status=LeaveStatus.PENDING))
        assert await finalize_finished_occurrences(fake_db, FixedClock(local(2024, 1, 1, 23, 0))) == 0
        assert fake_db.records == {}

    async def test_leave_day_list_is_respected(self, fake_db, weekly_template):
        await seed(fake_db, weekly_template, make_leave("u2", date(2023, 12, 29), date(2024, 1, 3), dates=[date(2024, 1, 3)]))
        assert await finalize_finished_occurrences(fake_db, FixedClock(local(2024, 1, 1, 11, 0))) == 0

    async def test_overnight_session_is_finalized_next_day(self, fake_db):
        overnight = make_template(frequency=Frequency.DAILY, weekly_days=[], start_time=time(22, 0),
                                  end_time=time(1, 0), assigned_users=["u1"])
        await seed(fake_db, overnight, make_leave("u1", MONDAY))

        written = await finalize_finished_occurrences(fake_db, FixedClock(local(2024, 1, 2, 2, 0)))

        assert written == 1
        assert list(fake_db.records) == [(overnight.session_id, MONDAY, "u1")]
        assert fake_db.records[(overnight.session_id, MONDAY, "u1")].check_in_time == local(2024, 1, 2, 1, 1)

    async def test_cancelled_sessions_are_skipped(self, fake_db):
        cancelled = make_template(is_cancelled=True)
        await seed(fake_db, cancelled, make_leave("u1", MONDAY))
        assert await finalize_finished_occurrences(fake_db, FixedClock(local(2024, 1, 1, 11, 0))) == 0

    async def test_one_failing_session_does_not_stop_the_sweep(self):
        db = ExplodingDbClient()
        broken = make_template(assigned_users=["boom"])
        healthy = make_template(assigned_users=["u1"])
        await seed(db, broken)
        await seed(db, healthy, make_leave("u1", MONDAY))

        assert await finalize_finished_occurrences(db, FixedClock(local(2024, 1, 1, 11, 0))) == 1
        assert (healthy.session_id, MONDAY, "u1") in db.records
