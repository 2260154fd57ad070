import pytest
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from rollcall.backend.models.db_models import Frequency, Weekday
from rollcall.backend.modules.session_status import StatusKind, classify, select_scannable
from tests.fakes import TZ, local, make_template


@pytest.mark.parametrize("now, kind, minutes", [
    (local(2024, 1, 1, 8, 10), StatusKind.UPCOMING_SOON, 50),
    (local(2024, 1, 1, 9, 30), StatusKind.LIVE, None),
    (local(2024, 1, 1, 10, 1), StatusKind.FINISHED, None),
    (local(2024, 1, 2, 9, 30), StatusKind.NOT_TODAY, None),
])
def test_weekly_scenarios(weekly_template, now, kind, minutes):
    status = classify(weekly_template, now, TZ, lookahead_minutes=120)
    assert status.kind == kind
    assert status.minutes_until_start == minutes


def test_minutes_until_start_rounds_up():
    status = classify(make_template(), local(2024, 1, 1, 8, 10, 30), TZ)
    assert status.minutes_until_start == 50


def test_lookahead_boundary():
    template = make_template()
    assert classify(template, local(2024, 1, 1, 7, 0), TZ, 120).kind == StatusKind.UPCOMING_SOON
    assert classify(template, local(2024, 1, 1, 6, 59), TZ, 120).kind == StatusKind.NOT_TODAY


def test_now_in_another_zone_is_read_as_local_time():
    # 04:00 UTC is 09:30 in Kolkata.
    now = local(2024, 1, 1, 9, 30).astimezone(timezone.utc)
    assert classify(make_template(), now, TZ).kind == StatusKind.LIVE


def test_cross_midnight_session_is_live_after_midnight():
    template = make_template(
        frequency=Frequency.WEEKLY, weekly_days=[Weekday.MONDAY],
        start_time=time(23, 0), end_time=time(1, 0),
    )
    status = classify(template, local(2024, 1, 2, 0, 30), TZ)
    assert status.kind == StatusKind.LIVE
    assert status.occurrence_date == date(2024, 1, 1)

    assert classify(template, local(2024, 1, 2, 1, 1), TZ).kind == StatusKind.NOT_TODAY
    assert classify(template, local(2024, 1, 1, 22, 30), TZ).kind == StatusKind.UPCOMING_SOON


def test_one_time_is_judged_on_its_start_date():
    template = make_template(frequency=Frequency.ONE_TIME, start_date=date(2024, 1, 5), end_date=None, weekly_days=[])
    assert classify(template, local(2024, 1, 5, 8, 0), TZ).minutes_until_start == 60
    assert classify(template, local(2024, 1, 6, 12, 0), TZ).kind == StatusKind.FINISHED
    assert classify(template, local(2024, 1, 4, 9, 30), TZ).kind == StatusKind.NOT_TODAY


def test_cancelled_is_never_live():
    template = make_template(is_cancelled=True)
    assert classify(template, local(2024, 1, 1, 9, 30), TZ).kind == StatusKind.NOT_TODAY


def test_classify_is_total():
    templates = [
        make_template(),
        make_template(start_time=time(23, 30), end_time=time(0, 15)),
        make_template(start_time=time(12, 0), end_time=time(12, 0)),
        make_template(frequency=Frequency.DAILY, weekly_days=[], end_date=None),
        make_template(frequency=Frequency.MONTHLY, weekly_days=[], start_date=date(2024, 1, 31), end_date=None),
        make_template(frequency=Frequency.ONE_TIME, end_date=None, weekly_days=[]),
        make_template(is_cancelled=True),
    ]
    moment = local(2023, 12, 30, 0, 0)
    while moment < local(2024, 1, 4, 0, 0):
        for template in templates:
            status = classify(template, moment, TZ)
            assert status.kind in set(StatusKind)
            if status.kind == StatusKind.UPCOMING_SOON:
                assert 0 < status.minutes_until_start <= 120
            else:
                assert status.minutes_until_start is None
            if status.kind == StatusKind.LIVE:
                assert status.window.contains(moment)
        moment += timedelta(minutes=7)


def test_select_scannable_orders_live_first():
    early_live = make_template(name="live", start_time=time(8, 0), end_time=time(9, 45))
    soon = make_template(name="soon", start_time=time(10, 0), end_time=time(11, 0))
    sooner = make_template(name="sooner", start_time=time(9, 45), end_time=time(11, 0))
    not_assigned = make_template(name="other", assigned_users=["u9"])
    cancelled = make_template(name="cancelled", is_cancelled=True)
    far = make_template(name="far", start_time=time(18, 0), end_time=time(19, 0))

    selected = select_scannable(
        [soon, far, not_assigned, early_live, cancelled, sooner], "u1", local(2024, 1, 1, 9, 30), TZ
    )
    assert [t.name for t, _ in selected] == ["live", "sooner", "soon"]
    assert selected[0][1].kind == StatusKind.LIVE


def test_minutes_until_start_counts_real_minutes_on_dst_day():
    new_york = ZoneInfo("America/New_York")
    template = make_template(frequency=Frequency.DAILY, weekly_days=[], start_time=time(3, 30), end_time=time(4, 30))
    # 01:30 EST to 03:30 EDT on 2024-03-10 is one real hour.
    status = classify(template, datetime(2024, 3, 10, 1, 30, tzinfo=new_york), new_york)
    assert status.kind == StatusKind.UPCOMING_SOON
    assert status.minutes_until_start == 60
