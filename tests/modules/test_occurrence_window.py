from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from rollcall.backend.models.db_models import Frequency
from rollcall.backend.modules.occurrence_window import compute_window, crosses_midnight
from tests.fakes import TZ, local, make_template


def test_window_covers_the_whole_end_minute():
    window = compute_window(make_template(), date(2024, 1, 1), TZ)
    assert window.start == local(2024, 1, 1, 9, 0)
    assert window.end == local(2024, 1, 1, 10, 1)
    assert window.contains(local(2024, 1, 1, 10, 0, 59))
    assert not window.contains(local(2024, 1, 1, 10, 1))
    assert not window.contains(local(2024, 1, 1, 8, 59, 59))


def test_midnight_crossing_ends_on_next_date():
    template = make_template(start_time=time(23, 0), end_time=time(1, 0))
    assert crosses_midnight(template)
    window = compute_window(template, date(2024, 1, 1), TZ)
    assert window.start == local(2024, 1, 1, 23, 0)
    assert window.end == local(2024, 1, 2, 1, 1)
    assert window.contains(local(2024, 1, 2, 0, 30))


def test_equal_start_and_end_is_a_one_minute_window():
    template = make_template(start_time=time(9, 0), end_time=time(9, 0))
    assert not crosses_midnight(template)
    window = compute_window(template, date(2024, 1, 1), TZ)
    assert window.end - window.start == timedelta(minutes=1)


def test_seconds_are_truncated_on_the_template():
    template = make_template(start_time=time(9, 0, 45), end_time=time(10, 0, 30))
    assert template.start_time == time(9, 0)
    assert template.end_time == time(10, 0)


NEW_YORK = ZoneInfo("America/New_York")


def test_window_arithmetic_uses_real_elapsed_time_across_spring_forward():
    # 2024-03-10: clocks jump from 02:00 to 03:00.
    template = make_template(frequency=Frequency.DAILY, weekly_days=[], start_time=time(1, 0), end_time=time(4, 0))
    window = compute_window(template, date(2024, 3, 10), NEW_YORK)
    scan = datetime(2024, 3, 10, 3, 30, tzinfo=NEW_YORK)

    assert window.seconds_since_start(scan) == 90 * 60
    assert window.contains(scan)
    assert window.has_ended(datetime(2024, 3, 10, 4, 1, tzinfo=NEW_YORK))
    assert not window.contains(datetime(2024, 3, 10, 4, 1, tzinfo=NEW_YORK))


def test_window_arithmetic_across_fall_back():
    # 2024-11-03: 01:00-02:00 happens twice; fold=1 is the second, EST pass.
    template = make_template(frequency=Frequency.DAILY, weekly_days=[], start_time=time(0, 30), end_time=time(3, 0))
    window = compute_window(template, date(2024, 11, 3), NEW_YORK)
    second_pass = datetime(2024, 11, 3, 1, 30, fold=1, tzinfo=NEW_YORK)

    assert window.seconds_since_start(second_pass) == 120 * 60
    assert window.contains(second_pass)
