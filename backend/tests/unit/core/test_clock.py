from datetime import date, datetime, timezone

from cdc_admin.core.clock import Clock, FixedClock


def test_aware_instant_truncates_to_local_day():
    clock = Clock("Asia/Kolkata")
    # 20:00 UTC is 01:30 the next morning in India
    assert clock.to_local_day(datetime(2025, 1, 15, 20, 0, tzinfo=timezone.utc)) == date(2025, 1, 16)


def test_iso_strings_are_accepted():
    clock = Clock("Asia/Kolkata")
    assert clock.to_local_day("2025-01-15T20:00:00Z") == date(2025, 1, 16)
    assert clock.to_local_day("2025-01-15") == date(2025, 1, 15)


def test_naive_values_are_already_local():
    clock = Clock("Asia/Kolkata")
    assert clock.to_local_day(datetime(2025, 1, 15, 23, 59)) == date(2025, 1, 15)
    assert clock.to_local_day(date(2025, 1, 15)) == date(2025, 1, 15)


def test_to_local_datetime_drops_tzinfo():
    clock = Clock("Asia/Kolkata")
    local = clock.to_local_datetime(datetime(2025, 1, 15, 0, 0, tzinfo=timezone.utc))
    assert local == datetime(2025, 1, 15, 5, 30)
    assert local.tzinfo is None


def test_fixed_clock_advances():
    clock = FixedClock(datetime(2025, 1, 15, 10, 0))
    assert clock.today() == date(2025, 1, 15)
    clock.advance(days=1, hours=2)
    assert clock.now() == datetime(2025, 1, 16, 12, 0)
