import time
from datetime import datetime, timezone

from src.utils.datetime_utils import (
    cuba_datetime,
    cuba_hour,
    ensure_utc,
    format_display,
    hours_between,
    parse_to_utc,
    start_of_cuba_day,
    to_cuba_time,
)


def test_parse_various_date_forms():
    # RFC 822 de los feeds
    dt = parse_to_utc("Tue, 15 Jan 2019 12:45:26 GMT")
    assert dt == datetime(2019, 1, 15, 12, 45, 26, tzinfo=timezone.utc)

    # ISO con offset
    dt2 = parse_to_utc("2025-09-30T12:00:00-03:00")
    assert dt2 == datetime(2025, 9, 30, 15, 0, tzinfo=timezone.utc)

    # Naive -> UTC
    dt3 = parse_to_utc("2024-01-01 00:00:00")
    assert dt3.tzinfo == timezone.utc

    # struct_time de feedparser
    dt4 = parse_to_utc(time.struct_time((2024, 5, 1, 8, 30, 0, 2, 122, 0)))
    assert dt4 == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)


def test_parse_rejects_empty_and_garbage():
    assert parse_to_utc(None) is None
    assert parse_to_utc("") is None
    assert parse_to_utc("no es una fecha") is None


def test_ensure_utc_converts_aware_and_tags_naive():
    naive = datetime(2025, 1, 1, 10, 0)
    assert ensure_utc(naive).tzinfo == timezone.utc
    assert ensure_utc(None) is None


def test_cuba_hour_and_day_boundaries():
    # 03:30 UTC del 11 de marzo todavía es 10 de marzo en La Habana
    instant = datetime(2025, 3, 11, 3, 30, tzinfo=timezone.utc)
    local = to_cuba_time(instant)
    assert local.day == 10
    assert cuba_hour(instant) == local.hour

    midnight = start_of_cuba_day(instant)
    assert midnight <= instant
    assert to_cuba_time(midnight).hour == 0
    assert to_cuba_time(midnight).day == 10


def test_cuba_datetime_builds_local_slot():
    day = datetime(2025, 3, 10, 17, 0, tzinfo=timezone.utc)
    slot = cuba_datetime(day, 7, 15)
    local = to_cuba_time(slot)
    assert (local.day, local.hour, local.minute) == (10, 7, 15)
    assert slot.tzinfo == timezone.utc


def test_hours_between_and_display():
    later = datetime(2025, 3, 10, 18, 0, tzinfo=timezone.utc)
    earlier = datetime(2025, 3, 10, 12, 0)
    assert hours_between(later, earlier) == 6.0
    assert format_display(later, "%Y-%m-%d").startswith("2025-03-10")
