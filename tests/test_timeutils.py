from datetime import datetime, timedelta

from conftest import START
from giveaway_daemon.timeutils import (
    days_since,
    ensure_utc,
    format_timestamp,
    minutes_since,
    parse_timestamp,
)


def test_minutes_since_floors_partial_minutes():
    assert minutes_since(START, START + timedelta(seconds=59)) == 0
    assert minutes_since(START, START + timedelta(minutes=61, seconds=30)) == 61


def test_days_since_counts_whole_days():
    assert days_since(START, START + timedelta(days=2, hours=23)) == 2


def test_naive_timestamps_are_treated_as_utc():
    naive = datetime(2024, 1, 1, 12, 0)

    assert ensure_utc(naive) == START
    assert minutes_since(naive, START + timedelta(minutes=5)) == 5


def test_timestamp_round_trip():
    assert parse_timestamp(format_timestamp(START)) == START
    assert parse_timestamp(None) is None
    assert format_timestamp(None) is None
