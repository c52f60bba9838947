"""Tests for clocks and timestamp handling."""

from datetime import datetime, timedelta, timezone

import pytest

from craftly_orders.domain.clock import FrozenClock, format_timestamp, parse_timestamp


class TestParseTimestamp:
    @pytest.mark.parametrize(
        "value",
        [
            "2026-03-02T02:00:00Z",
            "2026-03-02T02:00:00.000Z",
            "2026-03-02T10:00:00+08:00",
            "2026-03-02T02:00:00",
        ],
    )
    def test_equivalent_forms(self, value: str) -> None:
        assert parse_timestamp(value) == datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)

    def test_result_is_utc(self) -> None:
        assert parse_timestamp("2026-03-02T10:00:00+08:00").utcoffset() == timedelta(0)

    def test_garbage_rejected(self) -> None:
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")


class TestFormatTimestamp:
    def test_millisecond_precision_with_z(self) -> None:
        moment = datetime(2026, 3, 2, 2, 0, 5, 123456, tzinfo=timezone.utc)
        assert format_timestamp(moment) == "2026-03-02T02:00:05.123Z"


class TestFrozenClock:
    def test_advance(self) -> None:
        clock = FrozenClock(datetime(2026, 3, 2, tzinfo=timezone.utc))
        clock.advance(timedelta(hours=1))
        assert clock.now() == datetime(2026, 3, 2, 1, tzinfo=timezone.utc)

    def test_cannot_go_backwards(self) -> None:
        clock = FrozenClock(datetime(2026, 3, 2, tzinfo=timezone.utc))
        with pytest.raises(ValueError):
            clock.set(datetime(2026, 3, 1, tzinfo=timezone.utc))
