"""Tests for pm_common.id_generator and pm_common.datetime_utils."""

from datetime import UTC, datetime

from src.pm_common.datetime_utils import (
    from_millis,
    is_previous_utc_day,
    to_millis,
    utc_day,
    utc_now,
)
from src.pm_common.id_generator import SnowflakeIdGenerator, generate_id


class TestSnowflakeIdGenerator:
    def test_returns_str(self) -> None:
        gen = SnowflakeIdGenerator(machine_id=1)
        assert isinstance(gen.next_id(), str)

    def test_unique_ids(self) -> None:
        gen = SnowflakeIdGenerator(machine_id=1)
        ids = {gen.next_id() for _ in range(1000)}
        assert len(ids) == 1000

    def test_monotonically_increasing(self) -> None:
        gen = SnowflakeIdGenerator(machine_id=1)
        prev = int(gen.next_id())
        for _ in range(100):
            current = int(gen.next_id())
            assert current > prev
            prev = current

    def test_prefix(self) -> None:
        assert generate_id("mkt").startswith("mkt_")
        assert generate_id("bet") != generate_id("bet")


class TestUtcHelpers:
    def test_returns_aware_datetime(self) -> None:
        now = utc_now()
        assert now.tzinfo is not None
        assert now.utcoffset().total_seconds() == 0

    def test_millis_round_trip(self) -> None:
        dt = datetime(2026, 1, 1, 0, 0, 1, tzinfo=UTC)
        assert from_millis(to_millis(dt)) == dt

    def test_previous_day(self) -> None:
        late = datetime(2026, 1, 1, 23, 59, tzinfo=UTC)
        early = datetime(2026, 1, 2, 0, 1, tzinfo=UTC)
        assert is_previous_utc_day(late, early)
        assert not is_previous_utc_day(early, early)
        assert utc_day(late).day == 1
