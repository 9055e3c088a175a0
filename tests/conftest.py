"""Shared test fixtures."""

from datetime import datetime, timezone

import pytest

from src.main import MarketEngine
from src.pm_market.infrastructure.persistence import InMemoryStore

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock injected into the engine; advance it by hand."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(store: InMemoryStore, clock: FakeClock) -> MarketEngine:
    return MarketEngine(store=store, clock=clock)
