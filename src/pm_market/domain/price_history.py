"""Price history: recording and reading probability series for charts.

A binary market has one series keyed by the market id; a multiple choice
market has one series per answer. Timestamps are epoch milliseconds.
"""

from dataclasses import dataclass
from datetime import datetime

from config.settings import settings
from src.pm_common.datetime_utils import to_millis
from src.pm_common.enums import Outcome
from src.pm_market.domain.models import Answer, Market, PricePoint
from src.pm_market.domain.repository import MarketStoreProtocol


@dataclass(frozen=True)
class BetPoint:
    timestamp: int
    probability: float
    outcome: Outcome
    amount: float


def record_price_points(
    store: MarketStoreProtocol,
    market: Market,
    now: datetime,
    answers: list[Answer] | None = None,
) -> None:
    """Append the current probability to the market's series, or to each answer's."""
    ts = to_millis(now)
    if market.is_binary:
        store.add_price_point(market.id, PricePoint(ts, market.prob))  # type: ignore[arg-type]
        return
    for answer in answers if answers is not None else market.answers:
        store.add_price_point(market.id, PricePoint(ts, answer.prob), answer.id)


def downsample_points(points: list[PricePoint], max_points: int) -> list[PricePoint]:
    """Keep first, last and evenly spaced points in between."""
    if len(points) <= max_points:
        return list(points)
    if max_points <= 0:
        return []
    if max_points == 1:
        return [points[-1]]
    step = (len(points) - 1) / (max_points - 1)
    return [points[round(i * step)] for i in range(max_points)]


def get_price_history(
    store: MarketStoreProtocol,
    contract_id: str,
    answer_id: str | None = None,
    max_points: int | None = None,
    after: int | None = None,
    before: int | None = None,
) -> list[PricePoint]:
    """Points strictly after ``after`` and strictly before ``before``, downsampled."""
    cap = settings.PRICE_HISTORY_MAX_POINTS if max_points is None else max_points
    points = store.get_price_points(contract_id, answer_id)
    if after is not None:
        points = [pt for pt in points if pt.timestamp > after]
    if before is not None:
        points = [pt for pt in points if pt.timestamp < before]
    return downsample_points(points, cap)


def get_full_price_history(
    store: MarketStoreProtocol,
    market: Market,
    answer_id: str | None = None,
) -> list[PricePoint]:
    """History starting from the market's creation point."""
    if answer_id is None:
        initial_prob = market.outcome.initial_prob if market.is_binary else 0.5  # type: ignore[union-attr]
    else:
        answer = market.get_answer(answer_id)
        initial_prob = answer.initial_prob if answer is not None else 0.5
    points = get_price_history(store, market.id, answer_id)
    created = to_millis(market.created_at) if market.created_at else 0
    if points and points[0].timestamp <= created:
        return points
    return [PricePoint(created, initial_prob), *points]


def get_price_at_time(
    store: MarketStoreProtocol,
    contract_id: str,
    timestamp: int,
    answer_id: str | None = None,
) -> float | None:
    """Probability of the latest point at or before ``timestamp``; None if there is none."""
    points = [
        pt for pt in store.get_price_points(contract_id, answer_id) if pt.timestamp <= timestamp
    ]
    if not points:
        return None
    return points[-1].probability


def get_multi_choice_chart_data(
    store: MarketStoreProtocol, market: Market, max_points: int | None = None
) -> dict[str, list[PricePoint]]:
    return {
        answer.id: get_price_history(store, market.id, answer.id, max_points)
        for answer in market.answers
    }


def get_bet_history(
    store: MarketStoreProtocol, contract_id: str, limit: int = 100
) -> list[BetPoint]:
    """Most recent non-redemption buys as chart points."""
    buys = [b for b in store.get_bets(contract_id) if not b.is_redemption and b.amount > 0]
    return [
        BetPoint(to_millis(b.created_at), b.prob_after, b.outcome, b.amount)
        for b in buys[-limit:]
    ]
