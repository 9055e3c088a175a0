"""Pydantic schemas for pm_market requests and responses.

Requests are validated at the engine boundary before anything reaches the
pool math: numbers must be finite, probabilities inside their ranges.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from src.pm_clearing.domain.settlement import Payout
from src.pm_common.enums import OutcomeType, Resolution
from src.pm_market.domain.models import (
    Answer,
    BinaryOutcome,
    Market,
    OrderbookSnapshot,
    PricePoint,
)
from src.pm_market.domain.price_history import BetPoint

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateMarketRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=480)
    outcome_type: OutcomeType
    ante: float = Field(..., gt=0, allow_inf_nan=False)
    creator_id: str = Field(..., min_length=1)
    answers: list[str] | None = None
    should_answers_sum_to_one: bool = True
    initial_prob: float = Field(0.5, gt=0, lt=1, allow_inf_nan=False)
    description: str = ""
    close_time: datetime | None = None


class ResolveMarketRequest(BaseModel):
    contract_id: str = Field(..., min_length=1)
    resolution: Resolution
    resolver_id: str = Field(..., min_length=1)
    resolution_probability: float | None = Field(None, ge=0, le=1, allow_inf_nan=False)
    answer_id: str | None = None


class AddLiquidityRequest(BaseModel):
    contract_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    user_id: str = Field(..., min_length=1)
    answer_id: str | None = None


class PriceHistoryRequest(BaseModel):
    contract_id: str = Field(..., min_length=1)
    answer_id: str | None = None
    max_points: int | None = Field(None, gt=0)
    after: int | None = None    # epoch ms, exclusive
    before: int | None = None   # epoch ms, exclusive


# ---------------------------------------------------------------------------
# Market detail
# ---------------------------------------------------------------------------


class AnswerOut(BaseModel):
    id: str
    text: str
    index: int
    prob: float
    pool: dict[str, float]
    volume: float
    resolution: str | None

    @classmethod
    def from_domain(cls, a: Answer) -> "AnswerOut":
        return cls(
            id=a.id,
            text=a.text,
            index=a.index,
            prob=a.prob,
            pool=a.pool.to_dict(),
            volume=a.volume,
            resolution=a.resolution.value if a.resolution else None,
        )


class MarketDetail(BaseModel):
    id: str
    slug: str
    question: str
    description: str
    creator_id: str
    outcome_type: str
    mechanism: str
    phase: str
    prob: float | None
    pool: dict[str, float] | None
    should_answers_sum_to_one: bool | None
    answers: list[AnswerOut]
    volume: float
    total_liquidity: float
    unique_bettor_count: int
    resolution: str | None
    resolution_probability: float | None
    close_time: str | None
    created_at: str | None
    resolved_at: str | None

    @classmethod
    def from_domain(cls, m: Market) -> "MarketDetail":
        binary = m.outcome if isinstance(m.outcome, BinaryOutcome) else None
        return cls(
            id=m.id,
            slug=m.slug,
            question=m.question,
            description=m.description,
            creator_id=m.creator_id,
            outcome_type=m.outcome_type.value,
            mechanism=m.mechanism.value,
            phase=m.phase.value,
            prob=m.prob,
            pool=binary.pool.to_dict() if binary else None,
            should_answers_sum_to_one=None if binary else m.is_sum_to_one,
            answers=[AnswerOut.from_domain(a) for a in m.answers],
            volume=m.volume,
            total_liquidity=m.total_liquidity,
            unique_bettor_count=m.unique_bettor_count,
            resolution=m.resolution.value if m.resolution else None,
            resolution_probability=m.resolution_probability,
            close_time=m.close_time.isoformat() if m.close_time else None,
            created_at=m.created_at.isoformat() if m.created_at else None,
            resolved_at=m.resolved_at.isoformat() if m.resolved_at else None,
        )


# ---------------------------------------------------------------------------
# Price history
# ---------------------------------------------------------------------------


class PricePointOut(BaseModel):
    timestamp: int
    probability: float

    @classmethod
    def from_domain(cls, p: PricePoint) -> "PricePointOut":
        return cls(timestamp=p.timestamp, probability=p.probability)


class PriceHistoryResponse(BaseModel):
    contract_id: str
    answer_id: str | None
    points: list[PricePointOut]
    answers: dict[str, list[PricePointOut]] | None = None  # multiple choice, no answer_id


class PriceAtTimeResponse(BaseModel):
    contract_id: str
    answer_id: str | None
    timestamp: int
    probability: float | None  # None before the first recorded point


class BetPointOut(BaseModel):
    timestamp: int
    probability: float
    outcome: str
    amount: float

    @classmethod
    def from_domain(cls, p: BetPoint) -> "BetPointOut":
        return cls(
            timestamp=p.timestamp,
            probability=p.probability,
            outcome=p.outcome.value,
            amount=p.amount,
        )


class InvariantReport(BaseModel):
    ok: bool
    violations: list[str]


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class PayoutOut(BaseModel):
    user_id: str
    answer_id: str | None
    amount: float

    @classmethod
    def from_domain(cls, p: Payout) -> "PayoutOut":
        return cls(user_id=p.user_id, answer_id=p.answer_id, amount=p.amount)


class ResolveMarketResponse(BaseModel):
    contract_id: str
    answer_id: str | None
    resolution: str
    market_resolved: bool
    payouts: list[PayoutOut]
    refunded_orders: float


# ---------------------------------------------------------------------------
# Liquidity / phase / orderbook
# ---------------------------------------------------------------------------


class AddLiquidityResponse(BaseModel):
    contract_id: str
    answer_id: str | None
    amount: float
    total_liquidity: float
    new_balance: float


class PhaseResponse(BaseModel):
    contract_id: str
    phase: str
    changed: bool
    graduation_started_at: str | None


class PriceLevelOut(BaseModel):
    prob: float
    amount: float
    order_count: int


class OrderbookResponse(BaseModel):
    contract_id: str
    answer_id: str | None
    prob: float
    bids: list[PriceLevelOut]   # YES orders
    asks: list[PriceLevelOut]   # NO orders

    @classmethod
    def from_snapshot(cls, snapshot: OrderbookSnapshot) -> "OrderbookResponse":
        return cls(
            contract_id=snapshot.contract_id,
            answer_id=snapshot.answer_id,
            prob=snapshot.prob,
            bids=[
                PriceLevelOut(prob=lv.prob, amount=lv.amount, order_count=len(lv.order_ids))
                for lv in snapshot.bids
            ],
            asks=[
                PriceLevelOut(prob=lv.prob, amount=lv.amount, order_count=len(lv.order_ids))
                for lv in snapshot.asks
            ],
        )
