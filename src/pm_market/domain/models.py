"""Domain models for pm_market: pure dataclasses, no business logic.

A market's outcome structure is a tagged variant: ``BinaryOutcome`` carries
the single pool, ``MultipleChoiceOutcome`` carries one ``Answer`` (with its
own pool) per option. Code that needs the arbitrage path must narrow to
``MultipleChoiceOutcome`` first.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar

from src.pm_amm.domain.models import Pool
from src.pm_amm.domain.pool_math import get_probability
from src.pm_common.enums import MarketPhase, Mechanism, OutcomeType, Resolution


@dataclass
class Answer:
    id: str
    contract_id: str
    text: str
    index: int
    pool: Pool
    p: float = 0.5
    initial_prob: float = 0.5
    volume: float = 0.0
    total_liquidity: float = 0.0
    resolution: Resolution | None = None
    resolved_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def prob(self) -> float:
        return get_probability(self.pool, self.p)

    @property
    def is_resolved(self) -> bool:
        return self.resolution is not None


@dataclass
class BinaryOutcome:
    outcome_type: ClassVar[OutcomeType] = OutcomeType.BINARY
    mechanism: ClassVar[Mechanism] = Mechanism.CPMM_1

    pool: Pool
    p: float = 0.5
    initial_prob: float = 0.5

    @property
    def prob(self) -> float:
        return get_probability(self.pool, self.p)


@dataclass
class MultipleChoiceOutcome:
    outcome_type: ClassVar[OutcomeType] = OutcomeType.MULTIPLE_CHOICE
    mechanism: ClassVar[Mechanism] = Mechanism.CPMM_MULTI_1

    answers: list[Answer]
    should_answers_sum_to_one: bool = True

    @property
    def total_prob(self) -> float:
        return sum(a.prob for a in self.answers)


# Anything holding a tradable pool: the binary outcome itself or one answer.
PoolHolder = BinaryOutcome | Answer


@dataclass
class Market:
    id: str
    slug: str
    question: str
    creator_id: str
    outcome: BinaryOutcome | MultipleChoiceOutcome
    phase: MarketPhase = MarketPhase.SANDBOX
    description: str = ""
    volume: float = 0.0
    total_liquidity: float = 0.0
    unique_bettor_count: int = 0
    close_time: datetime | None = None
    graduation_started_at: datetime | None = None
    resolution: Resolution | None = None
    resolution_probability: float | None = None
    resolved_at: datetime | None = None
    last_bet_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def outcome_type(self) -> OutcomeType:
        return self.outcome.outcome_type

    @property
    def mechanism(self) -> Mechanism:
        return self.outcome.mechanism

    @property
    def is_resolved(self) -> bool:
        return self.resolution is not None

    @property
    def is_binary(self) -> bool:
        return isinstance(self.outcome, BinaryOutcome)

    @property
    def is_sum_to_one(self) -> bool:
        return (
            isinstance(self.outcome, MultipleChoiceOutcome)
            and self.outcome.should_answers_sum_to_one
        )

    @property
    def answers(self) -> list[Answer]:
        if isinstance(self.outcome, MultipleChoiceOutcome):
            return self.outcome.answers
        return []

    @property
    def prob(self) -> float | None:
        """YES probability of a binary market; None for multiple choice."""
        if isinstance(self.outcome, BinaryOutcome):
            return self.outcome.prob
        return None

    def get_answer(self, answer_id: str | None) -> Answer | None:
        for answer in self.answers:
            if answer.id == answer_id:
                return answer
        return None


@dataclass(frozen=True)
class PricePoint:
    timestamp: int        # epoch ms
    probability: float


@dataclass
class PriceLevel:
    """Aggregated resting limit-order depth at one probability."""

    prob: float
    amount: float
    order_ids: list[str] = field(default_factory=list)


@dataclass
class OrderbookSnapshot:
    contract_id: str
    answer_id: str | None
    bids: list[PriceLevel]   # YES orders, descending by prob
    asks: list[PriceLevel]   # NO orders, ascending by prob
    prob: float
