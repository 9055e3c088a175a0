"""Bet and limit-order domain models: pure dataclasses, no persistence."""
from dataclasses import dataclass, field
from datetime import datetime

from src.pm_clearing.domain.fee import Fees, no_fees
from src.pm_common.enums import OrderStatus, Outcome
from src.pm_common.numeric import EPSILON


@dataclass
class Fill:
    """One partial execution: against the pool (matched_bet_id None) or a maker order."""

    matched_bet_id: str | None
    amount: float
    shares: float
    timestamp: datetime
    fees: Fees = field(default_factory=no_fees)
    is_sale: bool = False
    is_redemption: bool = False


@dataclass
class Bet:
    """Immutable trade record; amount/shares are signed (negative on a sale)."""

    id: str
    user_id: str
    contract_id: str
    outcome: Outcome
    amount: float
    shares: float
    prob_before: float
    prob_after: float
    created_at: datetime
    answer_id: str | None = None
    fees: Fees = field(default_factory=no_fees)
    fills: list[Fill] = field(default_factory=list)
    is_redemption: bool = False
    bet_group_id: str | None = None
    limit_order_id: str | None = None
    limit_prob: float | None = None


@dataclass
class LimitOrder:
    id: str
    user_id: str
    contract_id: str
    outcome: Outcome
    limit_prob: float
    order_amount: float          # total funds reserved at placement
    created_at: datetime
    answer_id: str | None = None
    amount: float = 0.0          # filled so far
    shares: float = 0.0          # shares received so far
    fills: list[Fill] = field(default_factory=list)
    is_filled: bool = False
    is_cancelled: bool = False
    is_expired: bool = False
    expires_at: datetime | None = None
    prob_before: float | None = None
    updated_at: datetime | None = None

    @property
    def remaining_amount(self) -> float:
        return max(self.order_amount - self.amount, 0.0)

    @property
    def is_active(self) -> bool:
        return not (self.is_filled or self.is_cancelled)

    @property
    def status(self) -> OrderStatus:
        if self.is_expired:
            return OrderStatus.EXPIRED
        if self.is_cancelled:
            return OrderStatus.CANCELLED
        if self.is_filled:
            return OrderStatus.FILLED
        if self.amount > EPSILON:
            return OrderStatus.PARTIALLY_FILLED
        return OrderStatus.OPEN

    def is_marketable(self, prob: float) -> bool:
        """YES orders fill at or below their limit, NO orders at or above."""
        if self.outcome is Outcome.YES:
            return prob <= self.limit_prob
        return prob >= self.limit_prob

    def record_fill(self, fill: Fill, epsilon: float = 1e-6) -> None:
        self.fills.append(fill)
        self.amount += fill.amount
        self.shares += fill.shares
        self.updated_at = fill.timestamp
        if self.remaining_amount <= epsilon:
            self.is_filled = True
