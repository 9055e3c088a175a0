from dataclasses import dataclass, field

from src.pm_amm.domain.models import Pool
from src.pm_clearing.domain.fee import Fees, no_fees, sum_fees
from src.pm_common.enums import Outcome
from src.pm_order.domain.models import LimitOrder


@dataclass
class TakerFill:
    """One slice of the taker's order: against the pool or a resting order."""

    matched_order_id: str | None  # None = pool
    amount: float
    shares: float
    fees: Fees = field(default_factory=no_fees)


@dataclass
class MakerFill:
    """What a resting order receives when a taker crosses it at its limit."""

    order: LimitOrder
    amount: float
    shares: float


@dataclass
class FillPlan:
    """Pure result of matching one taker against the book and the pool.

    On a sale the taker slices carry negative amounts and shares, like the
    sale Bet they become; maker slices stay positive.
    """

    outcome: Outcome
    p: float
    pool_before: Pool
    pool_after: Pool
    prob_before: float
    prob_after: float
    takers: list[TakerFill] = field(default_factory=list)
    makers: list[MakerFill] = field(default_factory=list)
    orders_to_cancel: list[LimitOrder] = field(default_factory=list)
    unfilled_amount: float = 0.0
    is_sale: bool = False

    @property
    def amount(self) -> float:
        return sum(t.amount for t in self.takers)

    @property
    def shares(self) -> float:
        return sum(t.shares for t in self.takers)

    @property
    def fees(self) -> Fees:
        return sum_fees([t.fees for t in self.takers])

    @property
    def pool_amount(self) -> float:
        """Money that went through the pool, fees excluded."""
        return sum(t.amount - t.fees.total for t in self.takers if t.matched_order_id is None)

    @property
    def is_empty(self) -> bool:
        return not self.takers and not self.orders_to_cancel
