"""Arbitrage plan models: the pure output of the sum-to-one solver."""

from dataclasses import dataclass, field

from src.pm_amm.domain.models import Pool
from src.pm_clearing.domain.fee import Fees, no_fees
from src.pm_common.enums import Outcome


@dataclass(frozen=True)
class LegFill:
    """A fill inside one leg; ``is_redemption`` marks netted-out share sets."""

    amount: float
    shares: float
    fees: Fees = field(default_factory=no_fees)
    is_redemption: bool = False
    is_sale: bool = False


@dataclass(frozen=True)
class ArbitrageLeg:
    answer_id: str
    outcome: Outcome
    pool_before: Pool
    pool_after: Pool
    prob_before: float
    prob_after: float
    fills: tuple[LegFill, ...]
    pool_volume: float           # gross money that went through this answer's pool

    @property
    def amount(self) -> float:
        return sum(f.amount for f in self.fills)

    @property
    def shares(self) -> float:
        return sum(f.shares for f in self.fills)

    @property
    def fees(self) -> Fees:
        total = no_fees()
        for f in self.fills:
            total = total + f.fees
        return total


@dataclass(frozen=True)
class ArbitrageResult:
    """Target leg (the user's trade) plus one leg per sibling answer.

    Sibling legs net to zero amount and zero shares for the user: whatever
    was bought on a sibling is redeemed into the target leg.
    """

    target: ArbitrageLeg
    siblings: tuple[ArbitrageLeg, ...]
    solved_shares: float
    fees: Fees = field(default_factory=no_fees)

    @property
    def legs(self) -> tuple[ArbitrageLeg, ...]:
        return (self.target, *self.siblings)

    @property
    def total_prob_after(self) -> float:
        return sum(leg.prob_after for leg in self.legs)
