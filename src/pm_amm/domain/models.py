"""Domain models for pm_amm: immutable pool state and trade simulations."""

from dataclasses import dataclass, field

from src.pm_clearing.domain.fee import Fees, no_fees
from src.pm_common.enums import Outcome


@dataclass(frozen=True)
class Pool:
    """Outcome-token reserves backing one tradable binary outcome.

    Frozen so a simulated trade can never mutate the pool it started from;
    committing a trade means replacing the holder's pool with a new one.
    """

    yes: float
    no: float

    @property
    def k(self) -> float:
        return self.yes * self.no

    @property
    def min_reserve(self) -> float:
        return min(self.yes, self.no)

    def reserve(self, outcome: Outcome) -> float:
        return self.yes if outcome is Outcome.YES else self.no

    def to_dict(self) -> dict[str, float]:
        return {"YES": self.yes, "NO": self.no}


@dataclass(frozen=True)
class TradeSimulation:
    """Result of a hypothetical single-pool trade.

    ``amount`` and ``shares`` are signed from the trader's side: a buy has
    positive amount (cost) and shares; a sale has negative amount (payout)
    and negative shares.
    """

    outcome: Outcome
    pool_before: Pool
    pool_after: Pool
    amount: float
    shares: float
    prob_before: float
    prob_after: float
    fees: Fees = field(default_factory=no_fees)

    @property
    def is_sale(self) -> bool:
        return self.shares < 0

    @property
    def pool_amount(self) -> float:
        """Money that entered (negative: left) the pool, fees excluded."""
        return self.amount - self.fees.total
