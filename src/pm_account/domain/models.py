"""Domain models for pm_account: pure dataclasses, no persistence dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.pm_common.enums import Outcome


@dataclass
class User:
    id: str
    balance: float
    total_deposits: float = 0.0
    current_betting_streak: int = 0
    last_bet_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class ContractMetric:
    """Per (user, contract, answer) position; the authority on shares held."""

    user_id: str
    contract_id: str
    answer_id: str | None = None
    total_shares_yes: float = 0.0
    total_shares_no: float = 0.0
    invested: float = 0.0       # net cash put in: buys minus sales/redemptions
    payout: float = 0.0         # settlement payout, set on resolution
    profit: float = 0.0
    last_bet_at: datetime | None = None

    @property
    def has_shares(self) -> bool:
        return self.total_shares_yes > 0 or self.total_shares_no > 0

    def shares_for(self, outcome: Outcome) -> float:
        return self.total_shares_yes if outcome is Outcome.YES else self.total_shares_no

    def apply(self, outcome: Outcome, amount: float, shares: float, at: datetime) -> None:
        """Fold one bet (signed amount/shares) into the position."""
        if outcome is Outcome.YES:
            self.total_shares_yes += shares
        else:
            self.total_shares_no += shares
        self.invested += amount
        self.last_bet_at = at


@dataclass
class LedgerEntry:
    id: str
    user_id: str
    entry_type: str                  # LedgerEntryType value
    amount: float                    # positive=income negative=expense
    balance_after: float
    reference_id: str | None = None
    created_at: datetime | None = None
