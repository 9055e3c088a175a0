"""Pydantic schemas for pm_account read models."""

from pydantic import BaseModel

from src.pm_account.domain.models import ContractMetric, LedgerEntry, User
from src.pm_common.numeric import amount_to_display


class BalanceResponse(BaseModel):
    user_id: str
    balance: float
    balance_display: str
    current_betting_streak: int

    @classmethod
    def from_domain(cls, user: User) -> "BalanceResponse":
        return cls(
            user_id=user.id,
            balance=user.balance,
            balance_display=amount_to_display(user.balance),
            current_betting_streak=user.current_betting_streak,
        )


class PositionItem(BaseModel):
    contract_id: str
    answer_id: str | None
    total_shares_yes: float
    total_shares_no: float
    invested: float
    payout: float
    profit: float

    @classmethod
    def from_domain(cls, metric: ContractMetric) -> "PositionItem":
        return cls(
            contract_id=metric.contract_id,
            answer_id=metric.answer_id,
            total_shares_yes=metric.total_shares_yes,
            total_shares_no=metric.total_shares_no,
            invested=metric.invested,
            payout=metric.payout,
            profit=metric.profit,
        )


class PositionsResponse(BaseModel):
    user_id: str
    positions: list[PositionItem]


class SellableSharesResponse(BaseModel):
    contract_id: str
    answer_id: str | None
    yes: float
    no: float


class LedgerEntryItem(BaseModel):
    id: str
    entry_type: str
    amount: float
    balance_after: float
    reference_id: str | None

    @classmethod
    def from_domain(cls, entry: LedgerEntry) -> "LedgerEntryItem":
        return cls(
            id=entry.id,
            entry_type=entry.entry_type,
            amount=entry.amount,
            balance_after=entry.balance_after,
            reference_id=entry.reference_id,
        )
