"""AccountApplicationService: thin composition layer over the store.

Positions (``ContractMetric``) are the authority on shares held; every bet
written anywhere in the engine is folded into one through ``record_position``.
"""

from src.pm_account.application.schemas import (
    BalanceResponse,
    LedgerEntryItem,
    PositionItem,
    PositionsResponse,
    SellableSharesResponse,
)
from src.pm_account.domain.models import ContractMetric
from src.pm_common.errors import UserNotFoundError
from src.pm_market.domain.repository import MarketStoreProtocol
from src.pm_order.domain.models import Bet

SHARE_DISPLAY_EPSILON = 1e-9


def _clean(shares: float) -> float:
    return shares if shares > SHARE_DISPLAY_EPSILON else 0.0


def record_position(store: MarketStoreProtocol, bet: Bet) -> ContractMetric:
    """Fold one bet into the owner's position on its (contract, answer)."""
    metric = store.get_or_create_metric(bet.user_id, bet.contract_id, bet.answer_id)
    metric.apply(bet.outcome, bet.amount, bet.shares, bet.created_at)
    store.save_metric(metric)
    return metric


class AccountApplicationService:
    def __init__(self, store: MarketStoreProtocol) -> None:
        self._store = store

    def get_balance(self, user_id: str) -> BalanceResponse:
        user = self._store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return BalanceResponse.from_domain(user)

    def get_positions(self, user_id: str, contract_id: str | None = None) -> PositionsResponse:
        metrics = [
            m for m in self._store.list_user_metrics(user_id)
            if contract_id is None or m.contract_id == contract_id
        ]
        return PositionsResponse(
            user_id=user_id,
            positions=[PositionItem.from_domain(m) for m in metrics if m.has_shares],
        )

    def get_sellable_shares(
        self, user_id: str, contract_id: str, answer_id: str | None = None
    ) -> SellableSharesResponse:
        metric = self._store.get_or_create_metric(user_id, contract_id, answer_id)
        return SellableSharesResponse(
            contract_id=contract_id,
            answer_id=answer_id,
            yes=_clean(metric.total_shares_yes),
            no=_clean(metric.total_shares_no),
        )

    def list_ledger(self, user_id: str) -> list[LedgerEntryItem]:
        return [LedgerEntryItem.from_domain(e) for e in self._store.list_ledger(user_id)]
