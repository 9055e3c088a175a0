# src/pm_market/domain/repository.py
"""Store Protocol: dependency inversion for testability.

The engine only ever talks to this interface; it holds no global state.
``InMemoryStore`` is the default implementation; a database-backed store
can be swapped in without touching the pricing math. All calls are
synchronous and assumed consistent within one market's lock scope.
"""

from datetime import datetime
from typing import Protocol

from src.pm_account.domain.models import ContractMetric, LedgerEntry, User
from src.pm_common.enums import LedgerEntryType
from src.pm_market.domain.models import Market, PricePoint
from src.pm_order.domain.models import Bet, LimitOrder


class MarketStoreProtocol(Protocol):
    # Markets
    def get_market(self, market_id: str) -> Market | None: ...

    def save_market(self, market: Market, now: datetime | None = None) -> None: ...

    def list_markets(self) -> list[Market]: ...

    # Users and balances
    def get_user(self, user_id: str) -> User | None: ...

    def get_or_create_user(self, user_id: str, now: datetime | None = None) -> User: ...

    def list_users(self) -> list[User]: ...

    def update_balance(
        self,
        user_id: str,
        delta: float,
        entry_type: LedgerEntryType,
        reference_id: str | None = None,
        now: datetime | None = None,
    ) -> User: ...

    def list_ledger(self, user_id: str) -> list[LedgerEntry]: ...

    # Bets
    def add_bet(self, bet: Bet) -> None: ...

    def get_bets(self, contract_id: str) -> list[Bet]: ...

    # Positions
    def get_or_create_metric(
        self, user_id: str, contract_id: str, answer_id: str | None = None
    ) -> ContractMetric: ...

    def save_metric(self, metric: ContractMetric) -> None: ...

    def list_metrics(self, contract_id: str) -> list[ContractMetric]: ...

    def list_user_metrics(self, user_id: str) -> list[ContractMetric]: ...

    # Price history
    def add_price_point(
        self, contract_id: str, point: PricePoint, answer_id: str | None = None
    ) -> None: ...

    def get_price_points(
        self, contract_id: str, answer_id: str | None = None
    ) -> list[PricePoint]: ...

    # Limit orders
    def save_limit_order(self, order: LimitOrder) -> None: ...

    def get_limit_order(self, order_id: str) -> LimitOrder | None: ...

    def list_limit_orders(
        self, contract_id: str, answer_id: str | None = None
    ) -> list[LimitOrder]: ...

    def list_all_limit_orders(self) -> list[LimitOrder]: ...
