"""InMemoryStore: concrete implementation of MarketStoreProtocol.

Plain dicts keyed by id; every instance is independent, so tests and
engines never share state. Price points are keyed ``contract_id`` for the
market series and ``contract_id:answer_id`` for per-answer series.
Timestamps come from the caller's ``now``; the store never reads the clock.
"""

from collections import defaultdict
from datetime import datetime

from config.settings import settings
from src.pm_account.domain.models import ContractMetric, LedgerEntry, User
from src.pm_common.enums import LedgerEntryType
from src.pm_common.id_generator import generate_id
from src.pm_market.domain.models import Market, PricePoint
from src.pm_order.domain.models import Bet, LimitOrder

MetricKey = tuple[str, str, str | None]


def _price_key(contract_id: str, answer_id: str | None) -> str:
    return f"{contract_id}:{answer_id}" if answer_id else contract_id


class InMemoryStore:
    def __init__(self, starting_balance: float | None = None) -> None:
        self._starting_balance = (
            settings.STARTING_BALANCE if starting_balance is None else starting_balance
        )
        self._markets: dict[str, Market] = {}
        self._users: dict[str, User] = {}
        self._ledger: dict[str, list[LedgerEntry]] = defaultdict(list)
        self._bets: dict[str, list[Bet]] = defaultdict(list)
        self._metrics: dict[MetricKey, ContractMetric] = {}
        self._price_points: dict[str, list[PricePoint]] = defaultdict(list)
        self._orders: dict[str, LimitOrder] = {}

    # ------------------------------------------------------------------
    # Markets
    # ------------------------------------------------------------------

    def get_market(self, market_id: str) -> Market | None:
        return self._markets.get(market_id)

    def save_market(self, market: Market, now: datetime | None = None) -> None:
        if now is not None:
            market.updated_at = now
        self._markets[market.id] = market

    def list_markets(self) -> list[Market]:
        return list(self._markets.values())

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    def get_or_create_user(self, user_id: str, now: datetime | None = None) -> User:
        user = self._users.get(user_id)
        if user is None:
            user = User(
                id=user_id,
                balance=self._starting_balance,
                total_deposits=self._starting_balance,
                created_at=now,
            )
            self._users[user_id] = user
        return user

    def list_users(self) -> list[User]:
        return list(self._users.values())

    def update_balance(
        self,
        user_id: str,
        delta: float,
        entry_type: LedgerEntryType,
        reference_id: str | None = None,
        now: datetime | None = None,
    ) -> User:
        user = self.get_or_create_user(user_id, now)
        user.balance += delta
        self._ledger[user_id].append(
            LedgerEntry(
                id=generate_id("led"),
                user_id=user_id,
                entry_type=entry_type.value,
                amount=delta,
                balance_after=user.balance,
                reference_id=reference_id,
                created_at=now,
            )
        )
        return user

    def list_ledger(self, user_id: str) -> list[LedgerEntry]:
        return list(self._ledger.get(user_id, []))

    # ------------------------------------------------------------------
    # Bets
    # ------------------------------------------------------------------

    def add_bet(self, bet: Bet) -> None:
        self._bets[bet.contract_id].append(bet)

    def get_bets(self, contract_id: str) -> list[Bet]:
        return list(self._bets.get(contract_id, []))

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def get_or_create_metric(
        self, user_id: str, contract_id: str, answer_id: str | None = None
    ) -> ContractMetric:
        key = (user_id, contract_id, answer_id)
        metric = self._metrics.get(key)
        if metric is None:
            metric = ContractMetric(user_id=user_id, contract_id=contract_id, answer_id=answer_id)
            self._metrics[key] = metric
        return metric

    def save_metric(self, metric: ContractMetric) -> None:
        self._metrics[(metric.user_id, metric.contract_id, metric.answer_id)] = metric

    def list_metrics(self, contract_id: str) -> list[ContractMetric]:
        return [m for m in self._metrics.values() if m.contract_id == contract_id]

    def list_user_metrics(self, user_id: str) -> list[ContractMetric]:
        return [m for m in self._metrics.values() if m.user_id == user_id]

    # ------------------------------------------------------------------
    # Price history
    # ------------------------------------------------------------------

    def add_price_point(
        self, contract_id: str, point: PricePoint, answer_id: str | None = None
    ) -> None:
        self._price_points[_price_key(contract_id, answer_id)].append(point)

    def get_price_points(
        self, contract_id: str, answer_id: str | None = None
    ) -> list[PricePoint]:
        return list(self._price_points.get(_price_key(contract_id, answer_id), []))

    # ------------------------------------------------------------------
    # Limit orders
    # ------------------------------------------------------------------

    def save_limit_order(self, order: LimitOrder) -> None:
        self._orders[order.id] = order

    def get_limit_order(self, order_id: str) -> LimitOrder | None:
        return self._orders.get(order_id)

    def list_limit_orders(
        self, contract_id: str, answer_id: str | None = None
    ) -> list[LimitOrder]:
        return [
            o for o in self._orders.values()
            if o.contract_id == contract_id and o.answer_id == answer_id
        ]

    def list_all_limit_orders(self) -> list[LimitOrder]:
        return list(self._orders.values())
