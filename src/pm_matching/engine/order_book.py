from dataclasses import dataclass, field
from datetime import datetime

from src.pm_common.enums import Outcome
from src.pm_market.domain.models import OrderbookSnapshot, PriceLevel
from src.pm_market.domain.repository import MarketStoreProtocol
from src.pm_order.domain.models import LimitOrder
from src.pm_risk.rules.self_trade import is_self_trade


def is_live(order: LimitOrder, now: datetime | None = None) -> bool:
    """Active and not past its expiry."""
    if not order.is_active:
        return False
    if now is not None and order.expires_at is not None and order.expires_at < now:
        return False
    return True


@dataclass
class OrderBook:
    """Resting limit orders for one (market, answer). Limits are YES probabilities."""

    contract_id: str
    answer_id: str | None = None
    orders: list[LimitOrder] = field(default_factory=list)

    @classmethod
    def from_store(
        cls,
        store: MarketStoreProtocol,
        contract_id: str,
        answer_id: str | None = None,
        now: datetime | None = None,
    ) -> "OrderBook":
        orders = [
            o for o in store.list_limit_orders(contract_id, answer_id) if is_live(o, now)
        ]
        return cls(contract_id, answer_id, orders)

    def add_order(self, order: LimitOrder) -> None:
        self.orders.append(order)

    def remove_order(self, order_id: str) -> None:
        self.orders = [o for o in self.orders if o.id != order_id]

    @property
    def yes_orders(self) -> list[LimitOrder]:
        """YES buyers, highest limit first (best bid first)."""
        yes = [o for o in self.orders if o.outcome is Outcome.YES and o.is_active]
        return sorted(yes, key=lambda o: (-o.limit_prob, o.created_at))

    @property
    def no_orders(self) -> list[LimitOrder]:
        """NO buyers, lowest limit first (best ask first)."""
        no = [o for o in self.orders if o.outcome is Outcome.NO and o.is_active]
        return sorted(no, key=lambda o: (o.limit_prob, o.created_at))

    def makers_for(self, outcome: Outcome, taker_user_id: str | None = None) -> list[LimitOrder]:
        """Opposite-side orders a taker of ``outcome`` reaches first, self-trades removed."""
        makers = self.no_orders if outcome is Outcome.YES else self.yes_orders
        if taker_user_id is None:
            return makers
        return [o for o in makers if not is_self_trade(taker_user_id, o.user_id)]

    def marketable(self, prob: float) -> list[LimitOrder]:
        """Orders that would trade at ``prob``, most aggressive first, oldest on ties."""
        orders = [o for o in self.orders if o.is_active and o.is_marketable(prob)]
        return sorted(orders, key=lambda o: (-abs(o.limit_prob - prob), o.created_at))

    def levels(self, prob: float) -> OrderbookSnapshot:
        return OrderbookSnapshot(
            contract_id=self.contract_id,
            answer_id=self.answer_id,
            bids=_aggregate(self.yes_orders),
            asks=_aggregate(self.no_orders),
            prob=prob,
        )


def _aggregate(orders: list[LimitOrder]) -> list[PriceLevel]:
    levels: list[PriceLevel] = []
    for order in orders:
        size = order.remaining_amount
        if size <= 0:
            continue
        if levels and levels[-1].prob == order.limit_prob:
            levels[-1].amount += size
            levels[-1].order_ids.append(order.id)
        else:
            levels.append(PriceLevel(order.limit_prob, size, [order.id]))
    return levels
