"""Tests for pm_matching.application.service: limit-order lifecycle."""

from datetime import UTC, datetime, timedelta

import pytest

from src.pm_amm.domain.models import Pool
from src.pm_common.enums import LedgerEntryType, MarketPhase, OrderStatus, Outcome, Resolution
from src.pm_common.errors import (
    AlreadyCancelledError,
    AlreadyFilledError,
    NotOwnerError,
    OrderNotFoundError,
)
from src.pm_market.domain.models import BinaryOutcome, Market
from src.pm_market.infrastructure.persistence import InMemoryStore
from src.pm_matching.application.service import (
    cancel_market_orders,
    cancel_order,
    commit_fill_plan,
    expire_limit_orders,
    get_order_book_levels,
    get_user_open_orders,
    place_binary_limit_order,
    sweep_limit_orders,
)
from src.pm_matching.engine.matching_algo import compute_fills
from src.pm_matching.engine.order_book import OrderBook
from src.pm_order.domain.models import LimitOrder

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
START = 10_000.0


def _make_market(store: InMemoryStore, **kwargs) -> Market:
    defaults = dict(
        id="mkt_1",
        slug="will-it-rain",
        question="Will it rain?",
        creator_id="creator",
        outcome=BinaryOutcome(pool=Pool(2500, 2500)),
        phase=MarketPhase.MAIN,
    )
    defaults.update(kwargs)
    market = Market(**defaults)
    store.save_market(market)
    return market


def _make_order(**kwargs) -> LimitOrder:
    defaults = dict(
        id="ord_1",
        user_id="carol",
        contract_id="mkt_1",
        outcome=Outcome.YES,
        limit_prob=0.4,
        order_amount=50.0,
        created_at=NOW,
    )
    defaults.update(kwargs)
    return LimitOrder(**defaults)


class TestPlaceBinaryLimitOrder:
    def test_unmarketable_order_rests_with_funds_reserved(self) -> None:
        store = InMemoryStore()
        market = _make_market(store)
        bet = place_binary_limit_order(store, market, _make_order(), NOW)

        assert bet is None
        order = store.get_limit_order("ord_1")
        assert order.status is OrderStatus.OPEN
        assert store.get_user("carol").balance == pytest.approx(START - 50)
        assert store.list_ledger("carol")[-1].entry_type == LedgerEntryType.ORDER_RESERVE.value
        assert market.outcome.pool == Pool(2500, 2500)

    def test_marketable_order_fills_against_pool(self) -> None:
        store = InMemoryStore()
        market = _make_market(store)
        bet = place_binary_limit_order(store, market, _make_order(limit_prob=0.6), NOW)

        assert bet is not None
        assert bet.limit_order_id == "ord_1"
        assert bet.amount == pytest.approx(50)
        assert store.get_limit_order("ord_1").status is OrderStatus.FILLED
        # reserved once, never charged again
        assert store.get_user("carol").balance == pytest.approx(START - 50)
        metric = store.get_or_create_metric("carol", "mkt_1")
        assert metric.total_shares_yes == pytest.approx(bet.shares)
        assert market.prob > 0.5


class TestMakerFills:
    def test_market_taker_fills_resting_order(self) -> None:
        store = InMemoryStore()
        market = _make_market(store)
        place_binary_limit_order(
            store, market, _make_order(user_id="maker", outcome=Outcome.NO, limit_prob=0.6), NOW
        )
        book = OrderBook.from_store(store, "mkt_1", None, NOW)
        plan = compute_fills(market.outcome.pool, 0.5, Outcome.YES, 1000, book, "taker")
        bet = commit_fill_plan(store, market, market.outcome, plan, "taker", NOW)

        order = store.get_limit_order("ord_1")
        assert order.status is OrderStatus.FILLED
        maker_metric = store.get_or_create_metric("maker", "mkt_1")
        assert maker_metric.total_shares_no == pytest.approx(125)
        assert store.get_user("maker").balance == pytest.approx(START - 50)
        assert store.get_user("taker").balance == pytest.approx(START - 1000)
        assert bet.amount == pytest.approx(1000)
        maker_bets = [b for b in store.get_bets("mkt_1") if b.user_id == "maker"]
        assert maker_bets[0].limit_order_id == "ord_1"

    def test_stale_plan_rejected(self) -> None:
        store = InMemoryStore()
        market = _make_market(store)
        plan = compute_fills(Pool(1000, 1000), 0.5, Outcome.YES, 10, OrderBook("mkt_1"), "t")
        with pytest.raises(RuntimeError):
            commit_fill_plan(store, market, market.outcome, plan, "t", NOW)


class TestSweep:
    def test_price_move_fills_resting_order(self) -> None:
        store = InMemoryStore()
        market = _make_market(store)
        place_binary_limit_order(store, market, _make_order(), NOW)
        market.outcome.pool = Pool(3500, 1500)   # prob 0.3

        bets = sweep_limit_orders(store, market, NOW)

        assert len(bets) == 1
        assert store.get_limit_order("ord_1").status is OrderStatus.FILLED
        assert market.prob == pytest.approx(0.3, abs=0.05)
        assert store.get_price_points("mkt_1")

    def test_nothing_marketable(self) -> None:
        store = InMemoryStore()
        market = _make_market(store)
        place_binary_limit_order(store, market, _make_order(), NOW)
        assert sweep_limit_orders(store, market, NOW) == []

    def test_resolved_market_not_swept(self) -> None:
        store = InMemoryStore()
        market = _make_market(store)
        place_binary_limit_order(store, market, _make_order(), NOW)
        market.outcome.pool = Pool(3500, 1500)
        market.resolution = Resolution.NO
        assert sweep_limit_orders(store, market, NOW) == []


class TestCancel:
    def _rest(self) -> InMemoryStore:
        store = InMemoryStore()
        market = _make_market(store)
        place_binary_limit_order(store, market, _make_order(), NOW)
        return store

    def test_owner_cancels_and_is_refunded(self) -> None:
        store = self._rest()
        refund = cancel_order(store, "ord_1", "carol", NOW)
        assert refund == pytest.approx(50)
        assert store.get_limit_order("ord_1").status is OrderStatus.CANCELLED
        assert store.get_user("carol").balance == pytest.approx(START)

    def test_not_owner(self) -> None:
        with pytest.raises(NotOwnerError):
            cancel_order(self._rest(), "ord_1", "mallory", NOW)

    def test_unknown(self) -> None:
        with pytest.raises(OrderNotFoundError):
            cancel_order(self._rest(), "ord_x", "carol", NOW)

    def test_twice(self) -> None:
        store = self._rest()
        cancel_order(store, "ord_1", "carol", NOW)
        with pytest.raises(AlreadyCancelledError):
            cancel_order(store, "ord_1", "carol", NOW)

    def test_filled(self) -> None:
        store = InMemoryStore()
        market = _make_market(store)
        place_binary_limit_order(store, market, _make_order(limit_prob=0.6), NOW)
        with pytest.raises(AlreadyFilledError):
            cancel_order(store, "ord_1", "carol", NOW)

    def test_cancel_market_orders(self) -> None:
        store = self._rest()
        assert cancel_market_orders(store, "mkt_1", NOW) == pytest.approx(50)
        assert get_user_open_orders(store, "carol") == []


class TestExpire:
    def test_expired_orders_refunded_once(self) -> None:
        store = InMemoryStore()
        market = _make_market(store)
        place_binary_limit_order(
            store, market, _make_order(expires_at=NOW + timedelta(minutes=5)), NOW
        )
        later = NOW + timedelta(minutes=6)

        expired = expire_limit_orders(store, later)
        assert [o.id for o in expired] == ["ord_1"]
        assert store.get_limit_order("ord_1").status is OrderStatus.EXPIRED
        assert store.get_user("carol").balance == pytest.approx(START)

        assert expire_limit_orders(store, later) == []
        assert store.get_user("carol").balance == pytest.approx(START)

    def test_not_yet_expired(self) -> None:
        store = InMemoryStore()
        market = _make_market(store)
        place_binary_limit_order(
            store, market, _make_order(expires_at=NOW + timedelta(minutes=5)), NOW
        )
        assert expire_limit_orders(store, NOW) == []
        assert len(get_user_open_orders(store, "carol", NOW)) == 1


class TestLevels:
    def test_snapshot(self) -> None:
        store = InMemoryStore()
        market = _make_market(store)
        place_binary_limit_order(store, market, _make_order(), NOW)
        snapshot = get_order_book_levels(store, market, now=NOW)
        assert snapshot.prob == pytest.approx(0.5)
        assert snapshot.bids[0].prob == 0.4
        assert snapshot.asks == []
