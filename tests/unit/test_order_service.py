# tests/unit/test_order_service.py
"""Unit tests for trade orchestration: bets, sales and limit orders."""
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from src.pm_common.enums import (
    LedgerEntryType,
    MarketPhase,
    OrderStatus,
    Outcome,
    OutcomeType,
    Resolution,
)
from src.pm_common.errors import (
    AlreadyCancelledError,
    AnswerNotFoundError,
    InsufficientBalanceError,
    InsufficientSharesError,
    MarketNotFoundError,
    MarketResolvedError,
    NotOwnerError,
    OrderNotFoundError,
    PhaseRestrictedError,
)
from src.pm_market.application.schemas import CreateMarketRequest
from src.pm_market.application.service import MarketApplicationService
from src.pm_market.domain.models import Market
from src.pm_market.infrastructure.persistence import InMemoryStore
from src.pm_order.application import service as orders
from src.pm_order.application.schemas import (
    CancelOrderRequest,
    PlaceBetRequest,
    PlaceLimitOrderRequest,
    SellSharesRequest,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
START = 10_000.0
STREAK = 3.0


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


def _make_market(store: InMemoryStore, **kwargs) -> Market:
    defaults = dict(
        question="Will the bridge open on time?",
        outcome_type=OutcomeType.BINARY,
        ante=100.0,
        creator_id="creator",
    )
    defaults.update(kwargs)
    return MarketApplicationService(store).create_market(CreateMarketRequest(**defaults), NOW)


def _make_mc_market(store: InMemoryStore, **kwargs) -> Market:
    defaults = dict(
        outcome_type=OutcomeType.MULTIPLE_CHOICE,
        ante=300.0,
        answers=["Red", "Green", "Blue"],
    )
    defaults.update(kwargs)
    return _make_market(store, **defaults)


def _bet(store, market_id, user="alice", amount=100.0, outcome=Outcome.YES, answer_id=None):
    req = PlaceBetRequest(
        contract_id=market_id, amount=amount, outcome=outcome, user_id=user, answer_id=answer_id
    )
    return orders.place_bet(store, req, NOW)


def _sell(store, market_id, user="alice", outcome=Outcome.YES, shares=None, answer_id=None):
    req = SellSharesRequest(
        contract_id=market_id, outcome=outcome, user_id=user, shares=shares, answer_id=answer_id
    )
    return orders.sell_shares(store, req, NOW)


def _limit(store, market_id, now=NOW, **kwargs):
    defaults = dict(
        contract_id=market_id,
        amount=40.0,
        outcome=Outcome.YES,
        limit_prob=0.3,
        user_id="carol",
    )
    defaults.update(kwargs)
    return orders.place_limit_order(store, PlaceLimitOrderRequest(**defaults), now)


def _balance(store, user_id: str) -> float:
    return store.get_user(user_id).balance


class TestPlaceBetBinary:
    def test_sandbox_bet(self, store) -> None:
        market = _make_market(store)
        resp = _bet(store, market.id)

        assert resp.shares == pytest.approx(96.1538, rel=1e-5)
        assert resp.prob_before == pytest.approx(0.5)
        assert resp.prob_after > 0.5
        assert resp.new_balance == pytest.approx(START - 100 + STREAK)
        assert market.outcome.pool.no == pytest.approx(2600)
        assert market.volume == pytest.approx(100)
        assert _balance(store, "creator") == pytest.approx(START - 100 + 5)

    def test_position_recorded(self, store) -> None:
        market = _make_market(store)
        resp = _bet(store, market.id)
        metric = store.get_or_create_metric("alice", market.id)
        assert metric.total_shares_yes == pytest.approx(resp.shares)
        assert metric.invested == pytest.approx(100)

    def test_second_bet_same_day_pays_no_bonus(self, store) -> None:
        market = _make_market(store)
        _bet(store, market.id)
        _bet(store, market.id)
        assert _balance(store, "alice") == pytest.approx(START - 200 + STREAK)
        assert _balance(store, "creator") == pytest.approx(START - 100 + 5)

    def test_creator_bet_pays_no_unique_bettor_bonus(self, store) -> None:
        market = _make_market(store)
        _bet(store, market.id, user="creator")
        assert _balance(store, "creator") == pytest.approx(START - 200 + STREAK)
        assert market.unique_bettor_count == 0

    def test_opposite_bets_redeem_pairs(self, store) -> None:
        market = _make_market(store)
        yes = _bet(store, market.id)
        no = _bet(store, market.id, outcome=Outcome.NO)

        assert len(no.redemption_bets) == 2
        metric = store.get_or_create_metric("alice", market.id)
        assert metric.total_shares_yes == pytest.approx(0, abs=1e-9)
        assert metric.total_shares_no == pytest.approx(no.shares - yes.shares)
        assert _balance(store, "alice") == pytest.approx(START - 200 + STREAK + yes.shares)

    def test_unknown_market(self, store) -> None:
        with pytest.raises(MarketNotFoundError):
            _bet(store, "mkt_missing")

    def test_answer_on_binary_rejected(self, store) -> None:
        market = _make_market(store)
        with pytest.raises(AnswerNotFoundError):
            _bet(store, market.id, answer_id="ans_x")

    def test_insufficient_balance_leaves_pool(self, store) -> None:
        market = _make_market(store)
        with pytest.raises(InsufficientBalanceError):
            _bet(store, market.id, amount=START + 1)
        assert market.prob == pytest.approx(0.5)
        assert store.get_bets(market.id) == []

    def test_resolved_market(self, store) -> None:
        market = _make_market(store)
        market.resolution = Resolution.YES
        with pytest.raises(MarketResolvedError):
            _bet(store, market.id)

    def test_graduates_on_volume(self, store) -> None:
        market = _make_market(store)
        _bet(store, market.id, amount=1000)
        assert market.phase is MarketPhase.GRADUATING
        assert market.graduation_started_at == NOW

    def test_price_point_per_trade(self, store) -> None:
        market = _make_market(store)
        resp = _bet(store, market.id)
        points = store.get_price_points(market.id)
        assert len(points) == 2
        assert points[-1].probability == pytest.approx(resp.prob_after)


class TestPlaceBetMultipleChoice:
    def test_sum_to_one_keeps_sum(self, store) -> None:
        market = _make_mc_market(store)
        red = market.answers[0]
        resp = _bet(store, market.id, answer_id=red.id)

        assert len(resp.bets) == 3
        assert resp.bets[0].answer_id == red.id
        assert resp.amount == pytest.approx(100)
        assert sum(a.prob for a in market.answers) == pytest.approx(1.0, abs=1e-2)
        assert red.prob > 1 / 3
        assert resp.new_balance == pytest.approx(START - 100 + STREAK)

    def test_sum_to_one_sibling_positions_net_zero(self, store) -> None:
        market = _make_mc_market(store)
        red, green, _ = market.answers
        resp = _bet(store, market.id, answer_id=red.id)
        assert store.get_or_create_metric("alice", market.id, red.id).total_shares_yes == (
            pytest.approx(resp.shares)
        )
        sibling = store.get_or_create_metric("alice", market.id, green.id)
        assert sibling.total_shares_no == pytest.approx(0, abs=1e-9)
        assert sibling.invested == pytest.approx(0, abs=1e-9)

    def test_independent_touches_one_pool(self, store) -> None:
        market = _make_mc_market(store, should_answers_sum_to_one=False)
        a, b, _ = market.answers
        before = b.pool
        resp = _bet(store, market.id, answer_id=a.id)
        assert len(resp.bets) == 1
        assert a.prob > 1 / 3
        assert b.pool == before

    def test_independent_invariant_failure_leaves_pool(self, store) -> None:
        market = _make_mc_market(store, should_answers_sum_to_one=False)
        a = market.answers[0]
        before = a.pool
        with patch(
            "src.pm_order.application.service.verify_pool_invariants_after_trade",
            side_effect=AssertionError("INV-1 violated"),
        ) as mock_verify:
            with pytest.raises(AssertionError):
                _bet(store, market.id, answer_id=a.id)
        mock_verify.assert_called_once()
        assert a.pool == before
        assert _balance(store, "alice") == pytest.approx(START)

    def test_unknown_answer(self, store) -> None:
        market = _make_mc_market(store)
        with pytest.raises(AnswerNotFoundError):
            _bet(store, market.id, answer_id="ans_missing")

    def test_resolved_answer(self, store) -> None:
        market = _make_mc_market(store, should_answers_sum_to_one=False)
        market.answers[0].resolution = Resolution.NO
        with pytest.raises(MarketResolvedError):
            _bet(store, market.id, answer_id=market.answers[0].id)


class TestSellShares:
    def test_sell_whole_position_returns_stake(self, store) -> None:
        market = _make_market(store)
        bought = _bet(store, market.id)
        resp = _sell(store, market.id)

        assert resp.shares == pytest.approx(bought.shares)
        assert resp.payout == pytest.approx(100)
        assert market.prob == pytest.approx(0.5)
        assert resp.new_balance == pytest.approx(START + STREAK)

    def test_partial_sale(self, store) -> None:
        market = _make_market(store)
        bought = _bet(store, market.id)
        resp = _sell(store, market.id, shares=bought.shares / 2)
        assert 0 < resp.payout < 100
        metric = store.get_or_create_metric("alice", market.id)
        assert metric.total_shares_yes == pytest.approx(bought.shares / 2)

    def test_more_than_held(self, store) -> None:
        market = _make_market(store)
        bought = _bet(store, market.id)
        with pytest.raises(InsufficientSharesError):
            _sell(store, market.id, shares=bought.shares + 1)

    def test_nothing_held(self, store) -> None:
        market = _make_market(store)
        with pytest.raises(InsufficientSharesError):
            _sell(store, market.id, user="nobody")

    def test_sale_pays_no_bonus(self, store) -> None:
        market = _make_market(store)
        _bet(store, market.id)
        creator_before = _balance(store, "creator")
        _sell(store, market.id)
        assert _balance(store, "creator") == pytest.approx(creator_before)

    def test_main_phase_sale_meets_resting_bid(self, store) -> None:
        market = _make_market(store)
        bought = _bet(store, market.id, amount=500)
        market.phase = MarketPhase.MAIN
        order = _limit(store, market.id, limit_prob=0.55).order
        assert order.status == OrderStatus.OPEN.value

        resp = _sell(store, market.id)

        assert resp.shares == pytest.approx(bought.shares)
        assert store.get_limit_order(order.id).status is OrderStatus.FILLED
        carol = store.get_or_create_metric("carol", market.id)
        assert carol.total_shares_yes == pytest.approx(40 / 0.55)
        assert market.prob < 0.55
        entry = store.list_ledger("alice")[-1]
        assert entry.entry_type == LedgerEntryType.SALE_PROCEEDS.value
        assert entry.amount == pytest.approx(resp.payout)
        assert resp.new_balance == pytest.approx(START - 500 + STREAK + resp.payout)

    def test_sum_to_one_sale(self, store) -> None:
        market = _make_mc_market(store)
        red = market.answers[0]
        bought = _bet(store, market.id, answer_id=red.id)
        resp = _sell(store, market.id, answer_id=red.id)

        assert resp.shares == pytest.approx(bought.shares)
        assert resp.payout > 0
        assert sum(a.prob for a in market.answers) == pytest.approx(1.0, abs=1e-2)
        assert resp.new_balance == pytest.approx(START - 100 + STREAK + resp.payout)


class TestPlaceLimitOrder:
    def test_rejected_outside_main_phase(self, store) -> None:
        market = _make_market(store)
        with pytest.raises(PhaseRestrictedError):
            _limit(store, market.id)

    def test_resting_order_reserves_funds(self, store) -> None:
        market = _make_market(store)
        market.phase = MarketPhase.MAIN
        resp = _limit(store, market.id)

        assert resp.bets == []
        assert resp.order.status == OrderStatus.OPEN.value
        assert resp.new_balance == pytest.approx(START - 40)
        assert market.prob == pytest.approx(0.5)

    def test_marketable_order_fills_from_pool(self, store) -> None:
        market = _make_market(store)
        market.phase = MarketPhase.MAIN
        resp = _limit(store, market.id, amount=100, limit_prob=0.6)

        assert len(resp.bets) == 1
        assert resp.bets[0].limit_order_id == resp.order.id
        assert resp.order.status == OrderStatus.FILLED.value
        assert market.prob < 0.6
        assert resp.new_balance == pytest.approx(START - 100)

    def test_partial_fill_rests_remainder(self, store) -> None:
        market = _make_market(store)
        market.phase = MarketPhase.MAIN
        resp = _limit(store, market.id, amount=100, limit_prob=0.51)

        assert resp.order.status == OrderStatus.PARTIALLY_FILLED.value
        assert 0 < resp.order.remaining_amount < 100
        assert market.prob == pytest.approx(0.51, abs=5e-3)
        assert resp.new_balance == pytest.approx(START - 100)

    def test_multi_choice_marketable_fills_as_bet(self, store) -> None:
        market = _make_mc_market(store)
        market.phase = MarketPhase.MAIN
        red = market.answers[0]
        resp = _limit(store, market.id, amount=50, limit_prob=0.5, answer_id=red.id)

        assert resp.order.status == OrderStatus.FILLED.value
        assert resp.bets[0].limit_order_id == resp.order.id
        assert resp.new_balance == pytest.approx(START - 50 + STREAK)

    def test_multi_choice_resting(self, store) -> None:
        market = _make_mc_market(store)
        market.phase = MarketPhase.MAIN
        resp = _limit(
            store, market.id, amount=50, limit_prob=0.2, answer_id=market.answers[0].id
        )
        assert resp.bets == []
        assert resp.order.status == OrderStatus.OPEN.value
        assert resp.new_balance == pytest.approx(START - 50)

    def test_insufficient_balance(self, store) -> None:
        market = _make_market(store)
        market.phase = MarketPhase.MAIN
        with pytest.raises(InsufficientBalanceError):
            _limit(store, market.id, amount=START + 1)


class TestCancelAndExpire:
    @pytest.fixture
    def market(self, store) -> Market:
        market = _make_market(store)
        market.phase = MarketPhase.MAIN
        return market

    def test_cancel_refunds(self, store, market) -> None:
        order = _limit(store, market.id).order
        resp = orders.cancel_order(store, CancelOrderRequest(order_id=order.id, user_id="carol"), NOW)
        assert resp.refund == pytest.approx(40)
        assert resp.status == OrderStatus.CANCELLED.value
        assert resp.new_balance == pytest.approx(START)

    def test_cancel_twice(self, store, market) -> None:
        order = _limit(store, market.id).order
        req = CancelOrderRequest(order_id=order.id, user_id="carol")
        orders.cancel_order(store, req, NOW)
        with pytest.raises(AlreadyCancelledError):
            orders.cancel_order(store, req, NOW)

    def test_cancel_not_owner(self, store, market) -> None:
        order = _limit(store, market.id).order
        with pytest.raises(NotOwnerError):
            orders.cancel_order(store, CancelOrderRequest(order_id=order.id, user_id="mallory"), NOW)

    def test_cancel_unknown(self, store) -> None:
        with pytest.raises(OrderNotFoundError):
            orders.cancel_order(store, CancelOrderRequest(order_id="ord_x", user_id="carol"), NOW)

    def test_expire_is_idempotent(self, store, market) -> None:
        _limit(store, market.id, expires_at=NOW + timedelta(hours=1))
        _limit(store, market.id, limit_prob=0.25)

        assert orders.expire_orders(store, NOW).expired_count == 0

        resp = orders.expire_orders(store, NOW + timedelta(hours=2))
        assert resp.expired_count == 1
        assert resp.total_refunded == pytest.approx(40)
        assert _balance(store, "carol") == pytest.approx(START - 40)

        again = orders.expire_orders(store, NOW + timedelta(hours=3))
        assert again.expired_count == 0

    def test_expired_order_status(self, store, market) -> None:
        order = _limit(store, market.id, expires_at=NOW + timedelta(minutes=1)).order
        orders.expire_orders(store, NOW + timedelta(minutes=2))
        assert store.get_limit_order(order.id).status is OrderStatus.EXPIRED

    def test_open_orders(self, store, market) -> None:
        kept = _limit(store, market.id).order
        gone = _limit(store, market.id, limit_prob=0.2).order
        orders.cancel_order(store, CancelOrderRequest(order_id=gone.id, user_id="carol"), NOW)
        assert [o.id for o in orders.get_user_open_orders(store, "carol", NOW)] == [kept.id]
