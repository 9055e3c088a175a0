# src/pm_matching/application/service.py
"""Limit-order lifecycle: commit fill plans, sweep, cancel and expire.

Funds for a resting order are debited from its owner when it is placed, so
maker fills never touch balances; cancellation and expiry refund whatever
is still reserved.
"""
import logging
from datetime import datetime

from config.settings import settings
from src.pm_account.application.service import record_position
from src.pm_amm.domain.executor import check_pool_floor, commit_pool
from src.pm_clearing.infrastructure.fee_collector import collect_fees
from src.pm_common.enums import LedgerEntryType
from src.pm_common.errors import (
    AlreadyCancelledError,
    AlreadyFilledError,
    NotOwnerError,
    OrderNotFoundError,
)
from src.pm_common.id_generator import generate_id
from src.pm_market.domain.models import Market, OrderbookSnapshot, PoolHolder
from src.pm_market.domain.price_history import record_price_points
from src.pm_market.domain.repository import MarketStoreProtocol
from src.pm_matching.domain.models import FillPlan, MakerFill
from src.pm_matching.engine.matching_algo import compute_fills
from src.pm_matching.engine.order_book import OrderBook, is_live
from src.pm_order.domain.models import Bet, Fill, LimitOrder

logger = logging.getLogger(__name__)


def _apply_maker_fills(
    store: MarketStoreProtocol,
    market: Market,
    taker_bet: Bet,
    makers: list[MakerFill],
    now: datetime,
) -> list[Bet]:
    bets: list[Bet] = []
    for maker in makers:
        order = maker.order
        order.record_fill(Fill(taker_bet.id, maker.amount, maker.shares, now))
        store.save_limit_order(order)
        bet = Bet(
            id=generate_id("bet"),
            user_id=order.user_id,
            contract_id=market.id,
            outcome=order.outcome,
            amount=maker.amount,
            shares=maker.shares,
            prob_before=taker_bet.prob_before,
            prob_after=taker_bet.prob_after,
            created_at=now,
            answer_id=order.answer_id,
            fills=[Fill(taker_bet.id, maker.amount, maker.shares, now)],
            bet_group_id=taker_bet.bet_group_id,
            limit_order_id=order.id,
            limit_prob=order.limit_prob,
        )
        store.add_bet(bet)
        record_position(store, bet)
        bets.append(bet)
        logger.debug(
            "Maker fill on %s: order=%s amount=%.4f shares=%.4f",
            order.id, order.user_id, maker.amount, maker.shares,
        )
    return bets


def commit_fill_plan(
    store: MarketStoreProtocol,
    market: Market,
    holder: PoolHolder,
    plan: FillPlan,
    user_id: str,
    now: datetime,
    taker_order: LimitOrder | None = None,
) -> Bet | None:
    """Write a plan from ``compute_fills`` or ``compute_sale_fills``; returns the taker's bet.

    A market taker pays from its balance here and a seller is credited its
    proceeds; a limit-order taker already reserved its funds at placement.
    """
    if holder.pool != plan.pool_before:
        raise RuntimeError("pool changed between planning and commit")

    bet: Bet | None = None
    if plan.takers:
        check_pool_floor(plan.pool_after)
        commit_pool(market, holder, plan.pool_after, abs(plan.amount))
        market.last_bet_at = now
        bet = Bet(
            id=generate_id("bet"),
            user_id=user_id,
            contract_id=market.id,
            outcome=plan.outcome,
            amount=plan.amount,
            shares=plan.shares,
            prob_before=plan.prob_before,
            prob_after=plan.prob_after,
            created_at=now,
            answer_id=taker_order.answer_id if taker_order else None,
            fees=plan.fees,
            fills=[
                Fill(t.matched_order_id, t.amount, t.shares, now, t.fees, is_sale=plan.is_sale)
                for t in plan.takers
            ],
            bet_group_id=generate_id("grp"),
            limit_order_id=taker_order.id if taker_order else None,
            limit_prob=taker_order.limit_prob if taker_order else None,
        )
        if plan.is_sale:
            store.update_balance(
                user_id, -plan.amount, LedgerEntryType.SALE_PROCEEDS, bet.id, now=now
            )
        elif taker_order is None:
            store.update_balance(user_id, -plan.amount, LedgerEntryType.BET_COST, bet.id, now=now)
        else:
            for fill in bet.fills:
                taker_order.record_fill(fill)
            store.save_limit_order(taker_order)
        store.add_bet(bet)
        record_position(store, bet)
        collect_fees(store, market, plan.fees, bet.id, now)
        _apply_maker_fills(store, market, bet, plan.makers, now)

    if plan.orders_to_cancel:
        cancel_orders(store, plan.orders_to_cancel, now)
    return bet


def cancel_orders(
    store: MarketStoreProtocol,
    orders: list[LimitOrder],
    now: datetime,
    expired: bool = False,
) -> float:
    """Cancel active orders and refund their reserved remainder; returns total refunded."""
    refunded = 0.0
    for order in orders:
        if not order.is_active:
            continue
        refund = order.remaining_amount
        order.is_cancelled = True
        order.is_expired = expired
        order.updated_at = now
        if refund > 0:
            store.update_balance(
                order.user_id, refund, LedgerEntryType.ORDER_REFUND, order.id, now=now
            )
            refunded += refund
        store.save_limit_order(order)
    return refunded


def place_binary_limit_order(
    store: MarketStoreProtocol,
    market: Market,
    order: LimitOrder,
    now: datetime,
) -> Bet | None:
    """Reserve the order's funds, fill what is marketable, leave the rest resting."""
    holder = market.outcome
    store.update_balance(
        order.user_id, -order.order_amount, LedgerEntryType.ORDER_RESERVE, order.id, now=now
    )
    store.save_limit_order(order)
    book = OrderBook.from_store(store, market.id, None, now)
    plan = compute_fills(
        holder.pool, holder.p, order.outcome, order.order_amount, book, order.user_id,
        limit_prob=order.limit_prob,
    )
    bet = None if plan.is_empty else commit_fill_plan(
        store, market, holder, plan, order.user_id, now, taker_order=order
    )
    logger.info(
        "Limit order %s on %s: %s %.4f @ %.4f -> %s",
        order.id, market.id, order.outcome.value, order.order_amount, order.limit_prob,
        order.status.value,
    )
    return bet


def sweep_limit_orders(
    store: MarketStoreProtocol, market: Market, now: datetime
) -> list[Bet]:
    """Fill resting orders made marketable by the last trade, until none are left."""
    if not market.is_binary or market.is_resolved:
        return []
    holder = market.outcome
    bets: list[Bet] = []
    for _ in range(settings.MAX_SWEEP_ROUNDS):
        book = OrderBook.from_store(store, market.id, None, now)
        progressed = False
        for order in book.marketable(holder.prob):
            plan = compute_fills(
                holder.pool, holder.p, order.outcome, order.remaining_amount, book,
                order.user_id, limit_prob=order.limit_prob,
            )
            if plan.is_empty:
                continue
            bet = commit_fill_plan(store, market, holder, plan, order.user_id, now, order)
            if bet is not None:
                bets.append(bet)
            progressed = True
            break
        if not progressed:
            break
    else:
        logger.warning("Sweep on %s stopped after %d rounds", market.id, settings.MAX_SWEEP_ROUNDS)

    if bets:
        record_price_points(store, market, now)
        logger.info("Sweep on %s filled %d resting orders", market.id, len(bets))
    return bets


def cancel_order(
    store: MarketStoreProtocol, order_id: str, user_id: str, now: datetime
) -> float:
    """Cancel one of the user's orders; returns the refund."""
    order = store.get_limit_order(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    if order.user_id != user_id:
        raise NotOwnerError(order_id)
    if order.is_cancelled:
        raise AlreadyCancelledError(order_id)
    if order.is_filled:
        raise AlreadyFilledError(order_id)
    refund = cancel_orders(store, [order], now)
    logger.info("Cancelled order %s for %s, refunded %.4f", order_id, user_id, refund)
    return refund


def cancel_market_orders(store: MarketStoreProtocol, market_id: str, now: datetime) -> float:
    """Cancel every open order on a market, across all of its answers."""
    orders = [
        o for o in store.list_all_limit_orders() if o.contract_id == market_id and o.is_active
    ]
    return cancel_orders(store, orders, now)


def expire_limit_orders(store: MarketStoreProtocol, now: datetime) -> list[LimitOrder]:
    """Cancel and refund orders past ``expires_at``. Safe to run repeatedly."""
    expired = [
        o for o in store.list_all_limit_orders()
        if o.is_active and o.expires_at is not None and o.expires_at < now
    ]
    refunded = cancel_orders(store, expired, now, expired=True)
    if expired:
        logger.info("Expired %d limit orders, refunded %.4f", len(expired), refunded)
    return expired


def get_user_open_orders(
    store: MarketStoreProtocol, user_id: str, now: datetime | None = None
) -> list[LimitOrder]:
    return [o for o in store.list_all_limit_orders() if o.user_id == user_id and is_live(o, now)]


def get_order_book_levels(
    store: MarketStoreProtocol,
    market: Market,
    answer_id: str | None = None,
    now: datetime | None = None,
) -> OrderbookSnapshot:
    book = OrderBook.from_store(store, market.id, answer_id, now)
    if answer_id is None:
        prob = market.prob if market.prob is not None else 0.5
    else:
        answer = market.get_answer(answer_id)
        prob = answer.prob if answer is not None else 0.5
    return book.levels(prob)
