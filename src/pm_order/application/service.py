# src/pm_order/application/service.py
"""Trade orchestration: place bets, sell shares, place and cancel limit orders.

Routing by market variant and phase:
  BINARY, main phase          -> limit-order matcher (book + pool), buys and sales
  BINARY, sandbox/graduating  -> single-pool executor
  MULTIPLE_CHOICE, sum-to-one -> arbitrage engine (any phase)
  MULTIPLE_CHOICE, independent-> single-pool executor on the answer's pool

Every branch computes its full result before the first write. Redemption
and bonuses run afterwards and never undo the trade when they fail.
"""
import logging
from datetime import datetime

from src.pm_account.application.service import record_position
from src.pm_account.domain.bonuses import pay_unique_bettor_bonus, update_betting_streak
from src.pm_amm.domain.executor import apply_trade, simulate_buy, simulate_sell
from src.pm_arbitrage.application.service import commit_arbitrage
from src.pm_arbitrage.engine.arbitrage import calculate_arbitrage_buy, calculate_arbitrage_sell
from src.pm_clearing.domain.invariants import verify_pool_invariants_after_trade
from src.pm_clearing.domain.netting import execute_redemption
from src.pm_clearing.infrastructure.fee_collector import collect_fees
from src.pm_common.enums import LedgerEntryType, MarketPhase, Outcome
from src.pm_common.errors import AnswerNotFoundError, InsufficientSharesError
from src.pm_common.id_generator import generate_id
from src.pm_market.application.service import advance_phase
from src.pm_market.domain.models import Answer, BinaryOutcome, Market
from src.pm_market.domain.price_history import record_price_points
from src.pm_market.domain.repository import MarketStoreProtocol
from src.pm_matching.application import service as matching
from src.pm_matching.engine.matching_algo import compute_fills, compute_sale_fills
from src.pm_matching.engine.order_book import OrderBook
from src.pm_order.application.schemas import (
    BetOut,
    CancelOrderRequest,
    CancelOrderResponse,
    ExpireOrdersResponse,
    LimitOrderOut,
    PlaceBetRequest,
    PlaceBetResponse,
    PlaceLimitOrderRequest,
    PlaceLimitOrderResponse,
    SellSharesRequest,
    SellSharesResponse,
)
from src.pm_order.domain.models import Bet, Fill, LimitOrder
from src.pm_risk.rules.balance_check import SHARE_EPSILON, check_balance, check_shares
from src.pm_risk.rules.market_status import check_answer_open, check_main_phase, check_market_open
from src.pm_risk.rules.order_limit import check_order_amount
from src.pm_risk.rules.price_range import check_limit_prob

logger = logging.getLogger(__name__)


def _bet_to_response(bet: Bet) -> BetOut:
    return BetOut(
        id=bet.id,
        user_id=bet.user_id,
        answer_id=bet.answer_id,
        outcome=bet.outcome.value,
        amount=bet.amount,
        shares=bet.shares,
        prob_before=bet.prob_before,
        prob_after=bet.prob_after,
        is_redemption=bet.is_redemption,
        limit_order_id=bet.limit_order_id,
    )


def _order_to_response(order: LimitOrder) -> LimitOrderOut:
    return LimitOrderOut(
        id=order.id,
        user_id=order.user_id,
        contract_id=order.contract_id,
        answer_id=order.answer_id,
        outcome=order.outcome.value,
        limit_prob=order.limit_prob,
        order_amount=order.order_amount,
        amount=order.amount,
        shares=order.shares,
        remaining_amount=order.remaining_amount,
        status=order.status.value,
        expires_at=order.expires_at,
        created_at=order.created_at,
    )


def _resolve_target(market: Market, answer_id: str | None) -> Answer | None:
    """The answer being traded on a multiple choice market; None on a binary one."""
    if market.is_binary:
        if answer_id is not None:
            raise AnswerNotFoundError(answer_id)
        return None
    return check_answer_open(market, answer_id)


# ---------------------------------------------------------------------------
# Execution branches
# ---------------------------------------------------------------------------


def _execute_buy(
    store: MarketStoreProtocol,
    market: Market,
    answer: Answer | None,
    user_id: str,
    outcome: Outcome,
    amount: float,
    now: datetime,
) -> list[Bet]:
    """Run a market buy through the right engine; the taker's main bet comes first."""
    if isinstance(market.outcome, BinaryOutcome):
        holder = market.outcome
        if market.phase is MarketPhase.MAIN:
            book = OrderBook.from_store(store, market.id, None, now)
            plan = compute_fills(holder.pool, holder.p, outcome, amount, book, user_id)
            verify_pool_invariants_after_trade(
                plan.pool_before, plan.pool_after, holder.p, plan.fees.liquidity_fee > 0
            )
            bet = matching.commit_fill_plan(store, market, holder, plan, user_id, now)
            return [bet] if bet is not None else []
        sim = simulate_buy(holder.pool, holder.p, amount, outcome)
        verify_pool_invariants_after_trade(
            sim.pool_before, sim.pool_after, holder.p, sim.fees.liquidity_fee > 0
        )
        bet = apply_trade(store, market, holder, sim, user_id, now)
        store.update_balance(user_id, -amount, LedgerEntryType.BET_COST, bet.id, now=now)
        record_position(store, bet)
        collect_fees(store, market, sim.fees, bet.id, now)
        return [bet]

    assert answer is not None
    if market.is_sum_to_one:
        result = calculate_arbitrage_buy(market, answer.id, amount, outcome)
        bets = commit_arbitrage(store, market, result, user_id, now)
        store.update_balance(
            user_id, -amount, LedgerEntryType.BET_COST, bets[0].bet_group_id, now=now
        )
        for bet in bets:
            record_position(store, bet)
        collect_fees(store, market, result.fees, bets[0].id, now)
        return bets

    sim = simulate_buy(answer.pool, answer.p, amount, outcome)
    verify_pool_invariants_after_trade(
        sim.pool_before, sim.pool_after, answer.p, sim.fees.liquidity_fee > 0
    )
    bet = apply_trade(store, market, answer, sim, user_id, now)
    store.update_balance(user_id, -amount, LedgerEntryType.BET_COST, bet.id, now=now)
    record_position(store, bet)
    collect_fees(store, market, sim.fees, bet.id, now)
    return [bet]


def _execute_sell(
    store: MarketStoreProtocol,
    market: Market,
    answer: Answer | None,
    user_id: str,
    outcome: Outcome,
    shares: float,
    now: datetime,
) -> tuple[list[Bet], float]:
    """Sell ``shares`` back to the pool(s); returns (bets, payout)."""
    if isinstance(market.outcome, BinaryOutcome) and market.phase is MarketPhase.MAIN:
        holder = market.outcome
        book = OrderBook.from_store(store, market.id, None, now)
        plan = compute_sale_fills(holder.pool, holder.p, outcome, shares, book, user_id)
        verify_pool_invariants_after_trade(
            plan.pool_before, plan.pool_after, holder.p, plan.fees.liquidity_fee > 0
        )
        bet = matching.commit_fill_plan(store, market, holder, plan, user_id, now)
        assert bet is not None
        return [bet], -plan.amount

    if isinstance(market.outcome, BinaryOutcome) or not market.is_sum_to_one:
        holder = market.outcome if isinstance(market.outcome, BinaryOutcome) else answer
        assert holder is not None
        sim = simulate_sell(holder.pool, holder.p, shares, outcome)
        verify_pool_invariants_after_trade(
            sim.pool_before, sim.pool_after, holder.p, sim.fees.liquidity_fee > 0
        )
        bet = apply_trade(store, market, holder, sim, user_id, now)
        payout = -sim.amount
        store.update_balance(user_id, payout, LedgerEntryType.SALE_PROCEEDS, bet.id, now=now)
        record_position(store, bet)
        collect_fees(store, market, sim.fees, bet.id, now)
        return [bet], payout

    assert answer is not None
    result = calculate_arbitrage_sell(market, answer.id, shares, outcome)
    bets = commit_arbitrage(store, market, result, user_id, now)
    payout = -result.target.amount
    store.update_balance(
        user_id, payout, LedgerEntryType.SALE_PROCEEDS, bets[0].bet_group_id, now=now
    )
    for bet in bets:
        record_position(store, bet)
    collect_fees(store, market, result.fees, bets[0].id, now)
    return bets, payout


def _after_trade(
    store: MarketStoreProtocol,
    market: Market,
    user_id: str,
    answer_id: str | None,
    main_bet: Bet | None,
    now: datetime,
) -> list[Bet]:
    """Post-trade side effects shared by every branch; returns redemption bets."""
    redemption_bets: list[Bet] = []
    try:
        redemption_bets = execute_redemption(store, user_id, market, answer_id, now)
    except Exception:
        logger.warning("Redemption failed for %s on %s", user_id, market.id, exc_info=True)

    if main_bet is not None and main_bet.amount > 0:
        try:
            pay_unique_bettor_bonus(store, market, main_bet)
            update_betting_streak(store, main_bet, now)
        except Exception:
            logger.warning("Bonus payment failed for bet %s", main_bet.id, exc_info=True)

    record_price_points(store, market, now)
    if market.is_binary:
        matching.sweep_limit_orders(store, market, now)
    advance_phase(market, now)
    store.save_market(market, now)
    return redemption_bets


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


def place_bet(store: MarketStoreProtocol, req: PlaceBetRequest, now: datetime) -> PlaceBetResponse:
    market = check_market_open(store.get_market(req.contract_id), req.contract_id)
    answer = _resolve_target(market, req.answer_id)
    check_order_amount(req.amount)
    check_balance(store.get_or_create_user(req.user_id, now), req.amount)

    bets = _execute_buy(store, market, answer, req.user_id, req.outcome, req.amount, now)
    main_bet = bets[0] if bets else None
    redemption_bets = _after_trade(store, market, req.user_id, req.answer_id, main_bet, now)

    user = store.get_or_create_user(req.user_id, now)
    logger.info(
        "Bet %s on %s/%s: %s %.4f -> %.4f shares",
        main_bet.id if main_bet else None, market.id, req.answer_id,
        req.outcome.value, req.amount, main_bet.shares if main_bet else 0.0,
    )
    return PlaceBetResponse(
        contract_id=market.id,
        answer_id=req.answer_id,
        shares=main_bet.shares if main_bet else 0.0,
        amount=main_bet.amount if main_bet else 0.0,
        prob_before=main_bet.prob_before if main_bet else 0.0,
        prob_after=main_bet.prob_after if main_bet else 0.0,
        new_balance=user.balance,
        bets=[_bet_to_response(b) for b in bets],
        redemption_bets=[_bet_to_response(b) for b in redemption_bets],
    )


def sell_shares(
    store: MarketStoreProtocol, req: SellSharesRequest, now: datetime
) -> SellSharesResponse:
    market = check_market_open(store.get_market(req.contract_id), req.contract_id)
    answer = _resolve_target(market, req.answer_id)
    metric = store.get_or_create_metric(req.user_id, market.id, req.answer_id)
    held = metric.shares_for(req.outcome)
    shares = held if req.shares is None else req.shares
    if shares <= SHARE_EPSILON:
        raise InsufficientSharesError(shares, held)
    check_shares(metric, req.outcome, shares)
    shares = min(shares, held)

    bets, payout = _execute_sell(store, market, answer, req.user_id, req.outcome, shares, now)
    redemption_bets = _after_trade(store, market, req.user_id, req.answer_id, None, now)

    user = store.get_or_create_user(req.user_id, now)
    logger.info(
        "Sold %.4f %s on %s/%s for %.4f", shares, req.outcome.value, market.id,
        req.answer_id, payout,
    )
    return SellSharesResponse(
        contract_id=market.id,
        answer_id=req.answer_id,
        shares=shares,
        payout=payout,
        prob_before=bets[0].prob_before,
        prob_after=bets[0].prob_after,
        new_balance=user.balance,
        bets=[_bet_to_response(b) for b in bets],
        redemption_bets=[_bet_to_response(b) for b in redemption_bets],
    )


def place_limit_order(
    store: MarketStoreProtocol, req: PlaceLimitOrderRequest, now: datetime
) -> PlaceLimitOrderResponse:
    market = check_market_open(store.get_market(req.contract_id), req.contract_id)
    answer = _resolve_target(market, req.answer_id)
    check_main_phase(market)
    check_order_amount(req.amount)
    check_limit_prob(req.limit_prob)
    check_balance(store.get_or_create_user(req.user_id, now), req.amount)

    prob = answer.prob if answer is not None else market.prob
    order = LimitOrder(
        id=generate_id("ord"),
        user_id=req.user_id,
        contract_id=market.id,
        outcome=req.outcome,
        limit_prob=req.limit_prob,
        order_amount=req.amount,
        created_at=now,
        answer_id=req.answer_id,
        expires_at=req.expires_at,
        prob_before=prob,
        updated_at=now,
    )

    bets: list[Bet] = []
    if answer is None:
        bet = matching.place_binary_limit_order(store, market, order, now)
        if bet is not None:
            bets.append(bet)
            _after_trade(store, market, req.user_id, None, None, now)
    elif order.is_marketable(answer.prob):
        bets = _execute_buy(store, market, answer, req.user_id, req.outcome, req.amount, now)
        main_bet = bets[0]
        main_bet.limit_order_id = order.id
        main_bet.limit_prob = order.limit_prob
        order.record_fill(Fill(main_bet.id, order.order_amount, main_bet.shares, now))
        store.save_limit_order(order)
        _after_trade(store, market, req.user_id, req.answer_id, main_bet, now)
    else:
        store.update_balance(
            req.user_id, -order.order_amount, LedgerEntryType.ORDER_RESERVE, order.id, now=now
        )
        store.save_limit_order(order)

    user = store.get_or_create_user(req.user_id, now)
    return PlaceLimitOrderResponse(
        order=_order_to_response(order),
        bets=[_bet_to_response(b) for b in bets],
        new_balance=user.balance,
    )


def cancel_order(
    store: MarketStoreProtocol, req: CancelOrderRequest, now: datetime
) -> CancelOrderResponse:
    refund = matching.cancel_order(store, req.order_id, req.user_id, now)
    order = store.get_limit_order(req.order_id)
    assert order is not None
    return CancelOrderResponse(
        order_id=order.id,
        status=order.status.value,
        refund=refund,
        new_balance=store.get_or_create_user(req.user_id, now).balance,
    )


def expire_orders(store: MarketStoreProtocol, now: datetime) -> ExpireOrdersResponse:
    expired = matching.expire_limit_orders(store, now)
    return ExpireOrdersResponse(
        expired_count=len(expired),
        total_refunded=sum(o.remaining_amount for o in expired),
        order_ids=[o.id for o in expired],
    )


def get_user_open_orders(
    store: MarketStoreProtocol, user_id: str, now: datetime | None = None
) -> list[LimitOrderOut]:
    return [_order_to_response(o) for o in matching.get_user_open_orders(store, user_id, now)]
