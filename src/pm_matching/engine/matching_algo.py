"""Best-price matching of a taker against resting limit orders and the pool.

The taker walks the price in its own direction (YES buys push the
probability up, NO buys push it down). Between two resting orders the pool
provides liquidity; when the pool price reaches a resting order's limit the
taker fills against that order at exactly its limit. A taker limit stops the
walk once the price reaches it; whatever is left is returned unfilled.

Sales walk the other way: selling YES lowers the probability towards the
resting YES bids, and each bid buys at its limit.
"""
from src.pm_amm.domain.executor import simulate_buy, simulate_sell
from src.pm_amm.domain.models import Pool
from src.pm_amm.domain.pool_math import (
    calculate_amount_to_prob,
    calculate_shares_to_prob,
    get_probability,
)
from src.pm_clearing.domain.fee import calc_trading_fee
from src.pm_common.enums import Outcome
from src.pm_matching.domain.models import FillPlan, MakerFill, TakerFill
from src.pm_matching.engine.order_book import OrderBook
from src.pm_order.domain.models import LimitOrder

FILL_EPSILON = 1e-7


def _target_prob(
    outcome: Outcome, maker: LimitOrder | None, limit_prob: float | None
) -> float | None:
    """Nearest price the pool may be walked to before stopping."""
    candidates = [x for x in (maker.limit_prob if maker else None, limit_prob) if x is not None]
    if not candidates:
        return None
    return min(candidates) if outcome is Outcome.YES else max(candidates)


def _limit_binds_first(outcome: Outcome, maker: LimitOrder, limit_prob: float | None) -> bool:
    if limit_prob is None:
        return False
    if outcome is Outcome.YES:
        return limit_prob < maker.limit_prob
    return limit_prob > maker.limit_prob


def _pool_spend(
    pool: Pool, p: float, outcome: Outcome, remaining: float, target: float | None,
    fee_rate: float | None,
) -> float:
    """Gross amount to spend on the pool before reaching ``target``."""
    if target is None:
        return remaining
    to_target = calculate_amount_to_prob(pool, target, outcome, p)
    if to_target <= 0:
        return 0.0
    # gross up so the amount left after the fee reaches the target
    fee_fraction = calc_trading_fee(1.0, fee_rate)
    gross = to_target / (1 - fee_fraction) if fee_fraction < 1 else to_target
    return min(remaining, gross)


def compute_fills(
    pool: Pool,
    p: float,
    outcome: Outcome,
    amount: float,
    book: OrderBook,
    taker_user_id: str,
    limit_prob: float | None = None,
    fee_rate: float | None = None,
    min_pool_qty: float | None = None,
) -> FillPlan:
    """Plan the fills for a taker buying ``outcome`` with ``amount``. Pure."""
    prob_before = get_probability(pool, p)
    plan = FillPlan(
        outcome=outcome,
        p=p,
        pool_before=pool,
        pool_after=pool,
        prob_before=prob_before,
        prob_after=prob_before,
    )
    remaining = amount
    current = pool
    makers: list[LimitOrder | None] = [*book.makers_for(outcome, taker_user_id), None]

    for maker in makers:
        if remaining <= FILL_EPSILON:
            break
        available = maker.remaining_amount if maker is not None else 0.0
        if maker is not None and available <= FILL_EPSILON:
            plan.orders_to_cancel.append(maker)
            continue

        target = _target_prob(outcome, maker, limit_prob)
        spend = _pool_spend(current, p, outcome, remaining, target, fee_rate)
        if spend > FILL_EPSILON:
            sim = simulate_buy(current, p, spend, outcome, fee_rate, min_pool_qty)
            plan.takers.append(TakerFill(None, spend, sim.shares, sim.fees))
            current = sim.pool_after
            remaining -= spend
        if remaining <= FILL_EPSILON or maker is None:
            break
        if _limit_binds_first(outcome, maker, limit_prob):
            break

        # taker pays the maker's limit; the maker pays the complement
        taker_price = maker.limit_prob if outcome is Outcome.YES else 1 - maker.limit_prob
        maker_price = 1 - taker_price
        shares = min(remaining / taker_price, available / maker_price)
        taker_amount = shares * taker_price
        plan.takers.append(TakerFill(maker.id, taker_amount, shares))
        plan.makers.append(MakerFill(maker, shares * maker_price, shares))
        remaining -= taker_amount

    plan.pool_after = current
    plan.prob_after = get_probability(current, p)
    plan.unfilled_amount = max(remaining, 0.0)
    return plan


def compute_sale_fills(
    pool: Pool,
    p: float,
    outcome: Outcome,
    shares: float,
    book: OrderBook,
    seller_user_id: str,
    fee_rate: float | None = None,
    min_pool_qty: float | None = None,
) -> FillPlan:
    """Plan the fills for a seller of ``shares`` of ``outcome``. Pure.

    Selling YES walks the probability down and meets resting YES bids, best
    first; selling NO walks it up and meets resting NO bids. Each resting
    bid buys the shares at its own limit and pays from its reserved funds;
    the pool absorbs the rest.
    """
    prob_before = get_probability(pool, p)
    plan = FillPlan(
        outcome=outcome,
        p=p,
        pool_before=pool,
        pool_after=pool,
        prob_before=prob_before,
        prob_after=prob_before,
        is_sale=True,
    )
    remaining = shares
    current = pool
    makers: list[LimitOrder | None] = [
        *book.makers_for(outcome.opposite, seller_user_id), None,
    ]

    for maker in makers:
        if remaining <= FILL_EPSILON:
            break
        available = maker.remaining_amount if maker is not None else 0.0
        if maker is not None and available <= FILL_EPSILON:
            plan.orders_to_cancel.append(maker)
            continue

        to_pool = remaining
        if maker is not None:
            to_pool = min(remaining, calculate_shares_to_prob(current, maker.limit_prob, outcome, p))
        if to_pool > FILL_EPSILON:
            sim = simulate_sell(current, p, to_pool, outcome, fee_rate, min_pool_qty)
            plan.takers.append(TakerFill(None, sim.amount, sim.shares, sim.fees))
            current = sim.pool_after
            remaining -= to_pool
        if remaining <= FILL_EPSILON or maker is None:
            break

        # the resting bid pays its limit for every share it takes
        price = maker.limit_prob if outcome is Outcome.YES else 1 - maker.limit_prob
        filled = min(remaining, available / price)
        plan.takers.append(TakerFill(maker.id, -filled * price, -filled))
        plan.makers.append(MakerFill(maker, filled * price, filled))
        remaining -= filled

    plan.pool_after = current
    plan.prob_after = get_probability(current, p)
    return plan
