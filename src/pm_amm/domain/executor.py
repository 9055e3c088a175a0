"""Single-pool trade executor.

``simulate_buy`` / ``simulate_sell`` are pure: they return a
``TradeSimulation`` and never touch the pool they were given, so the
arbitrage solver can call them any number of times. ``apply_trade`` commits
one simulation to its pool holder (binary outcome or answer) and appends the
Bet record.
"""

import logging
from datetime import datetime

from src.pm_amm.domain.models import Pool, TradeSimulation
from src.pm_amm.domain.pool_math import (
    add_liquidity,
    calculate_purchase,
    calculate_sale,
    is_pool_valid,
)
from src.pm_clearing.domain.fee import calc_trading_fee, get_fees_split
from src.pm_common.enums import Outcome
from src.pm_common.errors import (
    InvalidAmountError,
    MarketResolvedError,
    PoolWouldDrainError,
)
from src.pm_common.id_generator import generate_id
from src.pm_common.numeric import is_positive_finite
from src.pm_market.domain.models import Answer, Market, PoolHolder
from src.pm_market.domain.repository import MarketStoreProtocol
from src.pm_order.domain.models import Bet, Fill

logger = logging.getLogger(__name__)


def check_pool_floor(pool: Pool, min_pool_qty: float | None = None) -> None:
    """Raise PoolWouldDrainError if either reserve would end below the floor."""
    if not is_pool_valid(pool, min_pool_qty):
        raise PoolWouldDrainError()


def simulate_buy(
    pool: Pool,
    p: float,
    amount: float,
    outcome: Outcome,
    fee_rate: float | None = None,
    min_pool_qty: float | None = None,
) -> TradeSimulation:
    if not is_positive_finite(amount):
        raise InvalidAmountError(amount)
    fees = get_fees_split(calc_trading_fee(amount, fee_rate))
    purchase = calculate_purchase(pool, amount - fees.total, outcome, p)
    check_pool_floor(purchase.new_pool, min_pool_qty)
    pool_after = purchase.new_pool
    if fees.liquidity_fee > 0:
        pool_after = add_liquidity(pool_after, fees.liquidity_fee, p)
    return TradeSimulation(
        outcome=outcome,
        pool_before=pool,
        pool_after=pool_after,
        amount=amount,
        shares=purchase.shares,
        prob_before=purchase.prob_before,
        prob_after=purchase.prob_after,
        fees=fees,
    )


def simulate_sell(
    pool: Pool,
    p: float,
    shares: float,
    outcome: Outcome,
    fee_rate: float | None = None,
    min_pool_qty: float | None = None,
) -> TradeSimulation:
    if not is_positive_finite(shares):
        raise InvalidAmountError(shares)
    sale = calculate_sale(pool, shares, outcome, p)
    check_pool_floor(sale.new_pool, min_pool_qty)
    fees = get_fees_split(calc_trading_fee(sale.payout, fee_rate))
    pool_after = sale.new_pool
    if fees.liquidity_fee > 0:
        pool_after = add_liquidity(pool_after, fees.liquidity_fee, p)
    return TradeSimulation(
        outcome=outcome,
        pool_before=pool,
        pool_after=pool_after,
        amount=-(sale.payout - fees.total),
        shares=-shares,
        prob_before=sale.prob_before,
        prob_after=sale.prob_after,
        fees=fees,
    )


def commit_pool(market: Market, holder: PoolHolder, new_pool: Pool, volume: float) -> None:
    """Write a new pool into its holder and add traded volume to market and answer."""
    if market.is_resolved or (isinstance(holder, Answer) and holder.is_resolved):
        raise MarketResolvedError(market.id)
    holder.pool = new_pool
    market.volume += volume
    if isinstance(holder, Answer):
        holder.volume += volume


def apply_trade(
    store: MarketStoreProtocol,
    market: Market,
    holder: PoolHolder,
    sim: TradeSimulation,
    user_id: str,
    now: datetime,
    bet_group_id: str | None = None,
) -> Bet:
    """Commit ``sim`` to ``holder``; the pool must still be the one simulated on."""
    if holder.pool != sim.pool_before:
        raise RuntimeError("pool changed between simulate and apply")
    check_pool_floor(sim.pool_after)
    commit_pool(market, holder, sim.pool_after, abs(sim.amount))
    market.last_bet_at = now

    answer_id = holder.id if isinstance(holder, Answer) else None
    bet = Bet(
        id=generate_id("bet"),
        user_id=user_id,
        contract_id=market.id,
        outcome=sim.outcome,
        amount=sim.amount,
        shares=sim.shares,
        prob_before=sim.prob_before,
        prob_after=sim.prob_after,
        created_at=now,
        answer_id=answer_id,
        fees=sim.fees,
        fills=[Fill(None, sim.amount, sim.shares, now, sim.fees, is_sale=sim.is_sale)],
        bet_group_id=bet_group_id,
    )
    store.add_bet(bet)
    logger.debug(
        "Applied %s %s on %s/%s: amount=%.4f shares=%.4f prob %.4f -> %.4f",
        "sale" if sim.is_sale else "buy", sim.outcome.value, market.id, answer_id,
        sim.amount, sim.shares, sim.prob_before, sim.prob_after,
    )
    return bet
