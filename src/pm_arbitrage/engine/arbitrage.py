"""Sum-to-one arbitrage for dependent multiple choice markets.

Buying YES on answer A with ``amount``:
  1. buy ``s`` NO shares on every other answer (N - 1 of them);
  2. one NO share on every other answer is one implicit YES share on A plus
     (N - 2) of cash, so the NO legs redeem into ``s`` YES shares on A and a
     redemption bonus of ``s * (N - 2)``;
  3. what is left of ``amount`` after the NO legs (cost minus bonus) buys
     YES directly on A's pool.
``s`` is found by bisection so that the probabilities sum to 1 afterwards.
Buying NO on A is the mirror: buy ``s`` YES on every other answer, which
redeems into ``s`` NO shares on A with no bonus.

Selling ``x`` shares of A splits into a direct sale of ``x - m`` shares into
A's pool and ``m`` shares redeemed together with ``m`` shares bought on
every other answer: YES on each sibling completes ``m`` full sets (worth
``m``), NO on each sibling completes ``m`` NO-on-everything sets (worth
``m * (N - 1)``). The sibling purchases are charged a taker fee.

Every ``_simulate_*`` helper is pure. The solver only calls the objective
built on top of them; the caller commits the returned plan exactly once.
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass

from config.settings import settings
from src.pm_amm.domain.binary_search import binary_search
from src.pm_amm.domain.models import Pool
from src.pm_amm.domain.pool_math import (
    add_liquidity,
    calculate_amount_for_shares,
    calculate_purchase,
    calculate_sale,
    get_probability,
    is_pool_valid,
)
from src.pm_arbitrage.domain.models import ArbitrageLeg, ArbitrageResult, LegFill
from src.pm_clearing.domain.fee import (
    calc_trading_fee,
    get_fees_split,
    get_taker_fee,
)
from src.pm_common.enums import Outcome
from src.pm_common.errors import (
    AnswerNotFoundError,
    ArbitrageInfeasibleError,
    InvalidAmountError,
    NotMultiChoiceError,
    PoolWouldDrainError,
)
from src.pm_common.numeric import floating_equal, is_positive_finite
from src.pm_market.domain.models import Answer, Market, MultipleChoiceOutcome

logger = logging.getLogger(__name__)

# Objective value for trials that drain a sibling pool: "too high".
_TOO_HIGH = 1.0


@dataclass(frozen=True)
class _SiblingBuys:
    costs: tuple[float, ...]
    pools: tuple[Pool, ...]

    @property
    def total(self) -> float:
        return sum(self.costs)


@dataclass(frozen=True)
class _BuyTrial:
    siblings: _SiblingBuys
    target_amount: float
    target_shares: float
    target_pool: Pool
    total_prob: float


@dataclass(frozen=True)
class _SellTrial:
    siblings: _SiblingBuys
    sale_payout: float
    target_pool: Pool
    total_prob: float


def require_sum_to_one(market: Market) -> MultipleChoiceOutcome:
    """Narrow ``market`` to the only variant arbitrage applies to."""
    outcome = market.outcome
    if not isinstance(outcome, MultipleChoiceOutcome) or not outcome.should_answers_sum_to_one:
        raise NotMultiChoiceError(market.id)
    if len(outcome.answers) < 2:
        raise NotMultiChoiceError(market.id)
    return outcome


def _split_answers(answers: list[Answer], target_id: str) -> tuple[Answer, list[Answer]]:
    target = next((a for a in answers if a.id == target_id), None)
    if target is None:
        raise AnswerNotFoundError(target_id)
    return target, [a for a in answers if a.id != target_id]


def _buy_exact_shares(
    pool: Pool, shares: float, outcome: Outcome, floor: float
) -> tuple[float, Pool] | None:
    """Cost and resulting pool of buying exactly ``shares``; None if it drains the pool."""
    if shares <= 0:
        return 0.0, pool
    cost = calculate_amount_for_shares(pool, shares, outcome)
    if not math.isfinite(cost):
        return None
    if outcome is Outcome.YES:
        new_pool = Pool(yes=pool.yes - shares, no=pool.no + cost)
    else:
        new_pool = Pool(yes=pool.yes + cost, no=pool.no - shares)
    if not is_pool_valid(new_pool, floor):
        return None
    return cost, new_pool


def _simulate_sibling_buys(
    others: list[Answer], shares: float, outcome: Outcome, floor: float
) -> _SiblingBuys | None:
    costs: list[float] = []
    pools: list[Pool] = []
    for answer in others:
        bought = _buy_exact_shares(answer.pool, shares, outcome, floor)
        if bought is None:
            return None
        costs.append(bought[0])
        pools.append(bought[1])
    return _SiblingBuys(tuple(costs), tuple(pools))


def _redemption_bonus(outcome: Outcome, shares: float, num_answers: int) -> float:
    # s NO on each of the N-1 siblings pays s*(N-2) whichever answer wins, plus s if A wins.
    if outcome is Outcome.YES:
        return shares * (num_answers - 2)
    return 0.0


def _simulate_buy(
    target: Answer,
    others: list[Answer],
    bet_amount: float,
    outcome: Outcome,
    shares: float,
    floor: float,
) -> _BuyTrial | None:
    siblings = _simulate_sibling_buys(others, shares, outcome.opposite, floor)
    if siblings is None:
        return None
    net_cost = siblings.total - _redemption_bonus(outcome, shares, len(others) + 1)
    target_amount = bet_amount - net_cost
    if floating_equal(target_amount, 0.0):
        target_amount = 0.0
    if target_amount < 0:
        return None

    if target_amount > 0:
        purchase = calculate_purchase(target.pool, target_amount, outcome, target.p)
        target_pool, target_shares = purchase.new_pool, purchase.shares
    else:
        target_pool, target_shares = target.pool, 0.0

    total_prob = get_probability(target_pool, target.p) + sum(
        get_probability(pool, a.p) for pool, a in zip(siblings.pools, others)
    )
    return _BuyTrial(siblings, target_amount, target_shares, target_pool, total_prob)


def _simulate_sell(
    target: Answer,
    others: list[Answer],
    shares_to_sell: float,
    outcome: Outcome,
    redeemed: float,
    floor: float,
) -> _SellTrial | None:
    siblings = _simulate_sibling_buys(others, redeemed, outcome, floor)
    if siblings is None:
        return None
    direct = shares_to_sell - redeemed
    if direct > 0:
        sale = calculate_sale(target.pool, direct, outcome, target.p)
        sale_payout, target_pool = sale.payout, sale.new_pool
    else:
        sale_payout, target_pool = 0.0, target.pool

    total_prob = get_probability(target_pool, target.p) + sum(
        get_probability(pool, a.p) for pool, a in zip(siblings.pools, others)
    )
    return _SellTrial(siblings, sale_payout, target_pool, total_prob)


def _solve(
    hi: float,
    objective: Callable[[float], float],
) -> float:
    if hi <= 0:
        return 0.0
    return binary_search(0.0, hi, objective)


def _check_sum(total_prob: float, market_id: str) -> None:
    if abs(total_prob - 1) > settings.ARBITRAGE_SUM_TOLERANCE:
        logger.warning("Arbitrage on %s left probability sum at %.6f", market_id, total_prob)
        raise ArbitrageInfeasibleError(
            f"probabilities would sum to {total_prob:.4f} instead of 1"
        )


def _sibling_legs(
    others: list[Answer], siblings: _SiblingBuys, shares: float, outcome: Outcome
) -> tuple[ArbitrageLeg, ...]:
    legs = []
    for answer, cost, pool in zip(others, siblings.costs, siblings.pools):
        fills = (
            LegFill(amount=cost, shares=shares),
            LegFill(amount=-cost, shares=-shares, is_redemption=True),
        )
        legs.append(
            ArbitrageLeg(
                answer_id=answer.id,
                outcome=outcome,
                pool_before=answer.pool,
                pool_after=pool,
                prob_before=answer.prob,
                prob_after=get_probability(pool, answer.p),
                fills=fills,
                pool_volume=cost,
            )
        )
    return tuple(legs)


# ---------------------------------------------------------------------------
# Buying
# ---------------------------------------------------------------------------


def calculate_arbitrage_buy(
    market: Market,
    answer_id: str,
    amount: float,
    outcome: Outcome,
    fee_rate: float | None = None,
    min_pool_qty: float | None = None,
) -> ArbitrageResult:
    """Plan a sum-preserving buy of ``outcome`` on ``answer_id`` for ``amount``."""
    mc = require_sum_to_one(market)
    if not is_positive_finite(amount):
        raise InvalidAmountError(amount)
    floor = settings.CPMM_MIN_POOL_QTY if min_pool_qty is None else min_pool_qty
    target, others = _split_answers(mc.answers, answer_id)
    n = len(others) + 1

    trading_fee = calc_trading_fee(amount, fee_rate)
    fees = get_fees_split(trading_fee)
    bet_amount = amount - trading_fee

    if outcome is Outcome.YES:
        # per-share net cost of the NO legs after the redemption bonus
        denominator = sum(1 - a.prob for a in others) - (n - 2)
        reserve_cap = min(a.pool.no for a in others) - floor
    else:
        denominator = sum(a.prob for a in others)
        reserve_cap = min(a.pool.yes for a in others) - floor
    max_shares = bet_amount / denominator if denominator > 0 else math.inf
    hi = max(min(max_shares, reserve_cap), 0.0)

    def objective(shares: float) -> float:
        trial = _simulate_buy(target, others, bet_amount, outcome, shares, floor)
        if trial is None:
            return _TOO_HIGH
        if outcome is Outcome.YES:
            return 1 - trial.total_prob
        return trial.total_prob - 1

    shares = _solve(hi, objective)
    trial = _simulate_buy(target, others, bet_amount, outcome, shares, floor)
    if trial is None:
        raise ArbitrageInfeasibleError("bet amount does not cover the sibling legs")
    if not is_pool_valid(trial.target_pool, floor):
        raise PoolWouldDrainError()
    _check_sum(trial.total_prob, market.id)

    target_pool = trial.target_pool
    if fees.liquidity_fee > 0:
        target_pool = add_liquidity(target_pool, fees.liquidity_fee, target.p)

    redemption_amount = trial.siblings.total - _redemption_bonus(outcome, shares, n)
    target_fills: list[LegFill] = []
    if trial.target_amount > 0 or trading_fee > 0:
        target_fills.append(
            LegFill(amount=trial.target_amount + trading_fee, shares=trial.target_shares, fees=fees)
        )
    if shares > 0:
        target_fills.append(
            LegFill(amount=redemption_amount, shares=shares, is_redemption=True)
        )
    target_leg = ArbitrageLeg(
        answer_id=target.id,
        outcome=outcome,
        pool_before=target.pool,
        pool_after=target_pool,
        prob_before=target.prob,
        prob_after=get_probability(target_pool, target.p),
        fills=tuple(target_fills),
        pool_volume=trial.target_amount,
    )
    result = ArbitrageResult(
        target=target_leg,
        siblings=_sibling_legs(others, trial.siblings, shares, outcome.opposite),
        solved_shares=shares,
        fees=fees,
    )
    logger.debug(
        "Arbitrage buy %s on %s/%s: s=%.6f target_amount=%.4f sum=%.6f",
        outcome.value, market.id, answer_id, shares, trial.target_amount, result.total_prob_after,
    )
    return result


def calculate_arbitrage_buy_yes(market: Market, answer_id: str, amount: float) -> ArbitrageResult:
    return calculate_arbitrage_buy(market, answer_id, amount, Outcome.YES)


def calculate_arbitrage_buy_no(market: Market, answer_id: str, amount: float) -> ArbitrageResult:
    return calculate_arbitrage_buy(market, answer_id, amount, Outcome.NO)


# ---------------------------------------------------------------------------
# Selling
# ---------------------------------------------------------------------------


def calculate_arbitrage_sell(
    market: Market,
    answer_id: str,
    shares: float,
    outcome: Outcome,
    fee_rate: float | None = None,
    min_pool_qty: float | None = None,
) -> ArbitrageResult:
    """Plan a sum-preserving sale of ``shares`` of ``outcome`` on ``answer_id``."""
    mc = require_sum_to_one(market)
    if not is_positive_finite(shares):
        raise InvalidAmountError(shares)
    floor = settings.CPMM_MIN_POOL_QTY if min_pool_qty is None else min_pool_qty
    target, others = _split_answers(mc.answers, answer_id)
    n = len(others) + 1

    reserve_cap = min(a.pool.reserve(outcome) for a in others) - floor
    hi = max(min(shares, reserve_cap), 0.0)

    def objective(redeemed: float) -> float:
        trial = _simulate_sell(target, others, shares, outcome, redeemed, floor)
        if trial is None:
            return _TOO_HIGH
        # redeeming more via YES siblings raises the sum; via NO siblings lowers it
        if outcome is Outcome.YES:
            return trial.total_prob - 1
        return 1 - trial.total_prob

    redeemed = _solve(hi, objective)
    trial = _simulate_sell(target, others, shares, outcome, redeemed, floor)
    if trial is None:
        raise ArbitrageInfeasibleError("sibling pools cannot absorb the sale")
    if not is_pool_valid(trial.target_pool, floor):
        raise PoolWouldDrainError()
    _check_sum(trial.total_prob, market.id)

    redeemed_cash = redeemed if outcome is Outcome.YES else redeemed * (n - 1)
    sibling_shares = redeemed * (n - 1)
    arbitrage_fee = (
        get_taker_fee(sibling_shares, trial.siblings.total / sibling_shares)
        if sibling_shares > 0
        else 0.0
    )
    arbitrage_fees = get_fees_split(arbitrage_fee)
    sale_fee = calc_trading_fee(trial.sale_payout, fee_rate)
    sale_fees = get_fees_split(sale_fee)

    payout = trial.sale_payout - sale_fee + redeemed_cash - trial.siblings.total - arbitrage_fee
    if payout <= 0:
        raise ArbitrageInfeasibleError("sale proceeds would not cover the sibling legs")

    target_pool = trial.target_pool
    liquidity_fee = arbitrage_fees.liquidity_fee + sale_fees.liquidity_fee
    if liquidity_fee > 0:
        target_pool = add_liquidity(target_pool, liquidity_fee, target.p)

    direct = shares - redeemed
    target_fills: list[LegFill] = []
    if direct > 0:
        target_fills.append(
            LegFill(
                amount=-(trial.sale_payout - sale_fee),
                shares=-direct,
                fees=sale_fees,
                is_sale=True,
            )
        )
    if redeemed > 0:
        target_fills.append(
            LegFill(
                amount=-(redeemed_cash - trial.siblings.total - arbitrage_fee),
                shares=-redeemed,
                fees=arbitrage_fees,
                is_redemption=True,
                is_sale=True,
            )
        )
    target_leg = ArbitrageLeg(
        answer_id=target.id,
        outcome=outcome,
        pool_before=target.pool,
        pool_after=target_pool,
        prob_before=target.prob,
        prob_after=get_probability(target_pool, target.p),
        fills=tuple(target_fills),
        pool_volume=trial.sale_payout,
    )
    result = ArbitrageResult(
        target=target_leg,
        siblings=_sibling_legs(others, trial.siblings, redeemed, outcome),
        solved_shares=redeemed,
        fees=sale_fees + arbitrage_fees,
    )
    logger.debug(
        "Arbitrage sell %s on %s/%s: redeemed=%.6f payout=%.4f sum=%.6f",
        outcome.value, market.id, answer_id, redeemed, payout, result.total_prob_after,
    )
    return result


def calculate_arbitrage_sell_yes(market: Market, answer_id: str, shares: float) -> ArbitrageResult:
    return calculate_arbitrage_sell(market, answer_id, shares, Outcome.YES)


def calculate_arbitrage_sell_no(market: Market, answer_id: str, shares: float) -> ArbitrageResult:
    return calculate_arbitrage_sell(market, answer_id, shares, Outcome.NO)
