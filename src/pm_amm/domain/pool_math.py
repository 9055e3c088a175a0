"""Constant-product pool math (pure functions, no state).

Probability of YES for a pool with weight ``p``:

    prob = p * NO / ((1 - p) * YES + p * NO)

Trades conserve k = YES * NO:
  - buying YES adds the amount to NO and takes shares out of YES
  - buying NO adds the amount to YES and takes shares out of NO
  - selling returns shares to their own reserve and pays out the decrease
    of the opposite reserve
"""

import math
from dataclasses import dataclass

from config.settings import settings
from src.pm_amm.domain.models import Pool
from src.pm_common.enums import Outcome


@dataclass(frozen=True)
class PurchaseResult:
    shares: float
    new_pool: Pool
    prob_before: float
    prob_after: float


@dataclass(frozen=True)
class SaleResult:
    payout: float
    new_pool: Pool
    prob_before: float
    prob_after: float


def get_probability(pool: Pool, p: float = 0.5) -> float:
    """YES probability implied by the pool; an empty pool reads as ``p``."""
    if pool.yes + pool.no == 0:
        return p
    return (p * pool.no) / ((1 - p) * pool.yes + p * pool.no)


def get_k(pool: Pool) -> float:
    return pool.yes * pool.no


def calculate_purchase(
    pool: Pool, amount: float, outcome: Outcome, p: float = 0.5
) -> PurchaseResult:
    k = get_k(pool)
    prob_before = get_probability(pool, p)
    if outcome is Outcome.YES:
        new_no = pool.no + amount
        new_yes = k / new_no
        shares = pool.yes - new_yes
    else:
        new_yes = pool.yes + amount
        new_no = k / new_yes
        shares = pool.no - new_no
    new_pool = Pool(yes=new_yes, no=new_no)
    return PurchaseResult(shares, new_pool, prob_before, get_probability(new_pool, p))


def calculate_amount_for_shares(pool: Pool, shares: float, outcome: Outcome) -> float:
    """Cost of buying exactly ``shares``; ``inf`` if that would empty the reserve."""
    k = get_k(pool)
    if outcome is Outcome.YES:
        new_yes = pool.yes - shares
        if new_yes <= 0:
            return math.inf
        return k / new_yes - pool.no
    new_no = pool.no - shares
    if new_no <= 0:
        return math.inf
    return k / new_no - pool.yes


def calculate_sale(
    pool: Pool, shares: float, outcome: Outcome, p: float = 0.5
) -> SaleResult:
    k = get_k(pool)
    prob_before = get_probability(pool, p)
    if outcome is Outcome.YES:
        new_yes = pool.yes + shares
        new_no = k / new_yes
        payout = pool.no - new_no
    else:
        new_no = pool.no + shares
        new_yes = k / new_no
        payout = pool.yes - new_yes
    new_pool = Pool(yes=new_yes, no=new_no)
    return SaleResult(payout, new_pool, prob_before, get_probability(new_pool, p))


def calculate_amount_to_prob(
    pool: Pool, target_prob: float, outcome: Outcome, p: float = 0.5
) -> float:
    """Amount that moves the pool's probability to ``target_prob`` by buying ``outcome``.

    Returns 0 when the pool is already at or past the target in the direction
    the purchase moves it (YES purchases raise the probability, NO lower it).
    """
    if not 0 < target_prob < 1:
        return math.inf
    k = get_k(pool)
    if outcome is Outcome.YES:
        new_no = math.sqrt(k * (1 - p) * target_prob / (p * (1 - target_prob)))
        return max(new_no - pool.no, 0.0)
    new_yes = math.sqrt(k * p * (1 - target_prob) / ((1 - p) * target_prob))
    return max(new_yes - pool.yes, 0.0)


def calculate_shares_to_prob(
    pool: Pool, target_prob: float, outcome: Outcome, p: float = 0.5
) -> float:
    """Shares of ``outcome`` that, sold into the pool, move its probability to ``target_prob``.

    Selling YES lowers the probability and selling NO raises it; returns 0
    when the pool is already at or past the target in that direction.
    """
    if not 0 < target_prob < 1:
        return math.inf
    k = get_k(pool)
    if outcome is Outcome.YES:
        new_no = math.sqrt(k * (1 - p) * target_prob / (p * (1 - target_prob)))
        return max(k / new_no - pool.yes, 0.0)
    new_yes = math.sqrt(k * p * (1 - target_prob) / ((1 - p) * target_prob))
    return max(k / new_yes - pool.no, 0.0)


def add_liquidity(pool: Pool, amount: float, p: float = 0.5) -> Pool:
    """Deposit ``amount`` split (1 - prob, prob) so the probability is unchanged."""
    prob = get_probability(pool, p)
    return Pool(yes=pool.yes + amount * (1 - prob), no=pool.no + amount * prob)


def create_initial_pool(
    ante: float,
    initial_prob: float = 0.5,
    multiplier: float | None = None,
) -> Pool:
    """Seed a pool whose probability is ``initial_prob`` at p = 0.5."""
    mult = settings.LIQUIDITY_MULTIPLIER if multiplier is None else multiplier
    base = ante * mult
    return Pool(yes=base * (1 - initial_prob), no=base * initial_prob)


def create_multi_choice_pools(
    ante: float, num_answers: int, multiplier: float | None = None
) -> list[Pool]:
    """One pool per answer, each seeded at probability 1/N with ante/N."""
    per_answer = ante / num_answers
    return [
        create_initial_pool(per_answer, 1 / num_answers, multiplier)
        for _ in range(num_answers)
    ]


def is_pool_valid(pool: Pool, min_qty: float | None = None) -> bool:
    floor = settings.CPMM_MIN_POOL_QTY if min_qty is None else min_qty
    return pool.yes >= floor and pool.no >= floor
