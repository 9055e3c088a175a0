"""Market invariant verification after each trade."""

import logging

from config.settings import settings
from src.pm_amm.domain.models import Pool
from src.pm_amm.domain.pool_math import get_probability
from src.pm_market.domain.models import Market

logger = logging.getLogger(__name__)

K_RELATIVE_TOLERANCE = 1e-6


def verify_pool_invariants_after_trade(
    pool_before: Pool,
    pool_after: Pool,
    p: float = 0.5,
    liquidity_added: bool = False,
) -> None:
    """Verify critical pool invariants after a trade. Raises AssertionError if violated.

    INV-1: YES * NO is unchanged (never shrinks when liquidity was added)
    INV-2: both reserves stay at or above the pool floor
    INV-3: probability stays strictly inside (0, 1)
    """
    k_before = pool_before.k
    k_after = pool_after.k
    if liquidity_added:
        assert k_after >= k_before * (1 - K_RELATIVE_TOLERANCE), (
            f"INV-1 violated: k shrank from {k_before} to {k_after}"
        )
    else:
        assert abs(k_after - k_before) <= k_before * K_RELATIVE_TOLERANCE, (
            f"INV-1 violated: k_before={k_before} != k_after={k_after}"
        )

    floor = settings.CPMM_MIN_POOL_QTY
    assert pool_after.yes >= floor and pool_after.no >= floor, (
        f"INV-2 violated: pool {pool_after.to_dict()} below floor {floor}"
    )

    prob = get_probability(pool_after, p)
    assert 0 < prob < 1, f"INV-3 violated: probability {prob} outside (0, 1)"

    logger.debug("Invariants OK: k=%.6f, prob=%.6f", k_after, prob)


def check_sum_to_one(market: Market, tolerance: float | None = None) -> list[str]:
    """Sum-to-one drift on a dependent multiple choice market; [] when in range."""
    if not market.is_sum_to_one or market.is_resolved:
        return []
    tol = settings.ARBITRAGE_SUM_TOLERANCE if tolerance is None else tolerance
    total = sum(a.prob for a in market.answers)
    if abs(total - 1) > tol:
        return [f"INV-S violated: market {market.id} probabilities sum to {total:.6f}"]
    return []
