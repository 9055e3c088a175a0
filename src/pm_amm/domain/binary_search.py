"""Bounded bisection root finder.

Sign convention (shared by every caller): ``f(x) > 0`` means the trial
value ``x`` is too high, ``f(x) < 0`` means it is too low.
"""

import logging
from collections.abc import Callable

from config.settings import settings

logger = logging.getLogger(__name__)


def binary_search(
    lo: float,
    hi: float,
    f: Callable[[float], float],
    tolerance: float | None = None,
    max_iterations: int | None = None,
) -> float:
    """Return x in [lo, hi] with f(x) ~= 0.

    Stops when |f(mid)| < tolerance or the bracket is narrower than
    tolerance, and always within ``max_iterations``. The result is the
    midpoint of the final bracket, so the same inputs give the same x.
    """
    tol = settings.SOLVER_TOLERANCE if tolerance is None else tolerance
    cap = settings.SOLVER_MAX_ITERATIONS if max_iterations is None else max_iterations
    if hi < lo:
        lo, hi = hi, lo

    mid = (lo + hi) / 2
    for i in range(cap):
        mid = (lo + hi) / 2
        value = f(mid)
        if abs(value) < tol:
            logger.debug("binary_search converged at x=%.8f after %d iterations", mid, i + 1)
            return mid
        if value > 0:
            hi = mid
        else:
            lo = mid
        if hi - lo < tol:
            break

    mid = (lo + hi) / 2
    logger.debug("binary_search stopped at bracket [%.8f, %.8f]", lo, hi)
    return mid
