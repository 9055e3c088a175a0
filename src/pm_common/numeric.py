"""Float arithmetic utilities for the pool-based engine.

Pool reserves, balances and share counts are floats; equality is always
checked against EPSILON, never with ``==``.
"""

import math

EPSILON = 1e-9


def floating_equal(a: float, b: float, epsilon: float = EPSILON) -> bool:
    return abs(a - b) < epsilon


def floating_greater(a: float, b: float, epsilon: float = EPSILON) -> bool:
    return a - epsilon > b


def floating_greater_equal(a: float, b: float, epsilon: float = EPSILON) -> bool:
    return a + epsilon >= b


def floating_lesser_equal(a: float, b: float, epsilon: float = EPSILON) -> bool:
    return a - epsilon <= b


def is_positive_finite(value: float) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def is_open_probability(value: float) -> bool:
    """True when ``value`` lies strictly inside (0, 1)."""
    return isinstance(value, (int, float)) and math.isfinite(value) and 0 < value < 1


def amount_to_display(amount: float) -> str:
    """Convert an amount to display string: 65.5 -> '$65.50', -12 -> '-$12.00'."""
    if amount < 0:
        return f"-${-amount:,.2f}"
    return f"${amount:,.2f}"
