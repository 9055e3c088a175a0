from src.pm_common.errors import InvalidProbabilityError
from src.pm_common.numeric import is_open_probability


def check_limit_prob(limit_prob: float) -> None:
    """Raise InvalidProbabilityError if limit_prob is not strictly inside (0, 1)."""
    if not is_open_probability(limit_prob):
        raise InvalidProbabilityError(limit_prob)
