from src.pm_account.domain.models import ContractMetric, User
from src.pm_common.enums import Outcome
from src.pm_common.errors import InsufficientBalanceError, InsufficientSharesError
from src.pm_common.numeric import floating_greater

SHARE_EPSILON = 1e-6


def check_balance(user: User, amount: float) -> None:
    """Raise InsufficientBalanceError unless ``user`` can pay ``amount``."""
    if floating_greater(amount, user.balance):
        raise InsufficientBalanceError(amount, user.balance)


def check_shares(metric: ContractMetric, outcome: Outcome, shares: float) -> None:
    """Raise InsufficientSharesError if the position holds fewer than ``shares``."""
    held = metric.shares_for(outcome)
    if shares > held + SHARE_EPSILON:
        raise InsufficientSharesError(shares, held)
