from src.pm_common.errors import InvalidAmountError
from src.pm_common.numeric import is_positive_finite


def check_order_amount(amount: float) -> None:
    """Raise InvalidAmountError unless amount is a positive finite number."""
    if not is_positive_finite(amount):
        raise InvalidAmountError(amount)
