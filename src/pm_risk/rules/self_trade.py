"""Self-trade detection for limit-order matching."""


def is_self_trade(incoming_user_id: str, resting_user_id: str) -> bool:
    """A taker never fills against its own resting orders."""
    return incoming_user_id == resting_user_id
