"""Fee calculation: trading fee on the pool leg, taker fee on arbitrage legs.

A collected fee is split into three buckets:
  creator   -> credited to the market creator's balance
  platform  -> credited to the platform account
  liquidity -> added back into the pool that was traded against
"""

from dataclasses import dataclass

from config.settings import settings


@dataclass(frozen=True)
class Fees:
    creator_fee: float = 0.0
    platform_fee: float = 0.0
    liquidity_fee: float = 0.0

    @property
    def total(self) -> float:
        return self.creator_fee + self.platform_fee + self.liquidity_fee

    def __add__(self, other: "Fees") -> "Fees":
        return Fees(
            creator_fee=self.creator_fee + other.creator_fee,
            platform_fee=self.platform_fee + other.platform_fee,
            liquidity_fee=self.liquidity_fee + other.liquidity_fee,
        )


def no_fees() -> Fees:
    return Fees()


def sum_fees(fees: list[Fees]) -> Fees:
    total = no_fees()
    for f in fees:
        total = total + f
    return total


def get_fees_split(
    total_fee: float,
    creator_fraction: float | None = None,
    liquidity_fraction: float | None = None,
) -> Fees:
    """Split ``total_fee`` into buckets; the platform takes what is left."""
    if total_fee <= 0:
        return no_fees()
    creator_fraction = (
        settings.CREATOR_FEE_FRACTION if creator_fraction is None else creator_fraction
    )
    liquidity_fraction = (
        settings.LIQUIDITY_FEE_FRACTION if liquidity_fraction is None else liquidity_fraction
    )
    creator = total_fee * creator_fraction
    liquidity = total_fee * liquidity_fraction
    return Fees(
        creator_fee=creator,
        platform_fee=total_fee - creator - liquidity,
        liquidity_fee=liquidity,
    )


def calc_trading_fee(amount: float, fee_rate: float | None = None) -> float:
    """Proportional fee taken off the top of a pool trade amount."""
    rate = settings.TRADING_FEE if fee_rate is None else fee_rate
    if amount <= 0 or rate <= 0:
        return 0.0
    return amount * rate


def get_taker_fee(shares: float, prob: float, constant: float | None = None) -> float:
    """Taker fee for consuming ``shares`` of liquidity at average price ``prob``.

    fee = c * prob * (1 - prob) * shares, with prob clamped to [0, 1] since an
    average price above 1 only happens on a nearly drained pool.
    """
    c = settings.TAKER_FEE_CONSTANT if constant is None else constant
    if shares <= 0 or c <= 0:
        return 0.0
    prob = min(max(prob, 0.0), 1.0)
    return c * prob * (1 - prob) * shares
