"""Global enums shared by every bounded context.

All enums inherit from (str, Enum) so they serialize as their value.
"""

from enum import Enum


class Outcome(str, Enum):
    YES = "YES"
    NO = "NO"

    @property
    def opposite(self) -> "Outcome":
        return Outcome.NO if self is Outcome.YES else Outcome.YES


class OutcomeType(str, Enum):
    BINARY = "BINARY"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"


class Mechanism(str, Enum):
    """Pricing mechanism: one pool per market, or one pool per answer."""
    CPMM_1 = "cpmm-1"
    CPMM_MULTI_1 = "cpmm-multi-1"


class MarketPhase(str, Enum):
    SANDBOX = "SANDBOX"
    GRADUATING = "GRADUATING"
    MAIN = "MAIN"


class Resolution(str, Enum):
    YES = "YES"
    NO = "NO"
    MKT = "MKT"
    CANCEL = "CANCEL"


class OrderStatus(str, Enum):
    OPEN = "OPEN"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class LedgerEntryType(str, Enum):
    # Market lifecycle
    MARKET_ANTE = "MARKET_ANTE"
    LIQUIDITY_DEPOSIT = "LIQUIDITY_DEPOSIT"
    # Trading
    BET_COST = "BET_COST"
    SALE_PROCEEDS = "SALE_PROCEEDS"
    # Limit orders
    ORDER_RESERVE = "ORDER_RESERVE"
    ORDER_REFUND = "ORDER_REFUND"
    # Netting
    REDEMPTION = "REDEMPTION"
    # Fees
    CREATOR_FEE = "CREATOR_FEE"
    PLATFORM_FEE = "PLATFORM_FEE"
    # Bonuses
    UNIQUE_BETTOR_BONUS = "UNIQUE_BETTOR_BONUS"
    STREAK_BONUS = "STREAK_BONUS"
    # Settlement
    SETTLEMENT_PAYOUT = "SETTLEMENT_PAYOUT"
