"""Unified error codes and custom exceptions.

Error code ranges:
  2xxx: Account
  3xxx: Market
  4xxx: Trade / limit order
  5xxx: Position
  9xxx: System

Every subclass carries a stable ``kind`` so callers can branch on the
error without parsing messages.
"""


class AppError(Exception):
    """Base application error."""

    kind: str = "AppError"

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 2xxx: Account ---

class InsufficientBalanceError(AppError):
    kind = "InsufficientBalance"

    def __init__(self, required: float, available: float) -> None:
        super().__init__(
            2001,
            f"Insufficient balance: required {required:.2f}, available {available:.2f}",
            422,
        )


class UserNotFoundError(AppError):
    kind = "UserNotFound"

    def __init__(self, user_id: str) -> None:
        super().__init__(2002, f"User not found: {user_id}", 404)


# --- 3xxx: Market ---

class MarketNotFoundError(AppError):
    kind = "MarketNotFound"

    def __init__(self, market_id: str) -> None:
        super().__init__(3001, f"Market not found: {market_id}", 404)


class AnswerNotFoundError(AppError):
    kind = "AnswerNotFound"

    def __init__(self, answer_id: str | None) -> None:
        super().__init__(3002, f"Answer not found: {answer_id}", 404)


class MarketResolvedError(AppError):
    kind = "MarketResolved"

    def __init__(self, market_id: str) -> None:
        super().__init__(3003, f"Market is already resolved: {market_id}", 422)


class InvalidMarketError(AppError):
    kind = "InvalidMarket"

    def __init__(self, reason: str) -> None:
        super().__init__(3004, f"Invalid market: {reason}", 400)


class NotMultiChoiceError(AppError):
    kind = "ArbitrageNotApplicable"

    def __init__(self, market_id: str) -> None:
        super().__init__(
            3005, f"Market {market_id} is not a sum-to-one multiple choice market", 422
        )


class PhaseRestrictedError(AppError):
    kind = "PhaseRestricted"

    def __init__(self, market_id: str, phase: str) -> None:
        super().__init__(
            3006,
            f"Limit orders require the main phase; market {market_id} is in {phase}",
            422,
        )


class NotCreatorError(AppError):
    kind = "NotCreator"

    def __init__(self, market_id: str) -> None:
        super().__init__(3007, f"Only the creator can resolve market {market_id}", 403)


# --- 4xxx: Trade / limit order ---

class InvalidAmountError(AppError):
    kind = "InvalidAmount"

    def __init__(self, amount: object) -> None:
        super().__init__(4001, f"Amount must be a positive finite number, got {amount}", 400)


class InvalidProbabilityError(AppError):
    kind = "InvalidProbability"

    def __init__(self, prob: object) -> None:
        super().__init__(4002, f"Probability must be in (0, 1), got {prob}", 400)


class PoolWouldDrainError(AppError):
    kind = "PoolWouldDrain"

    def __init__(self) -> None:
        super().__init__(4003, "Trade too large for current liquidity", 422)


class ArbitrageInfeasibleError(AppError):
    kind = "ArbitrageInfeasible"

    def __init__(self, reason: str) -> None:
        super().__init__(4004, f"Arbitrage infeasible: {reason}", 422)


class OrderNotFoundError(AppError):
    kind = "OrderNotFound"

    def __init__(self, order_id: str) -> None:
        super().__init__(4005, f"Order not found: {order_id}", 404)


class NotOwnerError(AppError):
    kind = "NotOwner"

    def __init__(self, order_id: str) -> None:
        super().__init__(4006, f"Not your order: {order_id}", 403)


class AlreadyFilledError(AppError):
    kind = "AlreadyFilled"

    def __init__(self, order_id: str) -> None:
        super().__init__(4007, f"Order already filled: {order_id}", 422)


class AlreadyCancelledError(AppError):
    kind = "AlreadyCancelled"

    def __init__(self, order_id: str) -> None:
        super().__init__(4008, f"Order already cancelled: {order_id}", 422)


# --- 5xxx: Position ---

class InsufficientSharesError(AppError):
    kind = "InsufficientShares"

    def __init__(self, requested: float, held: float) -> None:
        super().__init__(
            5001,
            f"Insufficient shares: requested {requested:.4f}, held {held:.4f}",
            422,
        )


# --- 9xxx: System ---

class InternalError(AppError):
    kind = "Internal"

    def __init__(self, message: str = "Internal engine error") -> None:
        super().__init__(9001, message, 500)
