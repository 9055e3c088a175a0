from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Pool
    CPMM_MIN_POOL_QTY: float = 0.01
    LIQUIDITY_MULTIPLIER: float = 50.0
    MIN_CPMM_PROB: float = 0.01
    MAX_CPMM_PROB: float = 0.99

    # Market creation
    MINIMUM_ANTE: float = 100.0
    MIN_ANSWERS: int = 2
    MAX_ANSWERS: int = 20

    # Fees (fractions, not bps)
    TRADING_FEE: float = 0.0
    TAKER_FEE_CONSTANT: float = 0.07
    CREATOR_FEE_FRACTION: float = 0.5
    LIQUIDITY_FEE_FRACTION: float = 0.0

    # Accounts and bonuses
    STARTING_BALANCE: float = 10_000.0
    UNIQUE_BETTOR_BONUS_AMOUNT: float = 5.0
    STREAK_BONUS_AMOUNTS: list[float] = [0, 3, 5, 10, 15, 20, 25, 30, 35, 40]

    # Phases
    GRADUATION_VOLUME_THRESHOLD: float = 1000.0
    GRADUATION_TIMER_SECONDS: int = 300

    # Numerics
    SOLVER_TOLERANCE: float = 1e-4
    SOLVER_MAX_ITERATIONS: int = 100
    ARBITRAGE_SUM_TOLERANCE: float = 1e-2
    REDEMPTION_EPSILON: float = 1e-6
    MAX_SWEEP_ROUNDS: int = 100

    # History
    PRICE_HISTORY_MAX_POINTS: int = 1000

    # App
    APP_NAME: str = "CPMM Prediction Market Engine"
    LOG_LEVEL: str = "INFO"


settings = Settings()
