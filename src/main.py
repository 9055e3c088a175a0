"""Engine entry point.

``MarketEngine`` is the public boundary of the prediction-market engine.
Every operation validates its input with a pydantic request model, runs the
application service under the market's lock and returns an ``EngineResult``
envelope; nothing raises across this boundary.

Log format:
    INFO [placeBet] mkt_123 → 0 (3ms) req_a1b2c3d4e5f6
"""

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ValidationError

from config.settings import settings
from src.pm_account.application.service import AccountApplicationService
from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import OutcomeType, Resolution
from src.pm_common.errors import (
    AppError,
    InternalError,
    InvalidAmountError,
    InvalidMarketError,
    InvalidProbabilityError,
)
from src.pm_common.response import EngineResult, error_response, success_response
from src.pm_market.application.schemas import (
    AddLiquidityRequest,
    CreateMarketRequest,
    MarketDetail,
    PriceHistoryRequest,
    ResolveMarketRequest,
)
from src.pm_market.application.service import MarketApplicationService
from src.pm_market.domain.repository import MarketStoreProtocol
from src.pm_market.infrastructure.persistence import InMemoryStore
from src.pm_order.application import service as orders
from src.pm_order.application.schemas import (
    CancelOrderRequest,
    PlaceBetRequest,
    PlaceLimitOrderRequest,
    SellSharesRequest,
)

logger = logging.getLogger("pm.engine")

_AMOUNT_FIELDS = frozenset({"amount", "ante", "shares"})
_PROBABILITY_FIELDS = frozenset({"limit_prob", "initial_prob", "resolution_probability"})


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _validation_error(exc: ValidationError) -> AppError:
    """Map a request validation failure to the matching engine error."""
    error = exc.errors()[0]
    loc = error.get("loc") or ("",)
    field = str(loc[0])
    value = error.get("input")
    if field in _AMOUNT_FIELDS:
        return InvalidAmountError(value)
    if field in _PROBABILITY_FIELDS:
        return InvalidProbabilityError(value)
    return InvalidMarketError(f"{field}: {error.get('msg')}")


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump()
    if isinstance(data, list):
        return [_dump(item) for item in data]
    return data


class MarketEngine:
    """Async facade over the market, order and account services.

    One ``asyncio.Lock`` per market serialises trades on the same market;
    each operation computes its full result before writing, so a failed
    operation leaves the store untouched.
    """

    def __init__(
        self,
        store: MarketStoreProtocol | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store: MarketStoreProtocol = store if store is not None else InMemoryStore()
        self._clock = clock
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._markets = MarketApplicationService(self._store)
        self._accounts = AccountApplicationService(self._store)

    @property
    def store(self) -> MarketStoreProtocol:
        return self._store

    async def _run(self, op: str, key: str | None, fn: Callable[[], Any]) -> EngineResult:
        start = time.perf_counter()
        try:
            if key is None:
                data = fn()
            else:
                async with self._locks[key]:
                    data = fn()
            result = success_response(_dump(data))
        except ValidationError as exc:
            err = _validation_error(exc)
            result = error_response(err.code, err.message, err.kind)
        except AppError as exc:
            result = error_response(exc.code, exc.message, exc.kind)
        except Exception:
            logger.exception("Unhandled error in %s", op)
            err = InternalError()
            result = error_response(err.code, err.message, err.kind)

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "[%s] %s → %d (%.0fms) %s",
            op, key or "-", result.code, elapsed_ms, result.request_id,
        )
        return result

    # ------------------------------------------------------------------
    # Markets
    # ------------------------------------------------------------------

    async def create_market(
        self,
        question: str,
        outcome_type: OutcomeType | str,
        ante: float,
        creator_id: str,
        answers: list[str] | None = None,
        should_answers_sum_to_one: bool = True,
        initial_prob: float = 0.5,
        description: str = "",
        close_time: datetime | None = None,
    ) -> EngineResult:
        def run() -> MarketDetail:
            req = CreateMarketRequest(
                question=question,
                outcome_type=outcome_type,
                ante=ante,
                creator_id=creator_id,
                answers=answers,
                should_answers_sum_to_one=should_answers_sum_to_one,
                initial_prob=initial_prob,
                description=description,
                close_time=close_time,
            )
            market = self._markets.create_market(req, self._clock())
            return MarketDetail.from_domain(market)

        return await self._run("createMarket", None, run)

    async def get_market(self, contract_id: str) -> EngineResult:
        return await self._run(
            "getMarket", contract_id, lambda: self._markets.get_market(contract_id)
        )

    async def add_liquidity(
        self, contract_id: str, amount: float, user_id: str, answer_id: str | None = None
    ) -> EngineResult:
        def run() -> Any:
            req = AddLiquidityRequest(
                contract_id=contract_id, amount=amount, user_id=user_id, answer_id=answer_id
            )
            return self._markets.add_liquidity(req, self._clock())

        return await self._run("addLiquidity", contract_id, run)

    async def advance_phase(self, contract_id: str, now: datetime | None = None) -> EngineResult:
        return await self._run(
            "advancePhase",
            contract_id,
            lambda: self._markets.advance_phase(contract_id, now or self._clock()),
        )

    async def resolve_market(
        self,
        contract_id: str,
        resolution: Resolution | str,
        resolver_id: str,
        resolution_probability: float | None = None,
        answer_id: str | None = None,
    ) -> EngineResult:
        def run() -> Any:
            req = ResolveMarketRequest(
                contract_id=contract_id,
                resolution=resolution,
                resolver_id=resolver_id,
                resolution_probability=resolution_probability,
                answer_id=answer_id,
            )
            return self._markets.resolve_market(req, self._clock())

        return await self._run("resolveMarket", contract_id, run)

    async def get_price_history(
        self,
        contract_id: str,
        answer_id: str | None = None,
        max_points: int | None = None,
        after: int | None = None,
        before: int | None = None,
    ) -> EngineResult:
        def run() -> Any:
            req = PriceHistoryRequest(
                contract_id=contract_id,
                answer_id=answer_id,
                max_points=max_points or settings.PRICE_HISTORY_MAX_POINTS,
                after=after,
                before=before,
            )
            return self._markets.get_price_history(req)

        return await self._run("getPriceHistory", contract_id, run)

    async def get_full_price_history(
        self, contract_id: str, answer_id: str | None = None
    ) -> EngineResult:
        return await self._run(
            "getFullPriceHistory",
            contract_id,
            lambda: self._markets.get_full_price_history(contract_id, answer_id),
        )

    async def get_price_at_time(
        self, contract_id: str, timestamp: int, answer_id: str | None = None
    ) -> EngineResult:
        return await self._run(
            "getPriceAtTime",
            contract_id,
            lambda: self._markets.get_price_at_time(contract_id, timestamp, answer_id),
        )

    async def get_bet_history(self, contract_id: str, limit: int = 100) -> EngineResult:
        return await self._run(
            "getBetHistory", contract_id, lambda: self._markets.get_bet_history(contract_id, limit)
        )

    async def get_order_book(
        self, contract_id: str, answer_id: str | None = None
    ) -> EngineResult:
        return await self._run(
            "getOrderBook",
            contract_id,
            lambda: self._markets.get_order_book(contract_id, answer_id, self._clock()),
        )

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    async def place_bet(
        self,
        contract_id: str,
        amount: float,
        side: str,
        user_id: str,
        answer_id: str | None = None,
    ) -> EngineResult:
        def run() -> Any:
            req = PlaceBetRequest(
                contract_id=contract_id,
                amount=amount,
                outcome=side,
                user_id=user_id,
                answer_id=answer_id,
            )
            return orders.place_bet(self._store, req, self._clock())

        return await self._run("placeBet", contract_id, run)

    async def sell_shares(
        self,
        contract_id: str,
        side: str,
        user_id: str,
        shares: float | None = None,
        answer_id: str | None = None,
    ) -> EngineResult:
        def run() -> Any:
            req = SellSharesRequest(
                contract_id=contract_id,
                outcome=side,
                user_id=user_id,
                shares=shares,
                answer_id=answer_id,
            )
            return orders.sell_shares(self._store, req, self._clock())

        return await self._run("sellShares", contract_id, run)

    async def place_limit_order(
        self,
        contract_id: str,
        amount: float,
        side: str,
        limit_prob: float,
        user_id: str,
        answer_id: str | None = None,
        expires_at: datetime | None = None,
    ) -> EngineResult:
        def run() -> Any:
            req = PlaceLimitOrderRequest(
                contract_id=contract_id,
                amount=amount,
                outcome=side,
                limit_prob=limit_prob,
                user_id=user_id,
                answer_id=answer_id,
                expires_at=expires_at,
            )
            return orders.place_limit_order(self._store, req, self._clock())

        return await self._run("placeLimitOrder", contract_id, run)

    async def cancel_order(self, order_id: str, user_id: str) -> EngineResult:
        order = self._store.get_limit_order(order_id)
        key = order.contract_id if order is not None else None

        def run() -> Any:
            req = CancelOrderRequest(order_id=order_id, user_id=user_id)
            return orders.cancel_order(self._store, req, self._clock())

        return await self._run("cancelOrder", key, run)

    async def expire_limit_orders(self, now: datetime | None = None) -> EngineResult:
        # Touches many markets; the body never awaits, so it cannot interleave a trade.
        return await self._run(
            "expireLimitOrders", None, lambda: orders.expire_orders(self._store, now or self._clock())
        )

    async def get_open_orders(self, user_id: str) -> EngineResult:
        return await self._run(
            "getOpenOrders",
            None,
            lambda: orders.get_user_open_orders(self._store, user_id, self._clock()),
        )

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def get_balance(self, user_id: str) -> EngineResult:
        return await self._run("getBalance", None, lambda: self._accounts.get_balance(user_id))

    async def get_positions(self, user_id: str, contract_id: str | None = None) -> EngineResult:
        return await self._run(
            "getPositions", contract_id, lambda: self._accounts.get_positions(user_id, contract_id)
        )

    async def get_sellable_shares(
        self, user_id: str, contract_id: str, answer_id: str | None = None
    ) -> EngineResult:
        return await self._run(
            "getSellableShares",
            contract_id,
            lambda: self._accounts.get_sellable_shares(user_id, contract_id, answer_id),
        )

    async def get_ledger(self, user_id: str) -> EngineResult:
        return await self._run("getLedger", None, lambda: self._accounts.list_ledger(user_id))

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def verify_invariants(self) -> EngineResult:
        # Reads every market; like expiry, the body never awaits.
        return await self._run("verifyInvariants", None, self._markets.verify_all_invariants)
