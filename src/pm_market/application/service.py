"""MarketApplicationService: market lifecycle on top of the injected store.

Creation seeds the pools from the ante, resolution settles positions and
refunds resting orders, and ``advance_phase`` moves a market from sandbox
through graduation into the main phase.
"""

import logging
import re
from datetime import datetime, timedelta

from config.settings import settings
from src.pm_account.domain.models import ContractMetric
from src.pm_amm.domain.pool_math import (
    add_liquidity,
    create_initial_pool,
    create_multi_choice_pools,
)
from src.pm_clearing.domain.global_invariants import verify_global_invariants
from src.pm_clearing.domain.invariants import verify_pool_invariants_after_trade
from src.pm_clearing.domain.settlement import Payout, settle_positions
from src.pm_common.enums import LedgerEntryType, MarketPhase, OutcomeType, Resolution
from src.pm_common.errors import (
    AnswerNotFoundError,
    InvalidMarketError,
    InvalidProbabilityError,
    MarketNotFoundError,
    NotCreatorError,
)
from src.pm_common.id_generator import generate_id
from src.pm_market.application.schemas import (
    AddLiquidityRequest,
    AddLiquidityResponse,
    BetPointOut,
    CreateMarketRequest,
    InvariantReport,
    MarketDetail,
    OrderbookResponse,
    PayoutOut,
    PhaseResponse,
    PriceAtTimeResponse,
    PriceHistoryRequest,
    PriceHistoryResponse,
    PricePointOut,
    ResolveMarketRequest,
    ResolveMarketResponse,
)
from src.pm_market.domain.models import (
    Answer,
    BinaryOutcome,
    Market,
    MultipleChoiceOutcome,
)
from src.pm_market.domain.price_history import (
    get_bet_history,
    get_full_price_history,
    get_multi_choice_chart_data,
    get_price_at_time,
    get_price_history,
    record_price_points,
)
from src.pm_market.domain.repository import MarketStoreProtocol
from src.pm_matching.application.service import (
    cancel_market_orders,
    cancel_orders,
    get_order_book_levels,
)
from src.pm_risk.rules.balance_check import check_balance
from src.pm_risk.rules.market_status import check_answer_open, check_market_open

logger = logging.getLogger(__name__)

_SLUG_MAX_LEN = 48


def slugify(question: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", question.lower()).strip("-")
    return slug[:_SLUG_MAX_LEN].rstrip("-") or "market"


def advance_phase(market: Market, now: datetime) -> bool:
    """Move the market along sandbox -> graduating -> main; True if the phase changed."""
    if market.is_resolved:
        return False
    changed = False
    if (
        market.phase is MarketPhase.SANDBOX
        and market.volume >= settings.GRADUATION_VOLUME_THRESHOLD
    ):
        market.phase = MarketPhase.GRADUATING
        market.graduation_started_at = now
        changed = True
        logger.info("Market %s started graduating at volume %.2f", market.id, market.volume)
    if (
        market.phase is MarketPhase.GRADUATING
        and market.graduation_started_at is not None
        and now - market.graduation_started_at
        >= timedelta(seconds=settings.GRADUATION_TIMER_SECONDS)
    ):
        market.phase = MarketPhase.MAIN
        changed = True
        logger.info("Market %s graduated to the main phase", market.id)
    return changed


def _validate_answers(req: CreateMarketRequest) -> list[str]:
    if req.outcome_type is OutcomeType.BINARY:
        if req.answers:
            raise InvalidMarketError("binary markets take no answers")
        return []
    texts = [t.strip() for t in req.answers or []]
    if not settings.MIN_ANSWERS <= len(texts) <= settings.MAX_ANSWERS:
        raise InvalidMarketError(
            f"multiple choice markets need {settings.MIN_ANSWERS} to "
            f"{settings.MAX_ANSWERS} answers, got {len(texts)}"
        )
    if any(not t for t in texts):
        raise InvalidMarketError("answers must not be empty")
    if len({t.lower() for t in texts}) != len(texts):
        raise InvalidMarketError("answers must be unique")
    return texts


class MarketApplicationService:
    def __init__(self, store: MarketStoreProtocol) -> None:
        self._store = store

    def _get_market(self, market_id: str) -> Market:
        market = self._store.get_market(market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        return market

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_market(self, req: CreateMarketRequest, now: datetime) -> Market:
        if req.ante < settings.MINIMUM_ANTE:
            raise InvalidMarketError(f"ante must be at least {settings.MINIMUM_ANTE:.2f}")
        if not settings.MIN_CPMM_PROB <= req.initial_prob <= settings.MAX_CPMM_PROB:
            raise InvalidProbabilityError(req.initial_prob)
        texts = _validate_answers(req)

        creator = self._store.get_or_create_user(req.creator_id, now)
        check_balance(creator, req.ante)

        market_id = generate_id("mkt")
        outcome: BinaryOutcome | MultipleChoiceOutcome
        if req.outcome_type is OutcomeType.BINARY:
            outcome = BinaryOutcome(
                pool=create_initial_pool(req.ante, req.initial_prob),
                initial_prob=req.initial_prob,
            )
        else:
            per_answer = req.ante / len(texts)
            outcome = MultipleChoiceOutcome(
                answers=[
                    Answer(
                        id=generate_id("ans"),
                        contract_id=market_id,
                        text=text,
                        index=i,
                        pool=pool,
                        initial_prob=1 / len(texts),
                        total_liquidity=per_answer,
                        created_at=now,
                    )
                    for i, (text, pool) in enumerate(
                        zip(texts, create_multi_choice_pools(req.ante, len(texts)))
                    )
                ],
                should_answers_sum_to_one=req.should_answers_sum_to_one,
            )

        market = Market(
            id=market_id,
            slug=f"{slugify(req.question)}-{market_id[-6:]}",
            question=req.question,
            creator_id=req.creator_id,
            outcome=outcome,
            description=req.description,
            total_liquidity=req.ante,
            close_time=req.close_time,
            created_at=now,
        )
        self._store.update_balance(
            req.creator_id, -req.ante, LedgerEntryType.MARKET_ANTE, market_id, now=now
        )
        self._store.save_market(market, now)
        record_price_points(self._store, market, now)
        logger.info(
            "Created %s market %s (%d answers) with ante %.2f",
            market.outcome_type.value, market.id, len(market.answers), req.ante,
        )
        return market

    def get_market(self, market_id: str) -> MarketDetail:
        return MarketDetail.from_domain(self._get_market(market_id))

    # ------------------------------------------------------------------
    # Liquidity and phases
    # ------------------------------------------------------------------

    def add_liquidity(self, req: AddLiquidityRequest, now: datetime) -> AddLiquidityResponse:
        market = check_market_open(self._store.get_market(req.contract_id), req.contract_id)
        user = self._store.get_or_create_user(req.user_id, now)
        check_balance(user, req.amount)

        if isinstance(market.outcome, BinaryOutcome):
            if req.answer_id is not None:
                raise InvalidMarketError("binary markets have no answers")
            market.outcome.pool = add_liquidity(market.outcome.pool, req.amount, market.outcome.p)
        elif req.answer_id is not None:
            answer = check_answer_open(market, req.answer_id)
            answer.pool = add_liquidity(answer.pool, req.amount, answer.p)
            answer.total_liquidity += req.amount
        else:
            open_answers = [a for a in market.answers if not a.is_resolved]
            share = req.amount / len(open_answers)
            for answer in open_answers:
                answer.pool = add_liquidity(answer.pool, share, answer.p)
                answer.total_liquidity += share

        market.total_liquidity += req.amount
        user = self._store.update_balance(
            req.user_id, -req.amount, LedgerEntryType.LIQUIDITY_DEPOSIT, market.id, now=now
        )
        self._store.save_market(market, now)
        logger.info("Added %.2f liquidity to %s/%s", req.amount, market.id, req.answer_id)
        return AddLiquidityResponse(
            contract_id=market.id,
            answer_id=req.answer_id,
            amount=req.amount,
            total_liquidity=market.total_liquidity,
            new_balance=user.balance,
        )

    def advance_phase(self, market_id: str, now: datetime) -> PhaseResponse:
        market = self._get_market(market_id)
        changed = advance_phase(market, now)
        if changed:
            self._store.save_market(market, now)
        return PhaseResponse(
            contract_id=market.id,
            phase=market.phase.value,
            changed=changed,
            graduation_started_at=(
                market.graduation_started_at.isoformat() if market.graduation_started_at else None
            ),
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _metrics(self, market: Market, answer_id: str | None) -> list[ContractMetric]:
        return [m for m in self._store.list_metrics(market.id) if m.answer_id == answer_id]

    def _resolve_answer(
        self,
        market: Market,
        answer: Answer,
        resolution: Resolution,
        resolution_probability: float | None,
        now: datetime,
    ) -> list[Payout]:
        payouts = settle_positions(
            self._store, self._metrics(market, answer.id), resolution, resolution_probability,
            reference_id=answer.id, now=now,
        )
        answer.resolution = resolution
        answer.resolved_at = now
        return payouts

    def resolve_market(self, req: ResolveMarketRequest, now: datetime) -> ResolveMarketResponse:
        market = check_market_open(self._store.get_market(req.contract_id), req.contract_id)
        if req.resolver_id != market.creator_id:
            raise NotCreatorError(market.id)

        payouts: list[Payout] = []
        refunded = 0.0
        if market.is_binary:
            if req.answer_id is not None:
                raise InvalidMarketError("binary markets have no answers")
            payouts = settle_positions(
                self._store, self._metrics(market, None), req.resolution,
                req.resolution_probability, reference_id=market.id, now=now,
            )
            self._close(market, req.resolution, req.resolution_probability, now)
        elif req.answer_id is None:
            if req.resolution is not Resolution.CANCEL:
                raise InvalidMarketError("multiple choice markets resolve per answer")
            for answer in market.answers:
                if not answer.is_resolved:
                    payouts += self._resolve_answer(market, answer, Resolution.CANCEL, None, now)
            self._close(market, Resolution.CANCEL, None, now)
        else:
            answer = check_answer_open(market, req.answer_id)
            if market.is_sum_to_one:
                if req.resolution is not Resolution.YES:
                    raise InvalidMarketError(
                        "sum-to-one markets resolve by choosing the winning answer"
                    )
                payouts += self._resolve_answer(market, answer, Resolution.YES, None, now)
                for other in market.answers:
                    if not other.is_resolved:
                        payouts += self._resolve_answer(market, other, Resolution.NO, None, now)
                self._close(market, Resolution.YES, None, now)
            else:
                payouts += self._resolve_answer(
                    market, answer, req.resolution, req.resolution_probability, now
                )
                refunded += cancel_orders(
                    self._store,
                    [o for o in self._store.list_limit_orders(market.id, answer.id) if o.is_active],
                    now,
                )
                if all(a.is_resolved for a in market.answers):
                    self._close(market, req.resolution, req.resolution_probability, now)

        if market.is_resolved:
            refunded += cancel_market_orders(self._store, market.id, now)
        self._store.save_market(market, now)
        logger.info(
            "Resolved %s/%s as %s: %d payouts, %.4f refunded from orders",
            market.id, req.answer_id, req.resolution.value, len(payouts), refunded,
        )
        return ResolveMarketResponse(
            contract_id=market.id,
            answer_id=req.answer_id,
            resolution=req.resolution.value,
            market_resolved=market.is_resolved,
            payouts=[PayoutOut.from_domain(p) for p in payouts],
            refunded_orders=refunded,
        )

    @staticmethod
    def _close(
        market: Market,
        resolution: Resolution,
        resolution_probability: float | None,
        now: datetime,
    ) -> None:
        market.resolution = resolution
        market.resolution_probability = resolution_probability
        market.resolved_at = now

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_price_history(self, req: PriceHistoryRequest) -> PriceHistoryResponse:
        market = self._get_market(req.contract_id)
        self._check_answer(market, req.answer_id)
        if not market.is_binary and req.answer_id is None:
            series = get_multi_choice_chart_data(self._store, market, req.max_points)
            return PriceHistoryResponse(
                contract_id=market.id,
                answer_id=None,
                points=[],
                answers={
                    aid: [PricePointOut.from_domain(p) for p in pts]
                    for aid, pts in series.items()
                },
            )
        points = get_price_history(
            self._store, market.id, req.answer_id, req.max_points, req.after, req.before
        )
        return PriceHistoryResponse(
            contract_id=market.id,
            answer_id=req.answer_id,
            points=[PricePointOut.from_domain(p) for p in points],
        )

    def _check_answer(self, market: Market, answer_id: str | None) -> None:
        if answer_id is not None and market.get_answer(answer_id) is None:
            raise AnswerNotFoundError(answer_id)

    def get_full_price_history(
        self, market_id: str, answer_id: str | None = None
    ) -> PriceHistoryResponse:
        """Whole series, starting from the creation-time probability."""
        market = self._get_market(market_id)
        self._check_answer(market, answer_id)
        points = get_full_price_history(self._store, market, answer_id)
        return PriceHistoryResponse(
            contract_id=market.id,
            answer_id=answer_id,
            points=[PricePointOut.from_domain(p) for p in points],
        )

    def get_price_at_time(
        self, market_id: str, timestamp: int, answer_id: str | None = None
    ) -> PriceAtTimeResponse:
        market = self._get_market(market_id)
        self._check_answer(market, answer_id)
        return PriceAtTimeResponse(
            contract_id=market.id,
            answer_id=answer_id,
            timestamp=timestamp,
            probability=get_price_at_time(self._store, market.id, timestamp, answer_id),
        )

    def get_bet_history(self, market_id: str, limit: int = 100) -> list[BetPointOut]:
        market = self._get_market(market_id)
        return [BetPointOut.from_domain(p) for p in get_bet_history(self._store, market.id, limit)]

    def get_order_book(
        self, market_id: str, answer_id: str | None = None, now: datetime | None = None
    ) -> OrderbookResponse:
        market = self._get_market(market_id)
        snapshot = get_order_book_levels(self._store, market, answer_id, now)
        return OrderbookResponse.from_snapshot(snapshot)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def verify_all_invariants(self) -> InvariantReport:
        """Run the pool checks (INV-1/2/3) on open markets and the store-wide checks (INV-G)."""
        violations: list[str] = []
        for market in self._store.list_markets():
            if market.is_resolved:
                continue
            holders: list[BinaryOutcome | Answer] = (
                [market.outcome] if isinstance(market.outcome, BinaryOutcome)
                else [a for a in market.answers if not a.is_resolved]
            )
            for holder in holders:
                try:
                    verify_pool_invariants_after_trade(holder.pool, holder.pool, holder.p)
                except AssertionError as e:
                    violations.append(f"{market.id}: {e}")
        violations.extend(verify_global_invariants(self._store))
        return InvariantReport(ok=len(violations) == 0, violations=violations)
