"""Commit a solved arbitrage plan: write every leg's pool and record its bet.

Called exactly once per trade, after the solver has converged on a plan.
All legs are checked against the live pools before anything is written.
"""

import logging
from datetime import datetime

from src.pm_arbitrage.domain.models import ArbitrageLeg, ArbitrageResult
from src.pm_common.errors import AnswerNotFoundError, MarketResolvedError
from src.pm_common.id_generator import generate_id
from src.pm_market.domain.models import Answer, Market
from src.pm_market.domain.repository import MarketStoreProtocol
from src.pm_order.domain.models import Bet, Fill

logger = logging.getLogger(__name__)


def _leg_answer(market: Market, leg: ArbitrageLeg) -> Answer:
    answer = market.get_answer(leg.answer_id)
    if answer is None:
        raise AnswerNotFoundError(leg.answer_id)
    if answer.is_resolved:
        raise MarketResolvedError(market.id)
    if answer.pool != leg.pool_before:
        raise RuntimeError(f"pool of answer {answer.id} changed after the plan was solved")
    return answer


def _leg_bet(
    market: Market,
    leg: ArbitrageLeg,
    user_id: str,
    now: datetime,
    bet_group_id: str,
) -> Bet:
    return Bet(
        id=generate_id("bet"),
        user_id=user_id,
        contract_id=market.id,
        outcome=leg.outcome,
        amount=leg.amount,
        shares=leg.shares,
        prob_before=leg.prob_before,
        prob_after=leg.prob_after,
        created_at=now,
        answer_id=leg.answer_id,
        fees=leg.fees,
        fills=[
            Fill(
                matched_bet_id=None,
                amount=f.amount,
                shares=f.shares,
                timestamp=now,
                fees=f.fees,
                is_sale=f.is_sale,
                is_redemption=f.is_redemption,
            )
            for f in leg.fills
        ],
        bet_group_id=bet_group_id,
    )


def commit_arbitrage(
    store: MarketStoreProtocol,
    market: Market,
    result: ArbitrageResult,
    user_id: str,
    now: datetime,
    bet_group_id: str | None = None,
) -> list[Bet]:
    """Apply ``result`` to the market's answers; returns bets, target first."""
    if market.is_resolved:
        raise MarketResolvedError(market.id)
    group_id = bet_group_id or generate_id("grp")
    answers = [_leg_answer(market, leg) for leg in result.legs]

    bets: list[Bet] = []
    for answer, leg in zip(answers, result.legs):
        answer.pool = leg.pool_after
        answer.volume += leg.pool_volume
        bet = _leg_bet(market, leg, user_id, now, group_id)
        store.add_bet(bet)
        bets.append(bet)

    market.volume += abs(result.target.amount)
    market.last_bet_at = now
    logger.info(
        "Committed arbitrage %s on %s: %d legs, s=%.6f, sum=%.6f",
        group_id, market.id, len(bets), result.solved_shares, result.total_prob_after,
    )
    return bets
