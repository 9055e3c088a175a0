from src.pm_common.enums import MarketPhase
from src.pm_common.errors import (
    AnswerNotFoundError,
    MarketNotFoundError,
    MarketResolvedError,
    PhaseRestrictedError,
)
from src.pm_market.domain.models import Answer, Market


def check_market_open(market: Market | None, market_id: str) -> Market:
    if market is None:
        raise MarketNotFoundError(market_id)
    if market.is_resolved:
        raise MarketResolvedError(market_id)
    return market


def check_answer_open(market: Market, answer_id: str | None) -> Answer:
    answer = market.get_answer(answer_id)
    if answer is None:
        raise AnswerNotFoundError(answer_id)
    if answer.is_resolved:
        raise MarketResolvedError(market.id)
    return answer


def check_main_phase(market: Market) -> None:
    """Resting limit orders are only accepted once the market is in the main phase."""
    if market.phase is not MarketPhase.MAIN:
        raise PhaseRestrictedError(market.id, market.phase.value)
