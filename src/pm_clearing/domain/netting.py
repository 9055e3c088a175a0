"""Redemption: net a position's matching YES/NO shares back into cash.

One YES share plus one NO share on the same answer always pays exactly 1,
so ``min(yes, no)`` pairs are converted at 1 per pair. Running it twice in a
row is a no-op the second time.
"""

import logging
from datetime import datetime

from config.settings import settings
from src.pm_account.domain.models import ContractMetric
from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import LedgerEntryType, Outcome
from src.pm_common.errors import AnswerNotFoundError
from src.pm_common.id_generator import generate_id
from src.pm_market.domain.models import Market
from src.pm_market.domain.repository import MarketStoreProtocol
from src.pm_order.domain.models import Bet, Fill

logger = logging.getLogger(__name__)


def get_redeemable_amount(metric: ContractMetric) -> float:
    """Number of YES/NO pairs held; 0 when below the redemption epsilon."""
    pairs = max(min(metric.total_shares_yes, metric.total_shares_no), 0.0)
    if pairs < settings.REDEMPTION_EPSILON:
        return 0.0
    return pairs


def build_redemption_bets(
    user_id: str,
    contract_id: str,
    pairs: float,
    prob: float,
    now: datetime,
    answer_id: str | None = None,
) -> tuple[Bet, Bet]:
    """Two paired bets with negative shares; cash splits by the current prob."""
    group_id = generate_id("grp")
    bets = []
    for outcome, amount in (
        (Outcome.YES, prob * -pairs),
        (Outcome.NO, (1 - prob) * -pairs),
    ):
        bets.append(
            Bet(
                id=generate_id("bet"),
                user_id=user_id,
                contract_id=contract_id,
                outcome=outcome,
                amount=amount,
                shares=-pairs,
                prob_before=prob,
                prob_after=prob,
                created_at=now,
                answer_id=answer_id,
                fills=[Fill(None, amount, -pairs, now, is_redemption=True)],
                is_redemption=True,
                bet_group_id=group_id,
            )
        )
    return bets[0], bets[1]


def execute_redemption(
    store: MarketStoreProtocol,
    user_id: str,
    market: Market,
    answer_id: str | None = None,
    now: datetime | None = None,
) -> list[Bet]:
    """Redeem the user's pairs on one (market, answer); returns the bets written."""
    metric = store.get_or_create_metric(user_id, market.id, answer_id)
    pairs = get_redeemable_amount(metric)
    if pairs == 0:
        return []

    if answer_id is None:
        prob = market.prob
    else:
        answer = market.get_answer(answer_id)
        if answer is None:
            raise AnswerNotFoundError(answer_id)
        prob = answer.prob
    assert prob is not None

    now = now or utc_now()
    yes_bet, no_bet = build_redemption_bets(user_id, market.id, pairs, prob, now, answer_id)
    store.add_bet(yes_bet)
    store.add_bet(no_bet)

    metric.apply(Outcome.YES, yes_bet.amount, yes_bet.shares, now)
    metric.apply(Outcome.NO, no_bet.amount, no_bet.shares, now)
    store.save_metric(metric)
    store.update_balance(
        user_id, pairs, LedgerEntryType.REDEMPTION, yes_bet.bet_group_id, now=now
    )

    logger.info(
        "Redeemed %.6f pairs for %s on %s/%s", pairs, user_id, market.id, answer_id
    )
    return [yes_bet, no_bet]
