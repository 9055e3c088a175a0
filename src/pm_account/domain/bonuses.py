"""Unique-bettor bonus and daily betting streaks.

Both are best-effort side effects of a trade: callers log and swallow
failures so a bonus problem never rolls back the bet that triggered it.
"""

import logging
from datetime import datetime

from config.settings import settings
from src.pm_common.datetime_utils import is_previous_utc_day, utc_day
from src.pm_common.enums import LedgerEntryType
from src.pm_market.domain.models import Market
from src.pm_market.domain.repository import MarketStoreProtocol
from src.pm_order.domain.models import Bet

logger = logging.getLogger(__name__)


def is_new_bettor(store: MarketStoreProtocol, market: Market, bet: Bet) -> bool:
    """True if ``bet`` is the user's first non-redemption bet on the market."""
    return not any(
        b.user_id == bet.user_id
        and b.id != bet.id
        and not b.is_redemption
        and (bet.bet_group_id is None or b.bet_group_id != bet.bet_group_id)
        for b in store.get_bets(market.id)
    )


def pay_unique_bettor_bonus(store: MarketStoreProtocol, market: Market, bet: Bet) -> float:
    """Pay the creator for a new bettor; returns the amount paid."""
    if bet.user_id == market.creator_id or bet.is_redemption:
        return 0.0
    if not is_new_bettor(store, market, bet):
        return 0.0
    amount = settings.UNIQUE_BETTOR_BONUS_AMOUNT
    store.update_balance(
        market.creator_id, amount, LedgerEntryType.UNIQUE_BETTOR_BONUS, bet.id,
        now=bet.created_at,
    )
    market.unique_bettor_count += 1
    logger.info(
        "Paid %.2f unique bettor bonus to %s for %s on %s",
        amount, market.creator_id, bet.user_id, market.id,
    )
    return amount


def get_streak_bonus(streak: int) -> float:
    amounts = settings.STREAK_BONUS_AMOUNTS
    if streak <= 0 or not amounts:
        return 0.0
    return amounts[min(streak, len(amounts) - 1)]


def update_betting_streak(store: MarketStoreProtocol, bet: Bet, now: datetime) -> float:
    """Advance the user's streak on their first bet of a UTC day; returns the bonus paid."""
    if bet.is_redemption:
        return 0.0
    user = store.get_or_create_user(bet.user_id, now)
    last = user.last_bet_at
    if last is not None and utc_day(last) == utc_day(now):
        return 0.0

    if last is not None and is_previous_utc_day(last, now):
        user.current_betting_streak += 1
    else:
        user.current_betting_streak = 1
    user.last_bet_at = now

    bonus = get_streak_bonus(user.current_betting_streak)
    if bonus > 0:
        store.update_balance(user.id, bonus, LedgerEntryType.STREAK_BONUS, bet.id, now=now)
        logger.info(
            "Day %d streak bonus %.2f to %s", user.current_betting_streak, bonus, user.id
        )
    return bonus
