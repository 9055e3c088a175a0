# src/pm_clearing/domain/global_invariants.py
"""Store-wide consistency checks (INV-G)."""
import logging

from src.pm_clearing.domain.invariants import check_sum_to_one
from src.pm_common.numeric import EPSILON
from src.pm_market.domain.repository import MarketStoreProtocol

logger = logging.getLogger(__name__)

SHARE_TOLERANCE = 1e-6


def verify_global_invariants(store: MarketStoreProtocol) -> list[str]:
    """Check every market, position and balance. Returns list of violation strings."""
    violations: list[str] = []
    for market in store.list_markets():
        violations.extend(check_sum_to_one(market))
        for metric in store.list_metrics(market.id):
            for label, shares in (
                ("YES", metric.total_shares_yes),
                ("NO", metric.total_shares_no),
            ):
                if shares < -SHARE_TOLERANCE:
                    violations.append(
                        f"INV-G violated: {metric.user_id} holds {shares:.6f} {label} "
                        f"shares on {market.id}/{metric.answer_id}"
                    )
    for user in store.list_users():
        if user.balance < -EPSILON:
            violations.append(f"INV-G violated: user {user.id} balance {user.balance:.6f} < 0")

    for msg in violations:
        logger.error(msg)
    return violations
