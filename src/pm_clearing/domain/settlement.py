"""Market settlement: pay out positions according to a resolution."""

import logging
from dataclasses import dataclass
from datetime import datetime

from src.pm_account.domain.models import ContractMetric
from src.pm_common.enums import LedgerEntryType, Resolution
from src.pm_market.domain.repository import MarketStoreProtocol

logger = logging.getLogger(__name__)

DEFAULT_MKT_PROBABILITY = 0.5


@dataclass(frozen=True)
class Payout:
    user_id: str
    amount: float
    answer_id: str | None = None


def calculate_payout(
    metric: ContractMetric,
    resolution: Resolution,
    resolution_probability: float | None = None,
) -> float:
    if resolution is Resolution.YES:
        return metric.total_shares_yes
    if resolution is Resolution.NO:
        return metric.total_shares_no
    if resolution is Resolution.MKT:
        prob = DEFAULT_MKT_PROBABILITY if resolution_probability is None else resolution_probability
        return metric.total_shares_yes * prob + metric.total_shares_no * (1 - prob)
    return metric.invested


def calculate_payouts(
    metrics: list[ContractMetric],
    resolution: Resolution,
    resolution_probability: float | None = None,
) -> list[Payout]:
    """Payout per position; positions that would receive nothing are dropped."""
    payouts = []
    for metric in metrics:
        amount = calculate_payout(metric, resolution, resolution_probability)
        if amount > 0:
            payouts.append(Payout(metric.user_id, amount, metric.answer_id))
    return payouts


def settle_positions(
    store: MarketStoreProtocol,
    metrics: list[ContractMetric],
    resolution: Resolution,
    resolution_probability: float | None = None,
    reference_id: str | None = None,
    now: datetime | None = None,
) -> list[Payout]:
    """Credit winners and stamp payout/profit on every settled position."""
    payouts = calculate_payouts(metrics, resolution, resolution_probability)
    for payout in payouts:
        store.update_balance(
            payout.user_id, payout.amount, LedgerEntryType.SETTLEMENT_PAYOUT, reference_id,
            now=now,
        )
    for metric in metrics:
        amount = calculate_payout(metric, resolution, resolution_probability)
        metric.payout = max(amount, 0.0)
        metric.profit = metric.payout - metric.invested
        store.save_metric(metric)
    logger.info(
        "Settled %d positions as %s: %d payouts, total %.4f",
        len(metrics), resolution.value, len(payouts), sum(p.amount for p in payouts),
    )
    return payouts
