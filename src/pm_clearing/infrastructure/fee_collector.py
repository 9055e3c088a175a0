"""Fee collection: credit creator and platform accounts from a trade's fees.

The liquidity bucket is not paid out here: it was already folded into the
traded pool when the trade was simulated.
"""
import logging
from datetime import datetime

from src.pm_account.domain.constants import PLATFORM_USER_ID
from src.pm_clearing.domain.fee import Fees
from src.pm_common.enums import LedgerEntryType
from src.pm_market.domain.models import Market
from src.pm_market.domain.repository import MarketStoreProtocol

logger = logging.getLogger(__name__)


def collect_fees(
    store: MarketStoreProtocol,
    market: Market,
    fees: Fees,
    reference_id: str | None = None,
    now: datetime | None = None,
) -> None:
    if fees.creator_fee > 0:
        store.update_balance(
            market.creator_id, fees.creator_fee, LedgerEntryType.CREATOR_FEE, reference_id,
            now=now,
        )
    if fees.platform_fee > 0:
        store.update_balance(
            PLATFORM_USER_ID, fees.platform_fee, LedgerEntryType.PLATFORM_FEE, reference_id,
            now=now,
        )
    if fees.total > 0:
        logger.debug(
            "Collected fees on %s: creator=%.4f platform=%.4f liquidity=%.4f",
            market.id, fees.creator_fee, fees.platform_fee, fees.liquidity_fee,
        )
