# /feeledger/core/gas_estimator.py
# Fee-market gas estimates derived from recent fee history. Used by the gas
# fee oracle when the hosted gas API is unavailable.

from decimal import Decimal
from typing import List

from web3 import Web3

from feeledger.core.fee_history import FeeHistoryFetcher
from feeledger.core.logger import get_logger
from feeledger.core.models import BlockFeeRecord, FeeMarketEstimate, FeeMarketTier

log = get_logger(__name__)

NUMBER_OF_RECENT_BLOCKS = 5

# percentile, base fee multiplier %, priority fee multiplier %, priority fee floor (wei)
PRIORITY_LEVELS = {
    "low": (10, 110, 94, 1_000_000_000),
    "medium": (20, 120, 97, 1_500_000_000),
    "high": (30, 125, 98, 2_000_000_000),
}


def median_of(numbers: List[int]) -> int:
    """Lower median: for an even count the smaller middle value is used."""
    ordered = sorted(numbers)
    return ordered[(len(ordered) - 1) // 2]


def _to_gwei(wei: int) -> Decimal:
    return Decimal(Web3.from_wei(wei, "gwei"))


def calculate_priority_level(blocks: List[BlockFeeRecord], level: str) -> FeeMarketTier:
    percentile, base_fee_multiplier, priority_fee_multiplier, min_priority_fee = PRIORITY_LEVELS[level]
    latest_base_fee = blocks[-1].base_fee_per_gas or 0
    adjusted_base_fee = latest_base_fee * base_fee_multiplier // 100

    priority_fees = [
        block.priority_fees_by_percentile[percentile]
        for block in blocks
        if block.priority_fees_by_percentile and percentile in block.priority_fees_by_percentile
    ]
    median_priority_fee = median_of(priority_fees) if priority_fees else 0
    adjusted_priority_fee = median_priority_fee * priority_fee_multiplier // 100
    suggested_priority_fee = max(adjusted_priority_fee, min_priority_fee)

    return FeeMarketTier(
        suggested_max_priority_fee_per_gas=_to_gwei(suggested_priority_fee),
        suggested_max_fee_per_gas=_to_gwei(adjusted_base_fee + suggested_priority_fee),
    )


class FeeHistoryGasEstimator:
    """Low/medium/high fee-market suggestions from the latest few blocks."""
    def __init__(self, fetcher: FeeHistoryFetcher):
        self.fetcher = fetcher

    async def estimate(self) -> FeeMarketEstimate:
        percentiles = sorted(level[0] for level in PRIORITY_LEVELS.values())
        blocks = await self.fetcher.fetch(NUMBER_OF_RECENT_BLOCKS, percentiles=percentiles)
        if not blocks:
            raise ValueError("No fee history available to estimate gas fees")

        estimate = FeeMarketEstimate(
            low=calculate_priority_level(blocks, "low"),
            medium=calculate_priority_level(blocks, "medium"),
            high=calculate_priority_level(blocks, "high"),
            estimated_base_fee=_to_gwei(blocks[-1].base_fee_per_gas or 0),
        )
        log.debug("FEE_HISTORY_ESTIMATE_CALCULATED", medium=str(estimate.medium.suggested_max_fee_per_gas))
        return estimate
