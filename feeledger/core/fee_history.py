# /feeledger/core/fee_history.py
# Turns eth_feeHistory, which caps each call at 1024 blocks, into an
# arbitrarily long per-block series annotated with priority-fee percentiles.

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple

from feeledger.core.logger import get_logger, FEE_HISTORY_REQUESTS
from feeledger.core.models import BlockFeeRecord
from feeledger.core.rpc import to_int

log = get_logger(__name__)

MAX_NUMBER_OF_BLOCKS_PER_ETH_FEE_HISTORY_CALL = 1024


class InvalidFeeHistoryRequest(ValueError):
    pass


def _validate(number_of_blocks: Any, end_block: Any, percentiles: Sequence[Any]):
    if isinstance(number_of_blocks, bool) or not isinstance(number_of_blocks, int) or number_of_blocks < 0:
        raise InvalidFeeHistoryRequest(f"numberOfBlocks must be a non-negative integer, got {number_of_blocks!r}")
    if end_block is not None and (isinstance(end_block, bool) or not isinstance(end_block, int) or end_block < 0):
        raise InvalidFeeHistoryRequest(f"endBlock must be a non-negative integer, got {end_block!r}")
    previous = None
    for percentile in percentiles:
        if isinstance(percentile, bool) or not isinstance(percentile, int) or not 0 <= percentile <= 100:
            raise InvalidFeeHistoryRequest(f"percentiles must be integers between 0 and 100, got {percentile!r}")
        if previous is not None and percentile <= previous:
            raise InvalidFeeHistoryRequest("percentiles must be strictly ascending")
        previous = percentile


def chunk_block_range(end_block: int, number_of_blocks: int) -> List[Tuple[int, int]]:
    """
    Splits the ``number_of_blocks`` blocks ending at ``end_block`` into
    ``(chunk_size, chunk_end_block)`` pairs, oldest first. Every chunk but the
    last is full; the chunk ending at ``end_block`` carries the remainder.
    """
    start_block = end_block - number_of_blocks + 1
    chunks = []
    chunk_start = start_block
    while chunk_start <= end_block:
        chunk_end = min(chunk_start + MAX_NUMBER_OF_BLOCKS_PER_ETH_FEE_HISTORY_CALL - 1, end_block)
        chunks.append((chunk_end - chunk_start + 1, chunk_end))
        chunk_start = chunk_end + 1
    return chunks


def _build_priority_fees(percentiles: Sequence[int], rewards: Optional[List[Any]], block_index: int) -> Dict[int, int]:
    if not percentiles or not rewards or block_index >= len(rewards) or not rewards[block_index]:
        return {}
    return {percentile: to_int(reward) for percentile, reward in zip(percentiles, rewards[block_index])}


def build_chunk_records(
    response: Optional[Dict[str, Any]],
    chunk_size: int,
    percentiles: Sequence[int],
    include_next_block: bool = False,
) -> List[BlockFeeRecord]:
    """Converts one eth_feeHistory response into per-block records."""
    if not response:
        return []
    base_fees = response.get("baseFeePerGas")
    gas_used_ratios = response.get("gasUsedRatio")
    if not base_fees or (gas_used_ratios is not None and len(gas_used_ratios) == 0):
        return []

    oldest_block = to_int(response.get("oldestBlock"))
    rewards = response.get("reward")
    if gas_used_ratios is not None:
        existing = min(len(gas_used_ratios), len(base_fees))
    else:
        existing = min(chunk_size, len(base_fees))

    records = []
    for index in range(existing):
        records.append(BlockFeeRecord(
            number=oldest_block + index,
            base_fee_per_gas=to_int(base_fees[index]),
            gas_used_ratio=gas_used_ratios[index] if gas_used_ratios is not None else None,
            priority_fees_by_percentile=_build_priority_fees(percentiles, rewards, index),
        ))

    if include_next_block and len(base_fees) > existing:
        # baseFeePerGas carries one extra entry: the projected base fee of the
        # block after the newest one returned.
        records.append(BlockFeeRecord(
            number=oldest_block + existing,
            base_fee_per_gas=to_int(base_fees[existing]),
            gas_used_ratio=None,
            priority_fees_by_percentile=None,
        ))
    return records


class FeeHistoryFetcher:
    """
    Fetches per-block fee data for a range of blocks, splitting the range into
    chunks the node will accept and reassembling them in block order.
    """
    def __init__(self, node):
        self.node = node

    async def fetch(
        self,
        number_of_blocks: int,
        end_block: Optional[int] = None,
        percentiles: Optional[Sequence[int]] = None,
        include_next_block: bool = False,
    ) -> List[BlockFeeRecord]:
        """
        Args:
            number_of_blocks: How many blocks, ending at ``end_block``, to return.
            end_block: Newest block of the range. Defaults to the latest block.
            percentiles: Priority-fee percentiles to sample for every block.
            include_next_block: Append the projected base fee of the block
                after ``end_block`` as a synthetic trailing record.

        Returns:
            One ``BlockFeeRecord`` per block, in ascending block order.
        """
        percentiles = list(percentiles or [])
        _validate(number_of_blocks, end_block, percentiles)
        if number_of_blocks == 0:
            return []

        if end_block is None:
            end_block = await self.node.block_number()

        if number_of_blocks > end_block:
            log.debug("FEE_HISTORY_RANGE_CLAMPED", requested=number_of_blocks, end_block=end_block)
            number_of_blocks = end_block
        if number_of_blocks == 0:
            return []

        chunks = chunk_block_range(end_block, number_of_blocks)
        last_index = len(chunks) - 1

        async def fetch_chunk(index: int, chunk_size: int, chunk_end: int) -> List[BlockFeeRecord]:
            FEE_HISTORY_REQUESTS.inc()
            response = await self.node.fee_history(chunk_size, chunk_end, percentiles)
            return build_chunk_records(
                response,
                chunk_size,
                percentiles,
                include_next_block=include_next_block and index == last_index,
            )

        # gather returns results in argument order, whatever order the
        # responses arrive in.
        results = await asyncio.gather(*(
            fetch_chunk(index, chunk_size, chunk_end)
            for index, (chunk_size, chunk_end) in enumerate(chunks)
        ))

        blocks = [record for chunk in results for record in chunk]
        log.debug("FEE_HISTORY_FETCHED", end_block=end_block, chunks=len(chunks), blocks=len(blocks))
        return blocks
