import pytest

from feeledger.adapters.mock import MockNodeClient
from feeledger.core.fee_history import (
    FeeHistoryFetcher,
    InvalidFeeHistoryRequest,
    chunk_block_range,
)
from feeledger.core.models import BlockFeeRecord

GWEI = 1_000_000_000


def block(number, base_fee, ratio, priority_fees=None):
    return BlockFeeRecord(
        number=number,
        base_fee_per_gas=base_fee,
        gas_used_ratio=ratio,
        priority_fees_by_percentile={} if priority_fees is None else priority_fees,
    )


@pytest.fixture
def node():
    node = MockNodeClient(latest_block=3)
    node.set_fee_history(3, 3, [], {
        "oldestBlock": 1,
        # One more entry than requested: the projected base fee of block 4.
        "baseFeePerGas": [10 * GWEI, 20 * GWEI, 30 * GWEI, 40 * GWEI],
        "gasUsedRatio": [0.1, 0.2, 0.3],
    })
    return node


@pytest.mark.asyncio
async def test_fetch_organizes_history_by_block(node):
    blocks = await FeeHistoryFetcher(node).fetch(3)

    assert blocks == [
        block(1, 10 * GWEI, 0.1),
        block(2, 20 * GWEI, 0.2),
        block(3, 30 * GWEI, 0.3),
    ]
    assert node.calls_to("block_number") == [("block_number",)]


@pytest.mark.asyncio
async def test_include_next_block_appends_projected_base_fee(node):
    blocks = await FeeHistoryFetcher(node).fetch(3, include_next_block=True)

    assert len(blocks) == 4
    assert blocks[-1] == BlockFeeRecord(
        number=4, base_fee_per_gas=40 * GWEI, gas_used_ratio=None, priority_fees_by_percentile=None
    )


@pytest.mark.asyncio
async def test_rewards_are_matched_to_percentiles():
    node = MockNodeClient(latest_block=3)
    node.set_fee_history(3, 3, [10, 20, 30], {
        "oldestBlock": hex(1),
        "baseFeePerGas": [hex(100 * GWEI), hex(200 * GWEI), hex(300 * GWEI), hex(400 * GWEI)],
        "gasUsedRatio": [0.1, 0.2, 0.3],
        "reward": [
            [hex(10 * GWEI), hex(15 * GWEI), hex(20 * GWEI)],
            [hex(0), hex(10 * GWEI), hex(15 * GWEI)],
            [hex(20 * GWEI), hex(20 * GWEI), hex(30 * GWEI)],
        ],
    })

    blocks = await FeeHistoryFetcher(node).fetch(3, percentiles=[10, 20, 30])

    assert [b.priority_fees_by_percentile for b in blocks] == [
        {10: 10 * GWEI, 20: 15 * GWEI, 30: 20 * GWEI},
        {10: 0, 20: 10 * GWEI, 30: 15 * GWEI},
        {10: 20 * GWEI, 20: 20 * GWEI, 30: 30 * GWEI},
    ]
    assert blocks[0].base_fee_per_gas == 100 * GWEI


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    {"oldestBlock": 0, "baseFeePerGas": [], "gasUsedRatio": []},
    {"oldestBlock": 0, "baseFeePerGas": [], "gasUsedRatio": [], "reward": []},
    {"oldestBlock": 0, "gasUsedRatio": None},
    None,
])
async def test_empty_responses_yield_no_blocks(response):
    node = MockNodeClient(latest_block=3)
    node.set_fee_history(3, 3, [10, 20, 30], response)

    assert await FeeHistoryFetcher(node).fetch(3, percentiles=[10, 20, 30]) == []


@pytest.mark.asyncio
async def test_missing_gas_used_ratio_and_reward_become_empty_values():
    node = MockNodeClient(latest_block=2)
    node.set_fee_history(2, 2, [50], {
        "oldestBlock": 1,
        "baseFeePerGas": [GWEI, 2 * GWEI, 3 * GWEI],
        "gasUsedRatio": None,
    })

    blocks = await FeeHistoryFetcher(node).fetch(2, percentiles=[50])

    assert blocks == [block(1, GWEI, None), block(2, 2 * GWEI, None)]


@pytest.mark.asyncio
async def test_explicit_end_block_skips_block_number_query():
    node = MockNodeClient(latest_block=999)
    node.set_fee_history(3, 3, [], {"oldestBlock": 0, "baseFeePerGas": [], "gasUsedRatio": []})

    assert await FeeHistoryFetcher(node).fetch(3, end_block=3) == []
    assert node.calls_to("block_number") == []
    assert node.calls_to("fee_history") == [("fee_history", 3, 3, ())]


def test_chunk_block_range_keeps_remainder_in_last_chunk():
    assert chunk_block_range(2348, 2348) == [(1024, 1024), (1024, 2048), (300, 2348)]
    assert chunk_block_range(5000, 1024) == [(1024, 5000)]
    assert chunk_block_range(10, 1) == [(1, 10)]


@pytest.mark.asyncio
async def test_large_ranges_are_fetched_in_chunks_and_reassembled_in_order():
    latest = 2348
    node = MockNodeClient(latest_block=latest)
    for start, end, delay in [(1, 1024, 0.05), (1025, 2048, 0.0), (2049, 2348, 0.01)]:
        numbers = range(start, end + 2)
        node.set_fee_history(end - start + 1, end, [], {
            "oldestBlock": hex(start),
            "baseFeePerGas": [hex(n * GWEI) for n in numbers],
            "gasUsedRatio": [n / latest for n in range(start, end + 1)],
        }, delay=delay)

    blocks = await FeeHistoryFetcher(node).fetch(latest, include_next_block=True)

    sizes = sorted(call[1] for call in node.calls_to("fee_history"))
    assert sizes == [300, 1024, 1024]
    assert [b.number for b in blocks] == list(range(1, latest + 2))
    assert blocks[1023].base_fee_per_gas == 1024 * GWEI
    assert blocks[1024].base_fee_per_gas == 1025 * GWEI
    # Only the final chunk contributes a projected next block.
    assert [b.number for b in blocks if b.priority_fees_by_percentile is None] == [latest + 1]


@pytest.mark.asyncio
async def test_range_is_clamped_to_existing_blocks():
    node = MockNodeClient()
    node.set_fee_history(1024, 1024, [], {"oldestBlock": 0, "baseFeePerGas": [], "gasUsedRatio": [], "reward": []})

    await FeeHistoryFetcher(node).fetch(2048, end_block=1024)

    assert node.calls_to("fee_history") == [("fee_history", 1024, 1024, ())]


@pytest.mark.asyncio
async def test_zero_blocks_issue_no_queries():
    node = MockNodeClient(latest_block=100)

    assert await FeeHistoryFetcher(node).fetch(0) == []
    assert node.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("kwargs", [
    {"number_of_blocks": -1},
    {"number_of_blocks": 1.5},
    {"number_of_blocks": 3, "percentiles": [10, 101]},
    {"number_of_blocks": 3, "percentiles": [30, 20]},
    {"number_of_blocks": 3, "percentiles": [10, 10]},
    {"number_of_blocks": 3, "percentiles": ["10"]},
    {"number_of_blocks": 3, "end_block": -5},
])
async def test_invalid_requests_are_rejected_before_any_query(kwargs):
    node = MockNodeClient(latest_block=100)

    with pytest.raises(InvalidFeeHistoryRequest):
        await FeeHistoryFetcher(node).fetch(**kwargs)
    assert node.calls == []


@pytest.mark.asyncio
async def test_chunk_failure_propagates():
    node = MockNodeClient(latest_block=3)
    node.fail("fee_history", ConnectionError("node down"))

    with pytest.raises(ConnectionError):
        await FeeHistoryFetcher(node).fetch(3)


@pytest.mark.asyncio
async def test_block_number_failure_propagates():
    node = MockNodeClient()
    node.fail("block_number", ConnectionError("node down"))

    with pytest.raises(ConnectionError):
        await FeeHistoryFetcher(node).fetch(3)
    assert node.calls_to("fee_history") == []
