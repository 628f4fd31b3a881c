from decimal import Decimal

import pytest
import pytest_asyncio
from aiohttp import test_utils

from feeledger.adapters.mock import MockNodeClient
from feeledger.core.fee_history import FeeHistoryFetcher
from feeledger.core.gas_fees import GasFeeResolver
from feeledger.core.models import (
    EthGasPriceEstimate,
    LedgerState,
    TransactionRecord,
    TransactionStatus,
    TxParams,
)
from feeledger.core.store import TransactionStore
from main import build_app

GWEI = 1_000_000_000


async def legacy_oracle():
    return EthGasPriceEstimate(gas_price=Decimal("4"))


@pytest.fixture
def store():
    return TransactionStore(LedgerState(transactions=[
        TransactionRecord(id="tx-1", status=TransactionStatus.UNAPPROVED, origin="wallet", tx_params=TxParams(nonce=1)),
    ]))


@pytest.fixture
def node():
    node = MockNodeClient(latest_block=2, gas_price=3 * GWEI)
    node.set_fee_history(2, 2, [50], {
        "oldestBlock": 1,
        "baseFeePerGas": [GWEI, 2 * GWEI, 3 * GWEI],
        "gasUsedRatio": [0.25, 0.5],
        "reward": [[GWEI], [2 * GWEI]],
    })
    return node


@pytest_asyncio.fixture
async def client(store, node):
    app = build_app(store, FeeHistoryFetcher(node), GasFeeResolver(legacy_oracle, node), eip1559=False)
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        yield client


@pytest.mark.asyncio
async def test_healthz_and_transactions(client):
    r = await client.get("/healthz")
    assert r.status == 200
    assert await r.json() == {"status": "ok", "transactions": 1}

    r = await client.get("/transactions")
    body = await r.json()
    assert body["transactions"][0]["id"] == "tx-1"
    assert body["transactions"][0]["txParams"]["nonce"] == 1


@pytest.mark.asyncio
async def test_fee_history_endpoint(client):
    r = await client.get("/fee-history", params={"blocks": "2", "percentiles": "50", "includeNextBlock": "true"})

    assert r.status == 200
    blocks = await r.json()
    assert [b["number"] for b in blocks] == [1, 2, 3]
    assert blocks[0]["priorityFeesByPercentile"] == {"50": GWEI}
    assert blocks[2]["priorityFeesByPercentile"] is None


@pytest.mark.asyncio
async def test_fee_history_rejects_bad_requests(client):
    r = await client.get("/fee-history", params={"blocks": "2", "percentiles": "60,50"})
    assert r.status == 400

    r = await client.get("/fee-history", params={"blocks": "many"})
    assert r.status == 400


@pytest.mark.asyncio
async def test_gas_fee_resolution_endpoint(client, store):
    r = await client.post("/transactions/tx-1/gas-fees")

    assert r.status == 200
    assert (await r.json())["txParams"]["gasPrice"] == 4 * GWEI
    assert store.get_transaction("tx-1").tx_params.gas_price == 4 * GWEI

    r = await client.post("/transactions/missing/gas-fees")
    assert r.status == 404
