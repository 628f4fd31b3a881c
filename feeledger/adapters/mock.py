# /feeledger/adapters/mock.py
# In-memory stand-ins for the node, HTTP and indexer collaborators.
# Used by the test-suite and for running the service without live endpoints.

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from feeledger.core.logger import get_logger
from feeledger.core.models import RemoteTransactionSourceRequest, TransactionRecord

log = get_logger(__name__)


class MockNodeClient:
    """
    Scripted node. Fee-history responses are keyed by
    ``(block_count, newest_block, tuple(percentiles))``; every call is recorded.
    """
    def __init__(self, latest_block: int = 0, gas_price: Optional[int] = None):
        self.latest_block = latest_block
        self._gas_price = gas_price
        self.fee_history_responses: Dict[Tuple[int, int, tuple], Any] = {}
        self.fee_history_delays: Dict[Tuple[int, int, tuple], float] = {}
        self.receipts: Dict[str, dict] = {}
        self.base_fee_per_gas: Optional[int] = None
        self.calls: List[tuple] = []
        self._failures: Dict[str, Exception] = {}

    def set_fee_history(self, block_count: int, newest_block: int, percentiles, response, delay: float = 0.0):
        key = (block_count, newest_block, tuple(percentiles or []))
        self.fee_history_responses[key] = response
        self.fee_history_delays[key] = delay

    def fail(self, method: str, error: Exception):
        """Make the next calls to ``method`` raise ``error``."""
        self._failures[method] = error

    def _check(self, method: str):
        if method in self._failures:
            raise self._failures[method]

    async def block_number(self) -> int:
        self.calls.append(("block_number",))
        self._check("block_number")
        return self.latest_block

    async def fee_history(self, block_count: int, newest_block: int, reward_percentiles) -> Any:
        key = (block_count, newest_block, tuple(reward_percentiles or []))
        self.calls.append(("fee_history",) + key)
        self._check("fee_history")
        if self.fee_history_delays.get(key):
            await asyncio.sleep(self.fee_history_delays[key])
        if key not in self.fee_history_responses:
            raise KeyError(f"No scripted eth_feeHistory response for {key}")
        return self.fee_history_responses[key]

    async def gas_price(self) -> int:
        self.calls.append(("gas_price",))
        self._check("gas_price")
        return self._gas_price

    async def get_latest_block(self) -> dict:
        self.calls.append(("get_latest_block",))
        self._check("get_latest_block")
        return {"number": self.latest_block, "baseFeePerGas": self.base_fee_per_gas}

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        self.calls.append(("get_transaction_receipt", tx_hash))
        self._check("get_transaction_receipt")
        return self.receipts.get(tx_hash)

    async def supports_eip1559(self) -> bool:
        latest = await self.get_latest_block()
        return latest.get("baseFeePerGas") is not None

    def calls_to(self, method: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == method]


class _MockResponse:
    def __init__(self, payload: Any, status: int = 200):
        self._payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise RuntimeError(f"HTTP {self.status}")

    async def json(self):
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class MockHttpSession:
    """Quacks like ``aiohttp.ClientSession.get`` for URL-prefix scripted payloads."""
    def __init__(self):
        self.routes: List[Tuple[str, Any, int]] = []
        self.requested: List[str] = []

    def route(self, url_fragment: str, payload: Any, status: int = 200):
        self.routes.append((url_fragment, payload, status))

    def get(self, url: str) -> _MockResponse:
        self.requested.append(url)
        for fragment, payload, status in self.routes:
            if fragment in url:
                return _MockResponse(payload, status)
        raise KeyError(f"No scripted response for {url}")


class MockRemoteTransactionSource:
    """Returns a fixed batch of records, or raises when told to."""
    def __init__(self, records: List[TransactionRecord] | None = None):
        self.records = list(records or [])
        self.requests: List[RemoteTransactionSourceRequest] = []
        self._error: Exception | None = None
        self.delay = 0.0

    def set_next_call_to_fail(self, error: Exception):
        self._error = error

    async def fetch_transactions(self, request: RemoteTransactionSourceRequest) -> List[TransactionRecord]:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self._error is not None:
            error, self._error = self._error, None
            log.error("MOCK_REMOTE_SOURCE_FORCED_FAILURE", error=str(error))
            raise error
        return list(self.records)
