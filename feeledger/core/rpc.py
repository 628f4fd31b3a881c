# /feeledger/core/rpc.py
# Async JSON-RPC access to the configured node.

from typing import Any, List, Optional

import aiohttp

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from feeledger.core.config import settings
from feeledger.core.logger import get_logger
from feeledger.core.decorators import retriable_network_call

log = get_logger(__name__)


def to_int(value: Any) -> Optional[int]:
    """Normalise an RPC quantity (int or hex string) to an int."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.startswith(("0x", "0X")):
        return Web3.to_int(hexstr=value)
    return int(value)


class NodeClient:
    """Thin async wrapper over the node calls this project needs."""
    def __init__(self, rpc_url: str | None = None, timeout: float | None = None):
        self.rpc_url = rpc_url or settings.rpc_url
        if not self.rpc_url:
            raise ConnectionError("No RPC_URL configured.")
        request_kwargs = {"timeout": aiohttp.ClientTimeout(total=timeout or settings.HTTP_TIMEOUT_SECONDS)}
        self.w3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_url, request_kwargs=request_kwargs))
        log.info("NODE_CLIENT_INITIALIZED")

    @retriable_network_call
    async def block_number(self) -> int:
        return await self.w3.eth.block_number

    @retriable_network_call
    async def fee_history(self, block_count: int, newest_block: int, reward_percentiles: List[int]) -> dict:
        response = await self.w3.eth.fee_history(block_count, newest_block, reward_percentiles)
        return dict(response)

    @retriable_network_call
    async def gas_price(self) -> int:
        return await self.w3.eth.gas_price

    @retriable_network_call
    async def get_latest_block(self) -> dict:
        return dict(await self.w3.eth.get_block("latest"))

    @retriable_network_call
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        return dict(receipt)

    async def supports_eip1559(self) -> bool:
        """The network uses the fee-market model once blocks carry a base fee."""
        latest = await self.get_latest_block()
        return latest.get("baseFeePerGas") is not None
