# /feeledger/adapters/etherscan.py
# Remote transaction history from Etherscan-family block explorers.
import asyncio
import uuid
from typing import List
from urllib.parse import urlencode

import aiohttp
from pydantic import BaseModel, ConfigDict, Field

from feeledger.adapters.http import get_json
from feeledger.core.config import settings
from feeledger.core.logger import get_logger, REMOTE_TRANSACTIONS_FETCHED
from feeledger.core.models import (
    RemoteTransactionSourceRequest,
    TransactionRecord,
    TransactionStatus,
    TransferInformation,
    TxParams,
)

log = get_logger(__name__)

# chain id -> (domain, subdomain)
ETHERSCAN_SUPPORTED_NETWORKS = {
    1: ("etherscan.io", "api"),
    5: ("etherscan.io", "api-goerli"),
    11155111: ("etherscan.io", "api-sepolia"),
    10: ("etherscan.io", "api-optimistic"),
    56: ("bscscan.com", "api"),
    97: ("bscscan.com", "api-testnet"),
    137: ("polygonscan.com", "api"),
    80001: ("polygonscan.com", "api-testnet"),
    250: ("ftmscan.com", "api"),
    43114: ("snowtrace.io", "api"),
    59140: ("lineascan.build", "api-testnet"),
    59144: ("lineascan.build", "api"),
}

NO_TRANSACTIONS_FOUND = "No transactions found"

_TRANSACTION_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_OID, "feeledger.transaction")
_TOKEN_TRANSFER_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_OID, "feeledger.token-transfer")


class RemoteHistoryError(Exception):
    pass


class EtherscanTransactionBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    block_number: str = Field(alias="blockNumber")
    time_stamp: str = Field(alias="timeStamp")
    hash: str
    from_: str = Field(alias="from")
    to: str = ""
    value: str
    gas: str
    gas_price: str = Field(alias="gasPrice")
    gas_used: str = Field(alias="gasUsed")
    nonce: str


class EtherscanTransaction(EtherscanTransactionBase):
    is_error: str = Field(alias="isError")
    input: str = ""


class EtherscanTokenTransaction(EtherscanTransactionBase):
    contract_address: str = Field(alias="contractAddress")
    token_decimal: str = Field(alias="tokenDecimal")
    token_symbol: str = Field(alias="tokenSymbol")


def is_supported_network(chain_id: int) -> bool:
    return chain_id in ETHERSCAN_SUPPORTED_NETWORKS


def remote_transaction_id(tx_hash: str, timestamp: str, token_transfer: bool = False) -> str:
    """Same (hash, timestamp) always maps to the same id."""
    namespace = _TOKEN_TRANSFER_NAMESPACE if token_transfer else _TRANSACTION_NAMESPACE
    return str(uuid.uuid5(namespace, f"{tx_hash.lower()}:{timestamp}"))


class EtherscanRemoteTransactionSource:
    """
    Fetches an account's plain and token-transfer history and normalises every
    row into a TransactionRecord. Both lists are fetched together and either
    both are returned or the whole fetch fails.
    """
    def __init__(self, api_key: str | None = None, session: aiohttp.ClientSession | None = None):
        self.api_key = api_key if api_key is not None else settings.etherscan_api_key
        self.session = session

    def build_url(self, request: RemoteTransactionSourceRequest, action: str) -> str:
        if not is_supported_network(request.chain_id):
            raise RemoteHistoryError(f"Chain {request.chain_id} has no supported block explorer")
        domain, subdomain = ETHERSCAN_SUPPORTED_NETWORKS[request.chain_id]
        params = {
            "module": "account",
            "action": action,
            "address": request.address,
            "tag": "latest",
            "page": 1,
            "sort": "desc",
        }
        if request.from_block is not None:
            params["startBlock"] = request.from_block
        if request.limit is not None:
            params["offset"] = request.limit
        if self.api_key:
            params["apikey"] = self.api_key
        return f"https://{subdomain}.{domain}/api?{urlencode(params)}"

    async def _fetch_rows(self, request: RemoteTransactionSourceRequest, action: str) -> List[dict]:
        url = self.build_url(request, action)
        payload = await get_json(url, session=self.session)
        status = str(payload.get("status"))
        if status == "1":
            return payload.get("result") or []
        if status == "0" and payload.get("message") == NO_TRANSACTIONS_FOUND:
            return []
        raise RemoteHistoryError(f"{action} failed: {payload.get('message')} {payload.get('result')}")

    async def fetch_transactions(self, request: RemoteTransactionSourceRequest) -> List[TransactionRecord]:
        tasks = [
            asyncio.ensure_future(self._fetch_rows(request, "txlist")),
            asyncio.ensure_future(self._fetch_rows(request, "tokentx")),
        ]
        try:
            transaction_rows, token_rows = await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        transactions = [
            self._normalize_transaction(EtherscanTransaction.model_validate(row), request.chain_id)
            for row in transaction_rows
        ]
        token_transactions = [
            self._normalize_token_transaction(EtherscanTokenTransaction.model_validate(row), request.chain_id)
            for row in token_rows
        ]

        REMOTE_TRANSACTIONS_FETCHED.labels("transaction").inc(len(transactions))
        REMOTE_TRANSACTIONS_FETCHED.labels("token_transfer").inc(len(token_transactions))
        log.info(
            "REMOTE_TRANSACTIONS_FETCHED",
            chain_id=request.chain_id,
            transactions=len(transactions),
            token_transactions=len(token_transactions),
        )
        return transactions + token_transactions

    def _normalize_transaction(self, row: EtherscanTransaction, chain_id: int) -> TransactionRecord:
        base = self._normalize_base(row, chain_id, token_transfer=False)
        update = {"tx_params": base.tx_params.model_copy(update={"data": row.input or None})}
        if row.is_error != "0":
            update.update(status=TransactionStatus.FAILED, error="Transaction failed")
        return base.model_copy(update=update)

    def _normalize_token_transaction(self, row: EtherscanTokenTransaction, chain_id: int) -> TransactionRecord:
        base = self._normalize_base(row, chain_id, token_transfer=True)
        return base.model_copy(update={
            "is_transfer": True,
            "transfer_information": TransferInformation(
                contract_address=row.contract_address,
                decimals=int(row.token_decimal),
                symbol=row.token_symbol,
            ),
        })

    def _normalize_base(self, row: EtherscanTransactionBase, chain_id: int, token_transfer: bool) -> TransactionRecord:
        return TransactionRecord(
            id=remote_transaction_id(row.hash, row.time_stamp, token_transfer=token_transfer),
            hash=row.hash,
            status=TransactionStatus.CONFIRMED,
            chain_id=chain_id,
            block_number=int(row.block_number),
            time=int(row.time_stamp) * 1000,
            verified_on_blockchain=False,
            tx_params=TxParams(
                from_=row.from_,
                to=row.to or None,
                value=int(row.value),
                gas=int(row.gas),
                gas_price=int(row.gas_price),
                gas_used=int(row.gas_used),
                nonce=int(row.nonce),
            ),
        )
