# /feeledger/core/incoming.py
# Periodic reconciliation of the ledger with the indexer's view of the account.

import asyncio
from typing import Dict

from feeledger.core.config import settings
from feeledger.core.logger import get_logger, bind_account
from feeledger.core.models import RemoteTransactionSourceRequest, TransactionStatus
from feeledger.core.reconcile import merge, trim_transactions
from feeledger.core.rpc import to_int
from feeledger.core.store import TransactionStore

log = get_logger(__name__)


class IncomingTransactionPoller:
    """
    Polls the remote source for one account, merges the result into the store
    and verifies indexer-confirmed records against the node.
    """
    def __init__(
        self,
        store: TransactionStore,
        source,
        address: str,
        chain_id: int | None = None,
        node=None,
        interval: int | None = None,
        limit: int | None = None,
        history_limit: int | None = None,
    ):
        self.store = store
        self.source = source
        self.node = node
        self.address = address
        self.chain_id = chain_id if chain_id is not None else settings.chain_id
        self.interval = interval if interval is not None else settings.INCOMING_TX_POLL_SECONDS
        self.limit = limit if limit is not None else settings.INCOMING_TX_LIMIT
        self.history_limit = history_limit if history_limit is not None else settings.TX_HISTORY_LIMIT

    def _request(self) -> RemoteTransactionSourceRequest:
        return RemoteTransactionSourceRequest(address=self.address, chain_id=self.chain_id, limit=self.limit)

    async def update(self) -> bool:
        """Fetch, merge and write back. Returns True when the ledger changed."""
        remote = await self.source.fetch_transactions(self._request())

        # No await between reading the snapshot and applying the merge.
        snapshot = self.store.get()
        merged = trim_transactions(merge(snapshot.transactions, remote), self.history_limit)
        if merged == snapshot.transactions:
            log.debug("INCOMING_TRANSACTIONS_UNCHANGED", remote=len(remote))
            return False

        self.store.apply({"transactions": merged})
        log.info("INCOMING_TRANSACTIONS_MERGED", remote=len(remote), total=len(merged))
        return True

    async def verify_confirmed(self) -> int:
        """Mark indexer-confirmed records as verified once the node has a receipt."""
        if self.node is None:
            return 0

        pending = [
            tx for tx in self.store.get().transactions
            if tx.status == TransactionStatus.CONFIRMED and tx.hash and not tx.verified_on_blockchain
        ]
        updates: Dict[str, dict] = {}
        for tx in pending:
            receipt = await self.node.get_transaction_receipt(tx.hash)
            if not receipt or receipt.get("blockNumber") is None:
                continue
            if to_int(receipt.get("status")) == 0:
                updates[tx.id] = {"status": TransactionStatus.FAILED, "error": "Transaction reverted"}
            else:
                updates[tx.id] = {"verified_on_blockchain": True, "block_number": to_int(receipt["blockNumber"])}

        if not updates:
            return 0

        snapshot = self.store.get()
        transactions = [
            tx.model_copy(update=updates[tx.id]) if tx.id in updates else tx
            for tx in snapshot.transactions
        ]
        self.store.apply({"transactions": transactions})
        log.info("TRANSACTIONS_VERIFIED_ON_CHAIN", count=len(updates))
        return len(updates)

    async def run_loop(self):
        bind_account(self.address, self.chain_id)
        log.info("INCOMING_TRANSACTION_POLLER_STARTING", interval=self.interval)
        while True:
            try:
                await self.update()
                await self.verify_confirmed()
            except asyncio.CancelledError:
                log.info("INCOMING_TRANSACTION_POLLER_STOPPED")
                raise
            except Exception as e:
                log.error("INCOMING_TRANSACTION_POLL_FAILED", error=str(e), exc_info=True)
            await asyncio.sleep(self.interval)
