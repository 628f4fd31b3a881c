# /feeledger/core/store.py
# In-memory transaction ledger with immutable snapshots and change notification.
from typing import Any, Callable, Dict, List

from feeledger.core.logger import get_logger, LEDGER_WRITES
from feeledger.core.models import LedgerState, TransactionRecord

log = get_logger(__name__)

Listener = Callable[[LedgerState], None]


class Subscription:
    """Handle returned by ``TransactionStore.on_change``."""
    def __init__(self, store: "TransactionStore", listener: Listener):
        self._store = store
        self.listener = listener

    def unsubscribe(self):
        self._store._listeners = [l for l in self._store._listeners if l is not self]


class TransactionStore:
    """
    Owns the ledger snapshot. Readers always get a deep copy, writers replace
    the snapshot through ``apply`` which then publishes the new state.

    ``apply`` contains no suspension point, so within one event loop a write
    is atomic with respect to every other coroutine.
    """
    def __init__(self, initial_state: LedgerState | None = None):
        self._state = initial_state or LedgerState()
        self._listeners: List[Subscription] = []

    def get(self) -> LedgerState:
        return self._state.model_copy(deep=True)

    def apply(self, patch: Dict[str, Any]) -> LedgerState:
        """Replace the top-level fields named in ``patch`` and notify listeners."""
        merged = {**self._state.model_dump(), **{k: _dump(v) for k, v in patch.items()}}
        self._state = LedgerState.model_validate(merged)
        LEDGER_WRITES.inc()
        log.debug("LEDGER_SNAPSHOT_APPLIED", fields=sorted(patch), transactions=len(self._state.transactions))

        snapshot = self.get()
        for subscription in list(self._listeners):
            subscription.listener(snapshot.model_copy(deep=True))
        return snapshot

    def on_change(self, listener: Listener) -> Subscription:
        subscription = Subscription(self, listener)
        self._listeners.append(subscription)
        return subscription

    def get_transaction(self, transaction_id: str) -> TransactionRecord | None:
        for record in self._state.transactions:
            if record.id == transaction_id:
                return record.model_copy(deep=True)
        return None

    def upsert_transaction(self, record: TransactionRecord) -> LedgerState:
        """Write one record back, replacing any record with the same id."""
        transactions = [tx for tx in self._state.transactions if tx.id != record.id]
        if len(transactions) == len(self._state.transactions):
            transactions.append(record)
        else:
            transactions = [record if tx.id == record.id else tx for tx in self._state.transactions]
        return self.apply({"transactions": transactions})


def _dump(value: Any) -> Any:
    if isinstance(value, list):
        return [_dump(v) for v in value]
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return value
