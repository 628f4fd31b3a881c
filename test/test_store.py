from feeledger.core.logger import LEDGER_WRITES
from feeledger.core.models import LedgerState, TransactionRecord, TransactionStatus, TxParams
from feeledger.core.store import TransactionStore


def tx(id, status=TransactionStatus.SUBMITTED, **params):
    return TransactionRecord(id=id, status=status, tx_params=TxParams(**params))


def test_get_returns_an_independent_copy():
    store = TransactionStore(LedgerState(transactions=[tx("a")]))

    snapshot = store.get()
    snapshot.transactions.append(tx("b"))

    assert [t.id for t in store.get().transactions] == ["a"]


def test_apply_replaces_transactions_and_notifies():
    store = TransactionStore()
    seen = []
    store.on_change(seen.append)
    writes = LEDGER_WRITES._value.get()

    result = store.apply({"transactions": [tx("a"), tx("b", nonce=3)]})

    assert [t.id for t in result.transactions] == ["a", "b"]
    assert store.get().transactions[1].tx_params.nonce == 3
    assert len(seen) == 1
    assert seen[0] == result
    assert LEDGER_WRITES._value.get() == writes + 1


def test_listener_snapshots_cannot_modify_the_store():
    store = TransactionStore()
    store.on_change(lambda snapshot: snapshot.transactions.clear())

    store.apply({"transactions": [tx("a")]})

    assert len(store.get().transactions) == 1


def test_unsubscribe_stops_notifications():
    store = TransactionStore()
    seen = []
    subscription = store.on_change(seen.append)

    store.apply({"transactions": [tx("a")]})
    subscription.unsubscribe()
    store.apply({"transactions": []})

    assert len(seen) == 1


def test_upsert_replaces_in_place_or_appends():
    store = TransactionStore(LedgerState(transactions=[tx("a"), tx("b")]))

    store.upsert_transaction(tx("a", status=TransactionStatus.CONFIRMED))
    store.upsert_transaction(tx("c"))

    transactions = store.get().transactions
    assert [t.id for t in transactions] == ["a", "b", "c"]
    assert transactions[0].status == TransactionStatus.CONFIRMED
    assert store.get_transaction("c").id == "c"
    assert store.get_transaction("missing") is None
