# /feeledger/core/reconcile.py
# Merges the local ledger with transactions observed by the indexer.

from typing import Dict, Iterable, List, Optional

from feeledger.core.logger import get_logger
from feeledger.core.models import TransactionRecord, TransactionStatus

log = get_logger(__name__)


def merge_key(record: TransactionRecord) -> Optional[str]:
    """Lower-cased hash. Records without one never match anything."""
    if not record.hash:
        return None
    return record.hash.lower()


def _sort_key(record: TransactionRecord):
    nonce = record.tx_params.nonce
    return record.time, nonce is None, nonce or 0


def _combine(local: TransactionRecord, remote: TransactionRecord) -> TransactionRecord:
    status = remote.status
    return local.model_copy(update={
        "hash": remote.hash,
        "status": status,
        "block_number": remote.block_number,
        "error": remote.error,
        "tx_params": local.tx_params.model_copy(update={"gas_used": remote.tx_params.gas_used}),
        "verified_on_blockchain": status == TransactionStatus.CONFIRMED
        and (local.verified_on_blockchain or remote.verified_on_blockchain),
    })


def merge(
    local_records: Iterable[TransactionRecord],
    remote_records: Iterable[TransactionRecord],
) -> List[TransactionRecord]:
    """
    Produce one deduplicated ledger from the local records and a fresh batch
    of indexer records. On-chain state (status, block number, error, gas
    used) comes from the indexer; everything only the wallet knows comes from
    the local record. Pure function: same inputs, same output.
    """
    remote_by_key: Dict[str, TransactionRecord] = {}
    remote_order: List[str] = []
    for remote in remote_records:
        key = merge_key(remote)
        if key is None or key in remote_by_key:
            continue
        remote_by_key[key] = remote
        remote_order.append(key)

    merged: List[TransactionRecord] = []
    matched = set()
    for local in local_records:
        key = merge_key(local)
        if key is None or key in matched or key not in remote_by_key:
            merged.append(local)
            continue
        merged.append(_combine(local, remote_by_key[key]))
        matched.add(key)

    added = [remote_by_key[key] for key in remote_order if key not in matched]
    merged.extend(added)

    log.debug("TRANSACTIONS_MERGED", matched=len(matched), added=len(added), total=len(merged))
    return sorted(merged, key=_sort_key)


def trim_transactions(records: List[TransactionRecord], limit: Optional[int]) -> List[TransactionRecord]:
    """
    Keep every pending record plus the ``limit`` newest finished ones.
    Input order is preserved.
    """
    if limit is None:
        return list(records)
    finished = [r for r in records if r.status.is_terminal]
    if len(finished) <= limit:
        return list(records)
    newest = sorted(finished, key=_sort_key, reverse=True)[:limit]
    keep = {id(r) for r in newest}
    return [r for r in records if not r.status.is_terminal or id(r) in keep]
