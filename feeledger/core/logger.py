# /feeledger/core/logger.py
# Structured logging, error reporting and Prometheus counters.
import logging
import structlog
from structlog.contextvars import bind_contextvars
import sentry_sdk
from prometheus_client import Counter
from feeledger.core.config import settings

# --- Prometheus Metrics ---
FEE_HISTORY_REQUESTS = Counter("feeledger_fee_history_requests_total", "Total eth_feeHistory chunk requests issued")
GAS_FEE_RESOLUTIONS = Counter("feeledger_gas_fee_resolutions_total", "Total gas fee resolutions", ["user_fee_level"])
ORACLE_FAILURES = Counter("feeledger_oracle_failures_total", "Gas fee oracle calls that produced no usable estimate")
REMOTE_TRANSACTIONS_FETCHED = Counter("feeledger_remote_transactions_fetched_total", "Records fetched from the indexer", ["kind"])
LEDGER_WRITES = Counter("feeledger_ledger_writes_total", "Snapshots applied to the transaction store")


def configure_logging():
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN.get_secret_value(), traces_sample_rate=1.0)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    return structlog.get_logger(name)


def bind_account(address: str, chain_id: int):
    """Attach the polled account to every log line emitted in this context."""
    bind_contextvars(account=address, chain_id=chain_id)


configure_logging()
log = get_logger("feeledger.system")
