import structlog
from structlog.contextvars import clear_contextvars, get_contextvars
from structlog.testing import capture_logs

from feeledger.core.logger import GAS_FEE_RESOLUTIONS, REMOTE_TRANSACTIONS_FETCHED, bind_account, get_logger


def test_events_carry_structured_context():
    with capture_logs() as logs:
        get_logger("test").info("UNIT_TEST_EVENT", data=1)

    assert logs == [{"event": "UNIT_TEST_EVENT", "data": 1, "log_level": "info"}]


def test_bind_account_adds_context_vars():
    clear_contextvars()
    try:
        bind_account("0xabc", 5)
        assert get_contextvars() == {"account": "0xabc", "chain_id": 5}
        assert structlog.contextvars.merge_contextvars(None, "info", {"event": "X"}) == {
            "account": "0xabc", "chain_id": 5, "event": "X",
        }
    finally:
        clear_contextvars()


def test_prometheus_counters():
    c = GAS_FEE_RESOLUTIONS.labels("medium")
    initial = c._value.get()
    c.inc()
    assert c._value.get() == initial + 1

    fetched = REMOTE_TRANSACTIONS_FETCHED.labels("token")
    initial = fetched._value.get()
    fetched.inc(3)
    assert fetched._value.get() == initial + 3
