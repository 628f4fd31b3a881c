# /feeledger/core/decorators.py
# Retry policy for node and indexer calls.
import asyncio
import logging

import aiohttp
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential, before_sleep_log

from feeledger.core.logger import get_logger

log = get_logger(__name__)


def is_transient_network_error(exc: BaseException) -> bool:
    """Timeouts, dropped connections, 429 and 5xx answers. Anything else fails fast."""
    if isinstance(exc, aiohttp.ClientResponseError):
        return exc.status == 429 or exc.status >= 500
    return isinstance(exc, (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError))


# The last exception is re-raised once attempts run out.
retriable_network_call = retry(
    retry=retry_if_exception(is_transient_network_error),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    before_sleep=before_sleep_log(log, logging.WARNING),
    reraise=True,
)
