# /feeledger/adapters/http.py
# Shared JSON GET helper for the indexer and gas API adapters.
from typing import Any, Optional

import aiohttp

from feeledger.core.config import settings
from feeledger.core.decorators import retriable_network_call


@retriable_network_call
async def get_json(url: str, session: Optional[aiohttp.ClientSession] = None) -> Any:
    """GET ``url`` and decode the JSON body, raising on HTTP errors."""
    if session is not None:
        async with session.get(url) as response:
            response.raise_for_status()
            return await response.json()

    timeout = aiohttp.ClientTimeout(total=settings.HTTP_TIMEOUT_SECONDS)
    async with aiohttp.ClientSession(timeout=timeout) as own_session:
        async with own_session.get(url) as response:
            response.raise_for_status()
            return await response.json()
