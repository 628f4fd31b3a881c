# /feeledger/adapters/gas_api.py
# Gas fee oracle: hosted gas API first, then local fallbacks.
from decimal import Decimal

import aiohttp
from web3 import Web3

from feeledger.adapters.http import get_json
from feeledger.core.config import settings
from feeledger.core.gas_estimator import FeeHistoryGasEstimator
from feeledger.core.logger import get_logger
from feeledger.core.models import EthGasPriceEstimate, LegacyEstimate, parse_gas_fee_estimate

log = get_logger(__name__)


class GasFeeOracle:
    """
    Produces a fresh GasFeeEstimate for the current network.

    Fee-market networks: gas API, then fee-history estimate, then eth_gasPrice.
    Legacy networks: gas API legacy prices, then eth_gasPrice.
    Only a failing eth_gasPrice escapes to the caller.
    """
    def __init__(
        self,
        node,
        fee_history_estimator: FeeHistoryGasEstimator | None = None,
        chain_id: int | None = None,
        base_url: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.node = node
        self.fee_history_estimator = fee_history_estimator
        self.chain_id = chain_id if chain_id is not None else settings.chain_id
        self.base_url = (base_url or settings.GAS_API_BASE_URL).rstrip("/")
        self.session = session

    async def _fetch_fee_market_estimate(self):
        url = f"{self.base_url}/networks/{self.chain_id}/suggestedGasFees"
        payload = await get_json(url, session=self.session)
        return parse_gas_fee_estimate({**payload, "gasEstimateType": "fee-market"})

    async def _fetch_legacy_estimate(self) -> LegacyEstimate:
        url = f"{self.base_url}/networks/{self.chain_id}/gasPrices"
        payload = await get_json(url, session=self.session)
        return LegacyEstimate(
            low=Decimal(str(payload["SafeGasPrice"])),
            medium=Decimal(str(payload["ProposeGasPrice"])),
            high=Decimal(str(payload["FastGasPrice"])),
        )

    async def _fetch_eth_gas_price_estimate(self) -> EthGasPriceEstimate:
        gas_price = await self.node.gas_price()
        return EthGasPriceEstimate(gas_price=Decimal(Web3.from_wei(gas_price, "gwei")))

    async def get_estimates(self, eip1559: bool):
        if eip1559:
            try:
                return await self._fetch_fee_market_estimate()
            except Exception as e:
                log.warning("GAS_API_FEE_MARKET_ESTIMATE_FAILED", chain_id=self.chain_id, error=str(e))
            if self.fee_history_estimator is not None:
                try:
                    return await self.fee_history_estimator.estimate()
                except Exception as e:
                    log.warning("FEE_HISTORY_ESTIMATE_FAILED", chain_id=self.chain_id, error=str(e))
        else:
            try:
                return await self._fetch_legacy_estimate()
            except Exception as e:
                log.warning("GAS_API_LEGACY_ESTIMATE_FAILED", chain_id=self.chain_id, error=str(e))

        return await self._fetch_eth_gas_price_estimate()
