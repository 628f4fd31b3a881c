# /feeledger/core/gas_fees.py
# Decides the fee fields a transaction carries before it is signed.

from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from web3 import Web3

from feeledger.core.logger import get_logger, GAS_FEE_RESOLUTIONS, ORACLE_FAILURES
from feeledger.core.models import (
    WALLET_ORIGIN,
    DefaultGasEstimates,
    EthGasPriceEstimate,
    FeeMarketEstimate,
    LegacyEstimate,
    TransactionRecord,
    TxParams,
    UserFeeLevel,
)

log = get_logger(__name__)

GasFeeEstimatesCall = Callable[[], Awaitable[object]]


@dataclass(frozen=True)
class SuggestedGasFees:
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    gas_price: Optional[int] = None


def gwei_decimal_to_wei(value: Decimal) -> int:
    return int(Web3.to_wei(Decimal(value), "gwei"))


class GasFeeResolver:
    """
    Resolves maxFeePerGas / maxPriorityFeePerGas / gasPrice for one
    transaction from what the requester supplied, the gas fee oracle and,
    as a last resort, the node's eth_gasPrice.

    Oracle failures are absorbed; a failing eth_gasPrice fallback is not.
    """
    def __init__(self, get_gas_fee_estimates: GasFeeEstimatesCall, node):
        self.get_gas_fee_estimates = get_gas_fee_estimates
        self.node = node

    async def resolve(self, record: TransactionRecord, eip1559: bool) -> TransactionRecord:
        initial = record.tx_params
        suggested = await self._get_suggested_gas_fees(initial, eip1559)
        log.debug("SUGGESTED_GAS_FEES", tx_id=record.id, **suggested.__dict__)

        max_fee_per_gas = self._max_fee_per_gas(initial, suggested, eip1559)
        max_priority_fee_per_gas = self._max_priority_fee_per_gas(initial, suggested, eip1559, max_fee_per_gas)
        gas_price = self._gas_price(initial, suggested, eip1559)
        user_fee_level = self._user_fee_level(record, suggested, eip1559)

        if max_fee_per_gas is not None or max_priority_fee_per_gas is not None:
            gas_price = None
        if gas_price is not None:
            max_fee_per_gas = None
            max_priority_fee_per_gas = None

        tx_params = initial.model_copy(update={
            "max_fee_per_gas": max_fee_per_gas,
            "max_priority_fee_per_gas": max_priority_fee_per_gas,
            "gas_price": gas_price,
        })
        default_gas_estimates = DefaultGasEstimates(
            max_fee_per_gas=max_fee_per_gas,
            max_priority_fee_per_gas=max_priority_fee_per_gas,
            gas_price=gas_price,
            estimate_type=user_fee_level,
        )

        GAS_FEE_RESOLUTIONS.labels(user_fee_level.value if user_fee_level else "none").inc()
        log.info(
            "GAS_FEES_RESOLVED",
            tx_id=record.id,
            max_fee_per_gas=max_fee_per_gas,
            max_priority_fee_per_gas=max_priority_fee_per_gas,
            gas_price=gas_price,
            user_fee_level=user_fee_level.value if user_fee_level else None,
        )
        return record.model_copy(update={
            "tx_params": tx_params,
            "user_fee_level": user_fee_level,
            "default_gas_estimates": default_gas_estimates,
        })

    async def _get_suggested_gas_fees(self, initial: TxParams, eip1559: bool) -> SuggestedGasFees:
        if (not eip1559 and initial.gas_price is not None) or (
            eip1559 and initial.max_fee_per_gas is not None and initial.max_priority_fee_per_gas is not None
        ):
            return SuggestedGasFees()

        try:
            estimate = await self.get_gas_fee_estimates()

            if eip1559 and isinstance(estimate, FeeMarketEstimate):
                medium = estimate.medium
                if medium.suggested_max_fee_per_gas and medium.suggested_max_priority_fee_per_gas:
                    return SuggestedGasFees(
                        max_fee_per_gas=gwei_decimal_to_wei(medium.suggested_max_fee_per_gas),
                        max_priority_fee_per_gas=gwei_decimal_to_wei(medium.suggested_max_priority_fee_per_gas),
                    )

            if isinstance(estimate, LegacyEstimate):
                return SuggestedGasFees(gas_price=gwei_decimal_to_wei(estimate.medium))

            if isinstance(estimate, EthGasPriceEstimate):
                return SuggestedGasFees(gas_price=gwei_decimal_to_wei(estimate.gas_price))

            ORACLE_FAILURES.inc()
            log.warning("UNUSABLE_GAS_FEE_ESTIMATE", estimate_type=getattr(estimate, "gas_estimate_type", None), eip1559=eip1559)
        except Exception as e:
            ORACLE_FAILURES.inc()
            log.warning("GAS_FEE_ORACLE_FAILED", error=str(e))

        # Not caught: without any price the transaction cannot proceed.
        gas_price = await self.node.gas_price()
        return SuggestedGasFees(gas_price=gas_price or None)

    @staticmethod
    def _max_fee_per_gas(initial: TxParams, suggested: SuggestedGasFees, eip1559: bool) -> Optional[int]:
        if not eip1559:
            return None
        if initial.max_fee_per_gas is not None:
            return initial.max_fee_per_gas
        if initial.gas_price is not None and initial.max_priority_fee_per_gas is None:
            return initial.gas_price
        if suggested.max_fee_per_gas is not None:
            return suggested.max_fee_per_gas
        if suggested.gas_price is not None:
            return suggested.gas_price
        return None

    @staticmethod
    def _max_priority_fee_per_gas(
        initial: TxParams, suggested: SuggestedGasFees, eip1559: bool, resolved_max_fee_per_gas: Optional[int]
    ) -> Optional[int]:
        if not eip1559:
            return None
        if initial.max_priority_fee_per_gas is not None:
            return initial.max_priority_fee_per_gas
        if initial.gas_price is not None and initial.max_fee_per_gas is None:
            return initial.gas_price
        if suggested.max_priority_fee_per_gas is not None:
            return suggested.max_priority_fee_per_gas
        return resolved_max_fee_per_gas

    @staticmethod
    def _gas_price(initial: TxParams, suggested: SuggestedGasFees, eip1559: bool) -> Optional[int]:
        if eip1559:
            return None
        if initial.gas_price is not None:
            return initial.gas_price
        return suggested.gas_price

    @staticmethod
    def _user_fee_level(record: TransactionRecord, suggested: SuggestedGasFees, eip1559: bool) -> Optional[UserFeeLevel]:
        if not eip1559:
            return None
        initial = record.tx_params
        is_wallet_origin = record.origin == WALLET_ORIGIN
        no_user_fee_market = initial.max_fee_per_gas is None and initial.max_priority_fee_per_gas is None

        if no_user_fee_market and initial.gas_price is not None:
            return UserFeeLevel.CUSTOM if is_wallet_origin else UserFeeLevel.DAPP_SUGGESTED
        if (
            no_user_fee_market
            and suggested.max_fee_per_gas is not None
            and suggested.max_priority_fee_per_gas is not None
        ):
            return UserFeeLevel.MEDIUM
        return UserFeeLevel.MEDIUM if is_wallet_origin else UserFeeLevel.DAPP_SUGGESTED
