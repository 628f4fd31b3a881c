# /feeledger/core/models.py
# Record shapes shared by the resolver, the fee-history fetcher, the indexer
# source and the reconciler. Field aliases follow the JSON-RPC / wallet wire
# names; Python code uses the snake_case attribute names.
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

WALLET_ORIGIN = "wallet"


class TransactionStatus(str, Enum):
    UNAPPROVED = "unapproved"
    APPROVED = "approved"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    DROPPED = "dropped"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    TransactionStatus.CONFIRMED,
    TransactionStatus.FAILED,
    TransactionStatus.DROPPED,
    TransactionStatus.CANCELLED,
})


class UserFeeLevel(str, Enum):
    CUSTOM = "custom"
    DAPP_SUGGESTED = "dappSuggested"
    MEDIUM = "medium"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class TxParams(_WireModel):
    """The EVM transaction fields. Numeric values are wei / plain ints."""
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    value: Optional[int] = None
    data: Optional[str] = None
    nonce: Optional[int] = None
    gas: Optional[int] = None
    gas_used: Optional[int] = Field(default=None, alias="gasUsed")
    gas_price: Optional[int] = Field(default=None, alias="gasPrice")
    max_fee_per_gas: Optional[int] = Field(default=None, alias="maxFeePerGas")
    max_priority_fee_per_gas: Optional[int] = Field(default=None, alias="maxPriorityFeePerGas")


class DefaultGasEstimates(_WireModel):
    max_fee_per_gas: Optional[int] = Field(default=None, alias="maxFeePerGas")
    max_priority_fee_per_gas: Optional[int] = Field(default=None, alias="maxPriorityFeePerGas")
    gas_price: Optional[int] = Field(default=None, alias="gasPrice")
    estimate_type: Optional[UserFeeLevel] = Field(default=None, alias="estimateType")


class TransferInformation(_WireModel):
    contract_address: str = Field(alias="contractAddress")
    decimals: int
    symbol: str


class TransactionRecord(_WireModel):
    """One wallet transaction as held by the ledger."""
    id: str
    hash: Optional[str] = None
    status: TransactionStatus
    origin: Optional[str] = None
    chain_id: Optional[int] = Field(default=None, alias="chainId")
    tx_params: TxParams = Field(default_factory=TxParams, alias="txParams")
    user_fee_level: Optional[UserFeeLevel] = Field(default=None, alias="userFeeLevel")
    default_gas_estimates: Optional[DefaultGasEstimates] = Field(default=None, alias="defaultGasEstimates")
    is_transfer: bool = Field(default=False, alias="isTransfer")
    transfer_information: Optional[TransferInformation] = Field(default=None, alias="transferInformation")
    block_number: Optional[int] = Field(default=None, alias="blockNumber")
    time: int = 0
    verified_on_blockchain: bool = Field(default=False, alias="verifiedOnBlockchain")
    error: Optional[str] = None


class BlockFeeRecord(_WireModel):
    number: int
    base_fee_per_gas: Optional[int] = Field(alias="baseFeePerGas")
    gas_used_ratio: Optional[float] = Field(alias="gasUsedRatio")
    priority_fees_by_percentile: Optional[Dict[int, int]] = Field(alias="priorityFeesByPercentile")


# --- Gas fee oracle estimates (tagged on gasEstimateType) ---

class FeeMarketTier(_WireModel):
    suggested_max_fee_per_gas: Decimal = Field(alias="suggestedMaxFeePerGas")
    suggested_max_priority_fee_per_gas: Decimal = Field(alias="suggestedMaxPriorityFeePerGas")
    min_wait_time_estimate: Optional[int] = Field(default=None, alias="minWaitTimeEstimate")
    max_wait_time_estimate: Optional[int] = Field(default=None, alias="maxWaitTimeEstimate")


class FeeMarketEstimate(_WireModel):
    gas_estimate_type: Literal["fee-market"] = Field(default="fee-market", alias="gasEstimateType")
    low: FeeMarketTier
    medium: FeeMarketTier
    high: FeeMarketTier
    estimated_base_fee: Decimal = Field(alias="estimatedBaseFee")


class LegacyEstimate(_WireModel):
    gas_estimate_type: Literal["legacy"] = Field(default="legacy", alias="gasEstimateType")
    low: Decimal
    medium: Decimal
    high: Decimal


class EthGasPriceEstimate(_WireModel):
    gas_estimate_type: Literal["eth_gasPrice"] = Field(default="eth_gasPrice", alias="gasEstimateType")
    gas_price: Decimal = Field(alias="gasPrice")


GasFeeEstimate = Annotated[
    Union[FeeMarketEstimate, LegacyEstimate, EthGasPriceEstimate],
    Field(discriminator="gas_estimate_type"),
]

gas_fee_estimate_adapter = TypeAdapter(GasFeeEstimate)


def parse_gas_fee_estimate(payload: dict) -> Union[FeeMarketEstimate, LegacyEstimate, EthGasPriceEstimate]:
    """Validate a raw oracle payload, rejecting shapes with an unknown tag."""
    return gas_fee_estimate_adapter.validate_python(payload)


@dataclass(frozen=True)
class RemoteTransactionSourceRequest:
    """Account and chain whose history the remote source should return."""
    address: str
    chain_id: int
    from_block: Optional[int] = None
    limit: Optional[int] = None


class LedgerState(_WireModel):
    transactions: List[TransactionRecord] = Field(default_factory=list)
