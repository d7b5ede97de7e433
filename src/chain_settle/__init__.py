"""chain-settle - consolidate balances across EVM chains and settle on one of them.

Balances spread over several networks are bridged through Across to a single settlement
chain, and the requested withdrawal, vault deposit or vault withdrawal is executed there.
"""

from .base import ChainReader, TransactionSender
from .config import (
    ArrivalConfig,
    BridgeConfig,
    ChainConfig,
    EngineConfig,
    SwapConfig,
    default_chain_configs,
)
from .constants import AssetSymbol, ChainKey
from .exceptions import (
    ArrivalTimeout,
    BridgeAmountTooLow,
    BridgeQuoteError,
    BridgeRouteUnsupported,
    InsufficientFeasibleLiquidity,
    InsufficientTotalBalance,
    NetworkError,
    NonceConflict,
    PartialBridgeFailure,
    PostArrivalForwardingFailed,
    SettlementCancelled,
    SettlementError,
    SimulationReverted,
    TransactionFailed,
    ValidationError,
)
from .orchestrator import SettlementOrchestrator
from .types import (
    ArrivalStatus,
    BalanceSnapshot,
    BridgeLeg,
    BridgePlan,
    LegOutcome,
    SettlementKind,
    SettlementRequest,
    SettlementResult,
    SwapResult,
    TxCall,
)
from .vaults import VaultDescriptor, VaultRegistry

__version__ = "0.1.0"

__all__ = [
    # Entry point
    "SettlementOrchestrator",
    # Boundaries
    "ChainReader",
    "TransactionSender",
    # Configuration
    "ArrivalConfig",
    "BridgeConfig",
    "ChainConfig",
    "EngineConfig",
    "SwapConfig",
    "default_chain_configs",
    # Types and enums
    "AssetSymbol",
    "ChainKey",
    "ArrivalStatus",
    "BalanceSnapshot",
    "BridgeLeg",
    "BridgePlan",
    "LegOutcome",
    "SettlementKind",
    "SettlementRequest",
    "SettlementResult",
    "SwapResult",
    "TxCall",
    "VaultDescriptor",
    "VaultRegistry",
    # Exceptions
    "SettlementError",
    "NetworkError",
    "ValidationError",
    "TransactionFailed",
    "NonceConflict",
    "InsufficientTotalBalance",
    "InsufficientFeasibleLiquidity",
    "BridgeRouteUnsupported",
    "BridgeAmountTooLow",
    "BridgeQuoteError",
    "ArrivalTimeout",
    "SettlementCancelled",
    "PostArrivalForwardingFailed",
    "PartialBridgeFailure",
    "SimulationReverted",
]
