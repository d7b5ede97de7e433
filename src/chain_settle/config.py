"""Configuration containers for the settlement engine."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal

from web3 import Web3

from .constants import (
    ACROSS_SPOKE_POOLS,
    ACTIVE_CHAINS,
    CHAIN_IDS,
    DEFAULT_SETTLEMENT_CHAIN,
    ODOS_REFERRAL_CODE,
    ODOS_ROUTERS,
    SUPPORTED_BRIDGE_ROUTES,
    TOKEN_ADDRESSES,
    WRAPPED_NATIVE_ADDRESSES,
    AssetSymbol,
    ChainKey,
)
from .exceptions import ValidationError

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_RECEIPT_TIMEOUT = 120.0
DEFAULT_AMOUNT_TOLERANCE = Decimal("0.000001")
DEFAULT_NATIVE_GAS_RESERVE = Decimal("0.0005")

ACROSS_API_URL = "https://app.across.to/api"
DEFAULT_FILL_DEADLINE_BUFFER = 7200
DEFAULT_APPROVAL_HEADROOM = Decimal("1000000")

DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_MAX_POLLS = 30
DEFAULT_ARRIVAL_RATIO = Decimal("0.95")
DEFAULT_FORWARD_RETRY_BACKOFF = 5.0
DEFAULT_UNWRAP_SETTLE_DELAY = 3.0

ODOS_API_URL = "https://api.odos.xyz"
DEFAULT_SWAP_GAS_CEILING = 800_000
DEFAULT_SWAP_SLIPPAGE = 0.5
DEFAULT_NONCE_RETRY_BACKOFF = 2.0


@dataclass(frozen=True)
class ChainConfig:
    """Per-network RPC endpoint and contract addresses."""

    key: ChainKey
    chain_id: int
    rpc_url: str
    spoke_pool: str | None = None
    tokens: Mapping[AssetSymbol, str] = field(default_factory=dict)
    wrapped_native: str | None = None
    swap_router: str | None = None
    referral_code: int | None = None

    def token_address(self, asset: AssetSymbol) -> str:
        """Return the ERC-20 address used to move ``asset`` on this chain."""

        if asset.is_native:
            if not self.wrapped_native:
                raise ValidationError(
                    f"Wrapped native token not supported on {self.key.value}",
                    field="wrapped_native",
                    value=self.key.value,
                )
            return self.wrapped_native

        address = self.tokens.get(asset)
        if not address:
            raise ValidationError(
                f"Token {asset.value} not supported on {self.key.value}",
                field="asset",
                value=asset.value,
            )
        return address

    @property
    def supports_swaps(self) -> bool:
        return bool(self.swap_router and self.referral_code)


@dataclass(frozen=True)
class BridgeConfig:
    """Configuration for the Across bridge helpers."""

    api_url: str = ACROSS_API_URL
    routes: frozenset[tuple[ChainKey, ChainKey]] = SUPPORTED_BRIDGE_ROUTES
    fill_deadline_buffer: int = DEFAULT_FILL_DEADLINE_BUFFER
    approval_headroom: Decimal = DEFAULT_APPROVAL_HEADROOM
    quote_retries: int = 1


@dataclass(frozen=True)
class ArrivalConfig:
    """Polling parameters for bridged-funds arrival."""

    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_polls: int = DEFAULT_MAX_POLLS
    arrival_ratio: Decimal = DEFAULT_ARRIVAL_RATIO
    forward_retry_backoff: float = DEFAULT_FORWARD_RETRY_BACKOFF
    unwrap_settle_delay: float = DEFAULT_UNWRAP_SETTLE_DELAY

    @property
    def window(self) -> float:
        return self.poll_interval * self.max_polls


@dataclass(frozen=True)
class SwapConfig:
    """Configuration for the Odos swap flow."""

    api_url: str = ODOS_API_URL
    gas_ceiling: int = DEFAULT_SWAP_GAS_CEILING
    slippage: float = DEFAULT_SWAP_SLIPPAGE
    fee_share: Decimal = Decimal("0.003")


@dataclass(frozen=True)
class EngineConfig:
    """Aggregated configuration used to construct the settlement engine."""

    private_key: str
    chains: Mapping[ChainKey, ChainConfig]
    settlement_chain: ChainKey = DEFAULT_SETTLEMENT_CHAIN
    active_chains: tuple[ChainKey, ...] = ACTIVE_CHAINS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    wait_for_receipt: bool = True
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    amount_tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE
    native_gas_reserve: Decimal = DEFAULT_NATIVE_GAS_RESERVE
    nonce_retry_backoff: float = DEFAULT_NONCE_RETRY_BACKOFF
    bridge: BridgeConfig = BridgeConfig()
    arrival: ArrivalConfig = ArrivalConfig()
    swap: SwapConfig = SwapConfig()

    def chain(self, key: ChainKey) -> ChainConfig:
        config = self.chains.get(key)
        if config is None:
            raise ValidationError("Unknown chain", field="chain", value=getattr(key, "value", key))
        return config

    @property
    def settlement(self) -> ChainConfig:
        return self.chain(self.settlement_chain)

    @property
    def source_chains(self) -> tuple[ChainKey, ...]:
        return tuple(key for key in self.active_chains if key != self.settlement_chain)

    def with_defaults(self) -> EngineConfig:
        """Return a validated copy with normalised URLs and checksummed addresses."""

        if self.settlement_chain not in self.chains:
            raise ValidationError(
                "Settlement chain has no chain configuration",
                field="settlement_chain",
                value=self.settlement_chain.value,
            )
        if self.amount_tolerance < 0:
            raise ValidationError(
                "Amount tolerance must be non-negative",
                field="amount_tolerance",
                value=self.amount_tolerance,
            )
        if self.native_gas_reserve < 0:
            raise ValidationError(
                "Native gas reserve must be non-negative",
                field="native_gas_reserve",
                value=self.native_gas_reserve,
            )

        chains = {key: _checksummed(chain) for key, chain in self.chains.items()}
        active = tuple(key for key in self.active_chains if key in chains)

        return replace(
            self,
            chains=chains,
            active_chains=active,
            bridge=replace(self.bridge, api_url=self.bridge.api_url.rstrip("/")),
            swap=replace(self.swap, api_url=self.swap.api_url.rstrip("/")),
        )


def default_chain_configs(rpc_urls: Mapping[ChainKey, str]) -> dict[ChainKey, ChainConfig]:
    """Build chain configurations from the bundled address book."""

    configs: dict[ChainKey, ChainConfig] = {}
    for key, rpc_url in rpc_urls.items():
        configs[key] = ChainConfig(
            key=key,
            chain_id=CHAIN_IDS[key],
            rpc_url=rpc_url,
            spoke_pool=ACROSS_SPOKE_POOLS.get(key),
            tokens=dict(TOKEN_ADDRESSES.get(key, {})),
            wrapped_native=WRAPPED_NATIVE_ADDRESSES.get(key),
            swap_router=ODOS_ROUTERS.get(key),
            referral_code=ODOS_REFERRAL_CODE if key in ODOS_ROUTERS else None,
        )
    return configs


def _checksummed(chain: ChainConfig) -> ChainConfig:
    def normalise(address: str | None) -> str | None:
        return Web3.to_checksum_address(address) if address else address

    return replace(
        chain,
        spoke_pool=normalise(chain.spoke_pool),
        tokens={asset: Web3.to_checksum_address(addr) for asset, addr in chain.tokens.items()},
        wrapped_native=normalise(chain.wrapped_native),
        swap_router=normalise(chain.swap_router),
    )
