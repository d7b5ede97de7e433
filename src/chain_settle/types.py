"""Type definitions and data models for the settlement engine."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any

from .constants import AssetSymbol, ChainKey

Address = str  # Ethereum address
Wei = int  # Base-unit amount


class SettlementKind(Enum):
    """Final action performed on the settlement chain."""

    WITHDRAW = "withdraw"
    VAULT_DEPOSIT = "vault_deposit"
    VAULT_WITHDRAW = "vault_withdraw"


class ArrivalStatus(Enum):
    """Outcome of one arrival polling session."""

    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TxCall:
    """A single transaction handed to the account boundary."""

    to: Address
    data: bytes = b""
    value: Wei = 0
    gas: int | None = None

    def as_dict(self) -> dict[str, Any]:
        tx: dict[str, Any] = {"to": self.to, "data": self.data, "value": self.value}
        if self.gas is not None:
            tx["gas"] = self.gas
        return tx


@dataclass(frozen=True)
class ChainBalance:
    """Balance snapshot for one account on one chain."""

    chain: ChainKey
    asset: AssetSymbol
    amount: Decimal
    error: str | None = None


@dataclass(frozen=True)
class BalanceSnapshot:
    """Per-chain balance table for one asset."""

    asset: AssetSymbol
    balances: dict[ChainKey, Decimal]
    errors: dict[ChainKey, str] = field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        return sum(self.balances.values(), Decimal(0))

    def get(self, chain: ChainKey) -> Decimal:
        return self.balances.get(chain, Decimal(0))

    def spendable(self, reserve: Decimal) -> BalanceSnapshot:
        """Copy with ``reserve`` held back on every chain for gas, floored at zero."""
        balances = {
            chain: max(amount - reserve, Decimal(0)) for chain, amount in self.balances.items()
        }
        return replace(self, balances=balances)

    def credit(self, chain: ChainKey, amount: Decimal) -> BalanceSnapshot:
        balances = dict(self.balances)
        balances[chain] = self.get(chain) + amount
        return replace(self, balances=balances)


@dataclass(frozen=True)
class BridgeLeg:
    """One planned transfer from a source chain to the settlement chain."""

    source_chain: ChainKey
    asset: AssetSymbol
    amount: Decimal


@dataclass(frozen=True)
class RejectedLeg:
    """A candidate leg that failed feasibility validation."""

    leg: BridgeLeg
    reason: str
    error: Exception | None = None


@dataclass(frozen=True)
class BridgePlan:
    """Ordered legs covering a shortfall, plus legs that could not be used."""

    asset: AssetSymbol
    shortfall: Decimal
    legs: list[BridgeLeg] = field(default_factory=list)
    rejected: list[RejectedLeg] = field(default_factory=list)
    unused: list[ChainBalance] = field(default_factory=list)

    @property
    def covered(self) -> Decimal:
        return sum((leg.amount for leg in self.legs), Decimal(0))


@dataclass(frozen=True)
class BridgeQuote:
    """Short-lived quote returned by the bridge fee endpoint (base units)."""

    output_amount: Wei
    fee_total: Wei
    quote_timestamp: int
    fill_deadline: int
    exclusivity_parameter: int = 0
    raw: dict[str, Any] | None = None

    def is_expired(self, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.fill_deadline


@dataclass(frozen=True)
class LegOutcome:
    """Result of executing one bridge leg."""

    leg: BridgeLeg
    tx_hash: str | None = None
    wrap_tx_hash: str | None = None
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.tx_hash is not None


@dataclass(frozen=True)
class SettlementRequest:
    """A caller request; ``amount=None`` asks for the maximum available."""

    kind: SettlementKind
    asset: AssetSymbol
    amount: Decimal | None
    destination: str

    @property
    def is_maximum_request(self) -> bool:
        return self.amount is None


@dataclass(frozen=True)
class PendingArrival:
    """Bridged amount expected on top of ``baseline`` while relays complete."""

    expected_amount: Decimal
    chain: ChainKey
    asset: AssetSymbol
    deadline: float
    bridge_txs: tuple[str, ...] = ()
    baseline: Decimal = Decimal(0)


@dataclass(frozen=True)
class ArrivalResult:
    status: ArrivalStatus
    observed: Decimal
    attempts: int
    arrived: Decimal = Decimal(0)

    @property
    def confirmed(self) -> bool:
        return self.status is ArrivalStatus.CONFIRMED


@dataclass(frozen=True)
class VaultPositions:
    """Withdrawable assets held in the primary and secondary vault legs."""

    primary: Decimal
    secondary: Decimal

    @property
    def total(self) -> Decimal:
        return self.primary + self.secondary


@dataclass
class SettlementResult:
    """Outcome of one settlement execution."""

    request: SettlementRequest
    amount: Decimal
    transaction_hash: str
    settlement_txs: list[str] = field(default_factory=list)
    legs: list[LegOutcome] = field(default_factory=list)
    rejected: list[RejectedLeg] = field(default_factory=list)
    unused: list[ChainBalance] = field(default_factory=list)
    is_maximum: bool = False
    cross_chain: bool = False

    @property
    def bridge_txs(self) -> list[str]:
        return [outcome.tx_hash for outcome in self.legs if outcome.tx_hash]

    @property
    def failed_legs(self) -> list[LegOutcome]:
        return [outcome for outcome in self.legs if not outcome.succeeded]


@dataclass(frozen=True)
class SwapSimulation:
    """Simulation verdict from the swap aggregator, classified at parse time."""

    success: bool
    gas_related: bool = False
    reason: str | None = None


@dataclass(frozen=True)
class SwapQuote:
    chain: ChainKey
    input_asset: AssetSymbol
    output_asset: AssetSymbol
    path_id: str
    input_amount: Wei
    output_amount: Wei
    price_impact: float | None = None
    gas_estimate: float | None = None
    raw: dict[str, Any] | None = None


@dataclass(frozen=True)
class AssembledSwap:
    call: TxCall
    simulation: SwapSimulation | None = None


@dataclass
class SwapResult:
    success: bool
    transaction_hash: str
    quote: SwapQuote
    estimated_output: Decimal
    approval_tx: str | None = None
