"""Exception hierarchy for the settlement engine."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from .types import LegOutcome, RejectedLeg


class SettlementError(Exception):
    """Base exception for all settlement engine errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NetworkError(SettlementError):
    """Raised when network/connection issues occur."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class ValidationError(SettlementError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class TransactionFailed(SettlementError):
    """Raised when a submitted transaction is rejected or reverts."""

    def __init__(
        self,
        message: str,
        chain: str | None = None,
        tx_hash: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.chain = chain
        self.tx_hash = tx_hash


class NonceConflict(TransactionFailed):
    """The signer reported a nonce already in use; the call did not consume a slot."""


class InsufficientTotalBalance(SettlementError):
    """Requested amount exceeds the sum of balances across all chains."""

    def __init__(self, requested: Any, available: Any, asset: str | None = None):
        super().__init__(
            f"Insufficient total balance. Available: {available}, requested: {requested}",
            details={"asset": asset},
        )
        self.requested = requested
        self.available = available
        self.asset = asset


class InsufficientFeasibleLiquidity(SettlementError):
    """Enough nominal balance exists but some of it cannot be bridged."""

    def __init__(
        self,
        required: Any,
        feasible: Any,
        rejected: Sequence[RejectedLeg] = (),
        asset: str | None = None,
    ):
        lines = [
            f"Insufficient valid bridge amounts. Required: {required} {asset or ''}".rstrip()
            + f", valid bridge amounts available: {feasible}"
        ]
        for item in rejected:
            lines.append(
                f"  - {item.leg.source_chain.value}: {item.leg.amount} {item.leg.asset.value}"
                f" - {item.reason}"
            )
        super().__init__("\n".join(lines), details={"asset": asset})
        self.required = required
        self.feasible = feasible
        self.rejected = list(rejected)


class BridgeRouteUnsupported(SettlementError):
    """No configured bridge path between two chains for an asset."""

    def __init__(self, source: str, destination: str, asset: str | None = None):
        super().__init__(
            f"Bridge route from {source} to {destination} is not supported",
            details={"asset": asset},
        )
        self.source = source
        self.destination = destination
        self.asset = asset


class BridgeAmountTooLow(SettlementError):
    """A leg's value is below the bridge's economic floor."""

    def __init__(
        self,
        amount: Any,
        asset: str,
        chain: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            f"Bridge amount too low: {amount} {asset} is too small relative to bridge fees",
            details=details,
        )
        self.amount = amount
        self.asset = asset
        self.chain = chain


class BridgeQuoteError(NetworkError):
    """The bridge quote endpoint returned an error that is not otherwise classified."""


class ArrivalTimeout(SettlementError):
    """Bridged funds did not confirm within the polling window; they may still be in flight."""

    def __init__(
        self,
        expected: Any,
        observed: Any,
        chain: str,
        asset: str,
        bridge_txs: Sequence[str] = (),
    ):
        super().__init__(
            f"Expected {expected} {asset} did not arrive on {chain} within the polling window "
            f"(observed {observed}). The bridge may be delayed; check back later.",
            details={"bridge_txs": list(bridge_txs)},
        )
        self.expected = expected
        self.observed = observed
        self.chain = chain
        self.asset = asset
        self.bridge_txs = list(bridge_txs)


class SettlementCancelled(SettlementError):
    """The caller abandoned the settlement while waiting for arrival."""

    def __init__(self, message: str, bridge_txs: Sequence[str] = ()):
        super().__init__(message, details={"bridge_txs": list(bridge_txs)})
        self.bridge_txs = list(bridge_txs)


class PostArrivalForwardingFailed(SettlementError):
    """Funds landed on the settlement chain but the follow-up transaction failed."""

    def __init__(
        self,
        message: str,
        chain: str,
        unwrap_tx: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, details={"unwrap_tx": unwrap_tx})
        self.chain = chain
        self.unwrap_tx = unwrap_tx
        self.cause = cause


class PartialBridgeFailure(SettlementError):
    """Some bridge legs were submitted but the rest failed and the request cannot be met."""

    def __init__(self, cause: SettlementError, outcomes: Sequence[LegOutcome]):
        super().__init__(str(cause), details=dict(cause.details))
        self.cause = cause
        self.succeeded = [outcome for outcome in outcomes if outcome.succeeded]
        self.failed = [outcome for outcome in outcomes if not outcome.succeeded]


class SimulationReverted(SettlementError):
    """The swap simulation reported a genuine revert; no funds were moved."""

    def __init__(self, reason: str | None = None, details: dict | None = None):
        super().__init__(
            "Swap simulation failed - transaction would revert"
            + (f": {reason}" if reason else ""),
            details=details,
        )
        self.reason = reason
