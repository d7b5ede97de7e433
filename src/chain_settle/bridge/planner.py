"""Greedy bridge-leg planning over a per-chain balance snapshot."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from ..config import EngineConfig
from ..constants import AssetSymbol, ChainKey
from ..exceptions import (
    InsufficientFeasibleLiquidity,
    InsufficientTotalBalance,
    SettlementError,
    ValidationError,
)
from ..types import Address, BalanceSnapshot, BridgeLeg, BridgePlan, ChainBalance, RejectedLeg
from ..utils import covers, is_dust, quantize_down
from .quotes import AcrossQuoteClient

logger = logging.getLogger(__name__)


class BridgePlanner:
    """Select the source chains and amounts that cover a settlement-chain shortfall.

    Chains are consumed largest balance first. Native-asset legs are pre-validated with a quote
    for exactly the planned amount; a rejected leg is recorded and its share is carried over to
    the next chain in order.
    """

    def __init__(self, config: EngineConfig, quotes: AcrossQuoteClient) -> None:
        self._config = config
        self._quotes = quotes
        self._tolerance = config.amount_tolerance

    def resolve_amount(self, requested: Decimal | None, total: Decimal) -> tuple[Decimal, bool]:
        """Turn a requested amount into a concrete one and flag maximum requests.

        Raises:
            InsufficientTotalBalance: ``requested`` exceeds ``total`` beyond tolerance
            ValidationError: ``requested`` is not positive
        """
        if requested is None:
            return total, True

        if requested <= 0:
            raise ValidationError("Amount must be positive", field="amount", value=requested)

        if abs(requested - total) < self._tolerance:
            return total, True

        if requested > total + self._tolerance:
            raise InsufficientTotalBalance(requested, total)

        return requested, False

    def ordered_sources(self, snapshot: BalanceSnapshot) -> list[ChainBalance]:
        """Source chains with a positive balance, largest first then by chain name."""

        candidates = [
            ChainBalance(chain=chain, asset=snapshot.asset, amount=amount)
            for chain, amount in snapshot.balances.items()
            if chain != self._config.settlement_chain
            and chain in self._config.source_chains
            and amount > 0
        ]
        candidates.sort(key=lambda item: (-item.amount, item.chain.value))
        return candidates

    async def plan(
        self,
        shortfall: Decimal,
        snapshot: BalanceSnapshot,
        recipient: Address,
        *,
        is_maximum: bool = False,
    ) -> BridgePlan:
        """Build the ordered legs covering ``shortfall`` on the settlement chain.

        Raises:
            InsufficientFeasibleLiquidity: Feasible legs do not cover the shortfall
        """
        asset = snapshot.asset
        destination = self._config.settlement_chain
        remaining = shortfall
        legs: list[BridgeLeg] = []
        rejected: list[RejectedLeg] = []
        unused: list[ChainBalance] = []

        for source in self.ordered_sources(snapshot):
            if is_dust(remaining, self._tolerance):
                unused.append(source)
                continue

            amount = self._leg_amount(source.amount, remaining, asset, is_maximum)
            if amount <= 0:
                unused.append(source)
                continue

            leg = BridgeLeg(source_chain=source.chain, asset=asset, amount=amount)
            logger.debug(
                "Stage plan [%s]: candidate %s %s (remaining=%s)",
                source.chain.value,
                amount,
                asset.value,
                remaining,
            )

            if asset.is_native:
                rejection = await self._prevalidate(leg, destination, recipient)
                if rejection is not None:
                    rejected.append(rejection)
                    continue

            legs.append(leg)
            remaining -= amount

        plan = BridgePlan(
            asset=asset, shortfall=shortfall, legs=legs, rejected=rejected, unused=unused
        )

        if not covers(plan.covered, shortfall, self._tolerance):
            logger.error(
                "Feasible bridge legs cover %s of %s %s (%d rejected)",
                plan.covered,
                shortfall,
                asset.value,
                len(rejected),
            )
            raise InsufficientFeasibleLiquidity(
                shortfall, plan.covered, rejected=rejected, asset=asset.value
            )

        logger.info(
            "Bridge plan for %s %s: %s",
            shortfall,
            asset.value,
            ", ".join(f"{leg.source_chain.value}={leg.amount}" for leg in legs) or "none",
        )
        return plan

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _leg_amount(
        self,
        balance: Decimal,
        remaining: Decimal,
        asset: AssetSymbol,
        is_maximum: bool,
    ) -> Decimal:
        if is_maximum or is_dust(balance - remaining, self._tolerance):
            amount = balance
        else:
            amount = min(remaining, balance)
        return quantize_down(amount, asset.decimals)

    async def _prevalidate(
        self, leg: BridgeLeg, destination: ChainKey, recipient: Address
    ) -> RejectedLeg | None:
        try:
            await asyncio.to_thread(
                self._quotes.get_quote,
                leg.source_chain,
                destination,
                leg.asset,
                leg.amount,
                recipient,
            )
        except SettlementError as exc:
            logger.warning(
                "Rejected bridge leg %s %s from %s: %s",
                leg.amount,
                leg.asset.value,
                leg.source_chain.value,
                exc.message,
            )
            return RejectedLeg(leg=leg, reason=exc.message, error=exc)
        return None
