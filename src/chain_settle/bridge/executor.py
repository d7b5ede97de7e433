"""Submission of planned bridge legs through the Across spoke pools."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from decimal import Decimal

from .. import abi
from ..base import TransactionSender
from ..config import EngineConfig
from ..constants import ZERO_ADDRESS, ChainKey
from ..evm.balances import ChainBalanceReader
from ..evm.tokens import TokenOperations
from ..exceptions import ValidationError
from ..types import Address, BridgeLeg, BridgeQuote, LegOutcome, TxCall
from ..utils import to_base_units
from .quotes import AcrossQuoteClient

logger = logging.getLogger(__name__)


class BridgeExecutor:
    """Wrap, approve and deposit one leg at a time."""

    def __init__(
        self,
        config: EngineConfig,
        sender: TransactionSender,
        balances: ChainBalanceReader,
        quotes: AcrossQuoteClient,
        tokens: TokenOperations,
    ) -> None:
        self._config = config
        self._sender = sender
        self._balances = balances
        self._quotes = quotes
        self._tokens = tokens

    async def execute_legs(
        self,
        legs: Sequence[BridgeLeg],
        recipient: Address,
        message: bytes = b"",
    ) -> list[LegOutcome]:
        """Run legs sequentially per source chain and concurrently across chains.

        Outcomes are returned in the order of ``legs``.
        """
        groups: dict[ChainKey, list[BridgeLeg]] = {}
        for leg in legs:
            groups.setdefault(leg.source_chain, []).append(leg)

        async def run_group(group: list[BridgeLeg]) -> list[LegOutcome]:
            outcomes = []
            for leg in group:
                outcomes.append(await self.execute_leg(leg, recipient, message))
            return outcomes

        grouped = await asyncio.gather(*(run_group(group) for group in groups.values()))
        by_leg = {id(outcome.leg): outcome for outcomes in grouped for outcome in outcomes}
        return [by_leg[id(leg)] for leg in legs]

    async def execute_leg(
        self,
        leg: BridgeLeg,
        recipient: Address,
        message: bytes = b"",
    ) -> LegOutcome:
        """Execute one leg; failures are captured on the outcome instead of raised."""

        wrap_tx: str | None = None
        try:
            await self._revalidate(leg)

            destination = self._config.settlement_chain
            quote = await asyncio.to_thread(
                self._quotes.get_quote,
                leg.source_chain,
                destination,
                leg.asset,
                leg.amount,
                recipient,
                message,
            )

            if leg.asset.is_native:
                logger.debug("Stage wrap [%s]: %s ETH", leg.source_chain.value, leg.amount)
                wrap_tx = await self._tokens.wrap(leg.source_chain, leg.amount)

            source_config = self._config.chain(leg.source_chain)
            spoke_pool = source_config.spoke_pool
            if not spoke_pool:
                raise ValidationError(
                    f"No spoke pool configured on {leg.source_chain.value}",
                    field="spoke_pool",
                    value=leg.source_chain.value,
                )

            input_token = source_config.token_address(leg.asset)
            units = to_base_units(leg.amount, leg.asset.decimals)
            logger.debug("Stage approve [%s]: %s units", leg.source_chain.value, units)
            await self._tokens.ensure_allowance(
                leg.source_chain, leg.asset, input_token, spoke_pool, units
            )

            logger.debug("Stage deposit [%s]: %s units", leg.source_chain.value, units)
            call = self.deposit_call(leg, quote, recipient, message)
            tx_hash = await self._tokens.send(leg.source_chain, call, action="bridge deposit")
        except Exception as exc:
            logger.error(
                "Bridge leg %s %s from %s failed: %s",
                leg.amount,
                leg.asset.value,
                leg.source_chain.value,
                exc,
            )
            return LegOutcome(leg=leg, wrap_tx_hash=wrap_tx, error=exc)

        logger.info(
            "Bridged %s %s from %s to %s: %s",
            leg.amount,
            leg.asset.value,
            leg.source_chain.value,
            self._config.settlement_chain.value,
            tx_hash,
        )
        return LegOutcome(leg=leg, tx_hash=tx_hash, wrap_tx_hash=wrap_tx)

    def deposit_call(
        self,
        leg: BridgeLeg,
        quote: BridgeQuote,
        recipient: Address,
        message: bytes = b"",
    ) -> TxCall:
        source_config = self._config.chain(leg.source_chain)
        destination_config = self._config.settlement
        args = [
            self._sender.address(leg.source_chain),
            recipient,
            source_config.token_address(leg.asset),
            destination_config.token_address(leg.asset),
            to_base_units(leg.amount, leg.asset.decimals),
            quote.output_amount,
            destination_config.chain_id,
            ZERO_ADDRESS,
            quote.quote_timestamp,
            quote.fill_deadline,
            quote.exclusivity_parameter,
            message,
        ]
        return TxCall(
            to=source_config.spoke_pool or ZERO_ADDRESS,
            data=abi.encode_call(abi.DEPOSIT_V3, args),
        )

    async def _revalidate(self, leg: BridgeLeg) -> None:
        owner = self._sender.address(leg.source_chain)
        balance = await asyncio.to_thread(
            self._balances.read, leg.source_chain, leg.asset, owner
        )
        reserve = Decimal(0)
        if leg.asset.is_native and self._sender.pays_gas:
            reserve = self._config.native_gas_reserve
        if leg.amount > balance - reserve + self._config.amount_tolerance:
            raise ValidationError(
                f"Balance on {leg.source_chain.value} dropped below the planned leg "
                f"({balance} < {leg.amount} {leg.asset.value} + {reserve} gas reserve)",
                field="amount",
                value=leg.amount,
                details={"balance": str(balance), "gas_reserve": str(reserve)},
            )
