"""Composition root: turn a settlement request into bridge legs and one final action."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

import requests

from .base import ChainReader, TransactionSender
from .bridge import AcrossQuoteClient, ArrivalPoller, BridgeExecutor, BridgePlanner
from .config import EngineConfig
from .constants import AssetSymbol, ChainKey
from .evm.balances import BalanceAggregator, ChainBalanceReader
from .evm.connections import ChainConnections
from .evm.tokens import TokenOperations
from .evm.transactions import Web3TransactionSender
from .exceptions import (
    ArrivalTimeout,
    PartialBridgeFailure,
    SettlementCancelled,
    SettlementError,
    TransactionFailed,
    ValidationError,
)
from .settlement import SettlementExecutor, checksum
from .swap import OdosClient, SwapOrchestrator
from .types import (
    Address,
    ArrivalStatus,
    BalanceSnapshot,
    BridgePlan,
    LegOutcome,
    SettlementKind,
    SettlementRequest,
    SettlementResult,
    SwapResult,
)
from .utils import covers, is_dust
from .vaults import VaultDescriptor, VaultRegistry

logger = logging.getLogger(__name__)


class SettlementOrchestrator:
    """Consolidate liquidity on the settlement chain and execute one settlement.

    Holds no per-request state; concurrent requests for the same account must be serialised
    by the caller.
    """

    def __init__(
        self,
        config: EngineConfig,
        reader: ChainReader,
        sender: TransactionSender,
        *,
        session: requests.Session | None = None,
        quotes: AcrossQuoteClient | None = None,
        swap_client: OdosClient | None = None,
        vaults: VaultRegistry | None = None,
    ) -> None:
        self.config = config
        self._sender = sender
        self._session = session or requests.Session()
        self._vaults = vaults or VaultRegistry()

        self.tokens = TokenOperations(config, reader, sender)
        self.balance_reader = ChainBalanceReader(config, reader)
        self.aggregator = BalanceAggregator(config, self.balance_reader)
        self.quotes = quotes or AcrossQuoteClient(config, self._session)
        self.planner = BridgePlanner(config, self.quotes)
        self.executor = BridgeExecutor(
            config, sender, self.balance_reader, self.quotes, self.tokens
        )
        self.settlement = SettlementExecutor(config, reader, self.tokens)
        self.swaps = SwapOrchestrator(
            config, swap_client or OdosClient(config, self._session), sender, self.tokens
        )

    @classmethod
    def from_config(cls, config: EngineConfig) -> SettlementOrchestrator:
        """Build the engine on live RPC connections signed by ``config.private_key``."""

        resolved = config.with_defaults()
        connections = ChainConnections(resolved)
        connections.connect()
        sender = Web3TransactionSender(
            connections,
            wait_for_receipt=resolved.wait_for_receipt,
            receipt_timeout=resolved.receipt_timeout,
        )
        return cls(resolved, connections, sender)

    def close(self) -> None:
        self._session.close()

    @property
    def settlement_chain(self) -> ChainKey:
        return self.config.settlement_chain

    @property
    def account(self) -> Address:
        return self._sender.address(self.settlement_chain)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    async def settle(
        self,
        request: SettlementRequest,
        cancel: asyncio.Event | None = None,
    ) -> SettlementResult:
        """Execute ``request`` once, bridging from other chains when needed.

        Raises:
            InsufficientTotalBalance: The request exceeds the balance on all chains
            InsufficientFeasibleLiquidity: Bridgeable legs cannot cover the shortfall
            PartialBridgeFailure: Some legs were submitted but the rest failed
            ArrivalTimeout: Bridged funds were not observed in time
            SettlementCancelled: ``cancel`` was set before settlement
            PostArrivalForwardingFailed: Funds arrived but the final action failed
        """
        logger.info(
            "Settlement request: %s %s %s -> %s",
            request.kind.value,
            "max" if request.is_maximum_request else request.amount,
            request.asset.value,
            request.destination,
        )

        if request.kind is SettlementKind.VAULT_WITHDRAW:
            return await self._withdraw_from_vault(request)

        vault: VaultDescriptor | None = None
        if request.kind is SettlementKind.VAULT_DEPOSIT:
            vault = self._vaults.resolve(request.destination, request.asset, self.settlement_chain)
        else:
            checksum(request.destination)

        account = self.account
        snapshot = await self.aggregator.get_balances(account, request.asset)
        for chain, error in snapshot.errors.items():
            logger.warning("Balance on %s unavailable, counted as zero: %s", chain.value, error)

        wrapped = Decimal(0)
        if request.asset.is_native:
            snapshot, wrapped = await self._native_liquidity(snapshot, account)

        amount, is_maximum = self.planner.resolve_amount(request.amount, snapshot.total)
        if is_dust(amount, self.config.amount_tolerance):
            raise ValidationError(
                f"No {request.asset.value} balance available",
                field="amount",
                value=request.amount,
            )
        if is_maximum:
            logger.info("Adjusting request to max available: %s %s", amount, request.asset.value)

        local = snapshot.get(self.settlement_chain)
        if covers(local, amount, self.config.amount_tolerance):
            settle_amount = min(amount, local)
            txs: list[str] = []
            if wrapped:
                txs.append(await self.tokens.unwrap(self.settlement_chain, wrapped))
            txs += await self._settle_once(request, vault, settle_amount, account)
            return SettlementResult(
                request=request,
                amount=settle_amount,
                transaction_hash=txs[-1],
                settlement_txs=txs,
                is_maximum=is_maximum,
            )

        return await self._settle_cross_chain(
            request, vault, snapshot, wrapped, amount, is_maximum, account, cancel
        )

    async def swap(
        self,
        chain: ChainKey,
        input_asset: AssetSymbol,
        output_asset: AssetSymbol,
        amount: Decimal,
        slippage: float | None = None,
    ) -> SwapResult:
        return await self.swaps.execute(chain, input_asset, output_asset, amount, slippage)

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------
    async def _settle_cross_chain(
        self,
        request: SettlementRequest,
        vault: VaultDescriptor | None,
        snapshot: BalanceSnapshot,
        wrapped: Decimal,
        amount: Decimal,
        is_maximum: bool,
        account: Address,
        cancel: asyncio.Event | None,
    ) -> SettlementResult:
        asset = request.asset
        tolerance = self.config.amount_tolerance
        local = snapshot.get(self.settlement_chain)
        shortfall = amount - local

        logger.debug(
            "Stage consolidate [%s]: local=%s shortfall=%s",
            self.settlement_chain.value,
            local,
            shortfall,
        )
        plan = await self.planner.plan(shortfall, snapshot, account, is_maximum=is_maximum)

        if cancel is not None and cancel.is_set():
            raise SettlementCancelled("Settlement cancelled before bridging")

        baseline = await asyncio.to_thread(
            self.balance_reader.read_bridgeable, self.settlement_chain, asset, account
        )
        outcomes = await self.executor.execute_legs(plan.legs, account)
        bridged = self._check_outcomes(plan, outcomes, local, amount)
        bridge_txs = tuple(outcome.tx_hash for outcome in outcomes if outcome.tx_hash)

        poller = self.poller(account)
        pending = poller.pending(bridged, asset, bridge_txs, baseline=baseline)
        arrival = await poller.await_arrival(pending, cancel)

        if arrival.status is ArrivalStatus.CANCELLED:
            raise SettlementCancelled(
                "Settlement cancelled while waiting for bridged funds; "
                "submitted bridge transfers will still complete",
                bridge_txs=bridge_txs,
            )
        if arrival.status is ArrivalStatus.TIMED_OUT:
            raise ArrivalTimeout(
                bridged,
                arrival.arrived,
                chain=self.settlement_chain.value,
                asset=asset.value,
                bridge_txs=bridge_txs,
            )

        # Native funds already held stay outside the bridged token balance.
        held = local - wrapped if asset.is_native else Decimal(0)

        async def forward(received: Decimal) -> tuple[Decimal, list[str]]:
            available = held + received
            settle_amount = available if is_maximum else min(amount, available)
            if not covers(available, amount, tolerance) and not is_maximum:
                logger.warning(
                    "Settling %s %s of the requested %s after bridge fees",
                    settle_amount,
                    asset.value,
                    amount,
                )
            txs = await self._settle_once(request, vault, settle_amount, account)
            return settle_amount, txs

        unwrap_tx, (settled, txs) = await poller.complete(
            pending, arrival.observed, forward
        )
        settlement_txs = ([unwrap_tx] if unwrap_tx else []) + txs

        logger.info(
            "Settlement complete: %s %s (%d bridge txs, final %s)",
            settled,
            asset.value,
            len(bridge_txs),
            settlement_txs[-1],
        )
        return SettlementResult(
            request=request,
            amount=settled,
            transaction_hash=settlement_txs[-1],
            settlement_txs=settlement_txs,
            legs=outcomes,
            rejected=plan.rejected,
            unused=plan.unused,
            is_maximum=is_maximum,
            cross_chain=True,
        )

    async def _withdraw_from_vault(self, request: SettlementRequest) -> SettlementResult:
        vault = self._vaults.resolve(request.destination, request.asset, self.settlement_chain)
        account = self.account
        positions = await self.settlement.vault_positions(vault, account)

        amount, is_maximum = self.planner.resolve_amount(request.amount, positions.total)
        if is_dust(amount, self.config.amount_tolerance):
            raise ValidationError(
                f"No withdrawable balance in {vault.name}", field="amount", value=request.amount
            )

        txs = await self.settlement.withdraw_from_vault(vault, amount, account, positions)
        logger.info("Vault withdrawal from %s completed. Final hash: %s", vault.name, txs[-1])
        return SettlementResult(
            request=request,
            amount=amount,
            transaction_hash=txs[-1],
            settlement_txs=txs,
            is_maximum=is_maximum,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def poller(self, account: Address) -> ArrivalPoller:
        return ArrivalPoller(self.config, self.balance_reader, self.tokens, account)

    async def _native_liquidity(
        self, snapshot: BalanceSnapshot, account: Address
    ) -> tuple[BalanceSnapshot, Decimal]:
        """Hold back the gas reserve and count WETH already on the settlement chain as local.

        Returns the adjusted snapshot and the wrapped amount that must be unwrapped first.
        """
        if self._sender.pays_gas:
            snapshot = snapshot.spendable(self.config.native_gas_reserve)

        try:
            wrapped = await asyncio.to_thread(
                self.balance_reader.read_wrapped, self.settlement_chain, account
            )
        except Exception as exc:
            logger.warning(
                "WETH balance on %s unavailable, counted as zero: %s",
                self.settlement_chain.value,
                exc,
            )
            return snapshot, Decimal(0)

        if is_dust(wrapped, self.config.amount_tolerance):
            return snapshot, Decimal(0)
        logger.warning(
            "Counting %s WETH already on %s as local liquidity",
            wrapped,
            self.settlement_chain.value,
        )
        return snapshot.credit(self.settlement_chain, wrapped), wrapped

    async def _settle_once(
        self,
        request: SettlementRequest,
        vault: VaultDescriptor | None,
        amount: Decimal,
        account: Address,
    ) -> list[str]:
        if request.kind is SettlementKind.VAULT_DEPOSIT and vault is not None:
            return await self.settlement.deposit_to_vault(vault, amount, account)
        tx_hash = await self.settlement.transfer(request.asset, amount, request.destination)
        return [tx_hash]

    def _check_outcomes(
        self,
        plan: BridgePlan,
        outcomes: list[LegOutcome],
        local: Decimal,
        amount: Decimal,
    ) -> Decimal:
        """Return the bridged total, raising when failed legs leave the request uncovered."""

        succeeded = [outcome for outcome in outcomes if outcome.succeeded]
        failed = [outcome for outcome in outcomes if not outcome.succeeded]
        bridged = sum((outcome.leg.amount for outcome in succeeded), Decimal(0))
        if not failed:
            return bridged

        cause = failed[0].error
        if not succeeded:
            if isinstance(cause, Exception):
                raise cause
            raise TransactionFailed("Failed to bridge funds from any chain")

        if covers(local + bridged, amount, self.config.amount_tolerance):
            logger.warning(
                "%d bridge legs failed; remaining legs still cover %s %s",
                len(failed),
                amount,
                plan.asset.value,
            )
            return bridged

        if not isinstance(cause, SettlementError):
            cause = TransactionFailed(str(cause))
        raise PartialBridgeFailure(cause, outcomes)
