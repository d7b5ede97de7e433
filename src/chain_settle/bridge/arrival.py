"""Polling for bridged funds on the settlement chain and the follow-up forward."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import TypeVar

from ..config import EngineConfig
from ..constants import AssetSymbol
from ..evm.balances import ChainBalanceReader
from ..evm.tokens import TokenOperations
from ..exceptions import NonceConflict, PostArrivalForwardingFailed
from ..types import Address, ArrivalResult, ArrivalStatus, PendingArrival
from ..utils import quantize_down

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ArrivalPoller:
    """Wait until an expected balance lands on the settlement chain."""

    def __init__(
        self,
        config: EngineConfig,
        balances: ChainBalanceReader,
        tokens: TokenOperations,
        account: Address,
    ) -> None:
        self._config = config
        self._arrival = config.arrival
        self._balances = balances
        self._tokens = tokens
        self._account = account

    def pending(
        self,
        expected_amount: Decimal,
        asset: AssetSymbol,
        bridge_txs: tuple[str, ...] = (),
        baseline: Decimal = Decimal(0),
    ) -> PendingArrival:
        return PendingArrival(
            expected_amount=expected_amount,
            chain=self._config.settlement_chain,
            asset=asset,
            deadline=time.monotonic() + self._arrival.window,
            bridge_txs=bridge_txs,
            baseline=baseline,
        )

    async def await_arrival(
        self,
        pending: PendingArrival,
        cancel: asyncio.Event | None = None,
    ) -> ArrivalResult:
        """Poll until the balance has grown by ``expected * arrival_ratio`` over the baseline,
        the budget runs out or ``cancel`` is set. Never raises on timeout.
        """
        threshold = pending.expected_amount * self._arrival.arrival_ratio
        observed = pending.baseline
        arrived = Decimal(0)
        attempts = 0

        logger.info(
            "Waiting for %s %s on %s (baseline %s, threshold %s, up to %d polls)",
            pending.expected_amount,
            pending.asset.value,
            pending.chain.value,
            pending.baseline,
            threshold,
            self._arrival.max_polls,
        )

        while attempts < self._arrival.max_polls:
            if cancel is not None and cancel.is_set():
                return ArrivalResult(ArrivalStatus.CANCELLED, observed, attempts, arrived)

            attempts += 1
            try:
                observed = await asyncio.to_thread(
                    self._balances.read_bridgeable, pending.chain, pending.asset, self._account
                )
            except Exception as exc:
                logger.warning(
                    "Arrival poll %d/%d on %s failed: %s",
                    attempts,
                    self._arrival.max_polls,
                    pending.chain.value,
                    exc,
                )
            else:
                arrived = observed - pending.baseline
                logger.debug(
                    "Stage arrival [%s]: poll %d/%d observed %s %s (arrived %s)",
                    pending.chain.value,
                    attempts,
                    self._arrival.max_polls,
                    observed,
                    pending.asset.value,
                    arrived,
                )
                if arrived >= threshold:
                    logger.info(
                        "Arrival confirmed on %s: %s %s after %d polls",
                        pending.chain.value,
                        arrived,
                        pending.asset.value,
                        attempts,
                    )
                    return ArrivalResult(ArrivalStatus.CONFIRMED, observed, attempts, arrived)

            if attempts >= self._arrival.max_polls or time.monotonic() >= pending.deadline:
                break

            if await self._wait(cancel):
                return ArrivalResult(ArrivalStatus.CANCELLED, observed, attempts, arrived)

        logger.warning(
            "Funds not observed on %s after %d polls (arrived %s, expected %s)",
            pending.chain.value,
            attempts,
            arrived,
            pending.expected_amount,
        )
        return ArrivalResult(ArrivalStatus.TIMED_OUT, observed, attempts, arrived)

    async def complete(
        self,
        pending: PendingArrival,
        observed: Decimal,
        forward: Callable[[Decimal], Awaitable[T]],
    ) -> tuple[str | None, T]:
        """Unwrap the observed balance when needed and hand it to ``forward``.

        ``observed`` is the full balance of the bridged token, baseline included.

        Returns the unwrap hash (``None`` for non-native assets) and the forward result.

        Raises:
            PostArrivalForwardingFailed: Funds arrived but forwarding them failed
        """
        unwrap_tx: str | None = None
        amount = quantize_down(observed, pending.asset.decimals)

        if pending.asset.is_native:
            unwrap_tx = await self._tokens.unwrap(pending.chain, amount)
            await asyncio.sleep(self._arrival.unwrap_settle_delay)

        try:
            result = await self._forward_with_retry(pending, amount, forward)
        except Exception as exc:
            logger.error(
                "Funds arrived on %s (unwrap=%s) but forwarding %s failed: %s",
                pending.chain.value,
                unwrap_tx,
                amount,
                exc,
            )
            if unwrap_tx is not None:
                message = f"Unwrapping succeeded (tx: {unwrap_tx}) but sending failed: {exc}"
            else:
                message = f"Funds arrived on {pending.chain.value} but sending failed: {exc}"
            raise PostArrivalForwardingFailed(
                message,
                chain=pending.chain.value,
                unwrap_tx=unwrap_tx,
                cause=exc,
            ) from exc

        return unwrap_tx, result

    async def _forward_with_retry(
        self,
        pending: PendingArrival,
        amount: Decimal,
        forward: Callable[[Decimal], Awaitable[T]],
    ) -> T:
        try:
            return await forward(amount)
        except NonceConflict as exc:
            logger.warning(
                "Nonce conflict forwarding on %s, retrying in %.1fs: %s",
                pending.chain.value,
                self._arrival.forward_retry_backoff,
                exc,
            )
        await asyncio.sleep(self._arrival.forward_retry_backoff)
        return await forward(amount)

    async def _wait(self, cancel: asyncio.Event | None) -> bool:
        """Sleep one poll interval; return True when cancelled meanwhile."""

        if cancel is None:
            await asyncio.sleep(self._arrival.poll_interval)
            return False
        try:
            await asyncio.wait_for(cancel.wait(), self._arrival.poll_interval)
        except asyncio.TimeoutError:
            return False
        return True
