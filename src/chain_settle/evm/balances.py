"""Balance reads for one chain and the parallel fan-out across all chains."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from .. import abi
from ..base import ChainReader
from ..config import EngineConfig
from ..constants import AssetSymbol, ChainKey
from ..exceptions import NetworkError
from ..types import Address, BalanceSnapshot, ChainBalance
from ..utils import from_base_units

logger = logging.getLogger(__name__)


class ChainBalanceReader:
    """Read a fungible balance for one account on one chain."""

    def __init__(self, config: EngineConfig, reader: ChainReader, *, retries: int = 1) -> None:
        self._config = config
        self._reader = reader
        self._retries = retries

    def read(self, chain: ChainKey, asset: AssetSymbol, account: Address) -> Decimal:
        """Return the balance of ``asset`` (native balance for the native asset)."""

        if asset.is_native:
            units = self._with_retry(chain, lambda: self._reader.native_balance(chain, account))
        else:
            token = self._config.chain(chain).token_address(asset)
            units = self._with_retry(chain, lambda: self._token_balance(chain, token, account))
        return from_base_units(units, asset.decimals)

    def read_wrapped(self, chain: ChainKey, account: Address) -> Decimal:
        """Return the wrapped-native token balance on ``chain``."""

        token = self._config.chain(chain).token_address(AssetSymbol.ETH)
        units = self._with_retry(chain, lambda: self._token_balance(chain, token, account))
        return from_base_units(units, AssetSymbol.ETH.decimals)

    def read_bridgeable(self, chain: ChainKey, asset: AssetSymbol, account: Address) -> Decimal:
        """Balance that arrives on ``chain`` from a bridge: WETH for the native asset."""

        if asset.is_native:
            return self.read_wrapped(chain, account)
        return self.read(chain, asset, account)

    def _token_balance(self, chain: ChainKey, token: Address, account: Address) -> int:
        (value,) = self._reader.call(chain, token, abi.BALANCE_OF, [account], ["uint256"])
        return int(value)

    def _with_retry(self, chain: ChainKey, read):
        attempts = self._retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return read()
            except NetworkError as exc:
                if attempt >= attempts:
                    raise
                logger.debug(
                    "Balance read on %s failed (attempt %s/%s): %s",
                    chain.value,
                    attempt,
                    attempts,
                    exc,
                )
        raise NetworkError(f"Balance read on {chain.value} failed")  # pragma: no cover


class BalanceAggregator:
    """Fan balance reads out over every active chain concurrently."""

    def __init__(self, config: EngineConfig, reader: ChainBalanceReader) -> None:
        self._config = config
        self._reader = reader

    async def get_balances(self, account: Address, asset: AssetSymbol) -> BalanceSnapshot:
        chains = self._config.active_chains
        results = await asyncio.gather(
            *(self._read_one(chain, asset, account) for chain in chains)
        )

        balances = {result.chain: result.amount for result in results}
        errors = {result.chain: result.error for result in results if result.error}
        snapshot = BalanceSnapshot(asset=asset, balances=balances, errors=errors)
        logger.debug(
            "Balances for %s %s: %s (total=%s)",
            account,
            asset.value,
            {chain.value: str(amount) for chain, amount in balances.items()},
            snapshot.total,
        )
        return snapshot

    async def get_total(self, account: Address, asset: AssetSymbol) -> Decimal:
        snapshot = await self.get_balances(account, asset)
        return snapshot.total

    async def _read_one(
        self, chain: ChainKey, asset: AssetSymbol, account: Address
    ) -> ChainBalance:
        try:
            amount = await asyncio.to_thread(self._reader.read, chain, asset, account)
        except Exception as exc:
            logger.warning("Treating %s %s balance as zero: %s", chain.value, asset.value, exc)
            return ChainBalance(chain=chain, asset=asset, amount=Decimal(0), error=str(exc))
        return ChainBalance(chain=chain, asset=asset, amount=amount)
