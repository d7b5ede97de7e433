"""ERC-20 and wrapped-native token operations shared by the executors."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from .. import abi
from ..base import ChainReader, TransactionSender
from ..config import EngineConfig
from ..constants import AssetSymbol, ChainKey
from ..types import Address, TxCall
from ..utils import to_base_units
from .transactions import submit

logger = logging.getLogger(__name__)


class TokenOperations:
    """Build and submit approve, wrap, unwrap and transfer calls."""

    def __init__(
        self,
        config: EngineConfig,
        reader: ChainReader,
        sender: TransactionSender,
    ) -> None:
        self._config = config
        self._reader = reader
        self._sender = sender

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def allowance(self, chain: ChainKey, token: Address, owner: Address, spender: Address) -> int:
        (value,) = self._reader.call(chain, token, abi.ALLOWANCE, [owner, spender], ["uint256"])
        return int(value)

    # ------------------------------------------------------------------
    # Call builders
    # ------------------------------------------------------------------
    def approve_call(self, token: Address, spender: Address, asset: AssetSymbol) -> TxCall:
        headroom = to_base_units(self._config.bridge.approval_headroom, asset.decimals)
        return TxCall(to=token, data=abi.encode_call(abi.APPROVE, [spender, headroom]))

    def wrap_call(self, chain: ChainKey, units: int) -> TxCall:
        weth = self._config.chain(chain).token_address(AssetSymbol.ETH)
        return TxCall(to=weth, data=abi.encode_call(abi.WRAP), value=units)

    def unwrap_call(self, chain: ChainKey, units: int) -> TxCall:
        weth = self._config.chain(chain).token_address(AssetSymbol.ETH)
        return TxCall(to=weth, data=abi.encode_call(abi.UNWRAP, [units]))

    def transfer_call(
        self, chain: ChainKey, asset: AssetSymbol, recipient: Address, units: int
    ) -> TxCall:
        if asset.is_native:
            return TxCall(to=recipient, data=b"", value=units)
        token = self._config.chain(chain).token_address(asset)
        return TxCall(to=token, data=abi.encode_call(abi.TRANSFER, [recipient, units]))

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------
    async def ensure_allowance(
        self,
        chain: ChainKey,
        asset: AssetSymbol,
        token: Address,
        spender: Address,
        units: int,
    ) -> str | None:
        """Approve ``spender`` for a large headroom when the current allowance is short."""

        owner = self._sender.address(chain)
        current = await asyncio.to_thread(self.allowance, chain, token, owner, spender)
        if current >= units:
            logger.debug(
                "Allowance on %s for %s is sufficient (%s >= %s)",
                chain.value,
                spender,
                current,
                units,
            )
            return None

        logger.info("Approving %s for %s on %s", asset.value, spender, chain.value)
        return await self.send(chain, self.approve_call(token, spender, asset), action="approve")

    async def wrap(self, chain: ChainKey, amount: Decimal) -> str:
        units = to_base_units(amount, AssetSymbol.ETH.decimals)
        logger.info("Wrapping %s ETH to WETH on %s", amount, chain.value)
        return await self.send(chain, self.wrap_call(chain, units), action="wrap")

    async def unwrap(self, chain: ChainKey, amount: Decimal) -> str:
        units = to_base_units(amount, AssetSymbol.ETH.decimals)
        logger.info("Unwrapping %s WETH to ETH on %s", amount, chain.value)
        return await self.send(chain, self.unwrap_call(chain, units), action="unwrap")

    async def send(self, chain: ChainKey, call: TxCall, *, action: str) -> str:
        return await submit(
            self._sender,
            chain,
            call,
            action=action,
            nonce_retry_backoff=self._config.nonce_retry_backoff,
        )
