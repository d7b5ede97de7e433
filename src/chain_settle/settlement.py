"""Final actions on the settlement chain: transfers and vault deposits/withdrawals."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from web3 import Web3

from . import abi
from .base import ChainReader
from .config import EngineConfig
from .constants import AssetSymbol
from .evm.tokens import TokenOperations
from .exceptions import InsufficientTotalBalance, ValidationError
from .types import Address, TxCall, VaultPositions
from .utils import from_base_units, is_dust, quantize_down, to_base_units
from .vaults import VaultDescriptor

logger = logging.getLogger(__name__)


def checksum(address: str, field: str = "destination") -> Address:
    try:
        return Web3.to_checksum_address(address)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid address: {address}", field=field, value=address) from exc


def split_vault_withdrawal(
    positions: VaultPositions,
    amount: Decimal,
    tolerance: Decimal,
) -> tuple[Decimal, Decimal]:
    """Return ``(from_primary, from_secondary)`` for a withdrawal of ``amount``.

    The primary position is drained first; only the remainder comes from the secondary.
    """
    if amount > positions.total + tolerance:
        raise InsufficientTotalBalance(amount, positions.total)

    if amount <= positions.primary:
        return amount, Decimal(0)

    from_primary = positions.primary if not is_dust(positions.primary, tolerance) else Decimal(0)
    from_secondary = min(amount - from_primary, positions.secondary)
    return from_primary, from_secondary


class SettlementExecutor:
    """Submit the user's requested action once funds sit on the settlement chain.

    Each handler submits its calls strictly in order and waits for each receipt before the
    next one; no handler issues more than two transactions.
    """

    def __init__(
        self,
        config: EngineConfig,
        reader: ChainReader,
        tokens: TokenOperations,
    ) -> None:
        self._config = config
        self._reader = reader
        self._tokens = tokens
        self._chain = config.settlement_chain

    # ------------------------------------------------------------------
    # Withdrawals to an external address
    # ------------------------------------------------------------------
    async def transfer(self, asset: AssetSymbol, amount: Decimal, destination: str) -> str:
        recipient = checksum(destination)
        units = to_base_units(amount, asset.decimals)
        if units <= 0:
            raise ValidationError("Transfer amount must be positive", field="amount", value=amount)

        call = self._tokens.transfer_call(self._chain, asset, recipient, units)
        logger.info(
            "Transferring %s %s to %s on %s", amount, asset.value, recipient, self._chain.value
        )
        return await self._tokens.send(self._chain, call, action="transfer")

    # ------------------------------------------------------------------
    # Vault deposits
    # ------------------------------------------------------------------
    async def deposit_to_vault(
        self,
        vault: VaultDescriptor,
        amount: Decimal,
        beneficiary: Address,
    ) -> list[str]:
        """Approve the primary vault contract when needed, then deposit ``amount``."""

        units = to_base_units(amount, vault.asset.decimals)
        if units <= 0:
            raise ValidationError("Deposit amount must be positive", field="amount", value=amount)

        token = self._config.chain(self._chain).token_address(vault.asset)
        primary = checksum(vault.primary_address, field="vault")
        txs: list[str] = []

        approve_tx = await self._tokens.ensure_allowance(
            self._chain, vault.asset, token, primary, units
        )
        if approve_tx:
            txs.append(approve_tx)

        call = TxCall(
            to=primary,
            data=abi.encode_call(vault.deposit_function, [units, checksum(beneficiary)]),
        )
        logger.info("Depositing %s %s into %s", amount, vault.asset.value, vault.name)
        txs.append(await self._tokens.send(self._chain, call, action="vault deposit"))
        return txs

    # ------------------------------------------------------------------
    # Vault withdrawals
    # ------------------------------------------------------------------
    async def vault_positions(self, vault: VaultDescriptor, account: Address) -> VaultPositions:
        primary, secondary = await asyncio.gather(
            asyncio.to_thread(self._position, vault, vault.primary_address, account),
            asyncio.to_thread(self._position, vault, vault.secondary_address, account),
        )
        logger.debug(
            "Vault %s positions for %s: primary=%s secondary=%s",
            vault.vault_id,
            account,
            primary,
            secondary,
        )
        return VaultPositions(primary=primary, secondary=secondary)

    async def withdraw_from_vault(
        self,
        vault: VaultDescriptor,
        amount: Decimal,
        account: Address,
        positions: VaultPositions | None = None,
    ) -> list[str]:
        """Withdraw ``amount`` to ``account``; the last returned hash is canonical."""

        if positions is None:
            positions = await self.vault_positions(vault, account)

        tolerance = self._config.amount_tolerance
        from_primary, from_secondary = split_vault_withdrawal(positions, amount, tolerance)
        owner = checksum(account, field="account")
        decimals = vault.asset.decimals

        legs = [
            (vault.primary_address, quantize_down(from_primary, decimals)),
            (vault.secondary_address, quantize_down(from_secondary, decimals)),
        ]
        txs: list[str] = []
        for address, leg_amount in legs:
            if not address or leg_amount <= 0:
                continue
            units = to_base_units(leg_amount, decimals)
            call = TxCall(
                to=checksum(address, field="vault"),
                data=abi.encode_call(vault.withdraw_function, [units, owner, owner]),
            )
            logger.info(
                "Withdrawing %s %s from %s (%s)", leg_amount, vault.asset.value, vault.name, address
            )
            txs.append(await self._tokens.send(self._chain, call, action="vault withdraw"))

        if not txs:
            raise ValidationError("Nothing to withdraw", field="amount", value=amount)
        return txs

    def _position(self, vault: VaultDescriptor, address: str | None, account: Address) -> Decimal:
        if not address:
            return Decimal(0)
        (shares,) = self._reader.call(self._chain, address, abi.BALANCE_OF, [account], ["uint256"])
        if int(shares) == 0:
            return Decimal(0)
        (assets,) = self._reader.call(
            self._chain, address, abi.CONVERT_TO_ASSETS, [int(shares)], ["uint256"]
        )
        return from_base_units(int(assets), vault.asset.decimals)
