"""Yield vault descriptors."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from . import abi
from .constants import AssetSymbol, ChainKey
from .exceptions import ValidationError


@dataclass(frozen=True)
class VaultDescriptor:
    """Contract addresses and method names for one vault.

    Deposits always target the primary contract. Withdrawals drain the primary position first
    and take any remainder from the secondary contract.
    """

    vault_id: str
    name: str
    chain: ChainKey
    asset: AssetSymbol
    primary_address: str
    secondary_address: str | None = None
    deposit_method: str = "deposit"
    withdraw_method: str = "withdraw"
    is_active: bool = True

    @property
    def deposit_function(self) -> tuple[str, tuple[str, ...]]:
        return self.deposit_method, abi.VAULT_DEPOSIT[1]

    @property
    def withdraw_function(self) -> tuple[str, tuple[str, ...]]:
        return self.withdraw_method, abi.VAULT_WITHDRAW[1]


DEFAULT_VAULTS: dict[str, VaultDescriptor] = {
    "stableyield": VaultDescriptor(
        vault_id="stableyield",
        name="Stable Yield",
        chain=ChainKey.SCROLL,
        asset=AssetSymbol.USDC,
        primary_address="0x921bE808782590115c675CDA86B3aB61b55B502c",
        secondary_address="0x11C8D7894A582199CBf400dabFe0Be2fC3BB3176",
    ),
    "degenyield": VaultDescriptor(
        vault_id="degenyield",
        name="Degen Yield",
        chain=ChainKey.SCROLL,
        asset=AssetSymbol.USDC,
        primary_address="0xb324926B0Ff470Dc8F9473898cC2402f37e579F3",
        secondary_address="0xAeEE8524b4ED4659805882664493Ca78E2B57c1F",
        is_active=False,
    ),
}


class VaultRegistry:
    """Read-only lookup of vault descriptors, resolved once per request."""

    def __init__(self, vaults: Mapping[str, VaultDescriptor] | None = None) -> None:
        self._vaults = dict(DEFAULT_VAULTS if vaults is None else vaults)

    def get(self, vault_id: str) -> VaultDescriptor:
        vault = self._vaults.get(vault_id)
        if vault is None:
            raise ValidationError(f"Unknown vault ID: {vault_id}", field="vault", value=vault_id)
        return vault

    def resolve(
        self,
        vault_id: str,
        asset: AssetSymbol,
        settlement_chain: ChainKey,
    ) -> VaultDescriptor:
        """Return an active vault accepting ``asset`` on ``settlement_chain``."""

        vault = self.get(vault_id)
        if not vault.is_active:
            raise ValidationError(
                f"Vault {vault.name} is not yet active", field="vault", value=vault_id
            )
        if vault.asset is not asset:
            raise ValidationError(
                f"Vault {vault.name} accepts {vault.asset.value}, not {asset.value}",
                field="asset",
                value=asset.value,
            )
        if vault.chain is not settlement_chain:
            raise ValidationError(
                f"Vault {vault.name} lives on {vault.chain.value}, "
                f"not on settlement chain {settlement_chain.value}",
                field="chain",
                value=vault.chain.value,
            )
        return vault

    def active(self) -> list[VaultDescriptor]:
        return [vault for vault in self._vaults.values() if vault.is_active]
