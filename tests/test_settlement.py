from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from eth_abi import decode as abi_decode
from web3 import Web3

from chain_settle import abi
from chain_settle.constants import AssetSymbol, ChainKey
from chain_settle.evm.tokens import TokenOperations
from chain_settle.exceptions import InsufficientTotalBalance, ValidationError
from chain_settle.settlement import SettlementExecutor, checksum, split_vault_withdrawal
from chain_settle.types import VaultPositions
from chain_settle.vaults import DEFAULT_VAULTS

from fakes import ACCOUNT, DESTINATION, FakeChain, make_config

TOLERANCE = Decimal("0.000001")
VAULT = DEFAULT_VAULTS["stableyield"]


def _positions(primary: str, secondary: str) -> VaultPositions:
    return VaultPositions(primary=Decimal(primary), secondary=Decimal(secondary))


def _executor(chain: FakeChain) -> SettlementExecutor:
    return SettlementExecutor(chain.config, chain, TokenOperations(chain.config, chain, chain))


def _fund_vault(chain: FakeChain, primary: str, secondary: str) -> None:
    chain.vault_shares[VAULT.primary_address.lower()] = int(Decimal(primary) * 10**6)
    chain.vault_shares[str(VAULT.secondary_address).lower()] = int(Decimal(secondary) * 10**6)


class TestSplitVaultWithdrawal:
    def test_primary_alone_when_it_covers(self):
        assert split_vault_withdrawal(_positions("60", "50"), Decimal("60"), TOLERANCE) == (
            Decimal("60"),
            Decimal(0),
        )

    def test_primary_drained_before_secondary(self):
        from_primary, from_secondary = split_vault_withdrawal(
            _positions("60", "50"), Decimal("100"), TOLERANCE
        )
        assert from_primary == Decimal("60")
        assert from_secondary == Decimal("40")
        assert from_primary + from_secondary == Decimal("100")

    def test_dust_primary_is_skipped(self):
        assert split_vault_withdrawal(
            _positions("0.0000005", "50"), Decimal("10"), TOLERANCE
        ) == (Decimal(0), Decimal("10"))

    def test_amount_above_total_raises(self):
        with pytest.raises(InsufficientTotalBalance):
            split_vault_withdrawal(_positions("60", "50"), Decimal("111"), TOLERANCE)


def test_checksum_rejects_garbage() -> None:
    assert checksum(DESTINATION) == Web3.to_checksum_address(DESTINATION)
    with pytest.raises(ValidationError) as excinfo:
        checksum("not-an-address")
    assert excinfo.value.field == "destination"


def test_transfer_token_to_destination() -> None:
    chain = FakeChain(make_config())
    chain.set_balance(ChainKey.SCROLL, AssetSymbol.USDC, "170")

    tx_hash = asyncio.run(_executor(chain).transfer(AssetSymbol.USDC, Decimal("150"), DESTINATION))

    assert tx_hash.startswith("0x")
    ((sent_chain, call),) = chain.sent_with(abi.TRANSFER)
    recipient, units = abi_decode(["address", "uint256"], call.data[4:])
    assert sent_chain == ChainKey.SCROLL
    assert recipient.lower() == DESTINATION
    assert units == 150_000_000
    assert chain.balance(ChainKey.SCROLL, AssetSymbol.USDC) == Decimal("20")


def test_transfer_native_is_plain_value_transfer() -> None:
    chain = FakeChain(make_config())
    chain.set_balance(ChainKey.SCROLL, AssetSymbol.ETH, "1")

    asyncio.run(_executor(chain).transfer(AssetSymbol.ETH, Decimal("0.25"), DESTINATION))

    ((_, call),) = chain.native_transfers()
    assert call.to == Web3.to_checksum_address(DESTINATION)
    assert call.value == 25 * 10**16


def test_transfer_rejects_invalid_destination_without_sending() -> None:
    chain = FakeChain(make_config())

    with pytest.raises(ValidationError):
        asyncio.run(_executor(chain).transfer(AssetSymbol.USDC, Decimal("1"), "0x1234"))
    assert chain.sent == []


def test_vault_deposit_approves_then_deposits() -> None:
    chain = FakeChain(make_config())
    chain.set_balance(ChainKey.SCROLL, AssetSymbol.USDC, "150")
    executor = _executor(chain)

    txs = asyncio.run(executor.deposit_to_vault(VAULT, Decimal("150"), ACCOUNT))

    assert len(txs) == 2
    assert [call.to.lower() for _, call in chain.sent] == [
        chain.config.chain(ChainKey.SCROLL).token_address(AssetSymbol.USDC).lower(),
        VAULT.primary_address.lower(),
    ]
    units, beneficiary = abi_decode(["uint256", "address"], chain.sent[1][1].data[4:])
    assert units == 150_000_000
    assert beneficiary.lower() == ACCOUNT

    again = asyncio.run(executor.deposit_to_vault(VAULT, Decimal("10"), ACCOUNT))
    assert len(again) == 1


def test_vault_positions_convert_shares_to_assets() -> None:
    chain = FakeChain(make_config())
    _fund_vault(chain, "60", "50")
    chain.share_price = Decimal("1.1")

    positions = asyncio.run(_executor(chain).vault_positions(VAULT, ACCOUNT))

    assert positions.primary == Decimal("66")
    assert positions.secondary == Decimal("55")


def test_vault_withdrawal_spans_both_legs() -> None:
    chain = FakeChain(make_config())
    _fund_vault(chain, "60", "50")

    txs = asyncio.run(_executor(chain).withdraw_from_vault(VAULT, Decimal("100"), ACCOUNT))

    assert len(txs) == 2
    withdrawals = chain.sent_with(VAULT.withdraw_function)
    assert [call.to.lower() for _, call in withdrawals] == [
        VAULT.primary_address.lower(),
        str(VAULT.secondary_address).lower(),
    ]
    amounts = [
        abi_decode(["uint256", "address", "address"], call.data[4:])[0]
        for _, call in withdrawals
    ]
    assert amounts == [60_000_000, 40_000_000]


def test_vault_withdrawal_within_primary_is_one_transaction() -> None:
    chain = FakeChain(make_config())
    _fund_vault(chain, "60", "50")

    txs = asyncio.run(_executor(chain).withdraw_from_vault(VAULT, Decimal("25"), ACCOUNT))

    assert len(txs) == 1
    assert chain.sent[0][1].to.lower() == VAULT.primary_address.lower()


def test_vault_withdrawal_with_nothing_to_send() -> None:
    chain = FakeChain(make_config())

    with pytest.raises(ValidationError):
        asyncio.run(
            _executor(chain).withdraw_from_vault(
                VAULT, Decimal(0), ACCOUNT, positions=_positions("0", "0")
            )
        )
    assert chain.sent == []
