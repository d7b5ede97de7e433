from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from chain_settle.constants import AssetSymbol, ChainKey
from chain_settle.evm.balances import BalanceAggregator, ChainBalanceReader
from chain_settle.exceptions import NetworkError

from fakes import ACCOUNT, FakeChain, make_config


class FlakyChain(FakeChain):
    """Fails the first ``failures`` reads, then behaves."""

    def __init__(self, config, failures: int) -> None:
        super().__init__(config)
        self.failures = failures

    def _check_read(self, chain: ChainKey) -> None:
        self.reads += 1
        if self.failures > 0:
            self.failures -= 1
            raise NetworkError("transient")


def test_reader_reads_token_and_native_balances() -> None:
    config = make_config()
    chain = FakeChain(config)
    chain.set_balance(ChainKey.BASE, AssetSymbol.USDC, "130.5")
    chain.set_balance(ChainKey.BASE, AssetSymbol.ETH, "0.9")
    reader = ChainBalanceReader(config, chain)

    assert reader.read(ChainKey.BASE, AssetSymbol.USDC, ACCOUNT) == Decimal("130.5")
    assert reader.read(ChainKey.BASE, AssetSymbol.ETH, ACCOUNT) == Decimal("0.9")
    assert reader.read_wrapped(ChainKey.BASE, ACCOUNT) == Decimal(0)


def test_reader_retries_a_failed_read_once() -> None:
    config = make_config()
    chain = FlakyChain(config, failures=1)
    chain.set_balance(ChainKey.SCROLL, AssetSymbol.USDC, "40")

    reader = ChainBalanceReader(config, chain)

    assert reader.read(ChainKey.SCROLL, AssetSymbol.USDC, ACCOUNT) == Decimal("40")
    assert chain.reads == 2


def test_reader_raises_after_retry_budget() -> None:
    config = make_config()
    reader = ChainBalanceReader(config, FlakyChain(config, failures=2))

    with pytest.raises(NetworkError):
        reader.read(ChainKey.SCROLL, AssetSymbol.USDC, ACCOUNT)


def test_bridgeable_balance_uses_wrapped_token_for_native() -> None:
    config = make_config()
    chain = FakeChain(config)
    chain.set_balance(ChainKey.SCROLL, AssetSymbol.ETH, "5")
    weth = config.chain(ChainKey.SCROLL).token_address(AssetSymbol.ETH).lower()
    chain.tokens[(ChainKey.SCROLL, weth)] = 7 * 10**17

    reader = ChainBalanceReader(config, chain)

    assert reader.read_bridgeable(ChainKey.SCROLL, AssetSymbol.ETH, ACCOUNT) == Decimal("0.7")


def test_aggregator_fans_out_and_degrades_failed_chain_to_zero() -> None:
    config = make_config()
    chain = FakeChain(config)
    chain.set_balance(ChainKey.SCROLL, AssetSymbol.USDC, "40")
    chain.set_balance(ChainKey.BASE, AssetSymbol.USDC, "130")
    chain.set_balance(ChainKey.POLYGON, AssetSymbol.USDC, "25")
    chain.failing_reads.add(ChainKey.POLYGON)
    aggregator = BalanceAggregator(config, ChainBalanceReader(config, chain))

    snapshot = asyncio.run(aggregator.get_balances(ACCOUNT, AssetSymbol.USDC))

    assert set(snapshot.balances) == set(config.active_chains)
    assert snapshot.get(ChainKey.POLYGON) == Decimal(0)
    assert ChainKey.POLYGON in snapshot.errors
    assert snapshot.total == Decimal("170")
    assert asyncio.run(aggregator.get_total(ACCOUNT, AssetSymbol.USDC)) == Decimal("170")
