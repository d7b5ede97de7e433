"""In-memory chain doubles shared by the test modules."""

from __future__ import annotations

import itertools
import time
from dataclasses import replace
from decimal import Decimal
from typing import Any

from eth_abi import decode as abi_decode

from chain_settle import abi
from chain_settle.base import ChainReader, TransactionSender
from chain_settle.config import ArrivalConfig, EngineConfig, default_chain_configs
from chain_settle.constants import AssetSymbol, ChainKey
from chain_settle.exceptions import NetworkError, NonceConflict, TransactionFailed
from chain_settle.types import BridgeQuote, TxCall
from chain_settle.utils import from_base_units, to_base_units

ACCOUNT = "0x00000000000000000000000000000000000000aa"
DESTINATION = "0x00000000000000000000000000000000000000bb"


def make_config(**overrides: Any) -> EngineConfig:
    rpc_urls = {key: f"https://{key.value}.example" for key in ChainKey}
    config = EngineConfig(
        private_key="0x" + "11" * 32,
        chains=default_chain_configs(rpc_urls),
        nonce_retry_backoff=0.0,
        arrival=ArrivalConfig(
            poll_interval=0.0,
            max_polls=5,
            forward_retry_backoff=0.0,
            unwrap_settle_delay=0.0,
        ),
    ).with_defaults()
    return replace(config, **overrides) if overrides else config


def selector_of(function: tuple[str, tuple[str, ...]]) -> bytes:
    return abi.selector(function[0], tuple(function[1]))


class FakeChain(ChainReader, TransactionSender):
    """Balances, allowances and vault shares for one account across chains.

    Submitted calls are applied to the in-memory state so tests can observe wraps, bridge
    deposits (credited to the settlement chain when ``auto_relay`` is set) and transfers.
    With ``gas_cost`` set, every submission is paid from the native balance of its chain.
    """

    def __init__(
        self, config: EngineConfig, *, auto_relay: bool = True, gas_cost: int = 0
    ) -> None:
        self.config = config
        self.auto_relay = auto_relay
        self.gas_cost = gas_cost
        self.native: dict[ChainKey, int] = {}
        self.tokens: dict[tuple[ChainKey, str], int] = {}
        self.allowances: dict[tuple[ChainKey, str, str], int] = {}
        self.vault_shares: dict[str, int] = {}
        self.share_price = Decimal(1)
        self.failing_reads: set[ChainKey] = set()
        self.failing_sends: dict[bytes, list[Exception]] = {}
        self.sent: list[tuple[ChainKey, TxCall]] = []
        self.reads = 0
        self._hashes = itertools.count(1)

    # ------------------------------------------------------------------
    # Setup helpers
    # ------------------------------------------------------------------
    def set_balance(self, chain: ChainKey, asset: AssetSymbol, amount: str | Decimal) -> None:
        units = to_base_units(amount, asset.decimals)
        if asset.is_native:
            self.native[chain] = units
        else:
            self.tokens[self._token_key(chain, asset)] = units

    def balance(self, chain: ChainKey, asset: AssetSymbol) -> Decimal:
        if asset.is_native:
            units = self.native.get(chain, 0)
        else:
            units = self.tokens.get(self._token_key(chain, asset), 0)
        return from_base_units(units, asset.decimals)

    def wrapped_balance(self, chain: ChainKey) -> Decimal:
        key = (chain, self.config.chain(chain).token_address(AssetSymbol.ETH).lower())
        return from_base_units(self.tokens.get(key, 0), 18)

    def fail_next(self, function: tuple[str, tuple[str, ...]], *errors: Exception) -> None:
        self.failing_sends.setdefault(selector_of(function), []).extend(errors)

    def sent_with(self, function: tuple[str, tuple[str, ...]]) -> list[tuple[ChainKey, TxCall]]:
        wanted = selector_of(function)
        return [(chain, call) for chain, call in self.sent if call.data[:4] == wanted]

    def native_transfers(self) -> list[tuple[ChainKey, TxCall]]:
        return [(chain, call) for chain, call in self.sent if not call.data]

    # ------------------------------------------------------------------
    # ChainReader
    # ------------------------------------------------------------------
    def native_balance(self, chain: ChainKey, account: str) -> int:
        self._check_read(chain)
        return self.native.get(chain, 0)

    def call(self, chain, to, function, args, output_types) -> tuple:
        self._check_read(chain)
        name = function[0]
        address = to.lower()
        if name == "balanceOf":
            if address in self.vault_shares:
                return (self.vault_shares[address],)
            return (self.tokens.get((chain, address), 0),)
        if name == "allowance":
            return (self.allowances.get((chain, address, args[1].lower()), 0),)
        if name == "convertToAssets":
            return (int(Decimal(args[0]) * self.share_price),)
        raise AssertionError(f"unexpected call {name}")

    # ------------------------------------------------------------------
    # TransactionSender
    # ------------------------------------------------------------------
    @property
    def pays_gas(self) -> bool:
        return self.gas_cost > 0

    def address(self, chain: ChainKey) -> str:
        return ACCOUNT

    def send_transaction(self, chain: ChainKey, call: TxCall) -> str:
        queued = self.failing_sends.get(call.data[:4]) if call.data else None
        if queued:
            raise queued.pop(0)

        if self.pays_gas:
            held = self.native.get(chain, 0)
            if held < call.value + self.gas_cost:
                raise TransactionFailed(
                    "insufficient funds for gas * price + value", chain=chain.value
                )
            self.native[chain] = held - self.gas_cost

        self.sent.append((chain, call))
        self._apply(chain, call)
        return f"0x{next(self._hashes):064x}"

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------
    def _apply(self, chain: ChainKey, call: TxCall) -> None:
        to = call.to.lower()
        selector = call.data[:4]
        body = call.data[4:]

        if not call.data:
            self.native[chain] = self.native.get(chain, 0) - call.value
        elif selector == selector_of(abi.WRAP):
            self.native[chain] = self.native.get(chain, 0) - call.value
            self.tokens[(chain, to)] = self.tokens.get((chain, to), 0) + call.value
        elif selector == selector_of(abi.UNWRAP):
            (units,) = abi_decode(["uint256"], body)
            self.tokens[(chain, to)] = self.tokens.get((chain, to), 0) - units
            self.native[chain] = self.native.get(chain, 0) + units
        elif selector == selector_of(abi.APPROVE):
            spender, units = abi_decode(["address", "uint256"], body)
            self.allowances[(chain, to, spender.lower())] = units
        elif selector == selector_of(abi.TRANSFER):
            _, units = abi_decode(["address", "uint256"], body)
            self.tokens[(chain, to)] = self.tokens.get((chain, to), 0) - units
        elif selector == selector_of(abi.DEPOSIT_V3):
            decoded = abi_decode(list(abi.DEPOSIT_V3[1]), body)
            input_token, output_token, input_amount = decoded[2], decoded[3], decoded[4]
            self.tokens[(chain, input_token.lower())] -= input_amount
            if self.auto_relay:
                key = (self.config.settlement_chain, output_token.lower())
                self.tokens[key] = self.tokens.get(key, 0) + input_amount

    def _token_key(self, chain: ChainKey, asset: AssetSymbol) -> tuple[ChainKey, str]:
        return chain, self.config.chain(chain).token_address(asset).lower()

    def _check_read(self, chain: ChainKey) -> None:
        self.reads += 1
        if chain in self.failing_reads:
            raise NetworkError(f"rpc down on {chain.value}")


class FakeQuotes:
    """Stand-in for the Across quote client with per-chain rejections."""

    def __init__(self, rejections: dict[ChainKey, Exception] | None = None) -> None:
        self.rejections = rejections or {}
        self.calls: list[tuple[ChainKey, ChainKey, AssetSymbol, Decimal]] = []

    def get_quote(self, source, destination, asset, amount, recipient, message=b""):
        self.calls.append((source, destination, asset, amount))
        error = self.rejections.get(source)
        if error is not None:
            raise error
        units = to_base_units(amount, asset.decimals)
        now = int(time.time())
        return BridgeQuote(
            output_amount=units,
            fee_total=0,
            quote_timestamp=now,
            fill_deadline=now + 7200,
        )


def nonce_conflict() -> NonceConflict:
    return NonceConflict("nonce too low", chain="scroll")


def reverted() -> TransactionFailed:
    return TransactionFailed("execution reverted", chain="scroll")
