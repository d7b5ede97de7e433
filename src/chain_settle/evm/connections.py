"""Connection helpers: per-chain Web3 providers and the shared signer."""

from __future__ import annotations

import logging
from typing import Any, cast

from eth_abi import decode as abi_decode
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import HTTPProvider, Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder

from ..abi import encode_call
from ..base import ChainReader
from ..config import EngineConfig
from ..constants import ChainKey
from ..exceptions import NetworkError, ValidationError
from ..types import Address

logger = logging.getLogger(__name__)


class ChainConnections(ChainReader):
    """Manage Web3 providers and signing middleware for every configured chain.

    One instance is constructed per process and injected wherever chain access is needed;
    provider handles are cached per chain on first use.
    """

    def __init__(self, config: EngineConfig):
        self.config = config
        self._account: LocalAccount | None = None
        self._web3: dict[ChainKey, Web3] = {}
        self._connected = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def connect(self) -> None:
        """Derive the signer account; providers are built lazily per chain."""

        try:
            key = self.config.private_key
            signer = cast(LocalAccount, Account.from_key(key))  # type: ignore[arg-type]
        except Exception as exc:
            raise ValidationError(
                "Failed to derive signer account from provided private key",
                field="private_key",
                details={"error": str(exc)},
            ) from exc

        self._account = signer
        self._connected = True
        logger.info("Signer %s ready for %d chains", signer.address, len(self.config.chains))

    def disconnect(self) -> None:
        self._account = None
        self._web3.clear()
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected and self._account is not None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def account(self) -> LocalAccount:
        if self._account is None:
            raise NetworkError("Signer account is not initialised; call connect() first")
        return self._account

    def web3(self, chain: ChainKey) -> Web3:
        cached = self._web3.get(chain)
        if cached is not None:
            return cached

        chain_config = self.config.chain(chain)
        web3 = self._build_web3(chain_config.rpc_url, network_name=chain.value)
        if self._account is not None:
            self._apply_account_middleware(web3, self._account)
        self._web3[chain] = web3
        logger.info("Connected to %s RPC at %s", chain.value, chain_config.rpc_url)
        return web3

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def native_balance(self, chain: ChainKey, account: Address) -> int:
        web3 = self.web3(chain)
        try:
            return int(web3.eth.get_balance(Web3.to_checksum_address(account)))
        except Exception as exc:
            raise NetworkError(
                f"Failed to read native balance on {chain.value}",
                endpoint=self.config.chain(chain).rpc_url,
                details={"account": account, "error": str(exc)},
            ) from exc

    def call(
        self,
        chain: ChainKey,
        to: Address,
        function: tuple[str, tuple[str, ...]],
        args: tuple | list,
        output_types: tuple[str, ...] | list[str],
    ) -> tuple[Any, ...]:
        web3 = self.web3(chain)
        destination = Web3.to_checksum_address(to)
        call_data = encode_call(function, list(args))

        try:
            result = web3.eth.call({"to": destination, "data": call_data})
        except Exception as exc:
            raise NetworkError(
                f"Failed to execute {function[0]} on {chain.value}",
                endpoint=str(destination),
                details={"error": str(exc)},
            ) from exc

        if not output_types:
            return tuple()

        try:
            decoded = abi_decode(list(output_types), result)
        except Exception as exc:
            raise NetworkError(
                f"Failed to decode {function[0]} response on {chain.value}",
                endpoint=str(destination),
                details={"error": str(exc)},
            ) from exc

        return tuple(decoded)

    # ------------------------------------------------------------------
    # Internal wiring
    # ------------------------------------------------------------------
    def _build_web3(self, rpc_url: str, *, network_name: str) -> Web3:
        provider = HTTPProvider(rpc_url, request_kwargs={"timeout": self.config.request_timeout})
        web3 = Web3(provider)
        if not web3.is_connected():
            raise NetworkError(f"Unable to connect to {network_name} RPC", endpoint=rpc_url)
        return web3

    def _apply_account_middleware(self, web3: Web3, account: LocalAccount) -> None:
        middleware = SignAndSendRawMiddlewareBuilder.build(account)
        web3.middleware_onion.add(middleware)  # type: ignore[arg-type]
        web3.eth.default_account = account.address
