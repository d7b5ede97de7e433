"""Transaction dispatch helpers for the signing account."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from web3 import Web3

from ..base import TransactionSender
from ..constants import ChainKey
from ..exceptions import NetworkError, NonceConflict, TransactionFailed
from ..types import Address, TxCall
from ..utils import to_hex_hash
from .connections import ChainConnections

logger = logging.getLogger(__name__)

_NONCE_ERROR_MARKERS = (
    "nonce too low",
    "nonce has already been used",
    "already known",
    "replacement transaction underpriced",
    "invalid account nonce",
    "aa25",
)


def rpc_error_message(exc: BaseException) -> str:
    """Extract the node's error message from a web3 exception."""

    for arg in getattr(exc, "args", ()):
        if isinstance(arg, dict) and arg.get("message"):
            return str(arg["message"])
    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict):
        error = rpc_response.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return str(exc)


def is_nonce_error(message: str) -> bool:
    lower = message.lower()
    return any(marker in lower for marker in _NONCE_ERROR_MARKERS)


class Web3TransactionSender(TransactionSender):
    """Submit transactions through the signing middleware and wait for receipts."""

    def __init__(
        self,
        connections: ChainConnections,
        *,
        wait_for_receipt: bool,
        receipt_timeout: float,
    ) -> None:
        self._connections = connections
        self._wait_for_receipt = wait_for_receipt
        self._receipt_timeout = receipt_timeout

    def address(self, chain: ChainKey) -> Address:
        return self._connections.account.address

    def send_transaction(self, chain: ChainKey, call: TxCall) -> str:
        web3 = self._connections.web3(chain)
        account = self._connections.account

        tx: dict[str, Any] = {
            "from": account.address,
            "to": Web3.to_checksum_address(call.to),
            "data": call.data,
            "value": call.value,
            "chainId": self._connections.config.chain(chain).chain_id,
        }
        if call.gas is not None:
            tx["gas"] = call.gas

        try:
            tx_hash = web3.eth.send_transaction(tx)  # type: ignore[arg-type]
        except Exception as exc:
            message = rpc_error_message(exc)
            if is_nonce_error(message):
                raise NonceConflict(
                    f"Nonce conflict submitting transaction on {chain.value}: {message}",
                    chain=chain.value,
                    details={"to": call.to, "error": message},
                ) from exc
            raise TransactionFailed(
                f"Failed to submit transaction on {chain.value}: {message}",
                chain=chain.value,
                details={"to": call.to, "error": message},
            ) from exc

        tx_hex = to_hex_hash(tx_hash)
        logger.info("Transaction sent on %s to=%s hash=%s", chain.value, call.to, tx_hex)

        if not self._wait_for_receipt:
            return tx_hex

        try:
            receipt = web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._receipt_timeout)
        except Exception as exc:
            raise NetworkError(
                f"Timed out waiting for receipt of {tx_hex} on {chain.value}",
                endpoint=self._connections.config.chain(chain).rpc_url,
                details={"tx_hash": tx_hex, "error": str(exc)},
            ) from exc

        status = receipt.get("status", 1) if hasattr(receipt, "get") else 1
        if status != 1:
            raise TransactionFailed(
                f"Transaction {tx_hex} reverted on {chain.value}",
                chain=chain.value,
                tx_hash=tx_hex,
            )

        logger.info(
            "Transaction confirmed on %s hash=%s block=%s",
            chain.value,
            tx_hex,
            receipt.get("blockNumber") if hasattr(receipt, "get") else None,
        )
        return tx_hex


async def submit(
    sender: TransactionSender,
    chain: ChainKey,
    call: TxCall,
    *,
    action: str,
    nonce_retry_backoff: float = 2.0,
) -> str:
    """Send ``call`` and retry exactly once when the signer reports a nonce conflict.

    Any other submission failure propagates untouched: a duplicate state-mutating
    transaction is never safe to resend blindly.
    """

    logger.debug("Submitting %s on %s (to=%s)", action, chain.value, call.to)
    try:
        return await asyncio.to_thread(sender.send_transaction, chain, call)
    except NonceConflict as exc:
        logger.warning(
            "Nonce conflict during %s on %s, retrying in %.1fs: %s",
            action,
            chain.value,
            nonce_retry_backoff,
            exc,
        )

    await asyncio.sleep(nonce_retry_backoff)
    return await asyncio.to_thread(sender.send_transaction, chain, call)
