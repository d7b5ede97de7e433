"""EVM access layer: connections, signer, token calls and balance reads."""

from .balances import BalanceAggregator, ChainBalanceReader
from .connections import ChainConnections
from .tokens import TokenOperations
from .transactions import Web3TransactionSender, is_nonce_error, submit

__all__ = [
    "BalanceAggregator",
    "ChainBalanceReader",
    "ChainConnections",
    "TokenOperations",
    "Web3TransactionSender",
    "is_nonce_error",
    "submit",
]
