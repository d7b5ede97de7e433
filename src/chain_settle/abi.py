"""Calldata encoding for the contracts the engine talks to."""

from __future__ import annotations

from collections.abc import Sequence
from functools import lru_cache
from typing import Any

from eth_abi import encode as abi_encode
from web3 import Web3

# ERC-20
BALANCE_OF = ("balanceOf", ("address",))
DECIMALS = ("decimals", ())
ALLOWANCE = ("allowance", ("address", "address"))
APPROVE = ("approve", ("address", "uint256"))
TRANSFER = ("transfer", ("address", "uint256"))

# Wrapped native token
WRAP = ("deposit", ())
UNWRAP = ("withdraw", ("uint256",))

# Vault
VAULT_DEPOSIT = ("deposit", ("uint256", "address"))
VAULT_WITHDRAW = ("withdraw", ("uint256", "address", "address"))
CONVERT_TO_ASSETS = ("convertToAssets", ("uint256",))

# Across spoke pool
DEPOSIT_V3 = (
    "depositV3",
    (
        "address",  # depositor
        "address",  # recipient
        "address",  # inputToken
        "address",  # outputToken
        "uint256",  # inputAmount
        "uint256",  # outputAmount
        "uint256",  # destinationChainId
        "address",  # exclusiveRelayer
        "uint32",  # quoteTimestamp
        "uint32",  # fillDeadline
        "uint32",  # exclusivityParameter
        "bytes",  # message
    ),
)


@lru_cache(maxsize=None)
def selector(name: str, input_types: tuple[str, ...]) -> bytes:
    """Return the 4-byte function selector for ``name(input_types)``."""

    signature = f"{name}({','.join(input_types)})"
    return bytes(Web3.keccak(text=signature)[:4])


def encode_call(function: tuple[str, Sequence[str]], args: Sequence[Any] = ()) -> bytes:
    """Encode calldata for one of the function descriptors above."""

    name, input_types = function
    types = tuple(input_types)
    if len(types) != len(args):
        raise ValueError(f"{name} expects {len(types)} arguments, got {len(args)}")
    body = abi_encode(list(types), list(args)) if types else b""
    return selector(name, types) + body
