"""Example: withdraw a balance spread over several chains to one address on Scroll."""

from __future__ import annotations

import asyncio
import logging
import os
from decimal import Decimal

from dotenv import load_dotenv

from chain_settle import (
    AssetSymbol,
    ChainKey,
    EngineConfig,
    SettlementError,
    SettlementKind,
    SettlementOrchestrator,
    SettlementRequest,
    default_chain_configs,
)

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger("withdraw_multichain")


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"{name} not found in environment variables")
    return value


def _rpc_urls() -> dict[ChainKey, str]:
    return {key: _require_env(f"{key.value.upper()}_RPC_URL") for key in ChainKey}


async def run() -> None:
    config = EngineConfig(
        private_key=_require_env("PRIVATE_KEY"),
        chains=default_chain_configs(_rpc_urls()),
    )
    asset = AssetSymbol.parse(os.getenv("WITHDRAW_ASSET", "USDC"))
    raw_amount = os.getenv("WITHDRAW_AMOUNT")
    request = SettlementRequest(
        kind=SettlementKind.WITHDRAW,
        asset=asset,
        amount=Decimal(raw_amount) if raw_amount else None,
        destination=_require_env("DESTINATION_ADDRESS"),
    )

    engine = SettlementOrchestrator.from_config(config)
    try:
        snapshot = await engine.aggregator.get_balances(engine.account, asset)
        logger.info("Balances for %s (total %s %s):", engine.account, snapshot.total, asset.value)
        for chain, amount in snapshot.balances.items():
            logger.info("  %s: %s %s", chain.value, amount, asset.value)

        result = await engine.settle(request)
    except SettlementError as exc:
        logger.error("Withdrawal failed: %s", exc)
        if exc.details:
            logger.debug("  details: %s", exc.details)
        return
    finally:
        engine.close()

    logger.info("Withdrew %s %s (cross-chain: %s)", result.amount, asset.value, result.cross_chain)
    for outcome in result.legs:
        logger.info("  bridge %s: %s", outcome.leg.source_chain.value, outcome.tx_hash)
    for entry in result.unused:
        logger.info("  left on %s: %s %s", entry.chain.value, entry.amount, asset.value)
    logger.info("  final tx: %s", result.transaction_hash)


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
