"""Example: quote and execute a same-chain swap through the Odos router."""

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
    SettlementOrchestrator,
    default_chain_configs,
)
from chain_settle.swap import fee_revenue, min_output

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger("swap")


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"{name} not found in environment variables")
    return value


async def run() -> None:
    chain = ChainKey(os.getenv("SWAP_CHAIN", "scroll"))
    input_asset = AssetSymbol.parse(os.getenv("SWAP_INPUT", "USDC"))
    output_asset = AssetSymbol.parse(os.getenv("SWAP_OUTPUT", "ETH"))
    amount = Decimal(os.getenv("SWAP_AMOUNT", "5"))
    slippage = float(os.getenv("SWAP_SLIPPAGE", "0.5"))

    config = EngineConfig(
        private_key=_require_env("PRIVATE_KEY"),
        chains=default_chain_configs({chain: _require_env(f"{chain.value.upper()}_RPC_URL")}),
        settlement_chain=chain,
        active_chains=(chain,),
    )
    engine = SettlementOrchestrator.from_config(config)
    try:
        quote = await engine.swaps.get_quote(
            chain, input_asset, output_asset, amount, slippage=slippage
        )
        logger.info(
            "Quote: %s %s -> at least %s %s (impact %s, referral fee %s %s)",
            amount,
            input_asset.value,
            min_output(quote, slippage),
            output_asset.value,
            quote.price_impact,
            fee_revenue(quote),
            input_asset.value,
        )

        result = await engine.swap(chain, input_asset, output_asset, amount, slippage)
    except SettlementError as exc:
        logger.error("Swap failed: %s", exc)
        return
    finally:
        engine.close()

    if result.approval_tx:
        logger.info("  approval tx: %s", result.approval_tx)
    logger.info(
        "  swap tx: %s (estimated %s %s)",
        result.transaction_hash,
        result.estimated_output,
        output_asset.value,
    )


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
