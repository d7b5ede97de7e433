"""Same-chain swaps through the Odos smart order router."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, cast

import requests
from eth_typing import HexStr
from web3 import Web3

from .base import TransactionSender
from .config import EngineConfig
from .constants import NATIVE_TOKEN_ADDRESS, AssetSymbol, ChainKey
from .evm.tokens import TokenOperations
from .exceptions import NetworkError, SimulationReverted, ValidationError
from .types import Address, AssembledSwap, SwapQuote, SwapResult, SwapSimulation, TxCall
from .utils import from_base_units, to_base_units

logger = logging.getLogger(__name__)

_GAS_NOISE_MARKERS = ("insufficient funds", "gas")


def classify_simulation(payload: Any) -> SwapSimulation | None:
    """Split a failed simulation into gas-related noise or a genuine revert."""

    if not isinstance(payload, Mapping):
        return None
    if payload.get("isSuccess", True):
        return SwapSimulation(success=True)

    error = payload.get("simulationError")
    fields: list[str] = []
    if isinstance(error, Mapping):
        fields = [
            str(error.get(key))
            for key in ("errorMessage", "message", "reason")
            if error.get(key)
        ]

    gas_related = any(marker in text.lower() for text in fields for marker in _GAS_NOISE_MARKERS)
    return SwapSimulation(
        success=False, gas_related=gas_related, reason=fields[0] if fields else None
    )


def min_output(quote: SwapQuote, slippage: float) -> Decimal:
    """Smallest acceptable output after ``slippage`` percent."""

    output = from_base_units(quote.output_amount, quote.output_asset.decimals)
    factor = Decimal(1) - Decimal(str(slippage)) / Decimal(100)
    return output * factor


def fee_revenue(quote: SwapQuote, fee_share: Decimal = Decimal("0.003")) -> Decimal:
    """Referral revenue earned on the swap input."""

    return from_base_units(quote.input_amount, quote.input_asset.decimals) * fee_share


class OdosClient:
    """Thin wrapper over the Odos quote and assemble endpoints."""

    def __init__(self, config: EngineConfig, session: requests.Session) -> None:
        self._config = config
        self._session = session
        self._base_url = config.swap.api_url.rstrip("/")

    def token_address(self, chain: ChainKey, asset: AssetSymbol) -> str:
        if asset.is_native:
            return NATIVE_TOKEN_ADDRESS
        return self._config.chain(chain).token_address(asset)

    def quote(
        self,
        chain: ChainKey,
        input_asset: AssetSymbol,
        output_asset: AssetSymbol,
        amount: Decimal,
        user: Address,
        slippage: float,
    ) -> SwapQuote:
        chain_config = self._config.chain(chain)
        units = to_base_units(amount, input_asset.decimals)
        payload = {
            "chainId": chain_config.chain_id,
            "inputTokens": [
                {"tokenAddress": self.token_address(chain, input_asset), "amount": str(units)}
            ],
            "outputTokens": [
                {"tokenAddress": self.token_address(chain, output_asset), "proportion": 1}
            ],
            "userAddr": user,
            "slippageLimitPercent": slippage,
            "referralCode": chain_config.referral_code,
        }
        data = self._post("/sor/quote/v2", payload, "quote")

        try:
            path_id = str(data["pathId"])
            output_amount = int(data["outAmounts"][0])
            input_amount = int((data.get("inAmounts") or [units])[0])
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise NetworkError(
                "Unexpected Odos quote response",
                endpoint=f"{self._base_url}/sor/quote/v2",
                details={"payload": data, "error": str(exc)},
            ) from exc

        return SwapQuote(
            chain=chain,
            input_asset=input_asset,
            output_asset=output_asset,
            path_id=path_id,
            input_amount=input_amount,
            output_amount=output_amount,
            price_impact=data.get("priceImpact"),
            gas_estimate=data.get("gasEstimate"),
            raw=dict(data),
        )

    def assemble(self, path_id: str, user: Address, simulate: bool = True) -> AssembledSwap:
        data = self._post(
            "/sor/assemble", {"userAddr": user, "pathId": path_id, "simulate": simulate}, "assemble"
        )

        transaction = data.get("transaction")
        if not isinstance(transaction, Mapping) or not transaction.get("to"):
            raise NetworkError(
                "Odos assemble response missing transaction",
                endpoint=f"{self._base_url}/sor/assemble",
                details={"payload": data},
            )

        raw_data = str(transaction.get("data") or "0x")
        call = TxCall(
            to=str(transaction["to"]),
            data=Web3.to_bytes(hexstr=HexStr(raw_data)),
            value=int(transaction.get("value") or 0),
        )
        return AssembledSwap(call=call, simulation=classify_simulation(data.get("simulation")))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _post(self, path: str, payload: Mapping[str, Any], stage: str) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        logger.debug("Stage swap %s: POST %s %s", stage, url, payload)
        try:
            response = self._session.post(url, json=payload, timeout=self._config.request_timeout)
        except requests.RequestException as exc:
            raise NetworkError(
                f"Odos {stage} request failed: {exc}", endpoint=url, details={"error": str(exc)}
            ) from exc

        if response.status_code >= 400:
            raise NetworkError(
                f"Odos {stage} failed: {response.status_code} - {response.text}",
                endpoint=url,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkError(
                f"Odos {stage} returned invalid JSON", endpoint=url, details={"error": str(exc)}
            ) from exc
        if not isinstance(data, dict):
            raise NetworkError(f"Unexpected Odos {stage} response", endpoint=url)
        return data


class SwapOrchestrator:
    """Quote, approve, assemble, simulate and submit a single-chain swap."""

    def __init__(
        self,
        config: EngineConfig,
        client: OdosClient,
        sender: TransactionSender,
        tokens: TokenOperations,
    ) -> None:
        self._config = config
        self._client = client
        self._sender = sender
        self._tokens = tokens

    def is_supported(
        self, chain: ChainKey, input_asset: AssetSymbol, output_asset: AssetSymbol
    ) -> bool:
        chain_config = self._config.chains.get(chain)
        if chain_config is None or not chain_config.supports_swaps:
            return False
        if input_asset is output_asset:
            return False
        try:
            self._client.token_address(chain, input_asset)
            self._client.token_address(chain, output_asset)
        except ValidationError:
            return False
        return True

    async def get_quote(
        self,
        chain: ChainKey,
        input_asset: AssetSymbol,
        output_asset: AssetSymbol,
        amount: Decimal,
        account: Address | None = None,
        slippage: float | None = None,
    ) -> SwapQuote:
        self._require_supported(chain, input_asset, output_asset)
        if amount <= 0:
            raise ValidationError("Swap amount must be positive", field="amount", value=amount)

        user = account or self._sender.address(chain)
        return await asyncio.to_thread(
            self._client.quote,
            chain,
            input_asset,
            output_asset,
            amount,
            user,
            self._config.swap.slippage if slippage is None else slippage,
        )

    async def execute(
        self,
        chain: ChainKey,
        input_asset: AssetSymbol,
        output_asset: AssetSymbol,
        amount: Decimal,
        slippage: float | None = None,
    ) -> SwapResult:
        """Run the swap end to end.

        Raises:
            SimulationReverted: The router simulation reports a genuine revert
        """
        user = self._sender.address(chain)
        quote = await self.get_quote(chain, input_asset, output_asset, amount, user, slippage)
        logger.info(
            "Odos quote on %s: %s %s -> %s %s (impact=%s)",
            chain.value,
            amount,
            input_asset.value,
            from_base_units(quote.output_amount, output_asset.decimals),
            output_asset.value,
            quote.price_impact,
        )

        approval_tx: str | None = None
        if not input_asset.is_native:
            router = cast(str, self._config.chain(chain).swap_router)
            token = self._config.chain(chain).token_address(input_asset)
            approval_tx = await self._tokens.ensure_allowance(
                chain, input_asset, token, router, quote.input_amount
            )

        assembled = await asyncio.to_thread(self._client.assemble, quote.path_id, user, True)
        simulation = assembled.simulation
        if simulation is not None and not simulation.success:
            if not simulation.gas_related:
                logger.error("Swap simulation reverted on %s: %s", chain.value, simulation.reason)
                raise SimulationReverted(simulation.reason, details={"path_id": quote.path_id})
            logger.warning(
                "Swap simulation failed on gas (%s), submitting anyway", simulation.reason
            )

        call = TxCall(
            to=assembled.call.to,
            data=assembled.call.data,
            value=assembled.call.value,
            gas=self._config.swap.gas_ceiling,
        )
        tx_hash = await self._tokens.send(chain, call, action="swap")

        return SwapResult(
            success=True,
            transaction_hash=tx_hash,
            quote=quote,
            estimated_output=from_base_units(quote.output_amount, output_asset.decimals),
            approval_tx=approval_tx,
        )

    def _require_supported(
        self, chain: ChainKey, input_asset: AssetSymbol, output_asset: AssetSymbol
    ) -> None:
        if not self.is_supported(chain, input_asset, output_asset):
            raise ValidationError(
                f"Swap {input_asset.value} -> {output_asset.value} not supported on {chain.value}",
                field="chain",
                value=chain.value,
            )
