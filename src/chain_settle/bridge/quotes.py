"""Across suggested-fees client."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import requests

from ..config import EngineConfig
from ..constants import AssetSymbol, ChainKey
from ..exceptions import (
    BridgeAmountTooLow,
    BridgeQuoteError,
    BridgeRouteUnsupported,
    NetworkError,
)
from ..types import Address, BridgeQuote
from ..utils import to_base_units

logger = logging.getLogger(__name__)

_AMOUNT_TOO_LOW_CODES = ("AMOUNT_TOO_LOW",)
_ROUTE_UNSUPPORTED_CODES = ("ROUTE_NOT_ENABLED", "UNSUPPORTED_ROUTE", "INVALID_ROUTE")


class AcrossQuoteClient:
    """Fetch fee quotes for candidate bridge legs."""

    def __init__(self, config: EngineConfig, session: requests.Session) -> None:
        self._config = config
        self._session = session
        self._base_url = config.bridge.api_url.rstrip("/")
        self._retries = config.bridge.quote_retries

    def is_route_supported(self, source: ChainKey, destination: ChainKey) -> bool:
        return (source, destination) in self._config.bridge.routes

    def get_quote(
        self,
        source: ChainKey,
        destination: ChainKey,
        asset: AssetSymbol,
        amount: Decimal,
        recipient: Address,
        message: bytes = b"",
    ) -> BridgeQuote:
        """Quote bridging ``amount`` of ``asset`` from ``source`` to ``destination``.

        Raises:
            BridgeRouteUnsupported: The route is not configured or rejected by the API
            BridgeAmountTooLow: Fixed fees exceed the transferred value
            BridgeQuoteError: Any other API error response
            NetworkError: Transport failure after the read retry
        """
        if not self.is_route_supported(source, destination):
            raise BridgeRouteUnsupported(source.value, destination.value, asset.value)

        source_config = self._config.chain(source)
        destination_config = self._config.chain(destination)
        units = to_base_units(amount, asset.decimals)
        params = {
            "inputToken": source_config.token_address(asset),
            "outputToken": destination_config.token_address(asset),
            "amount": str(units),
            "originChainId": str(source_config.chain_id),
            "destinationChainId": str(destination_config.chain_id),
            "recipient": recipient,
            "message": "0x" + message.hex(),
        }

        url = f"{self._base_url}/suggested-fees"
        logger.debug(
            "Stage quote [%s->%s]: request %s %s (units=%s)",
            source.value,
            destination.value,
            amount,
            asset.value,
            units,
        )
        response = self._get(url, params)

        if response.status_code >= 400:
            self._raise_for_error(response, source, destination, asset, amount)

        try:
            payload = response.json()
        except ValueError as exc:
            raise BridgeQuoteError(
                "Unexpected quote response format",
                endpoint=url,
                status_code=response.status_code,
                details={"error": str(exc)},
            ) from exc

        quote = self._parse_quote(payload, url)
        logger.info(
            "Across quote %s -> %s for %s %s: output=%s fee=%s deadline=%s",
            source.value,
            destination.value,
            amount,
            asset.value,
            quote.output_amount,
            quote.fee_total,
            quote.fill_deadline,
        )
        return quote

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------
    def _get(self, url: str, params: Mapping[str, str]) -> requests.Response:
        attempts = self._retries + 1
        last_error: requests.RequestException | None = None
        for attempt in range(1, attempts + 1):
            try:
                return self._session.get(url, params=params, timeout=self._config.request_timeout)
            except requests.RequestException as exc:
                last_error = exc
                logger.debug("Quote request error (attempt %s/%s): %s", attempt, attempts, exc)

        raise NetworkError(
            f"Failed to fetch bridge quote: {last_error}",
            endpoint=url,
            details={"error": str(last_error)},
        )

    def _raise_for_error(
        self,
        response: requests.Response,
        source: ChainKey,
        destination: ChainKey,
        asset: AssetSymbol,
        amount: Decimal,
    ) -> None:
        body = response.text or ""
        code: str | None = None
        message: str | None = None
        try:
            error_data = json.loads(body)
        except ValueError:
            error_data = None
        if isinstance(error_data, Mapping):
            code = str(error_data.get("code") or "") or None
            message = error_data.get("message")

        details = {"status_code": response.status_code, "code": code, "body": body}
        logger.debug("Across API error response (%s): %s", response.status_code, body)

        if code in _AMOUNT_TOO_LOW_CODES or (code is None and "AMOUNT_TOO_LOW" in body):
            raise BridgeAmountTooLow(amount, asset.value, chain=source.value, details=details)

        if code in _ROUTE_UNSUPPORTED_CODES:
            raise BridgeRouteUnsupported(source.value, destination.value, asset.value)

        raise BridgeQuoteError(
            f"Across API error: {message or f'{response.status_code} - {body}'}",
            endpoint=response.url if isinstance(response.url, str) else None,
            status_code=response.status_code,
            details=details,
        )

    def _parse_quote(self, payload: Any, url: str) -> BridgeQuote:
        if not isinstance(payload, Mapping):
            raise BridgeQuoteError(
                "Unexpected quote response format", endpoint=url, details={"payload": payload}
            )

        try:
            output_amount = int(payload["outputAmount"])
            quote_timestamp = int(payload["timestamp"])
        except (KeyError, TypeError, ValueError) as exc:
            raise BridgeQuoteError(
                "Quote response missing outputAmount/timestamp",
                endpoint=url,
                details={"payload": dict(payload), "error": str(exc)},
            ) from exc

        fill_deadline = payload.get("fillDeadline")
        if not fill_deadline:
            fill_deadline = int(time.time()) + self._config.bridge.fill_deadline_buffer

        fee_total = 0
        relay_fee = payload.get("totalRelayFee")
        if isinstance(relay_fee, Mapping):
            try:
                fee_total = int(relay_fee.get("total", 0))
            except (TypeError, ValueError):
                fee_total = 0

        return BridgeQuote(
            output_amount=output_amount,
            fee_total=fee_total,
            quote_timestamp=quote_timestamp,
            fill_deadline=int(fill_deadline),
            exclusivity_parameter=int(payload.get("exclusivityParameter") or 0),
            raw=dict(payload),
        )
