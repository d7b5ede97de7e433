from __future__ import annotations

import json
import time
from decimal import Decimal
from typing import Any

import pytest
import requests
from requests import Session

from chain_settle.bridge.quotes import AcrossQuoteClient
from chain_settle.constants import AssetSymbol, ChainKey
from chain_settle.exceptions import (
    BridgeAmountTooLow,
    BridgeQuoteError,
    BridgeRouteUnsupported,
    NetworkError,
)

from fakes import ACCOUNT, make_config


class DummyResponse:
    def __init__(self, payload: Any, *, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = payload if isinstance(payload, str) else json.dumps(payload)
        self.url = "https://app.across.to/api/suggested-fees"

    def json(self) -> Any:
        if isinstance(self._payload, str):
            raise ValueError("not json")
        return self._payload


class DummySession(Session):
    def __init__(self, *responses: DummyResponse | Exception) -> None:
        super().__init__()
        self._responses = list(responses)
        self.calls: list[tuple[str, dict[str, str], float]] = []

    def get(  # type: ignore[override]
        self, url: str, params: dict[str, str], timeout: float
    ) -> DummyResponse:
        self.calls.append((url, params, timeout))
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(*responses: DummyResponse | Exception) -> tuple[AcrossQuoteClient, DummySession]:
    session = DummySession(*responses)
    return AcrossQuoteClient(make_config(), session), session


def _quote(client: AcrossQuoteClient, asset: AssetSymbol = AssetSymbol.USDC, amount: str = "110"):
    return client.get_quote(ChainKey.BASE, ChainKey.SCROLL, asset, Decimal(amount), ACCOUNT)


def test_quote_request_parameters_and_parsing() -> None:
    payload = {
        "outputAmount": "109900000",
        "timestamp": "1700000000",
        "fillDeadline": "1700007200",
        "exclusivityParameter": 0,
        "totalRelayFee": {"total": "100000", "pct": "909090909090909"},
    }
    client, session = _client(DummyResponse(payload))

    quote = _quote(client)

    url, params, timeout = session.calls[0]
    assert url == "https://app.across.to/api/suggested-fees"
    assert params["amount"] == "110000000"
    assert params["originChainId"] == "8453"
    assert params["destinationChainId"] == "534352"
    assert params["recipient"] == ACCOUNT
    assert params["message"] == "0x"
    assert timeout == 10.0
    assert quote.output_amount == 109_900_000
    assert quote.fee_total == 100_000
    assert quote.quote_timestamp == 1_700_000_000
    assert quote.fill_deadline == 1_700_007_200


def test_native_quotes_use_wrapped_token_on_both_sides() -> None:
    config = make_config()
    client, session = _client(DummyResponse({"outputAmount": "1", "timestamp": "1"}))

    _quote(client, AssetSymbol.ETH, "0.5")

    params = session.calls[0][1]
    assert params["inputToken"] == config.chain(ChainKey.BASE).token_address(AssetSymbol.ETH)
    assert params["outputToken"] == config.chain(ChainKey.SCROLL).token_address(AssetSymbol.ETH)
    assert params["amount"] == str(5 * 10**17)


def test_missing_fill_deadline_defaults_to_buffer() -> None:
    client, _ = _client(DummyResponse({"outputAmount": "1", "timestamp": "1"}))

    before = int(time.time())
    quote = _quote(client)

    assert before + 7200 <= quote.fill_deadline <= int(time.time()) + 7200
    assert quote.exclusivity_parameter == 0
    assert quote.fee_total == 0


def test_amount_too_low_is_classified() -> None:
    body = {"type": "AcrossApiError", "code": "AMOUNT_TOO_LOW", "message": "Amount too low"}
    client, _ = _client(DummyResponse(body, status_code=400))

    with pytest.raises(BridgeAmountTooLow) as excinfo:
        _quote(client, AssetSymbol.ETH, "0.0004")

    assert excinfo.value.chain == "base"
    assert excinfo.value.details["code"] == "AMOUNT_TOO_LOW"


def test_amount_too_low_detected_in_plain_body() -> None:
    client, _ = _client(DummyResponse("error: AMOUNT_TOO_LOW", status_code=400))

    with pytest.raises(BridgeAmountTooLow):
        _quote(client)


def test_route_error_code_is_classified() -> None:
    body = {"code": "ROUTE_NOT_ENABLED", "message": "Route is not enabled"}
    client, _ = _client(DummyResponse(body, status_code=400))

    with pytest.raises(BridgeRouteUnsupported):
        _quote(client)


def test_other_api_errors_keep_status_and_body() -> None:
    client, _ = _client(DummyResponse({"message": "boom"}, status_code=500))

    with pytest.raises(BridgeQuoteError) as excinfo:
        _quote(client)

    assert excinfo.value.status_code == 500
    assert "boom" in str(excinfo.value)


def test_unconfigured_route_fails_before_http() -> None:
    client, session = _client()

    with pytest.raises(BridgeRouteUnsupported):
        client.get_quote(ChainKey.SCROLL, ChainKey.BASE, AssetSymbol.USDC, Decimal("1"), ACCOUNT)
    assert session.calls == []


def test_transport_error_is_retried_once() -> None:
    payload = {"outputAmount": "1", "timestamp": "1", "fillDeadline": "2"}
    client, session = _client(requests.ConnectionError("reset"), DummyResponse(payload))

    quote = _quote(client)

    assert quote.fill_deadline == 2
    assert len(session.calls) == 2


def test_transport_error_after_retry_is_network_error() -> None:
    client, _ = _client(requests.Timeout("slow"), requests.Timeout("slow"))

    with pytest.raises(NetworkError) as excinfo:
        _quote(client)
    assert not isinstance(excinfo.value, BridgeQuoteError)


def test_malformed_quote_payload() -> None:
    client, _ = _client(DummyResponse({"timestamp": "1"}))

    with pytest.raises(BridgeQuoteError):
        _quote(client)
