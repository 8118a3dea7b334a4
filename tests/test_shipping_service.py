"""Tests for the carrier API client.

Covers:
- Ticket lookup parsed into a ShippingTicket
- Retries on 5xx / 429 / timeouts, none on other 4xx
- Malformed responses (no status, non-JSON)
- Timestamp and price parsing
- Cancel request payload
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from bookstore.services.errors import ProviderError
from bookstore.services.shipping_service import (
    ShippingClient,
    _parse_price,
    _parse_updated_at,
)


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload if payload is not None else {}
    return resp


TICKET_PAYLOAD = {
    "id": "tk_1",
    "status": "released",
    "updated_at": "2026-10-01 12:00:00",
    "tracking": "BR123456",
    "price": "25.50",
    "print": {"url": "https://labels.test/tk_1.pdf"},
}


@pytest.fixture
def client():
    return ShippingClient(
        base_url="https://shipping.test/api/v0/",
        token="token_fake",
        timeout=1.0,
        max_retries=2,
        retry_delay=0,
    )


class TestGetTicket:
    def test_parses_ticket(self, client):
        with patch.object(client.session, "request", return_value=_response(payload=TICKET_PAYLOAD)) as mock_req:
            result = client.get_ticket("tk_1")

        assert result.status == "released"
        assert result.tracking == "BR123456"
        assert result.price == 25.5
        assert result.print_url == "https://labels.test/tk_1.pdf"
        assert result.updated_at == datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
        mock_req.assert_called_once_with(
            "GET", "https://shipping.test/api/v0/order/info/tk_1", timeout=1.0
        )

    def test_auth_header_set(self, client):
        assert client.session.headers["Authorization"] == "Bearer token_fake"

    def test_retries_server_error_then_succeeds(self, client):
        responses = [_response(503), _response(payload=TICKET_PAYLOAD)]
        with patch.object(client.session, "request", side_effect=responses) as mock_req:
            result = client.get_ticket("tk_1")

        assert result.status == "released"
        assert mock_req.call_count == 2

    def test_client_error_not_retried(self, client):
        with patch.object(client.session, "request", return_value=_response(404)) as mock_req:
            with pytest.raises(ProviderError) as exc_info:
                client.get_ticket("tk_missing")

        assert mock_req.call_count == 1
        assert exc_info.value.retryable is False
        assert "404" in str(exc_info.value)

    def test_timeouts_exhaust_retries(self, client):
        with patch.object(client.session, "request", side_effect=requests.Timeout("slow")) as mock_req:
            with pytest.raises(ProviderError) as exc_info:
                client.get_ticket("tk_1")

        assert mock_req.call_count == 3
        assert exc_info.value.provider == "shipping"
        assert exc_info.value.operation == "get_ticket"

    def test_rate_limited_is_retried(self, client):
        responses = [_response(429), _response(429), _response(payload=TICKET_PAYLOAD)]
        with patch.object(client.session, "request", side_effect=responses) as mock_req:
            client.get_ticket("tk_1")
        assert mock_req.call_count == 3

    def test_missing_status(self, client):
        payload = dict(TICKET_PAYLOAD, status=None)
        with patch.object(client.session, "request", return_value=_response(payload=payload)) as mock_req:
            with pytest.raises(ProviderError):
                client.get_ticket("tk_1")
        assert mock_req.call_count == 1

    def test_non_json_body(self, client):
        with patch.object(client.session, "request", return_value=_response(payload=ValueError("no json"))) as mock_req:
            with pytest.raises(ProviderError) as exc_info:
                client.get_ticket("tk_1")
        assert mock_req.call_count == 1
        assert exc_info.value.retryable is False

    def test_optional_fields_missing(self, client):
        with patch.object(client.session, "request", return_value=_response(payload={"status": "pending"})):
            result = client.get_ticket("tk_1")

        assert result.status == "pending"
        assert result.updated_at is None
        assert result.tracking is None
        assert result.price is None
        assert result.print_url is None


class TestCancelTicket:
    def test_cancel_payload(self, client):
        with patch.object(client.session, "request", return_value=_response(payload={"success": True})) as mock_req:
            client.cancel_ticket("tk_1")

        mock_req.assert_called_once_with(
            "POST",
            "https://shipping.test/api/v0/order/cancel",
            timeout=1.0,
            json={"order": {"id": "tk_1", "description": "Order canceled"}},
        )

    def test_cancel_failure_raises(self, client):
        with patch.object(client.session, "request", return_value=_response(400)):
            with pytest.raises(ProviderError):
                client.cancel_ticket("tk_1")


class TestParsing:
    @pytest.mark.parametrize("value,expected", [
        ("2026-10-01 12:00:00", datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)),
        ("2026-10-01T12:00:00Z", datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)),
        ("2026-10-01T09:00:00-03:00", datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)),
        (None, None),
        ("", None),
        ("yesterday", None),
    ])
    def test_updated_at(self, value, expected):
        assert _parse_updated_at(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("25.50", 25.5),
        (12, 12.0),
        (None, None),
        ("", None),
        ("n/a", None),
    ])
    def test_price(self, value, expected):
        assert _parse_price(value) == expected


class TestFromConfig:
    def test_reads_app_config(self, app):
        with app.app_context():
            shipping = ShippingClient.from_config()

        assert shipping.base_url == app.config["SHIPPING_API_URL"].rstrip("/")
        assert shipping.timeout == app.config["PROVIDER_TIMEOUT_SECONDS"]
