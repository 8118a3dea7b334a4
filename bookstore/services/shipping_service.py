"""Shipping service — carrier ticket reads and cancellation.

Talks to a SuperFrete-style REST API:
- GET  {base}/order/info/<ticket_id>  -> ticket status, tracking, price
- POST {base}/order/cancel            -> request cancellation of a ticket

Every request carries a timeout. Connection errors, timeouts, 429 and 5xx
responses are retried with backoff; other failures raise ProviderError
straight away.
"""

import logging
from datetime import datetime, timezone

import requests
from flask import current_app

from bookstore.decorators import retry
from bookstore.models.snapshots import ShippingTicket
from bookstore.services.errors import ProviderError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def _parse_updated_at(value):
    """Parse the carrier's "YYYY-MM-DD HH:MM:SS" timestamp (UTC when naive).

    Returns a timezone-aware datetime or None.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable ticket updated_at: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_price(value):
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Unparseable ticket price: {value!r}")
        return None


class ShippingClient:
    """Carrier API client. One instance (and one requests.Session) per pass."""

    def __init__(self, base_url, token, timeout=10.0, max_retries=2,
                 retry_delay=0.5, user_agent=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        })
        if user_agent:
            self.session.headers["User-Agent"] = user_agent

        self._send = retry(
            max_retries=max_retries,
            delay=retry_delay,
            exceptions=(ProviderError,),
        )(self._send_once)

    @classmethod
    def from_config(cls, config=None):
        config = config or current_app.config
        return cls(
            base_url=config["SHIPPING_API_URL"],
            token=config["SHIPPING_API_TOKEN"],
            timeout=config.get("PROVIDER_TIMEOUT_SECONDS", 10.0),
            max_retries=config.get("PROVIDER_MAX_RETRIES", 2),
            retry_delay=config.get("PROVIDER_RETRY_DELAY_SECONDS", 0.5),
            user_agent=config.get("SHIPPING_USER_AGENT"),
        )

    def _send_once(self, method, path, operation, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise ProviderError(
                f"{operation} {url} failed: {e}",
                provider="shipping",
                operation=operation,
            ) from e

        if resp.status_code >= 400:
            raise ProviderError(
                f"{operation} {url} returned HTTP {resp.status_code}",
                provider="shipping",
                operation=operation,
                retryable=resp.status_code in RETRYABLE_STATUS_CODES,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(
                f"{operation} {url} returned a non-JSON body",
                provider="shipping",
                operation=operation,
                retryable=False,
            ) from e

    def get_ticket(self, ticket_id):
        """Fetch a ticket's current state.

        Returns a ShippingTicket.
        Raises ProviderError once retries are exhausted.
        """
        data = self._send("GET", f"/order/info/{ticket_id}", "get_ticket")

        status = data.get("status")
        if not status:
            raise ProviderError(
                f"Ticket {ticket_id} response has no status",
                provider="shipping",
                operation="get_ticket",
                retryable=False,
            )

        print_info = data.get("print") or {}
        return ShippingTicket(
            status=status,
            updated_at=_parse_updated_at(data.get("updated_at")),
            tracking=data.get("tracking"),
            price=_parse_price(data.get("price")),
            print_url=print_info.get("url") if isinstance(print_info, dict) else None,
        )

    def cancel_ticket(self, ticket_id, description="Order canceled"):
        """Ask the carrier to cancel a ticket.

        Raises ProviderError on failure; callers treat this as advisory and
        only log it.
        """
        return self._send(
            "POST",
            "/order/cancel",
            "cancel_ticket",
            json={"order": {"id": ticket_id, "description": description}},
        )
