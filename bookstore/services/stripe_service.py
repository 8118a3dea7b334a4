"""Stripe service — payment gateway reads used by order reconciliation.

Responsible for:
- Retrieving a checkout session and reducing it to a PaymentSession
- Listing refunds for a PaymentIntent, most recent first
- Bounding every call with a timeout and Stripe's built-in network retries
- Converting stripe errors into ProviderError
"""

import logging

import stripe
from flask import current_app

from bookstore.models.snapshots import PaymentSession, RefundRecord
from bookstore.services.errors import ProviderError

logger = logging.getLogger(__name__)


def _payment_intent_id(session):
    """The session's payment_intent is an id string, or an object when expanded."""
    payment_intent = session.get("payment_intent")
    if payment_intent is None:
        return None
    if isinstance(payment_intent, str):
        return payment_intent
    return payment_intent.get("id")


class StripeGateway:
    """Thin client over the stripe SDK.

    The SDK is configured module-wide (api key, retries, HTTP timeout) once
    per gateway, which is shared by every pipeline of a pass.
    """

    def __init__(self, api_key, timeout=10.0, max_retries=2):
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        stripe.api_key = api_key
        stripe.max_network_retries = max_retries
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def from_config(cls, config=None):
        config = config or current_app.config
        return cls(
            api_key=config["STRIPE_SECRET_KEY"],
            timeout=config.get("PROVIDER_TIMEOUT_SECONDS", 10.0),
            max_retries=config.get("PROVIDER_MAX_RETRIES", 2),
        )

    def get_session(self, session_id):
        """Retrieve a checkout session.

        Returns a PaymentSession.
        Raises ProviderError on any Stripe failure.
        """
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            raise ProviderError(
                f"Stripe session {session_id} lookup failed: {e}",
                provider="stripe",
                operation="get_session",
                retryable=not isinstance(e, stripe.InvalidRequestError),
            ) from e

        return PaymentSession(
            payment_id=_payment_intent_id(session),
            payment_status=session.get("payment_status"),
            status=session.get("status"),
        )

    def list_refunds(self, payment_id):
        """List refunds for a PaymentIntent.

        Stripe returns them most recent first. Returns a list of RefundRecord,
        empty when no refund was ever created.
        Raises ProviderError on any Stripe failure.
        """
        try:
            refunds = stripe.Refund.list(payment_intent=payment_id)
        except stripe.StripeError as e:
            raise ProviderError(
                f"Stripe refunds lookup for {payment_id} failed: {e}",
                provider="stripe",
                operation="list_refunds",
                retryable=not isinstance(e, stripe.InvalidRequestError),
            ) from e

        return [
            RefundRecord(status=refund.get("status"))
            for refund in refunds.get("data") or []
        ]
