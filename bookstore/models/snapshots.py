"""Ephemeral provider snapshots.

Fetched fresh on every reconciliation pass and never persisted as-is; the
reconciliation engine folds them into the Order row.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PaymentSession:
    """A Stripe checkout session, reduced to what reconciliation needs.

    Attributes:
        payment_id: PaymentIntent id, present once a payment was attempted.
        payment_status: "paid" | "unpaid" | "no_payment_required".
        status: "expired" | "complete" | "open", or None when Stripe omits it.
    """

    payment_id: str | None
    payment_status: str
    status: str | None


@dataclass(frozen=True)
class ShippingTicket:
    """A carrier shipping ticket. ``status`` is carrier-defined; only
    "released" and "canceled" drive transitions."""

    status: str
    updated_at: datetime | None
    tracking: str | None
    price: float | None
    print_url: str | None = None


@dataclass(frozen=True)
class RefundRecord:
    """One Stripe refund; only its status matters to reconciliation."""

    status: str
