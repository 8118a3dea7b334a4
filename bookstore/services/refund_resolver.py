"""Refund resolver — decides whether an owed refund is taken care of.

Only consulted when the engine flags an order as needing a refund. Looks at
the most recent Stripe refund for the order's PaymentIntent:

    pending / succeeded                  -> resolved, needs_refund = False
    requires_action / failed / canceled  -> unresolved, needs_refund = True
    no refund at all                     -> needs_refund = True, "stripe_has_none"
"""

import enum
import logging
from dataclasses import dataclass

from bookstore.models.order import REFUND_STATUS_NONE

logger = logging.getLogger(__name__)


class RefundStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    REQUIRES_ACTION = "requires_action"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def settles_refund(self):
        """Whether this refund state discharges the refund obligation."""
        return {
            RefundStatus.PENDING: True,
            RefundStatus.SUCCEEDED: True,
            RefundStatus.REQUIRES_ACTION: False,
            RefundStatus.FAILED: False,
            RefundStatus.CANCELED: False,
        }[self]


@dataclass(frozen=True)
class RefundResolution:
    needs_refund: bool
    refund_status: str


def classify_refund(status):
    """Map a raw Stripe refund status to a RefundResolution.

    ``status`` None means Stripe has no refund for the payment. Statuses
    outside RefundStatus are recorded verbatim and treated as unresolved.
    """
    if status is None:
        return RefundResolution(needs_refund=True, refund_status=REFUND_STATUS_NONE)

    try:
        known = RefundStatus(status)
    except ValueError:
        logger.warning(f"Unknown Stripe refund status {status!r}, treating as unresolved")
        return RefundResolution(needs_refund=True, refund_status=status)

    return RefundResolution(needs_refund=not known.settles_refund, refund_status=known.value)


class RefundResolver:
    def __init__(self, gateway):
        self.gateway = gateway

    def resolve(self, payment_id):
        """Fetch refunds for ``payment_id`` and classify the most recent one.

        Raises ProviderError if Stripe cannot be reached.
        """
        refunds = self.gateway.list_refunds(payment_id)
        latest = refunds[0] if refunds else None
        return classify_refund(latest.status if latest else None)
