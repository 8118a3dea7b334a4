"""Reconciliation engine — fuses a carrier ticket and a Stripe session into
an order's canonical status.

Pure decision logic: no I/O, no database access. Given the order as last
recorded plus freshly fetched ticket and session snapshots, compute_new_status
returns the complete new snapshot for the order. The one side effect the
decision calls for (asking the carrier to cancel a ticket when the Stripe
session expired) is returned as an instruction, not executed here.

Decision table, first match wins:

    1. ticket canceled, order IN_TRANSIT   -> DELIVERED
    2. ticket canceled                     -> CANCELED (SHIPPING_SERVICE)
    3. session expired                     -> CANCELED (STRIPE), cancel ticket
    4. ticket released                     -> IN_TRANSIT
    5. anything else                       -> status unchanged

Rule 1 reproduces how the carrier sandbox simulates a delivery: a ticket
that is canceled while in transit is taken as delivered.
"""

from dataclasses import dataclass
from datetime import datetime

from bookstore.models.order import CancelReason, OrderStatus
from bookstore.models.snapshots import PaymentSession, ShippingTicket

TICKET_CANCELED = "canceled"
TICKET_RELEASED = "released"
SESSION_EXPIRED = "expired"
PAYMENT_PAID = "paid"


@dataclass(frozen=True)
class NewStatus:
    status: OrderStatus
    cancel_reason: CancelReason | None
    cancel_message: str | None
    ticket_status: str
    ticket_updated_at: datetime | None
    ticket_price: float | None
    tracking: str | None
    print_url: str | None
    session_status: str | None
    payment_id: str | None
    needs_refund_candidate: bool
    # Ticket the orchestrator should ask the carrier to cancel (best effort).
    cancel_ticket_id: str | None = None


def check_needs_refund(session: PaymentSession | None) -> bool:
    """True iff the session shows a captured payment."""
    if session is None:
        return False
    return session.payment_id is not None and session.payment_status == PAYMENT_PAID


def compute_new_status(order, ticket: ShippingTicket, session: PaymentSession) -> NewStatus:
    """Apply the decision table to one order.

    ``order`` only needs ``status``, ``ticket_id``, ``cancel_reason``,
    ``cancel_message`` and ``print_url`` attributes.
    """
    current = OrderStatus(order.status)
    cancel_reason = None
    cancel_message = None
    cancel_ticket_id = None

    if ticket.status == TICKET_CANCELED and current == OrderStatus.IN_TRANSIT:
        status = OrderStatus.DELIVERED
        needs_refund = False
    elif ticket.status == TICKET_CANCELED:
        status = OrderStatus.CANCELED
        cancel_reason = CancelReason.SHIPPING_SERVICE
        cancel_message = f"Ticket {order.ticket_id} is canceled."
        needs_refund = check_needs_refund(session)
    elif session.status == SESSION_EXPIRED:
        status = OrderStatus.CANCELED
        cancel_reason = CancelReason.STRIPE
        cancel_message = f"Stripe session {order.ticket_id} expired."
        needs_refund = check_needs_refund(session)
        # rule 2 already covers a canceled ticket
        cancel_ticket_id = order.ticket_id
    elif ticket.status == TICKET_RELEASED:
        status = OrderStatus.IN_TRANSIT
        needs_refund = False
    else:
        status = current
        if current == OrderStatus.CANCELED:
            cancel_reason = CancelReason(order.cancel_reason) if order.cancel_reason else None
            cancel_message = order.cancel_message
            needs_refund = check_needs_refund(session)
        else:
            needs_refund = False

    return NewStatus(
        status=status,
        cancel_reason=cancel_reason,
        cancel_message=cancel_message,
        ticket_status=ticket.status,
        ticket_updated_at=ticket.updated_at,
        ticket_price=ticket.price,
        tracking=ticket.tracking,
        print_url=ticket.print_url or order.print_url,
        session_status=session.status,
        payment_id=session.payment_id,
        needs_refund_candidate=needs_refund,
        cancel_ticket_id=cancel_ticket_id,
    )
