"""Order model.

One row per purchase. Created by the storefront checkout in PREPARING with a
Stripe session reference and, once shipping is arranged, a carrier ticket.
After that the row is only mutated by the reconciliation pass, which writes
a complete snapshot of the last-observed Stripe session and carrier ticket
together with the derived lifecycle status.
"""

import enum
import uuid

from bookstore.extensions import db


class OrderStatus(str, enum.Enum):
    PREPARING = "PREPARING"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELED = "CANCELED"


class CancelReason(str, enum.Enum):
    SHIPPING_SERVICE = "SHIPPING_SERVICE"
    STRIPE = "STRIPE"


# Refund status recorded when a refund is owed but Stripe has no refund yet.
REFUND_STATUS_NONE = "stripe_has_none"


class Order(db.Model):
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_refund_status", "status", "refund_status"),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    status = db.Column(
        db.String(20), nullable=False, default=OrderStatus.PREPARING.value
    )  # PREPARING | IN_TRANSIT | DELIVERED | CANCELED
    cancel_reason = db.Column(
        db.String(30), nullable=True
    )  # SHIPPING_SERVICE | STRIPE, only when CANCELED
    cancel_message = db.Column(db.Text, nullable=True)

    # --- Stripe checkout session snapshot ---
    session_id = db.Column(db.String(255), nullable=True)  # e.g. "cs_test_..."
    stripe_payment_id = db.Column(db.String(255), nullable=True)  # "pi_..."
    stripe_status = db.Column(
        db.String(30), nullable=True
    )  # expired | complete | open

    # --- Carrier ticket snapshot ---
    ticket_id = db.Column(db.String(255), nullable=True)
    ticket_status = db.Column(db.String(50), nullable=True)
    ticket_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    tracking = db.Column(db.String(255), nullable=True)
    ticket_price = db.Column(db.Float, nullable=True)
    print_url = db.Column(db.String(2048), nullable=True)

    # --- Refund tracking ---
    needs_refund = db.Column(db.Boolean, nullable=False, default=False)
    refund_status = db.Column(
        db.String(50), nullable=True
    )  # Stripe refund status or "stripe_has_none"

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    audit_events = db.relationship("AuditEvent", back_populates="order")

    def __repr__(self):
        return f"<Order {self.id} ({self.status})>"
