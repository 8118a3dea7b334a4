"""Audit event model.

Records order lifecycle transitions made by the reconciliation pass, for
operators tracing how an order reached its current status.
"""

import uuid

from bookstore.extensions import db


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id = db.Column(
        db.String(36), db.ForeignKey("orders.id"), nullable=True, index=True
    )
    action = db.Column(db.String(255), nullable=False)  # e.g. "order.status_changed"
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, named metadata_ to avoid Python builtin clash
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    order = db.relationship("Order", back_populates="audit_events")

    def __repr__(self):
        return f"<AuditEvent {self.action}>"
