"""Order store — the persistence boundary of order reconciliation.

- find_reconcilable: every order that is not terminal
- update: writes a complete order snapshot in a single commit, plus an
  audit event when the lifecycle status changed
- acquire_pass_lock / release_pass_lock: database-wide guard so passes from
  separate processes (cron, operators) never overlap

Orders leave this module as OrderRecord values rather than ORM instances,
since pipelines run on worker threads with their own sessions.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import or_, text
from sqlalchemy.exc import SQLAlchemyError

from bookstore.extensions import db
from bookstore.models.audit import AuditEvent
from bookstore.models.order import Order, OrderStatus
from bookstore.services.errors import StorageError

logger = logging.getLogger(__name__)

# Columns reconciliation may write. Anything else in a snapshot is rejected.
SNAPSHOT_FIELDS = (
    "status",
    "cancel_reason",
    "cancel_message",
    "stripe_status",
    "stripe_payment_id",
    "ticket_status",
    "ticket_updated_at",
    "tracking",
    "ticket_price",
    "print_url",
    "needs_refund",
    "refund_status",
)

PASS_LOCK_KEY = "bookstore:reconcile-orders"


@dataclass(frozen=True)
class OrderRecord:
    """Read-only view of an order row, safe to hand to another thread."""

    id: str
    status: str
    session_id: str | None
    ticket_id: str | None
    cancel_reason: str | None
    cancel_message: str | None
    print_url: str | None
    refund_status: str | None

    @classmethod
    def from_model(cls, order):
        return cls(
            id=order.id,
            status=order.status,
            session_id=order.session_id,
            ticket_id=order.ticket_id,
            cancel_reason=order.cancel_reason,
            cancel_message=order.cancel_message,
            print_url=order.print_url,
            refund_status=order.refund_status,
        )


def reconcilable_filter():
    """Orders that are not terminal.

    Terminal means DELIVERED, or CANCELED with the refund confirmed by
    Stripe. NULL refund_status counts as "not succeeded".
    """
    return (
        Order.status != OrderStatus.DELIVERED.value,
        or_(
            Order.status != OrderStatus.CANCELED.value,
            Order.refund_status.is_(None),
            Order.refund_status != "succeeded",
        ),
    )


class OrderStore:
    """SQLAlchemy-backed store. Uses the session of the current app context."""

    def acquire_pass_lock(self):
        """Take the database-wide reconciliation lock without waiting.

        On PostgreSQL this is a session-level advisory lock held on a
        dedicated connection, which is returned as the handle. Other
        databases have no cross-process lock and always get True.
        Returns None when another process holds the lock.
        Raises StorageError if the lock query fails.
        """
        engine = db.engine
        if engine.dialect.name != "postgresql":
            return True

        conn = engine.connect()
        try:
            locked = conn.execute(
                text("SELECT pg_try_advisory_lock(hashtext(:k))"), {"k": PASS_LOCK_KEY}
            ).scalar()
        except SQLAlchemyError as e:
            conn.close()
            raise StorageError(f"Taking the reconciliation lock failed: {e}") from e

        if not locked:
            conn.close()
            return None
        return conn

    def release_pass_lock(self, handle):
        """Release a lock taken by acquire_pass_lock."""
        if handle is True or handle is None:
            return
        try:
            handle.execute(
                text("SELECT pg_advisory_unlock(hashtext(:k))"), {"k": PASS_LOCK_KEY}
            )
        except SQLAlchemyError as e:
            # dropping the connection ends the database session, and the lock with it
            logger.error(f"Releasing the reconciliation lock failed: {e}")
            handle.invalidate()
        finally:
            handle.close()

    def find_reconcilable(self):
        """Return OrderRecords for every non-terminal order, oldest first.

        Raises StorageError if the query fails.
        """
        try:
            orders = (
                Order.query
                .filter(*reconcilable_filter())
                .order_by(Order.created_at.asc(), Order.id.asc())
                .all()
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"Listing reconcilable orders failed: {e}") from e
        return [OrderRecord.from_model(o) for o in orders]

    def get(self, order_id):
        """Return the OrderRecord for ``order_id`` or None."""
        try:
            order = db.session.get(Order, order_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"Loading order {order_id} failed: {e}", order_id=order_id) from e
        return OrderRecord.from_model(order) if order else None

    def update(self, order_id, snapshot):
        """Atomically write ``snapshot`` (a dict of SNAPSHOT_FIELDS) to one order.

        Records an "order.status_changed" AuditEvent in the same commit when
        the status changes. Either everything is committed or nothing is.
        Raises StorageError on failure.
        """
        unknown = set(snapshot) - set(SNAPSHOT_FIELDS)
        if unknown:
            raise StorageError(
                f"Snapshot for order {order_id} has unknown fields: {sorted(unknown)}",
                order_id=order_id,
            )

        try:
            order = db.session.get(Order, order_id)
            if order is None:
                raise StorageError(f"Order {order_id} no longer exists", order_id=order_id)

            old_status = order.status
            for field, value in snapshot.items():
                setattr(order, field, value)

            new_status = order.status
            if new_status != old_status:
                db.session.add(AuditEvent(
                    order_id=order.id,
                    action="order.status_changed",
                    metadata_={
                        "old_status": old_status,
                        "new_status": new_status,
                        "cancel_reason": order.cancel_reason,
                    },
                ))

            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"Updating order {order_id} failed: {e}", order_id=order_id) from e
        except StorageError:
            db.session.rollback()
            raise

        if new_status != old_status:
            logger.info(f"Order {order_id}: {old_status} -> {new_status}")
