"""Reconciliation service — runs order reconciliation passes.

Responsible for:
- Listing non-terminal orders and running one pipeline per order
  concurrently on a bounded thread pool
- Per-order pipeline: fetch ticket + session in parallel, decide, execute
  the best-effort ticket cancel, resolve refunds when owed, persist
- Isolating failures: a pipeline reports an OrderOutcome instead of raising,
  so one order's failure never touches another's
- Summarising the pass (attempted / succeeded / failed / skipped)

Designed to be called from the `flask reconcile-orders` CLI command on a
schedule. Passes (and single-order runs) never overlap: a thread lock guards
this process, and the store's lock guards the database across processes.
"""

import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass

from flask import current_app

from bookstore.services.errors import (
    DecisionInputMissing,
    ProviderError,
    ReconciliationError,
    StorageError,
)
from bookstore.services.order_store import OrderStore
from bookstore.services.reconciliation_engine import compute_new_status
from bookstore.services.refund_resolver import RefundResolver
from bookstore.services.shipping_service import ShippingClient
from bookstore.services.stripe_service import StripeGateway

logger = logging.getLogger(__name__)

_pass_lock = threading.Lock()


@dataclass(frozen=True)
class OrderOutcome:
    """Result of one order's pipeline.

    Attributes:
        ok: True when the new snapshot was persisted.
        stage: pipeline step that failed (input / fetch / decide / refund /
            store), or "deadline" / "locked" for a skipped order.
        skipped: the pipeline never started, because the pass deadline
            fired or another reconciliation held the lock.
    """

    order_id: str
    ok: bool
    stage: str | None = None
    error: str | None = None
    skipped: bool = False
    new_status: str | None = None


@dataclass
class PassSummary:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    def add(self, outcome):
        if outcome.skipped:
            self.skipped += 1
            return
        self.attempted += 1
        if outcome.ok:
            self.succeeded += 1
        else:
            self.failed += 1

    def as_dict(self):
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }


def build_snapshot(order, new_status, resolution=None):
    """Turn an engine decision (plus refund resolution) into the full set of
    columns written to the order row.

    Without a resolution the refund obligation is cleared and the last
    recorded refund_status is kept.
    """
    return {
        "status": new_status.status.value,
        "cancel_reason": new_status.cancel_reason.value if new_status.cancel_reason else None,
        "cancel_message": new_status.cancel_message,
        "stripe_status": new_status.session_status,
        "stripe_payment_id": new_status.payment_id,
        "ticket_status": new_status.ticket_status,
        "ticket_updated_at": new_status.ticket_updated_at,
        "tracking": new_status.tracking,
        "ticket_price": new_status.ticket_price,
        "print_url": new_status.print_url,
        "needs_refund": resolution.needs_refund if resolution else False,
        "refund_status": resolution.refund_status if resolution else order.refund_status,
    }


class BatchReconciler:
    """Fans out one reconciliation pipeline per order.

    ``store`` needs find_reconcilable() / get() / update(); ``gateway`` needs
    get_session() / list_refunds(); ``shipping`` needs get_ticket() /
    cancel_ticket(). When ``app`` is given, every pipeline runs inside its own
    app context (and therefore its own database session).
    """

    def __init__(self, store, gateway, shipping, app=None, max_workers=8,
                 deadline_seconds=None):
        self.store = store
        self.gateway = gateway
        self.shipping = shipping
        self.refund_resolver = RefundResolver(gateway)
        self.app = app
        self.max_workers = max(1, int(max_workers))
        self.deadline_seconds = deadline_seconds or None

    @classmethod
    def from_app(cls, app=None):
        """Build a reconciler wired to the real store and provider clients."""
        app = app or current_app._get_current_object()
        config = app.config
        return cls(
            store=OrderStore(),
            gateway=StripeGateway.from_config(config),
            shipping=ShippingClient.from_config(config),
            app=app,
            max_workers=config.get("RECONCILE_MAX_WORKERS", 8),
            deadline_seconds=config.get("RECONCILE_PASS_DEADLINE_SECONDS"),
        )

    # ──────────────────────────────────────────────
    # Pass
    # ──────────────────────────────────────────────

    def run_once(self):
        """Run one reconciliation pass over every non-terminal order.

        Returns a PassSummary. A reconciliation already running, in this
        process or in another one against the same database, makes this
        call a no-op with zero counts.
        """
        summary = PassSummary()

        with self._exclusive() as acquired:
            if not acquired:
                logger.warning("Reconciliation already running, skipping this pass")
                return summary

            try:
                orders = self.store.find_reconcilable()
            except StorageError as e:
                logger.error(f"Could not list orders to reconcile: {e}")
                return summary

            if not orders:
                logger.info("Reconciliation pass: no orders to reconcile")
                return summary

            unique = list({order.id: order for order in orders}.values())
            deadline = (
                time.monotonic() + self.deadline_seconds
                if self.deadline_seconds else None
            )
            logger.info(f"Reconciliation pass: {len(unique)} order(s)")

            for outcome in self._run_pipelines(unique, deadline):
                summary.add(outcome)

        logger.info(f"Reconciliation pass done: {summary.as_dict()}")
        return summary

    def reconcile_one(self, order_id):
        """Reconcile a single order by id.

        Returns an OrderOutcome, or None if the order does not exist. While
        another reconciliation is running the order is left alone and the
        outcome is skipped with stage "locked".
        """
        with self._exclusive() as acquired:
            if not acquired:
                logger.warning(f"Reconciliation already running, not reconciling order {order_id}")
                return OrderOutcome(
                    order_id=order_id,
                    ok=False,
                    stage="locked",
                    error="another reconciliation is running",
                    skipped=True,
                )

            order = self.store.get(order_id)
            if order is None:
                return None
            outcomes = self._run_pipelines([order], deadline=None)
        return outcomes[0]

    @contextmanager
    def _exclusive(self):
        """Yield True when no other reconciliation runs, in this process or
        against the same database."""
        if not _pass_lock.acquire(blocking=False):
            yield False
            return

        try:
            try:
                handle = self.store.acquire_pass_lock()
            except StorageError as e:
                logger.error(f"Could not take the reconciliation lock: {e}")
                handle = None

            try:
                yield handle is not None
            finally:
                if handle is not None:
                    self.store.release_pass_lock(handle)
        finally:
            _pass_lock.release()

    def _run_pipelines(self, orders, deadline):
        # Side pool for the two fetches and the best-effort cancel; its tasks
        # never wait on anything, so pipelines cannot starve it.
        with ThreadPoolExecutor(
            max_workers=self.max_workers * 2, thread_name_prefix="reconcile-io"
        ) as io_pool, ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="reconcile"
        ) as pool:
            futures = [
                pool.submit(self._run_in_context, order, io_pool, deadline)
                for order in orders
            ]
            outcomes = [f.result() for f in futures]
        return outcomes

    def _run_in_context(self, order, io_pool, deadline):
        if deadline is not None and time.monotonic() >= deadline:
            return OrderOutcome(order_id=order.id, ok=False, stage="deadline", skipped=True)

        if self.app is None:
            return self.reconcile_order(order, io_pool)
        with self.app.app_context():
            return self.reconcile_order(order, io_pool)

    # ──────────────────────────────────────────────
    # Per-order pipeline
    # ──────────────────────────────────────────────

    def reconcile_order(self, order, io_pool):
        """Run the full pipeline for one order. Never raises."""
        stage = "input"
        try:
            if not order.ticket_id:
                raise DecisionInputMissing("ticket_id", order_id=order.id)
            if not order.session_id:
                raise DecisionInputMissing("session_id", order_id=order.id)

            stage = "fetch"
            ticket_future = io_pool.submit(self.shipping.get_ticket, order.ticket_id)
            session_future = io_pool.submit(self.gateway.get_session, order.session_id)
            done, _ = wait([ticket_future, session_future], return_when=FIRST_EXCEPTION)
            for future in done:
                if future.exception() is not None:
                    raise future.exception()
            ticket = ticket_future.result()
            session = session_future.result()

            stage = "decide"
            new_status = compute_new_status(order, ticket, session)

            if new_status.cancel_ticket_id:
                io_pool.submit(self._cancel_ticket, order.id, new_status.cancel_ticket_id)

            resolution = None
            if new_status.needs_refund_candidate:
                stage = "refund"
                resolution = self.refund_resolver.resolve(new_status.payment_id)

            stage = "store"
            self.store.update(order.id, build_snapshot(order, new_status, resolution))
        except ReconciliationError as e:
            logger.error(f"Order {order.id} reconciliation failed at {stage}: {e}")
            return OrderOutcome(order_id=order.id, ok=False, stage=stage, error=str(e))
        except Exception as e:
            logger.error(
                f"Order {order.id} reconciliation failed at {stage}: {e}",
                exc_info=True,
            )
            return OrderOutcome(order_id=order.id, ok=False, stage=stage, error=str(e))

        return OrderOutcome(order_id=order.id, ok=True, new_status=new_status.status.value)

    def _cancel_ticket(self, order_id, ticket_id):
        """Best-effort carrier cancel. Failures are logged, never raised."""
        try:
            self.shipping.cancel_ticket(ticket_id)
            logger.info(f"Requested cancel of ticket {ticket_id} for order {order_id}")
        except ProviderError as e:
            logger.warning(f"CANCEL_TICKET_ERROR order={order_id} ticket={ticket_id}: {e}")
        except Exception as e:
            logger.error(
                f"CANCEL_TICKET_ERROR order={order_id} ticket={ticket_id}: {e}",
                exc_info=True,
            )
