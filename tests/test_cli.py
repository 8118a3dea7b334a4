"""Tests for the reconciliation CLI commands.

Covers:
- flask reconcile-orders prints the pass summary
- flask reconcile-order reports the new status, failures, unknown ids,
  and refuses while another reconciliation is running
"""

from unittest.mock import MagicMock, patch

from bookstore.extensions import db
from bookstore.models.order import Order
from bookstore.services.order_store import OrderStore
from bookstore.services.reconciliation_service import (
    BatchReconciler,
    OrderOutcome,
    PassSummary,
)
from tests.fakes import FakeGateway, FakeShipping, ticket


class TestReconcileOrdersCommand:
    def test_prints_summary(self, app):
        reconciler = MagicMock()
        reconciler.run_once.return_value = PassSummary(attempted=3, succeeded=2, failed=1)

        with patch.object(BatchReconciler, "from_app", return_value=reconciler):
            result = app.test_cli_runner().invoke(args=["reconcile-orders"])

        assert result.exit_code == 0
        assert "Attempted: 3" in result.output
        assert "Succeeded: 2" in result.output
        assert "Failed: 1" in result.output
        assert "Skipped: 0" in result.output

    def test_runs_pass_against_database(self, app, make_order):
        order_id = make_order(ticket_id="tk_1")
        reconciler = BatchReconciler(
            store=OrderStore(),
            gateway=FakeGateway(),
            shipping=FakeShipping(tickets={"tk_1": ticket("released")}),
            app=app,
            max_workers=1,
        )

        with patch.object(BatchReconciler, "from_app", return_value=reconciler):
            result = app.test_cli_runner().invoke(args=["reconcile-orders"])

        assert "Succeeded: 1" in result.output
        db.session.expire_all()
        assert db.session.get(Order, order_id).status == "IN_TRANSIT"


class TestReconcileOrderCommand:
    def test_success(self, app):
        reconciler = MagicMock()
        reconciler.reconcile_one.return_value = OrderOutcome(
            order_id="o1", ok=True, new_status="IN_TRANSIT"
        )

        with patch.object(BatchReconciler, "from_app", return_value=reconciler):
            result = app.test_cli_runner().invoke(args=["reconcile-order", "o1"])

        assert result.exit_code == 0
        assert "Order o1: IN_TRANSIT" in result.output
        reconciler.reconcile_one.assert_called_once_with("o1")

    def test_failure_exits_nonzero(self, app):
        reconciler = MagicMock()
        reconciler.reconcile_one.return_value = OrderOutcome(
            order_id="o1", ok=False, stage="fetch", error="carrier down"
        )

        with patch.object(BatchReconciler, "from_app", return_value=reconciler):
            result = app.test_cli_runner().invoke(args=["reconcile-order", "o1"])

        assert result.exit_code == 1
        assert "failed at fetch" in result.output

    def test_unknown_order(self, app):
        reconciler = MagicMock()
        reconciler.reconcile_one.return_value = None

        with patch.object(BatchReconciler, "from_app", return_value=reconciler):
            result = app.test_cli_runner().invoke(args=["reconcile-order", "nope"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_skipped_while_reconciliation_running(self, app):
        reconciler = MagicMock()
        reconciler.reconcile_one.return_value = OrderOutcome(
            order_id="o1", ok=False, stage="locked",
            error="another reconciliation is running", skipped=True,
        )

        with patch.object(BatchReconciler, "from_app", return_value=reconciler):
            result = app.test_cli_runner().invoke(args=["reconcile-order", "o1"])

        assert result.exit_code == 1
        assert "Order o1 skipped: another reconciliation is running." in result.output
