import os
import logging

import click

from flask import Flask

from bookstore.config import config_by_name
from bookstore.extensions import db, migrate


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from bookstore import models  # noqa: F401

    # --- CLI commands ---
    register_cli(app)

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("reconcile-orders")
    def reconcile_orders():
        """Run one order reconciliation pass.

        Pulls the latest Stripe session and carrier ticket for every
        non-terminal order, updates order status, and tracks refunds.
        Meant to be run on a schedule (cron / Railway).

        Usage:
            flask reconcile-orders
        """
        from bookstore.services.reconciliation_service import BatchReconciler

        summary = BatchReconciler.from_app(app).run_once()

        click.echo(
            f"Attempted: {summary.attempted}  "
            f"Succeeded: {summary.succeeded}  "
            f"Failed: {summary.failed}  "
            f"Skipped: {summary.skipped}"
        )

    @app.cli.command("reconcile-order")
    @click.argument("order_id")
    def reconcile_order(order_id):
        """Reconcile a single order now.

        Usage:
            flask reconcile-order <order_id>
        """
        from bookstore.services.reconciliation_service import BatchReconciler

        outcome = BatchReconciler.from_app(app).reconcile_one(order_id)

        if outcome is None:
            click.echo(f"Order {order_id} not found.")
            raise SystemExit(1)
        if outcome.skipped:
            click.echo(f"Order {order_id} skipped: {outcome.error}.")
            raise SystemExit(1)
        if outcome.ok:
            click.echo(f"Order {order_id}: {outcome.new_status}")
        else:
            click.echo(f"Order {order_id} failed at {outcome.stage}: {outcome.error}")
            raise SystemExit(1)
