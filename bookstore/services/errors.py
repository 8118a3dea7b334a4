"""Error kinds raised inside an order's reconciliation pipeline.

All of them are caught at the per-order boundary in reconciliation_service
and turned into a failed OrderOutcome, which records the pipeline step
(fetch, refund, store...) where they surfaced; none abort a pass.
"""


class ReconciliationError(Exception):
    """Base class for pipeline failures."""

    def __init__(self, message, order_id=None):
        self.message = message
        self.order_id = order_id
        super().__init__(message)


class ProviderError(ReconciliationError):
    """Transient failure talking to Stripe or the carrier
    (network, rate limit, 5xx, API error)."""

    def __init__(self, message, provider, operation, retryable=True):
        self.provider = provider  # "stripe" | "shipping"
        self.operation = operation  # e.g. "get_ticket"
        self.retryable = retryable
        super().__init__(message)


class StorageError(ReconciliationError):
    """Persisting an order snapshot (or listing orders) failed."""


class DecisionInputMissing(ReconciliationError):
    """An order lacks a field the pipeline needs, e.g. ticket_id."""

    def __init__(self, field, order_id=None):
        self.field = field
        super().__init__(f"Order {order_id} has no {field}", order_id=order_id)
