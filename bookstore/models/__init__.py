# Models package — import all models here so Alembic can discover them.

from bookstore.models.order import Order  # noqa: F401
from bookstore.models.audit import AuditEvent  # noqa: F401
