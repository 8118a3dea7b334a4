"""Run one order reconciliation pass from a checkout of the repo.

Usage:
    python run.py                       # one pass, prints the summary dict
    flask --app run reconcile-orders    # the command cron runs
    flask --app run reconcile-order <order_id>

Environment comes from .env (DATABASE_URL, STRIPE_SECRET_KEY,
SHIPPING_API_TOKEN, ...). When a ./venv exists and this was started with a
different interpreter, the pass is re-run under ./venv/bin/python.
"""

import os
import subprocess
import sys


def _venv_python():
    path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "venv", "bin", "python")
    return path if os.path.exists(path) else None


def _rerun_in_venv(python):
    print(f"[run.py] Re-running under {python}")
    try:
        sys.exit(subprocess.call([python] + sys.argv))
    except KeyboardInterrupt:
        sys.exit(130)


_python = _venv_python()
if _python and os.path.realpath(sys.executable) != os.path.realpath(_python):
    _rerun_in_venv(_python)

from dotenv import load_dotenv

load_dotenv()  # config classes read os.environ at import time

from bookstore import create_app

app = create_app()

if __name__ == "__main__":
    from bookstore.services.reconciliation_service import BatchReconciler

    with app.app_context():
        summary = BatchReconciler.from_app(app).run_once()
    print(summary.as_dict())
