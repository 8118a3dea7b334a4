import os


class Config:
    """Base configuration. Shared across all environments."""

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # --- Stripe ---
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")

    # --- Shipping carrier (SuperFrete-style REST API) ---
    SHIPPING_API_URL = os.environ.get(
        "SHIPPING_API_URL", "https://sandbox.superfrete.com/api/v0"
    )
    SHIPPING_API_TOKEN = os.environ.get("SHIPPING_API_TOKEN")
    SHIPPING_USER_AGENT = os.environ.get(
        "SHIPPING_USER_AGENT", "Bookstore (ops@bookstore.local)"
    )

    # --- Provider calls ---
    # Applied to every Stripe and carrier request.
    PROVIDER_TIMEOUT_SECONDS = float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", 10))
    PROVIDER_MAX_RETRIES = int(os.environ.get("PROVIDER_MAX_RETRIES", 2))
    PROVIDER_RETRY_DELAY_SECONDS = float(
        os.environ.get("PROVIDER_RETRY_DELAY_SECONDS", 0.5)
    )

    # --- Reconciliation pass ---
    RECONCILE_MAX_WORKERS = int(os.environ.get("RECONCILE_MAX_WORKERS", 8))
    # 0 disables the deadline
    RECONCILE_PASS_DEADLINE_SECONDS = float(
        os.environ.get("RECONCILE_PASS_DEADLINE_SECONDS", 0)
    )

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "DATABASE_URL",
            "STRIPE_SECRET_KEY",
            "SHIPPING_API_URL",
            "SHIPPING_API_TOKEN",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True


class TestConfig(Config):
    """Testing — in-memory SQLite, fake provider credentials."""

    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    STRIPE_SECRET_KEY = "sk_test_fake"
    SHIPPING_API_URL = "https://shipping.test/api/v0"
    SHIPPING_API_TOKEN = "shipping_test_fake"
    PROVIDER_TIMEOUT_SECONDS = 1.0
    PROVIDER_MAX_RETRIES = 2
    PROVIDER_RETRY_DELAY_SECONDS = 0  # no sleeping between retries in tests
    # In-memory SQLite shares a single connection across threads, so
    # pipelines run one at a time against the real store in tests.
    RECONCILE_MAX_WORKERS = 1
    RECONCILE_PASS_DEADLINE_SECONDS = 0

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
