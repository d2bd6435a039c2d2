import os


def _env_int(name, default):
    return int(os.environ.get(name, default))


def _env_float(name, default):
    return float(os.environ.get(name, default))


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # --- Hosting provider ---
    HOSTING_PROJECT_ID = os.environ.get("HOSTING_PROJECT_ID") or os.environ.get(
        "GCLOUD_PROJECT"
    )
    HOSTING_API_BASE = os.environ.get(
        "HOSTING_API_BASE", "https://firebasehosting.googleapis.com/v1beta1"
    )
    HOSTING_SITE_PREFIX = os.environ.get("HOSTING_SITE_PREFIX", "rms")
    HOSTING_LABEL_CREATED_BY = os.environ.get(
        "HOSTING_LABEL_CREATED_BY", "sitelaunch"
    )
    HOSTING_HTTP_TIMEOUT = _env_float("HOSTING_HTTP_TIMEOUT", 30)

    # --- DNS provider (optional automation path) ---
    GODADDY_API_BASE = os.environ.get("GODADDY_API_BASE", "https://api.godaddy.com/v1")
    GODADDY_API_KEY = os.environ.get("GODADDY_API_KEY")
    GODADDY_API_SECRET = os.environ.get("GODADDY_API_SECRET")

    # --- Retry budgets (seconds) ---
    SITE_CREATION_MAX_ATTEMPTS = _env_int("SITE_CREATION_MAX_ATTEMPTS", 3)
    DEPLOY_MAX_ATTEMPTS = _env_int("DEPLOY_MAX_ATTEMPTS", 3)
    DOMAIN_REGISTRATION_MAX_ATTEMPTS = _env_int("DOMAIN_REGISTRATION_MAX_ATTEMPTS", 3)
    RETRY_BASE_DELAY = _env_float("RETRY_BASE_DELAY", 1.0)
    RETRY_MAX_DELAY = _env_float("RETRY_MAX_DELAY", 10.0)

    # --- Domain reconciliation (seconds) ---
    DOMAIN_POLL_INITIAL_INTERVAL = _env_int("DOMAIN_POLL_INITIAL_INTERVAL", 10)
    DOMAIN_POLL_DNS_INTERVAL = _env_int("DOMAIN_POLL_DNS_INTERVAL", 30)
    DOMAIN_POLL_SSL_INTERVAL = _env_int("DOMAIN_POLL_SSL_INTERVAL", 60)
    DOMAIN_POLL_MAX_DURATION = _env_int("DOMAIN_POLL_MAX_DURATION", 3600)
    DOMAIN_FLOW_STALL_GRACE = _env_int("DOMAIN_FLOW_STALL_GRACE", 900)
    DNS_VERIFICATION_MAX_ATTEMPTS = _env_int("DNS_VERIFICATION_MAX_ATTEMPTS", 20)
    SSL_PROVISIONING_MAX_ATTEMPTS = _env_int("SSL_PROVISIONING_MAX_ATTEMPTS", 60)
    DOMAIN_POLL_BATCH_SIZE = _env_int("DOMAIN_POLL_BATCH_SIZE", 50)
    DOMAIN_POLL_WORKERS = _env_int("DOMAIN_POLL_WORKERS", 4)

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = ["SECRET_KEY", "DATABASE_URL"]
        missing = [v for v in required if not os.environ.get(v)]
        if not (os.environ.get("HOSTING_PROJECT_ID") or os.environ.get("GCLOUD_PROJECT")):
            missing.append("HOSTING_PROJECT_ID")
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True


class TestConfig(Config):
    """Testing: in-memory SQLite, no retry delays, sequential polling."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    HOSTING_PROJECT_ID = "test-project"
    HOSTING_API_BASE = "https://hosting.test/v1beta1"
    GODADDY_API_BASE = "https://dns.test/v1"
    GODADDY_API_KEY = "gd_key_test"
    GODADDY_API_SECRET = "gd_secret_test"
    RETRY_BASE_DELAY = 0
    RETRY_MAX_DELAY = 0
    DOMAIN_POLL_WORKERS = 1

    @staticmethod
    def validate():
        """Skip validation in test mode; everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
