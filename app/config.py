import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(name, default):
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _float_env(name, default):
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


class Config:
    """Base configuration class with common settings."""
    # GoHighLevel configuration
    GHL_BASE_URL = os.environ.get("GHL_BASE_URL", "https://services.leadconnectorhq.com")
    GHL_API_VERSION = os.environ.get("GHL_API_VERSION", "2021-07-28")
    GHL_CUSTOM_OBJECT_KEY = os.environ.get("GHL_CUSTOM_OBJECT_KEY", "custom_objects.properties")
    GHL_REQUEST_TIMEOUT = _int_env("GHL_REQUEST_TIMEOUT", 30)

    # Destination accounts: JSON array of {"name", "locationId", "privateToken"}.
    # The first entry is the primary account.
    GHL_ACCOUNTS = os.environ.get("GHL_ACCOUNTS")
    GHL_LOCATION_ID = os.environ.get("GHL_LOCATION_ID")
    GHL_PRIVATE_TOKEN = os.environ.get("GHL_PRIVATE_TOKEN")
    GHL_ACCOUNT_NAME = os.environ.get("GHL_ACCOUNT_NAME", "Primary")

    # Rate limiting (per destination account, per process)
    GHL_CONCURRENT_REQUESTS = _int_env("GHL_CONCURRENT_REQUESTS", 5)
    GHL_REQUESTS_PER_SECOND = _float_env("GHL_REQUESTS_PER_SECOND", 10)
    GHL_RESERVOIR = _int_env("GHL_RESERVOIR", 100)
    GHL_RESERVOIR_REFRESH_SECONDS = _float_env("GHL_RESERVOIR_REFRESH_SECONDS", 60)
    GHL_RATE_LIMIT_COOLDOWN_SECONDS = _float_env("GHL_RATE_LIMIT_COOLDOWN_SECONDS", 60)

    # Worker pool and queue
    WORKER_COUNT = _int_env("WORKER_COUNT", 10)
    WORKER_SHUTDOWN_TIMEOUT = _float_env("WORKER_SHUTDOWN_TIMEOUT", 30)
    QUEUE_POLL_INTERVAL_SECONDS = _float_env("QUEUE_POLL_INTERVAL_SECONDS", 2)
    QUEUE_RETRY_LIMIT = _int_env("QUEUE_RETRY_LIMIT", 3)
    QUEUE_RETRY_DELAY_SECONDS = _int_env("QUEUE_RETRY_DELAY_SECONDS", 60)
    QUEUE_EXPIRE_SECONDS = _int_env("QUEUE_EXPIRE_SECONDS", 3600)
    QUEUE_EXPIRE_CHECK_SECONDS = _int_env("QUEUE_EXPIRE_CHECK_SECONDS", 60)

    # Polling fallback worker
    POLLER_BATCH_SIZE = _int_env("POLLER_BATCH_SIZE", 5)
    POLLER_INTERVAL_SECONDS = _int_env("POLLER_INTERVAL_SECONDS", 60)

    # Split users with more matching properties than this into several jobs
    DELIVERY_BATCH_SIZE = _int_env("DELIVERY_BATCH_SIZE", None)

    # Worker memory monitoring
    MEMORY_LOG_INTERVAL_SECONDS = _int_env("MEMORY_LOG_INTERVAL_SECONDS", 30)
    MEMORY_GC_THRESHOLD_MB = _int_env("MEMORY_GC_THRESHOLD_MB", 300)

    # Ingestion webhook shared secret (X-Hook-Secret header)
    WEBHOOK_SECRET = os.environ.get("WEBHOOK_SECRET")

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")

    # CORS configuration (dashboard polls the readback endpoints)
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True


class SandboxConfig(Config):
    """Configuration for sandbox/staging environment."""
    ENV = "sandbox"
    DEBUG = False


class ProductionConfig(Config):
    """Configuration for production environment."""
    ENV = "production"
    DEBUG = False


ENVIRONMENT_ALIASES = {
    "local": "local", "development": "local", "dev": "local",
    "sandbox": "sandbox", "staging": "sandbox", "stage": "sandbox",
    "production": "production", "prod": "production",
}


def environment_name():
    """Canonical environment from FLASK_ENV or ENVIRONMENT. Unknown values mean local."""
    raw = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).strip().lower()
    return ENVIRONMENT_ALIASES.get(raw, "local")


def get_config():
    """Config class for the current environment (see environment_name)."""
    return {
        "local": LocalConfig,
        "sandbox": SandboxConfig,
        "production": ProductionConfig,
    }[environment_name()]
