"""Database URL and engine options per deployment environment."""
import os

from app.config import environment_name

DEFAULT_SQLITE_URL = "sqlite:///leads.sqlite"

# environment -> env vars tried in order for the database URL
DATABASE_URL_VARS = {
    "local": ("LOCAL_DATABASE_URL",),
    "sandbox": ("SANDBOX_DATABASE_URL",),
    "production": ("PRODUCTION_DATABASE_URL", "DATABASE_URL"),
}


def normalize_database_url(url):
    """SQLAlchemy expects postgresql:// rather than the postgres:// many hosts hand out."""
    if url and url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def get_database_engine_options(worker_count=None):
    """Pool settings for PostgreSQL.

    Each worker thread holds one connection for the length of a job, so the
    pool grows with WORKER_COUNT. Web requests and the scheduler use the
    overflow.
    """
    from sqlalchemy.pool import QueuePool

    if worker_count is None:
        worker_count = int(os.environ.get("WORKER_COUNT", "10"))

    return {
        "pool_pre_ping": True,
        "pool_recycle": 280,          # just under the host's idle-connection timeout
        "pool_size": max(5, worker_count),
        "max_overflow": 5,
        "pool_timeout": 30,
        "pool_reset_on_return": "commit",
        "poolclass": QueuePool,
        "connect_args": {
            "sslmode": "require",
            "connect_timeout": 10,
            "application_name": "lead_delivery",
            "options": "-c statement_timeout=30000",
        },
    }


def get_database_config(environment=None):
    """Resolve (database_uri, engine_options) for an environment.

    Local falls back to a SQLite file and needs no engine options. Sandbox and
    production must name their database explicitly.

    Raises:
        ValueError: If a sandbox/production database URL is not configured
    """
    environment = environment or environment_name()
    names = DATABASE_URL_VARS[environment]
    url = next((os.environ[name] for name in names if os.environ.get(name)), None)

    if environment == "local":
        return normalize_database_url(url or DEFAULT_SQLITE_URL), None

    if not url:
        raise ValueError(f"{' or '.join(names)} must be set for the {environment} environment")
    return normalize_database_url(url), get_database_engine_options()


def configure_database(app):
    """Set SQLAlchemy config on the app, unless the caller already chose a URI (tests do)."""
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SQLALCHEMY_ECHO"] = False  # Set to True for SQL query debugging

    if app.config.get("SQLALCHEMY_DATABASE_URI"):
        return

    database_uri, engine_options = get_database_config()
    app.config["SQLALCHEMY_DATABASE_URI"] = database_uri
    if engine_options:
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options
