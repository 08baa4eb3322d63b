import os

basedir = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-production")

    # Database: use DATABASE_URL from environment (PostgreSQL in production), fallback to SQLite for local dev
    _db_url = os.environ.get("DATABASE_URL", f"sqlite:///{os.path.join(basedir, 'instance', 'cor_audit.db')}")
    # Heroku-style URLs use postgres:// but SQLAlchemy requires postgresql://
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # PostgreSQL connection pooling
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,       # verify connections before using
        "pool_recycle": 300,         # recycle connections every 5 min
        "pool_size": 5,
        "max_overflow": 10,
    } if "DATABASE_URL" in os.environ else {}

    # Scoring and planning engine
    COR_EXPIRY_LEAD_DAYS = int(os.environ.get("COR_EXPIRY_LEAD_DAYS", 30))
    COR_WORKDAY_HOURS = float(os.environ.get("COR_WORKDAY_HOURS", 8))
    COR_PHASE_OVERLAP = float(os.environ.get("COR_PHASE_OVERLAP", 0.3))
    COR_MAX_PHASES = int(os.environ.get("COR_MAX_PHASES", 8))
    COR_WEEKLY_HOURS_AVAILABLE = float(os.environ.get("COR_WEEKLY_HOURS_AVAILABLE", 10))
    COR_PLAN_TARGET_DAYS = int(os.environ.get("COR_PLAN_TARGET_DAYS", 90))
    COR_SCORE_CACHE_ENABLED = _env_bool("COR_SCORE_CACHE_ENABLED", True)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
