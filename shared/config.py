import os
from typing import Optional

_TRUTHY = {"1", "true", "yes", "y", "on"}
_FALSY = {"0", "false", "no", "n", "off"}


def get_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return an environment setting with an optional default."""
    return os.getenv(name, default)


def get_int_setting(name: str, default: int) -> int:
    raw = get_setting(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_flag_setting(name: str, default: bool = False) -> bool:
    raw = get_setting(name)
    if raw is None:
        return default
    lowered = str(raw).strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    return default


def get_database_url() -> str:
    """
    Return the database URL for SQLAlchemy.
    Defaults to a local SQLite file for development if not provided.
    """
    return os.getenv("DATABASE_URL") or os.getenv("POSTGRES_CONNECTION_STRING") or "sqlite:///./pantry_crm.db"


def get_app_env() -> str:
    return (os.getenv("APP_ENV") or os.getenv("AZURE_FUNCTIONS_ENVIRONMENT") or "production").strip().lower()


def is_development() -> bool:
    return get_app_env() in {"development", "dev", "local"}


def get_session_secret() -> str:
    """Secret used to sign CRM session tokens; empty when none is configured."""
    for key in ("AUTH_SESSION_SECRET", "APP_SESSION_SECRET", "SECRET_KEY"):
        value = str(get_setting(key) or "").strip()
        if value:
            return value
    return ""


def get_session_ttl_seconds() -> int:
    parsed = get_int_setting("AUTH_SESSION_TTL_SECONDS", 12 * 60 * 60)
    return max(15 * 60, min(7 * 24 * 60 * 60, parsed))
