import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    default_review_period_months: int
    reference_suggestion_limit: int

    notify_backend: str
    notify_webhook_url: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).") from e


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///cdms.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        default_review_period_months=_getenv_int("DEFAULT_REVIEW_PERIOD_MONTHS", 12),
        reference_suggestion_limit=_getenv_int("REFERENCE_SUGGESTION_LIMIT", 5),
        notify_backend=_getenv("NOTIFY_BACKEND", "log").lower(),
        notify_webhook_url=_getenv("NOTIFY_WEBHOOK_URL", ""),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "DEFAULT_REVIEW_PERIOD_MONTHS": s.default_review_period_months,
        "REFERENCE_SUGGESTION_LIMIT": s.reference_suggestion_limit,
        "NOTIFY_BACKEND": s.notify_backend,
        "NOTIFY_WEBHOOK_URL": s.notify_webhook_url,
    }
