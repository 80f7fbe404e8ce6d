import os
import json


def _parse_cors_origins(value: str | None) -> list[str]:
    if not value or not value.strip():
        return ["*"]

    cleaned = value.strip()
    if cleaned.startswith("["):
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            origins = [str(item).strip() for item in parsed if str(item).strip()]
            if origins:
                return origins

    origins = [item.strip() for item in cleaned.split(",") if item.strip()]
    return origins or ["*"]


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.environ.get("DATABASE_URL", "postgresql://localhost/opsdesk")
SECRET_KEY = os.environ.get("SECRET_KEY", "opsdesk-development-secret-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24)
CORS_ORIGINS = _parse_cors_origins(os.environ.get("CORS_ORIGINS"))

UPLOAD_DIR = os.environ.get("UPLOAD_DIR", "uploads")
MAX_UPLOAD_MB = _env_int("MAX_UPLOAD_MB", 10)
MAX_LOGO_MB = _env_int("MAX_LOGO_MB", 5)

DEFAULT_PAGE_SIZE = _env_int("DEFAULT_PAGE_SIZE", 10)
MAX_PAGE_SIZE = _env_int("MAX_PAGE_SIZE", 100)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
SEED_DEMO_DATA = _env_bool("SEED_DEMO_DATA", True)
