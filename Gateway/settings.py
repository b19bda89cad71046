import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_ROOT / ".env", override=False)


@dataclass(frozen=True)
class Settings:
    database_url: str
    redis_url: Optional[str]
    ai_backend_url: str
    ai_backend_timeout_seconds: float
    jwt_secret: Optional[str]
    jwt_algorithm: str
    public_base_url: str


def _normalize_database_url(url: Optional[str]) -> Optional[str]:
    if url and url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


# Reads runtime configuration from the environment (after .env has been loaded)
def get_settings() -> Settings:
    database_url = _normalize_database_url(os.getenv("DATABASE_URL"))
    if not database_url:
        raise RuntimeError("DATABASE_URL must be set.")

    timeout_raw = os.getenv("AI_BACKEND_TIMEOUT_SECONDS") or "120"
    try:
        timeout = float(timeout_raw)
    except ValueError:
        timeout = 120.0

    return Settings(
        database_url=database_url,
        redis_url=os.getenv("REDIS_URL") or None,
        ai_backend_url=(os.getenv("AI_BACKEND_URL") or "http://localhost:7860").rstrip("/"),
        ai_backend_timeout_seconds=timeout,
        jwt_secret=os.getenv("JWT_SECRET") or None,
        jwt_algorithm=os.getenv("JWT_ALGORITHM") or "HS256",
        public_base_url=(os.getenv("PUBLIC_BASE_URL") or "http://localhost:8000").rstrip("/"),
    )
