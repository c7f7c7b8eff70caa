from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parents[2]  # backend/
load_dotenv(BASE_DIR / ".env")


def _bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fashion_studio.db").strip()
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0").strip()

API_TITLE = os.getenv("API_TITLE", "Fashion Studio API")
API_VERSION = os.getenv("API_VERSION", "1.0.0")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://127.0.0.1:8000").rstrip("/")

STORAGE_DIR = Path(os.getenv("STORAGE_DIR", str(BASE_DIR / "storage")))

# Generation provider
FASHN_API_BASE_URL = os.getenv("FASHN_API_BASE_URL", "https://api.fashn.ai/v1").rstrip("/")
FASHN_API_KEY = os.getenv("FASHN_API_KEY", "").strip()
FASHN_TIMEOUT_SECONDS = float(os.getenv("FASHN_TIMEOUT_SECONDS", "30"))

POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "1.0"))
POLL_RETRY_SECONDS = float(os.getenv("POLL_RETRY_SECONDS", "2.0"))
POLL_MAX_ATTEMPTS = int(os.getenv("POLL_MAX_ATTEMPTS", "60"))

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10MB
SIGNUP_CREDITS = int(os.getenv("SIGNUP_CREDITS", "10"))

# Queue / worker
QUEUE_NAME = os.getenv("QUEUE_NAME", "generations")
JOB_TIMEOUT_SECONDS = int(os.getenv("JOB_TIMEOUT_SECONDS", "600"))
STUCK_TIMEOUT_SECONDS = int(os.getenv("STUCK_TIMEOUT_SECONDS", "900"))
DEFAULT_MAX_RETRIES = int(os.getenv("DEFAULT_MAX_RETRIES", "3"))
MIRROR_RESULTS = _bool("MIRROR_RESULTS", False)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
