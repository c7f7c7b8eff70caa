# backend/fashion_studio/core/logging.py
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from fashion_studio.core.config import LOG_LEVEL
from fashion_studio.core.paths import LOGS_DIR


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generation_log(generation_id: str, msg: str, *, extra: Optional[dict[str, Any]] = None) -> None:
    """
    Per-generation log file (one JSON object per line) under storage/logs.
    """
    Path(LOGS_DIR).mkdir(parents=True, exist_ok=True)

    p: Path = Path(LOGS_DIR) / f"{generation_id}.log"
    payload = {
        "ts": _utc_iso(),
        "generation_id": generation_id,
        "message": (msg or "").rstrip(),
    }
    if extra:
        payload["extra"] = extra

    with p.open("a", encoding="utf-8") as f:
        f.write(json.dumps(payload, ensure_ascii=False) + "\n")
