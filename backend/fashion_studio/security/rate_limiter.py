# backend/fashion_studio/security/rate_limiter.py
from __future__ import annotations

import time
from collections import defaultdict
from threading import Lock
from typing import Callable, Dict

from fastapi import HTTPException


class SimpleRateLimiter:
    """
    In-memory token bucket, one bucket per API key.
    Buckets are per process; several API replicas each enforce the limit on their own.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = Lock()
        self._buckets: Dict[str, dict] = defaultdict(self._new_bucket)

    def _new_bucket(self) -> dict:
        return {"tokens": 0.0, "ts": self._clock(), "cap": 0.0}

    def check(self, key: str, rpm_limit: int) -> None:
        """
        Consumes one token per request, refilled at rpm_limit / 60 tokens per second.
        """
        if rpm_limit <= 0:
            return

        now = self._clock()
        refill_per_sec = float(rpm_limit) / 60.0
        cap = float(rpm_limit)

        with self._lock:
            b = self._buckets[key]

            # new bucket (or changed limit): start with a full burst
            if b["cap"] != cap:
                b["cap"] = cap
                if b["tokens"] <= 0.0:
                    b["tokens"] = cap

            elapsed = now - b["ts"]
            b["ts"] = now

            b["tokens"] = min(cap, float(b["tokens"]) + elapsed * refill_per_sec)

            if b["tokens"] < 1.0:
                raise HTTPException(
                    status_code=429,
                    detail={
                        "error_code": "RATE_LIMIT",
                        "message": "Too many requests. Slow down.",
                        "details": {"rpm_limit": rpm_limit},
                    },
                )

            b["tokens"] -= 1.0

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
