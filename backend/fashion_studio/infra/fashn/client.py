"""HTTP client for the FASHN try-on generation API (`POST /run`, `GET /status/{id}`)."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from fashion_studio.core.config import (
    FASHN_API_BASE_URL,
    FASHN_API_KEY,
    FASHN_TIMEOUT_SECONDS,
    POLL_INTERVAL_SECONDS,
    POLL_MAX_ATTEMPTS,
    POLL_RETRY_SECONDS,
)

logger = logging.getLogger(__name__)

# the provider calls dresses and jumpsuits "one-pieces"
CATEGORY_MAP = {
    "tops": "tops",
    "bottoms": "bottoms",
    "full-body": "one-pieces",
}

TERMINAL_FAILURES = ("failed", "error")


class FashnAPIError(Exception):
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        # no status code means the request never got an answer
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class FashnTimeoutError(FashnAPIError):
    @property
    def transient(self) -> bool:
        return True


class GenerationFailed(FashnAPIError):
    @property
    def transient(self) -> bool:
        return False


@dataclass
class RunResult:
    id: str
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StatusResult:
    id: str
    status: str
    output: List[str] = field(default_factory=list)
    error: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def is_failed(self) -> bool:
        return self.status in TERMINAL_FAILURES


def _error_text(payload: Any) -> Optional[str]:
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict):
        name = payload.get("name")
        message = payload.get("message")
        if name and message:
            return f"{name}: {message}"
        return message or name or str(payload)
    return str(payload)


class FashnClient:
    def __init__(
        self,
        base_url: str = FASHN_API_BASE_URL,
        api_key: str = FASHN_API_KEY,
        *,
        timeout: float = FASHN_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not api_key:
            raise RuntimeError("FASHN_API_KEY not set. Create backend/.env based on .env.example")

        self._timeout = timeout
        self._transport = transport
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> "FashnClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise FashnAPIError(f"{type(exc).__name__}: {exc}") from exc

        if response.is_error:
            raise FashnAPIError(
                f"HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise FashnAPIError("Provider returned a non-JSON body", status_code=response.status_code) from exc

    def run(
        self,
        model_image: str,
        garment_image: str,
        category: str,
        *,
        seed: Optional[int] = None,
        samples: int = 1,
        quality: str = "balanced",
    ) -> RunResult:
        if category not in CATEGORY_MAP:
            raise ValueError(f"Unsupported category: {category}")

        body: Dict[str, Any] = {
            "model_image": model_image,
            "garment_image": garment_image,
            "category": CATEGORY_MAP[category],
            "mode": quality,
            "num_samples": samples,
        }
        if seed is not None:
            body["seed"] = seed

        data = self._request("POST", "/run", json=body)
        prediction_id = data.get("id")
        if not prediction_id:
            raise FashnAPIError(f"No prediction id in response: {_error_text(data.get('error')) or data}")
        logger.info("provider accepted prediction %s", prediction_id)
        return RunResult(id=str(prediction_id), raw=data)

    def status(self, prediction_id: str) -> StatusResult:
        data = self._request("GET", f"/status/{prediction_id}")
        output = data.get("output") or []
        if isinstance(output, str):
            output = [output]
        return StatusResult(
            id=str(data.get("id") or prediction_id),
            status=str(data.get("status") or "unknown"),
            output=list(output),
            error=_error_text(data.get("error")),
            raw=data,
        )

    def wait_for_completion(
        self,
        prediction_id: str,
        *,
        interval: float = POLL_INTERVAL_SECONDS,
        retry_interval: float = POLL_RETRY_SECONDS,
        max_attempts: int = POLL_MAX_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
        on_status: Optional[Callable[[StatusResult], None]] = None,
    ) -> StatusResult:
        """
        Polls the status endpoint until the prediction completes or fails.
        Rate limiting and 5xx answers count as an attempt and are retried after `retry_interval`.
        """
        for attempt in range(1, max_attempts + 1):
            try:
                result = self.status(prediction_id)
            except FashnAPIError as exc:
                if not exc.transient:
                    raise
                logger.warning("status check %s/%s for %s failed: %s", attempt, max_attempts, prediction_id, exc)
                sleep(retry_interval)
                continue

            if on_status is not None:
                on_status(result)

            if result.is_completed:
                return result
            if result.is_failed:
                raise GenerationFailed(f"Generation failed: {result.error or 'Unknown error'}")

            logger.debug("prediction %s status=%s (attempt %s)", prediction_id, result.status, attempt)
            sleep(interval)

        raise FashnTimeoutError(f"Polling timeout: prediction {prediction_id} not completed after {max_attempts} checks")

    def download(self, url: str) -> bytes:
        # separate client: result URLs live on a CDN and must not receive the bearer token
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport, follow_redirects=True) as cdn:
                response = cdn.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FashnAPIError(f"Download failed: {exc}", status_code=exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            raise FashnAPIError(f"Download failed: {type(exc).__name__}: {exc}") from exc
        return response.content
