"""
Bird Feed Backend — Haikubox API Client
========================================

What:  HTTP client for the Haikubox detection API (api.haikubox.com).
How:   httpx.AsyncClient calls wrapped in tenacity retries and guarded by
       an in-process circuit breaker.
Who:   Called by HaikuboxService during syncs; the circuit state is
       reported by GET /health.

Endpoints used:
    GET /haikubox/{serial}                          → {"name", ...} (device info)
    GET /haikubox/{serial}/yearly-count?year=YYYY   → [{"bird", "count"}]
    GET /haikubox/{serial}/daily-count?date=YYYY-MM-DD → [{"bird", "count"}]
    GET /haikubox/{serial}/detections?hours=N
        → {"haikuboxName", "id", "tz", "detections": [{"cn", "dt", "sn", ...}]}

Resilience Strategy:
    1. Transport errors, 429 and 5xx responses are retried with exponential
       backoff + jitter (tenacity)
    2. Other 4xx responses (unknown serial) fail immediately
    3. A failure after retries counts against the circuit breaker; once it
       opens, calls fail instantly with CircuitBreakerOpenError (503)
"""

import logging
import time
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from birdfeed.config import settings
from birdfeed.exceptions import CircuitBreakerOpenError, HaikuboxServiceError

logger = logging.getLogger(__name__)

_APOSTROPHES = str.maketrans({"’": "'", "‘": "'", "`": "'", "´": "'"})


def normalize_common_name(name: str) -> str:
    """
    Matching key for bird names: trimmed, lowercase, ASCII apostrophes.

    The device reports "Cooper’s Hawk"; users type "Cooper's hawk".
    """
    return name.translate(_APOSTROPHES).strip().lower()


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker for the Haikubox API.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN
        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN
        HALF_OPEN (testing recovery)
            → Allow the next request through
            → On success: CLOSED; on failure: back to OPEN

    Not shared across processes; each uvicorn worker keeps its own state.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True when a call may proceed.

        Raises:
            CircuitBreakerOpenError: OPEN and still inside the recovery window
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Haikubox Client
# ══════════════════════════════════════════════════════════════════════════

def _is_transient(exc: BaseException) -> bool:
    """Transport failures, 429 and 5xx are worth retrying."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class HaikuboxClient:
    """
    Thin async client for one Haikubox API base URL.

    `transport` lets tests plug in an `httpx.MockTransport`.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.haikubox_base_url).rstrip("/")
        self.timeout = timeout or settings.haikubox_timeout
        self.transport = transport
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        logger.info(
            "HaikuboxClient initialized with base_url=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            self.base_url,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    # ── Public API ────────────────────────────────────────────────────────

    async def fetch_device(self, serial: str) -> Dict[str, Any]:
        """Device info for a serial; an unknown serial is a 404 upstream."""
        data = await self._get(f"/haikubox/{serial}", {})
        return data if isinstance(data, dict) else {}

    async def fetch_yearly(self, serial: str, year: int) -> List[Dict[str, Any]]:
        """Top species counts for a year: [{"bird": str, "count": int}, ...]."""
        data = await self._get(f"/haikubox/{serial}/yearly-count", {"year": year})
        return self._as_counts(data)

    async def fetch_daily(self, serial: str, day: date) -> List[Dict[str, Any]]:
        """Species counts for one day: [{"bird": str, "count": int}, ...]."""
        data = await self._get(
            f"/haikubox/{serial}/daily-count", {"date": day.isoformat()}
        )
        return self._as_counts(data)

    async def fetch_recent(self, serial: str, hours: int = 8) -> List[Dict[str, Any]]:
        """
        Individual detections from the last `hours` hours.

        Returns:
            [{"species": cn, "timestamp": dt, "scientific_name": sn}, ...]
            Entries without a name or timestamp are dropped.
        """
        data = await self._get(f"/haikubox/{serial}/detections", {"hours": hours})
        raw = data.get("detections", []) if isinstance(data, dict) else []

        detections = []
        for item in raw or []:
            if not isinstance(item, dict) or not item.get("cn") or not item.get("dt"):
                continue
            detections.append(
                {
                    "species": item["cn"],
                    "timestamp": item["dt"],
                    "scientific_name": item.get("sn"),
                }
            )
        return detections

    # ── Internals ─────────────────────────────────────────────────────────

    @staticmethod
    def _as_counts(data: Any) -> List[Dict[str, Any]]:
        if not isinstance(data, list):
            return []
        counts = []
        for item in data:
            if isinstance(item, dict) and item.get("bird"):
                counts.append({"bird": item["bird"], "count": int(item.get("count") or 0)})
        return counts

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        """
        GET a JSON document through the circuit breaker.

        Raises:
            CircuitBreakerOpenError: too many recent failures
            HaikuboxServiceError: request failed after retries
        """
        request_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        try:
            data = await self._request_with_retry(path, params, request_id)
            self.circuit_breaker.record_success()
            return data
        except httpx.HTTPStatusError as e:
            self.circuit_breaker.record_failure()
            status = e.response.status_code
            logger.error("[%s] Haikubox API returned %d for %s", request_id, status, path)
            raise HaikuboxServiceError(
                message=f"Haikubox API error: {status}",
                retry_after=self.circuit_breaker.recovery_timeout if status >= 500 else None,
                context={"request_id": request_id, "status": status},
            )
        except (httpx.HTTPError, ValueError) as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Haikubox request failed after retries: %s",
                request_id,
                str(e),
            )
            raise HaikuboxServiceError(
                message="Could not reach the Haikubox API. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"request_id": request_id, "error_type": type(e).__name__},
            )

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=settings.retry_jitter,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _request_with_retry(
        self,
        path: str,
        params: Dict[str, Any],
        request_id: str,
    ) -> Any:
        start_time = time.time()
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            response = await client.get(path, params=params)
            response.raise_for_status()
            data = response.json()

        logger.info(
            "[%s] Haikubox GET %s completed in %.0fms",
            request_id,
            path,
            (time.time() - start_time) * 1000,
        )
        return data


# ── Singleton Instance ────────────────────────────────────────────────────
# One instance so the circuit breaker state is shared across requests
haikubox_client = HaikuboxClient()
