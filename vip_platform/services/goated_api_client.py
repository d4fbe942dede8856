"""
Client for the upstream affiliate referral leaderboard API.
Handles retries with exponential backoff and jitter, and falls back
to the last successful response when the upstream is unavailable.
"""

import asyncio
import json
import logging
import random
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

import httpx

from vip_platform.core.config import settings
from vip_platform.services.response_cache import ResponseCache

logger = logging.getLogger(__name__)


class GoatedApiError(Exception):
    """Base error for upstream API failures."""


class UpstreamUnavailableError(GoatedApiError):
    """Raised when retries are exhausted and nothing was ever cached."""


class GoatedApiClient:
    """Fetches raw referral data with caching and retry."""

    def __init__(
        self,
        base_url: str = settings.GOATED_API_URL,
        path: str = settings.GOATED_LEADERBOARD_PATH,
        token: str = settings.GOATED_API_TOKEN,
        request_timeout: float = settings.REQUEST_TIMEOUT,
        max_retries: int = settings.MAX_RETRIES,
        initial_retry_delay: float = settings.INITIAL_RETRY_DELAY,
        max_retry_delay: float = settings.MAX_RETRY_DELAY,
        cache: Optional[ResponseCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ):
        self.url = f"{base_url.rstrip('/')}/{path.lstrip('/')}"
        self.token = token
        self.request_timeout = request_timeout
        self.max_retries = max(0, max_retries)
        self.initial_retry_delay = initial_retry_delay
        self.max_retry_delay = max_retry_delay
        self.cache = cache or ResponseCache(ttl=timedelta(minutes=settings.RESPONSE_CACHE_TTL_MINUTES))
        self._transport = transport
        self._sleep = sleep
        self._jitter = jitter

    def compute_backoff_delay(self, retry_count: int) -> float:
        """delay = min(max_delay, initial_delay * 2^retry_count) * U(0.8, 1.2)"""
        base = min(self.max_retry_delay, self.initial_retry_delay * (2 ** retry_count))
        return base * self._jitter(0.8, 1.2)

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request_once(self) -> Any:
        async with httpx.AsyncClient(timeout=self.request_timeout, transport=self._transport) as client:
            response = await client.get(self.url, headers=self._headers())
            response.raise_for_status()
            # Upstream does not reliably send JSON or a JSON content-type
            text = response.text

        try:
            return json.loads(text)
        except ValueError:
            logger.warning(f"⚠️ Upstream returned non-JSON body ({len(text)} chars), passing raw text on")
            return {"rawText": text, "parseError": True}

    async def fetch_referral_data(self, force_fresh: bool = False) -> Any:
        """
        Return raw referral data.

        Serves the cached response when it is younger than the TTL and
        force_fresh is false. Otherwise requests the upstream, retrying on
        network errors, timeouts and non-2xx responses. When every attempt
        fails the last successful response is returned; UpstreamUnavailableError
        is raised only if there is none.
        """
        if not force_fresh:
            cached = self.cache.get_fresh()
            if cached is not None:
                logger.debug("Serving referral data from cache")
                return cached

        last_error: Optional[Exception] = None
        total_attempts = self.max_retries + 1

        for retry_count in range(total_attempts):
            try:
                data = await self._request_once()
                if not (isinstance(data, dict) and data.get("parseError")):
                    self.cache.set(data)
                return data
            except (httpx.HTTPStatusError, httpx.TimeoutException, httpx.RequestError) as e:
                last_error = e
                if retry_count < total_attempts - 1:
                    delay = self.compute_backoff_delay(retry_count)
                    logger.warning(
                        f"⚠️ Upstream request failed ({e.__class__.__name__}: {e}). "
                        f"Retrying in {delay:.1f}s (attempt {retry_count + 1}/{total_attempts})..."
                    )
                    await self._sleep(delay)

        stale = self.cache.get_stale()
        if stale is not None:
            logger.warning(
                f"⚠️ Upstream unavailable after {total_attempts} attempts, "
                f"serving cached response from {self.cache.last_fetch_time}"
            )
            return stale

        logger.error(f"❌ Upstream unavailable after {total_attempts} attempts and no cached response: {last_error}")
        raise UpstreamUnavailableError(f"Upstream API unavailable: {last_error}")


# Global client instance
goated_client = GoatedApiClient()
