"""
Shared HTTP client for provider implementations.

Wraps one aiohttp session with a request timeout, a minimum delay between
requests, and retries with exponential backoff on network errors, 429 and
5xx responses.
"""

import asyncio
import json
import logging
import random
import time
from typing import Any
from typing import Dict
from typing import Optional

import aiohttp

from seat_sampler.exceptions import ProbeError
from seat_sampler.providers.base import Provider
from seat_sampler.settings import Settings
from seat_sampler.settings import get_settings

logger = logging.getLogger(__name__)

RETRY_STATUSES = {429, 500, 502, 503, 504}


class HttpClient:
    """Rate-limited aiohttp session with retries."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        base_backoff: float = 1.0,
    ) -> None:
        self.settings = settings or get_settings()
        self.base_backoff = base_backoff
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()
        self._last_request = 0.0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout),
                headers={"User-Agent": self.settings.user_agent},
            )
        return self._session

    async def _respect_rate_limit(self) -> None:
        async with self._lock:
            wait = self.settings.rate_limit - (time.monotonic() - self._last_request)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request = time.monotonic()

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> str:
        """
        Perform a request and return the response body.

        Raises:
            ProbeError: when every attempt failed
        """
        session = await self._get_session()
        attempts = self.settings.max_retries + 1
        last_error = ""
        for attempt in range(1, attempts + 1):
            await self._respect_rate_limit()
            try:
                async with session.request(
                    method, url, headers=headers, proxy=self.settings.proxy_url, **kwargs
                ) as resp:
                    if resp.status == 200:
                        logger.debug(f"[http] try={attempt} status=200 url={url}")
                        return await resp.text()
                    last_error = f"HTTP {resp.status}"
                    logger.warning(f"[http] try={attempt} status={resp.status} url={url}")
                    if resp.status not in RETRY_STATUSES:
                        break
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.warning(f"[http] try={attempt} error={type(e).__name__} url={url}")
            if attempt < attempts:
                delay = self.base_backoff * (2 ** (attempt - 1)) + random.uniform(0, self.base_backoff / 2)
                await asyncio.sleep(delay)
        raise ProbeError(f"{method} {url} failed: {last_error}")

    async def get_text(self, url: str, **kwargs: Any) -> str:
        return await self.request("GET", url, **kwargs)

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        body = await self.request("GET", url, **kwargs)
        try:
            return json.loads(body)
        except ValueError as e:
            raise ProbeError(f"GET {url} returned invalid JSON: {e}") from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class HttpProvider(Provider):
    """
    Provider talking to its back-end over HTTP.

    Owns an :class:`HttpClient` unless one is shared in, and closes it with
    the provider.
    """

    def __init__(self, venue_names=(), http: Optional[HttpClient] = None) -> None:
        super().__init__(venue_names)
        self._owns_http = http is None
        self.http = http or HttpClient()

    async def close(self) -> None:
        if self._owns_http:
            await self.http.close()
