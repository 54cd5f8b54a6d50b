# token_admission_bundle/admission/upstream_client.py
"""
Shared plumbing for the two external registries.

Features
--------
* One aiohttp session per client (or a borrowed, caller-owned session)
* Minimum spacing between calls (cooperative, per client)
* TTLCache for successful GET responses
* CircuitBreaker429 – fail fast after repeated 429s
* No retries: a failed call raises SourceError and the caller decides
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional

import aiohttp
from cachetools import TTLCache

from token_admission_bundle.common.constants import LOGGER_NAME

from .errors import SourceError
from .utils_exec import CircuitBreaker429

logger = logging.getLogger(LOGGER_NAME)


class UpstreamClient:
    source_name = "upstream"

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 15.0,
        min_interval: float = 0.2,
        cache_ttl: float = 60.0,
        cache_size: int = 1_000,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=float(timeout))
        self._min_interval = float(min_interval)
        self._last_call = 0.0
        self._rate_lock = asyncio.Lock()
        self._cache: Optional[TTLCache] = TTLCache(maxsize=cache_size, ttl=cache_ttl) if cache_ttl > 0 else None
        self._circuit_breaker = CircuitBreaker429(threshold=5, cooldown_seconds=120)

    def _default_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(headers=self._default_headers())
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def _wait_rate_slot(self) -> None:
        async with self._rate_lock:
            elapsed = time.monotonic() - self._last_call
            to_wait = self._min_interval - elapsed
            if to_wait > 0:
                await asyncio.sleep(to_wait)
            self._last_call = time.monotonic()

    async def get_json(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        allow_404: bool = True,
        use_cache: bool = True,
    ) -> Optional[Any]:
        """
        GET `path` relative to base_url.

        Returns the decoded JSON body, or None on 404 when allow_404 is set.
        Any other non-200 status, transport error or undecodable body raises SourceError.
        """
        url = f"{self.base_url}{path if path.startswith('/') else '/' + path}"
        cache_key = url + "?" + json.dumps(params or {}, sort_keys=True)
        if use_cache and self._cache is not None and cache_key in self._cache:
            return self._cache[cache_key]

        if self._circuit_breaker.is_open():
            raise SourceError(
                self.source_name,
                f"circuit open after repeated 429s ({self._circuit_breaker.remaining_cooldown():.0f}s left)",
                status=429,
            )

        if self._session is None:
            await self.start()
        await self._wait_rate_slot()

        try:
            async with self._session.get(url, params=params, headers=self._default_headers(), timeout=self._timeout) as resp:
                status = resp.status
                if status == 429:
                    self._circuit_breaker.record(is_429=True)
                    logger.warning("%s 429 for %s", self.source_name, url)
                    raise SourceError(self.source_name, "rate limited", status=429)
                self._circuit_breaker.record(is_429=False)

                if status == 404 and allow_404:
                    logger.debug("%s 404 for %s", self.source_name, url)
                    return None
                if status != 200:
                    text = await resp.text()
                    logger.debug("%s HTTP %s: %s", self.source_name, status, text[:200])
                    raise SourceError(self.source_name, f"HTTP {status}", status=status)

                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceError(self.source_name, f"request failed: {e!r}") from e
        except ValueError as e:
            raise SourceError(self.source_name, f"invalid JSON: {e}") from e

        if use_cache and self._cache is not None:
            self._cache[cache_key] = data
        return data
