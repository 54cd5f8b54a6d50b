# token_admission_bundle/admission/dispatcher.py
"""
Hands an admitted token to the downstream ingestion service.

The ingestion call itself is synchronous from the caller's point of view (one
POST, its failure fails the admission); the website/whitepaper analysis it
kicks off runs downstream and is never awaited here.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from token_admission_bundle.common.constants import LOGGER_NAME

from .errors import ConfigurationError, UpstreamDependencyError
from .models import DispatchResult, IngestionRequest
from .utils_exec import redact, safe_create_task, to_optional_float

logger = logging.getLogger(LOGGER_NAME)

INGESTION_PATH = "/functions/v1/project-ingestion"
WHITEPAPER_FETCHER_PATH = "/functions/v1/whitepaper-fetcher"


class IngestionDispatcher:
    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ):
        if not base_url or not service_key:
            raise ConfigurationError("Ingestion endpoint credentials are not configured.")
        self.base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=float(timeout))
        logger.info("Ingestion dispatcher -> %s (key=%s)", self.base_url, redact(service_key))

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._service_key}",
            "Content-Type": "application/json",
        }

    async def dispatch(self, request: IngestionRequest) -> DispatchResult:
        if self._session is None:
            await self.start()

        # analysis is only worth triggering when there is a website to analyse
        request.trigger_analysis = bool(request.website_url)
        payload = request.to_payload()
        url = f"{self.base_url}{INGESTION_PATH}"

        try:
            async with self._session.post(url, json=payload, headers=self._headers(), timeout=self._timeout) as resp:
                if resp.status < 200 or resp.status >= 300:
                    text = await resp.text()
                    logger.error("Ingestion failed (HTTP %s) for %s: %s", resp.status, request.symbol, text[:200])
                    raise UpstreamDependencyError(f"Ingestion failed: {text[:200]}")
                body: Any = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Ingestion request for %s failed: %s", request.symbol, e)
            raise UpstreamDependencyError(f"Ingestion failed: {e!r}"[:200]) from e
        except ValueError as e:
            raise UpstreamDependencyError(f"Ingestion returned an unreadable response: {e}") from e

        body = body if isinstance(body, dict) else {}
        result = DispatchResult(
            project_id=body.get("project_id"),
            market_cap=to_optional_float(body.get("market_cap")),
            price_usd=to_optional_float(body.get("price_usd")),
        )
        logger.info(
            "Ingested %s (%s on %s) as project %s; analysis=%s",
            request.symbol, request.contract_address, request.network, result.project_id, request.trigger_analysis,
        )
        return result

    async def _post_whitepaper_fetch(self, payload: Dict[str, Any]) -> None:
        if self._session is None:
            await self.start()
        url = f"{self.base_url}{WHITEPAPER_FETCHER_PATH}"
        async with self._session.post(url, json=payload, headers=self._headers(), timeout=self._timeout) as resp:
            if resp.status >= 300:
                logger.warning("Whitepaper fetcher for project %s answered HTTP %s", payload.get("projectId"), resp.status)
            else:
                logger.info("Whitepaper fetcher triggered for project %s", payload.get("projectId"))

    def trigger_whitepaper_fetch(self, project_id: Any, skip_analysis: bool = False) -> asyncio.Task:
        """
        Fire-and-forget: the returned task is never awaited by the core.
        The fetcher reads the link and any pasted text from the project itself.
        """
        payload = {"projectId": project_id, "skipAnalysis": skip_analysis}
        return safe_create_task(self._post_whitepaper_fetch(payload), name=f"whitepaper-fetch-{project_id}")
