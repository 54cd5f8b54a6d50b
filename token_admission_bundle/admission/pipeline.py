# token_admission_bundle/admission/pipeline.py
"""
Wires the admission components together.

    search  : query -> CandidateAggregator -> SearchResult
    submit  : body  -> RateLimiter -> AdmissionGate -> ProjectStore reservation
                    -> IngestionDispatcher -> AdmissionOutcome

The store reservation happens *before* the dispatch so that two concurrent
submissions for the same (address, network) are decided by the store's
uniqueness constraint, not by the gate's pre-check.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from token_admission_bundle.common.constants import LOGGER_NAME
from token_admission_bundle.common.feature_flags import (
    is_enabled_dex_website_fallback,
    is_enabled_whitepaper_fetch,
)
from token_admission_bundle.utils.env_loader import get_secret

from .admission_gate import MANUALLY_PROVIDED, AdmissionGate, AdmissionPolicy, normalize_url
from .aggregator import CandidateAggregator
from .coingecko_client import CoinGeckoClient
from .database import ProjectStore, record_identifier, resolve_db_path
from .dexscreener_client import DexScreenerClient
from .dispatcher import IngestionDispatcher
from .errors import (
    ConfigurationError,
    ConflictError,
    DuplicateRecordError,
    NotFoundError,
    RateLimitedError,
    ValidationError,
)
from .models import AdmissionOutcome, AdmissionSubmission, SearchResult, TokenCandidate
from .rate_limiter import RateLimiter
from .resolvers import DexPairResolver, RegistryResolver, ScoringWeights
from .utils_exec import cfg_get, env_or_cfg

logger = logging.getLogger(LOGGER_NAME)


# =========================
# Settings
# =========================
@dataclass(frozen=True)
class Settings:
    ingestion_base_url: str
    ingestion_service_key: str
    coingecko_api_key: Optional[str]
    coingecko_base_url: str
    dexscreener_base_url: str
    timeout_seconds: float
    min_interval_seconds: float
    cache_ttl_seconds: float
    db_path: str
    pending_ttl_seconds: float

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "Settings":
        """Read env + config once at startup. Missing ingestion credentials are fatal here, not per request."""
        base_url = env_or_cfg(cfg, "INGESTION_BASE_URL", "ingestion.base_url")
        service_key = get_secret("INGESTION_SERVICE_KEY") or cfg_get(cfg, "ingestion.service_key")
        missing = [n for n, v in (("INGESTION_BASE_URL", base_url), ("INGESTION_SERVICE_KEY", service_key)) if not v]
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

        return cls(
            ingestion_base_url=str(base_url),
            ingestion_service_key=str(service_key),
            coingecko_api_key=get_secret("COINGECKO_API_KEY") or cfg_get(cfg, "sources.coingecko_api_key"),
            coingecko_base_url=str(cfg_get(cfg, "sources.coingecko_base_url")),
            dexscreener_base_url=str(cfg_get(cfg, "sources.dexscreener_base_url")),
            timeout_seconds=float(cfg_get(cfg, "sources.timeout_seconds")),
            min_interval_seconds=float(cfg_get(cfg, "sources.min_interval_seconds")),
            cache_ttl_seconds=float(cfg_get(cfg, "sources.cache_ttl_seconds")),
            db_path=resolve_db_path(cfg),
            pending_ttl_seconds=float(cfg_get(cfg, "database.pending_ttl_seconds")),
        )


# =========================
# Pipeline
# =========================
class AdmissionPipeline:
    def __init__(
        self,
        aggregator: CandidateAggregator,
        gate: AdmissionGate,
        store: ProjectStore,
        dispatcher: IngestionDispatcher,
        rate_limiter: Optional[RateLimiter] = None,
        whitepaper_fetch: bool = True,
    ):
        self.aggregator = aggregator
        self.gate = gate
        self.store = store
        self.dispatcher = dispatcher
        self.rate_limiter = rate_limiter or RateLimiter()
        self.whitepaper_fetch = whitepaper_fetch

    @classmethod
    def from_config(
        cls,
        cfg: Dict[str, Any],
        *,
        session: Optional[aiohttp.ClientSession] = None,
        settings: Optional[Settings] = None,
    ) -> "AdmissionPipeline":
        settings = settings or Settings.from_config(cfg)
        weights = ScoringWeights.from_config(cfg)

        registry_client = CoinGeckoClient(
            settings.coingecko_base_url,
            settings.coingecko_api_key,
            session=session,
            timeout=settings.timeout_seconds,
            min_interval=settings.min_interval_seconds,
            cache_ttl=settings.cache_ttl_seconds,
        )
        dex_client = DexScreenerClient(
            settings.dexscreener_base_url,
            session=session,
            timeout=settings.timeout_seconds,
            min_interval=settings.min_interval_seconds,
            cache_ttl=settings.cache_ttl_seconds,
        )
        registry = RegistryResolver(registry_client, weights)
        dex = DexPairResolver(
            dex_client,
            weights,
            registry=registry,
            website_fallback=is_enabled_dex_website_fallback(cfg),
        )

        store = ProjectStore(settings.db_path, pending_ttl_seconds=settings.pending_ttl_seconds)
        gate = AdmissionGate(registry, dex, store, AdmissionPolicy.from_config(cfg))
        dispatcher = IngestionDispatcher(
            settings.ingestion_base_url,
            settings.ingestion_service_key,
            session=session,
        )
        limiter = RateLimiter(
            max_requests=int(cfg_get(cfg, "rate_limit.max_requests")),
            window_seconds=float(cfg_get(cfg, "rate_limit.window_seconds")),
        )
        return cls(
            CandidateAggregator.from_config([registry, dex], cfg),
            gate,
            store,
            dispatcher,
            rate_limiter=limiter,
            whitepaper_fetch=is_enabled_whitepaper_fetch(cfg),
        )

    async def start(self) -> None:
        await self.store.init()
        await self.dispatcher.start()
        for resolver in self.aggregator.resolvers:
            client = getattr(resolver, "client", None)
            if client is not None:
                await client.start()

    async def close(self) -> None:
        for resolver in self.aggregator.resolvers:
            client = getattr(resolver, "client", None)
            if client is not None:
                await client.close()
        await self.dispatcher.close()

    # ------------------------------------------------------------------
    # search
    # ------------------------------------------------------------------
    async def search(self, query: str, network: Optional[str] = None) -> SearchResult:
        result = await self.aggregator.aggregate(query, network)
        logger.info(
            "Search %r (network=%s): %d candidate(s), default=%s",
            query, network, len(result.candidates),
            result.default_choice.symbol if result.default_choice else None,
        )
        return result

    # ------------------------------------------------------------------
    # admission
    # ------------------------------------------------------------------
    def check_rate_limit(self, client_id: str) -> None:
        """Counts one request against `client_id`; runs before the body is even parsed."""
        if not self.rate_limiter.allow(client_id):
            logger.info("Rate limit hit for client %s", client_id)
            raise RateLimitedError("Rate limit exceeded. Please try again later.")

    async def submit(self, body: Any, client_id: str) -> Dict[str, Any]:
        self.check_rate_limit(client_id)
        return await self.admit(AdmissionSubmission.from_body(body))

    async def submit_candidate(self, candidate: TokenCandidate, client_id: str) -> Dict[str, Any]:
        self.check_rate_limit(client_id)
        return await self.admit(AdmissionSubmission.from_candidate(candidate))

    async def admit(self, submission: AdmissionSubmission) -> Dict[str, Any]:
        request = await self.gate.admit(submission)

        try:
            row_id = await self.store.insert_if_absent(request)
        except DuplicateRecordError:
            existing = await self.store.find_by_address(request.contract_address, request.network) or {}
            raise ConflictError(
                "Token already exists in our database.",
                token_id=record_identifier(existing) if existing else None,
                symbol=existing.get("symbol") or request.symbol,
            )

        try:
            result = await self.dispatcher.dispatch(request)
        except BaseException:
            # failed or cancelled: nothing was created downstream, free the key for a retry
            await asyncio.shield(self.store.release(row_id))
            raise

        await self.store.mark_ingested(row_id, result.project_id, result.market_cap, result.price_usd)
        if request.whitepaper_content:
            await self.store.save_whitepaper_content(row_id, request.whitepaper_content)
        if result.project_id is None:
            # downstream accepted but returned no id; link callers to the local record
            result.project_id = row_id
        logger.info("Admitted %s (%s on %s)", request.symbol, request.contract_address, request.network)
        return AdmissionOutcome(request, result).to_response()

    # ------------------------------------------------------------------
    # whitepaper attachment
    # ------------------------------------------------------------------
    async def submit_whitepaper(self, body: Any) -> Dict[str, Any]:
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object.")
        symbol = str(body.get("symbol") or "").strip()
        if not symbol:
            raise ValidationError("Symbol is required.")
        url = normalize_url(body.get("whitepaper_url") if isinstance(body.get("whitepaper_url"), str) else None)
        content = body.get("whitepaper_content")
        content = content.strip() if isinstance(content, str) else ""
        if not url and not content:
            raise ValidationError("Either whitepaper_url or whitepaper_content is required.")

        record = await self.store.find_by_symbol(symbol)
        if not record:
            raise NotFoundError(f"Project '{symbol.upper()}' not found.")

        # an existing link is only replaced by another link, never by pasted text
        if url:
            await self.store.attach_whitepaper(record["id"], url)
        if content:
            content = content[: self.gate.policy.whitepaper_max_chars]
            await self.store.save_whitepaper_content(record["id"], content)
        logger.info("Whitepaper attached to %s (url=%s, content=%d chars)", record.get("symbol"), url, len(content))

        project_id = record_identifier(record)
        fetch_triggered = False
        if self.whitepaper_fetch and record.get("project_id"):
            self.dispatcher.trigger_whitepaper_fetch(record["project_id"])
            fetch_triggered = True

        return {
            "success": True,
            "tokenId": project_id,
            "symbol": record.get("symbol"),
            "whitepaperUrl": url or record.get("whitepaper_url") or MANUALLY_PROVIDED,
            "fetchTriggered": fetch_triggered,
            "message": "Whitepaper submitted. Analysis will update shortly.",
        }
