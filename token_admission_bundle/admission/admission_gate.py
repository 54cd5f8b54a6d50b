# token_admission_bundle/admission/admission_gate.py
"""
Admission checks for a selected token, in order, each short-circuiting:

1. structural validation of (address, network)      -> ValidationError
2. duplicate pre-check against the store            -> ConflictError
3. resolution: native / caller-confirmed / raw DEX   -> NotFoundError, InsufficientLiquidityError
4. manual website / whitepaper overrides
5. website requirement                              -> NeedsWebsiteError

The result is an IngestionRequest; persisting and dispatching it is the
pipeline's job. Market-cap lookups in step 3 are optional enrichment and never
fail the admission.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from token_admission_bundle.common.constants import LOGGER_NAME

from . import address_validator
from .database import ProjectStore, record_identifier
from .errors import (
    ConflictError,
    InsufficientLiquidityError,
    NeedsWebsiteError,
    NotFoundError,
    SourceError,
    ValidationError,
)
from .models import NATIVE_NETWORK, NATIVE_PREFIX, AdmissionSubmission, IngestionRequest
from .optional_enrichment import probe
from .resolvers import DexPairResolver, RegistryResolver
from .utils_exec import cfg_get

logger = logging.getLogger(LOGGER_NAME)

MANUALLY_PROVIDED = "MANUALLY_PROVIDED"


@dataclass(frozen=True)
class AdmissionPolicy:
    liquidity_floor_usd: float = 100.0
    native_liquidity_usd: float = 1_000_000.0
    whitepaper_max_chars: int = 240_000

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "AdmissionPolicy":
        return cls(
            liquidity_floor_usd=float(cfg_get(cfg, "admission.liquidity_floor_usd")),
            native_liquidity_usd=float(cfg_get(cfg, "admission.native_liquidity_usd")),
            whitepaper_max_chars=int(cfg_get(cfg, "admission.whitepaper_max_chars")),
        )


def normalize_url(url: Optional[str]) -> Optional[str]:
    url = (url or "").strip()
    if not url:
        return None
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


@dataclass
class _Resolved:
    symbol: str
    name: str
    website: Optional[str] = None
    whitepaper_url: Optional[str] = None
    pool_address: Optional[str] = None
    liquidity_usd: float = 0.0
    market_cap: Optional[float] = None


class AdmissionGate:
    def __init__(
        self,
        registry: RegistryResolver,
        dex: DexPairResolver,
        store: ProjectStore,
        policy: Optional[AdmissionPolicy] = None,
    ):
        self.registry = registry
        self.dex = dex
        self.store = store
        self.policy = policy or AdmissionPolicy()

    # ------------------------------------------------------------------
    # 1 + 2
    # ------------------------------------------------------------------
    def _structural(self, sub: AdmissionSubmission) -> tuple[str, str]:
        if not sub.contract_address or not sub.network:
            raise ValidationError("Contract address and network are required.")

        if sub.is_native:
            coin_id = address_validator.native_id(sub.contract_address).strip()
            if not coin_id:
                raise ValidationError("Native token id is missing after 'native:'.")
            return f"{NATIVE_PREFIX}{coin_id}", NATIVE_NETWORK

        network = address_validator.canonical_network(sub.network)
        if not address_validator.validate(sub.contract_address, network):
            raise ValidationError("Invalid contract address format for the selected network.")
        return address_validator.normalize(sub.contract_address, network), network

    async def check_duplicate(self, address: str, network: str) -> None:
        if await self.store.reclaim_stale_pending(address, network):
            logger.warning("Reclaimed stale reservation for (%s, %s)", address, network)
        existing = await self.store.find_by_address(address, network)
        if existing:
            logger.info("Duplicate submission for (%s, %s) -> record %s", address, network, existing.get("id"))
            raise ConflictError(
                "Token already exists in our database.",
                token_id=record_identifier(existing),
                symbol=existing.get("symbol"),
            )

    # ------------------------------------------------------------------
    # 3
    # ------------------------------------------------------------------
    async def _resolve_native(self, sub: AdmissionSubmission) -> _Resolved:
        coin_id = address_validator.native_id(sub.contract_address).strip()
        logger.info("Fetching native token data for %s from registry", coin_id)
        try:
            details = await self.registry.details(coin_id)
        except SourceError as e:
            logger.warning("Registry lookup for native %s failed: %s", coin_id, e)
            details = None
        if not details:
            raise NotFoundError(f"Token '{coin_id}' not found on CoinGecko. Please verify the CoinGecko ID.")

        resolved = _Resolved(
            symbol=details["symbol"],
            name=details["name"],
            website=normalize_url(sub.website_url) or details.get("website"),
            whitepaper_url=details.get("whitepaper"),
            liquidity_usd=self.policy.native_liquidity_usd,
            market_cap=details.get("market_cap"),
        )
        if not resolved.website:
            raise NeedsWebsiteError("Website URL is required for Layer 1 tokens.", symbol=resolved.symbol)
        return resolved

    async def _resolve_confirmed(self, sub: AdmissionSubmission) -> _Resolved:
        logger.info("Using registry data for %s - skipping DEX validation", sub.symbol)
        market_cap = await probe(self.registry.market_cap_for_symbol(sub.symbol), "market cap", sub.symbol)
        return _Resolved(
            symbol=sub.symbol,
            name=sub.name,
            website=sub.website_url,
            liquidity_usd=self.policy.native_liquidity_usd,
            market_cap=market_cap,
        )

    async def _resolve_dex(self, address: str, network: str) -> _Resolved:
        logger.info("Fetching DEX data for %s on %s", address, network)
        try:
            summary = await self.dex.resolve_pair(address, network)
        except SourceError as e:
            logger.warning("DEX lookup for %s on %s failed: %s", address, network, e)
            summary = None
        if summary is None:
            raise NotFoundError("Token not found on DexScreener. Please ensure the token is listed on a DEX.")

        liquidity = float(summary["liquidity_usd"] or 0.0)
        if liquidity < self.policy.liquidity_floor_usd:
            logger.info("Rejecting %s on %s: liquidity $%.2f below floor", address, network, liquidity)
            raise InsufficientLiquidityError(
                f"Token liquidity too low. Minimum ${self.policy.liquidity_floor_usd:,.0f} liquidity required.",
                liquidity=liquidity,
            )

        resolved = _Resolved(
            symbol=summary["symbol"],
            name=summary["name"],
            website=summary.get("website"),
            pool_address=summary.get("pool_address"),
            liquidity_usd=liquidity,
            market_cap=summary.get("market_cap"),
        )
        if not resolved.market_cap and resolved.symbol:
            logger.info("DEX has no market cap for %s, trying registry", resolved.symbol)
            resolved.market_cap = await probe(
                self.registry.market_cap_for_symbol(resolved.symbol), "market cap", resolved.symbol
            )
        return resolved

    # ------------------------------------------------------------------
    # 4
    # ------------------------------------------------------------------
    def _apply_overrides(self, sub: AdmissionSubmission, resolved: _Resolved) -> Optional[str]:
        """Merge caller-supplied links into `resolved`; returns the truncated pasted whitepaper, if any."""
        manual_website = normalize_url(sub.website_url)
        if manual_website:
            resolved.website = manual_website
            logger.info("Manual website URL set: %s", manual_website)

        manual_whitepaper = normalize_url(sub.whitepaper_url)
        if manual_whitepaper:
            resolved.whitepaper_url = manual_whitepaper

        content = (sub.whitepaper_content or "").strip()
        if not content:
            return None
        content = content[: self.policy.whitepaper_max_chars]
        logger.info("Whitepaper content provided: %d chars", len(content))
        if not manual_whitepaper:
            resolved.whitepaper_url = MANUALLY_PROVIDED
        return content

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------
    async def admit(self, sub: AdmissionSubmission) -> IngestionRequest:
        address, network = self._structural(sub)
        await self.check_duplicate(address, network)

        if sub.is_native:
            resolved = await self._resolve_native(sub)
        elif sub.symbol and sub.name and sub.website_url:
            resolved = await self._resolve_confirmed(sub)
        else:
            resolved = await self._resolve_dex(address, network)

        whitepaper_content = self._apply_overrides(sub, resolved)

        if not resolved.website:
            raise NeedsWebsiteError(
                "This token does not have a website listed on DexScreener.",
                symbol=resolved.symbol,
                liquidity=resolved.liquidity_usd,
            )

        return IngestionRequest(
            contract_address=address,
            network=network,
            symbol=resolved.symbol,
            name=resolved.name,
            website_url=resolved.website,
            pool_address=resolved.pool_address,
            whitepaper_url=resolved.whitepaper_url,
            whitepaper_content=whitepaper_content,
            market_cap=resolved.market_cap,
            trigger_analysis=bool(resolved.website),
            is_native=sub.is_native,
            liquidity_usd=resolved.liquidity_usd,
        )
