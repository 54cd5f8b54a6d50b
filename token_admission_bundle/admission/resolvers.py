# token_admission_bundle/admission/resolvers.py
"""
Source resolvers: turn one external registry's answer into TokenCandidates.

Both resolvers return [] for "nothing matched" and raise SourceError when the
source itself failed; the aggregator only uses that distinction for logging.
Confidence values are ranking hints, not probabilities; the weights live in
ScoringWeights so they can be tuned from config.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from token_admission_bundle.common.constants import LOGGER_NAME

from . import address_validator
from .coingecko_client import CoinGeckoClient
from .dexscreener_client import DexScreenerClient, best_pair, pair_summary
from .models import CandidateSource, TokenCandidate
from .optional_enrichment import probe
from .utils_exec import cfg_get

logger = logging.getLogger(LOGGER_NAME)


@dataclass(frozen=True)
class ScoringWeights:
    base: int = 50
    symbol_bonus: int = 30
    name_bonus: int = 20
    rank_bonus: int = 10
    rank_cutoff: int = 100
    dex_high: int = 70
    dex_low: int = 50
    registry_detail_limit: int = 3
    high_liquidity_usd: float = 100_000.0

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "ScoringWeights":
        return cls(
            base=int(cfg_get(cfg, "scoring.base")),
            symbol_bonus=int(cfg_get(cfg, "scoring.symbol_bonus")),
            name_bonus=int(cfg_get(cfg, "scoring.name_bonus")),
            rank_bonus=int(cfg_get(cfg, "scoring.rank_bonus")),
            rank_cutoff=int(cfg_get(cfg, "scoring.rank_cutoff")),
            dex_high=int(cfg_get(cfg, "scoring.dex_high")),
            dex_low=int(cfg_get(cfg, "scoring.dex_low")),
            registry_detail_limit=int(cfg_get(cfg, "scoring.registry_detail_limit")),
            high_liquidity_usd=float(cfg_get(cfg, "admission.high_liquidity_usd")),
        )


def _clamp(score: int) -> int:
    return max(0, min(100, int(score)))


# ----------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------
class RegistryResolver:
    source = CandidateSource.REGISTRY

    def __init__(self, client: CoinGeckoClient, weights: Optional[ScoringWeights] = None):
        self.client = client
        self.weights = weights or ScoringWeights()

    def score(self, coin: Dict[str, Any], query: str) -> int:
        q = query.strip().lower()
        w = self.weights
        confidence = w.base
        if str(coin.get("symbol") or "").lower() == q:
            confidence += w.symbol_bonus
        if q and q in str(coin.get("name") or "").lower():
            confidence += w.name_bonus
        rank = coin.get("market_cap_rank")
        if isinstance(rank, (int, float)) and 0 < rank <= w.rank_cutoff:
            confidence += w.rank_bonus
        return _clamp(confidence)

    async def search(self, query: str, network: Optional[str] = None) -> List[TokenCandidate]:
        q = (query or "").strip()
        # the registry's text search cannot resolve raw addresses
        if not q or address_validator.looks_like_contract_address(q):
            return []

        coins = await self.client.search(q)
        top = coins[: self.weights.registry_detail_limit]
        if not top:
            return []

        details = await asyncio.gather(
            *(self.client.coin_details(c["id"]) for c in top),
            return_exceptions=True,
        )

        out: List[TokenCandidate] = []
        for coin, d in zip(top, details):
            if isinstance(d, Exception):
                logger.debug("Registry details for %s failed: %s", coin.get("id"), d)
                continue
            if not d:
                continue
            out.append(self._to_candidate(coin, d, q))
        return out

    def _to_candidate(self, coin: Dict[str, Any], d: Dict[str, Any], query: str) -> TokenCandidate:
        contract_address = network = None
        if not d["is_native"]:
            platform, contract_address = next(iter(d["platforms"].items()))
            network = address_validator.canonical_network(platform)
        return TokenCandidate(
            source=self.source,
            external_id=d["id"],
            symbol=d["symbol"],
            name=d["name"],
            is_native=d["is_native"],
            contract_address=contract_address,
            network=network,
            website=d.get("website"),
            whitepaper_url=d.get("whitepaper"),
            market_cap=d.get("market_cap"),
            confidence=self.score(coin, query),
            image=d.get("image"),
        )

    async def details(self, coin_id: str) -> Optional[Dict[str, Any]]:
        return await self.client.coin_details(coin_id)

    async def _exact_symbol_details(self, symbol: str) -> Optional[Dict[str, Any]]:
        wanted = (symbol or "").strip().upper()
        if not wanted:
            return None
        coins = await self.client.search(wanted)
        coin = next((c for c in coins if str(c.get("symbol") or "").upper() == wanted), None)
        if coin is None:
            return None
        return await self.client.coin_details(coin["id"])

    async def market_cap_for_symbol(self, symbol: str) -> Optional[float]:
        d = await self._exact_symbol_details(symbol)
        return (d or {}).get("market_cap")

    async def links_for_symbol(self, symbol: str) -> Tuple[Optional[str], Optional[str]]:
        d = await self._exact_symbol_details(symbol) or {}
        return d.get("website"), d.get("whitepaper")


# ----------------------------------------------------------------------
# DEX pairs
# ----------------------------------------------------------------------
class DexPairResolver:
    source = CandidateSource.DEX_PAIR

    def __init__(
        self,
        client: DexScreenerClient,
        weights: Optional[ScoringWeights] = None,
        registry: Optional[RegistryResolver] = None,
        website_fallback: bool = True,
    ):
        self.client = client
        self.weights = weights or ScoringWeights()
        self.registry = registry
        self.website_fallback = website_fallback

    def score(self, liquidity_usd: float) -> int:
        w = self.weights
        return w.dex_high if liquidity_usd > w.high_liquidity_usd else w.dex_low

    async def resolve_pair(self, address: str, network: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Canonical pair for `address`: the most liquid pair on `network`
        (any network when omitted). None when nothing trades there.
        """
        chain_id = None
        if network:
            chain_id = address_validator.dex_chain_id(network)
            if chain_id is None:
                logger.debug("Network %s has no DEX coverage", network)
                return None
        pairs = await self.client.fetch_pairs(address)
        pair = best_pair(pairs, chain_id)
        if pair is None:
            return None
        return pair_summary(pair, address)

    async def search(self, query: str, network: Optional[str] = None) -> List[TokenCandidate]:
        q = (query or "").strip()
        if not address_validator.looks_like_contract_address(q):
            return []

        summary = await self.resolve_pair(q, network)
        if summary is None:
            return []

        candidate = TokenCandidate(
            source=self.source,
            external_id=summary["address"],
            symbol=summary["symbol"],
            name=summary["name"],
            contract_address=summary["address"],
            network=address_validator.canonical_network(summary["chain_id"] or network or ""),
            website=summary["website"],
            market_cap=summary["market_cap"],
            liquidity_usd=summary["liquidity_usd"],
            confidence=self.score(summary["liquidity_usd"]),
            pool_address=summary["pool_address"],
            twitter=summary["twitter"],
            telegram=summary["telegram"],
            image=summary["image"],
        )

        if not candidate.website and candidate.symbol and self.website_fallback and self.registry is not None:
            links = await probe(self.registry.links_for_symbol(candidate.symbol), "registry website", candidate.symbol)
            if links:
                website, whitepaper = links
                if website:
                    logger.info("Found website from registry for %s: %s", candidate.symbol, website)
                    candidate.website = website
                if whitepaper:
                    candidate.whitepaper_url = whitepaper

        return [candidate]
