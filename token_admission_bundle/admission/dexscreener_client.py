# token_admission_bundle/admission/dexscreener_client.py
"""
DEX aggregator client (DexScreener).

Public API
----------
fetch_pairs(address) -> list[dict]   every trading pair that references `address`
best_pair(pairs, chain_id=None) -> dict|None
pair_summary(pair, address) -> dict
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import aiohttp

from token_admission_bundle.common.constants import LOGGER_NAME

from .upstream_client import UpstreamClient
from .utils_exec import to_optional_float

logger = logging.getLogger(LOGGER_NAME)

DEFAULT_BASE_URL = "https://api.dexscreener.com/latest/dex"


class DexScreenerClient(UpstreamClient):
    source_name = "dex-pair"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 15.0,
        min_interval: float = 0.2,
        cache_ttl: float = 60.0,
    ):
        super().__init__(base_url, session=session, timeout=timeout, min_interval=min_interval, cache_ttl=cache_ttl)

    async def fetch_pairs(self, address: str) -> List[Dict[str, Any]]:
        address = (address or "").strip()
        if not address:
            return []
        data = await self.get_json(f"/tokens/{address}")
        if not isinstance(data, dict):
            return []
        pairs = data.get("pairs") or []
        return [p for p in pairs if isinstance(p, dict)]


def _liquidity_usd(pair: Dict[str, Any]) -> float:
    liq = pair.get("liquidity")
    if not isinstance(liq, dict):
        return 0.0
    return to_optional_float(liq.get("usd")) or 0.0


def best_pair(pairs: List[Dict[str, Any]], chain_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Highest-USD-liquidity pair, optionally restricted to one chain.
    Ties keep whichever pair the upstream listed first.
    """
    if chain_id:
        pairs = [p for p in pairs if str(p.get("chainId") or "").lower() == chain_id.lower()]
    best: Optional[Dict[str, Any]] = None
    for p in pairs:
        if best is None or _liquidity_usd(p) > _liquidity_usd(best):
            best = p
    return best


def _website_from_info(info: Dict[str, Any]) -> Optional[str]:
    for w in info.get("websites") or []:
        url = w if isinstance(w, str) else (w or {}).get("url")
        if url:
            return url
    return None


def pair_summary(pair: Dict[str, Any], address: str) -> Dict[str, Any]:
    """Flatten a pair into the token's view of it: the side matching `address` wins."""
    base = pair.get("baseToken") or {}
    quote = pair.get("quoteToken") or {}
    if str(quote.get("address") or "").lower() == address.lower() and str(base.get("address") or "").lower() != address.lower():
        token = quote
    else:
        token = base

    info = pair.get("info") or {}
    website = _website_from_info(info)
    twitter = telegram = None
    for social in info.get("socials") or []:
        if not isinstance(social, dict):
            continue
        kind = str(social.get("type") or "").lower()
        url = social.get("url")
        if not url:
            continue
        if kind == "website" and not website:
            website = url
        elif kind == "twitter" and not twitter:
            twitter = url
        elif kind == "telegram" and not telegram:
            telegram = url

    return {
        "address": token.get("address") or address,
        "symbol": token.get("symbol") or "",
        "name": token.get("name") or "",
        "chain_id": pair.get("chainId"),
        "pool_address": pair.get("pairAddress"),
        "liquidity_usd": _liquidity_usd(pair),
        "market_cap": to_optional_float(pair.get("marketCap")) or to_optional_float(pair.get("fdv")),
        "price_usd": to_optional_float(pair.get("priceUsd")),
        "website": website,
        "twitter": twitter,
        "telegram": telegram,
        "image": info.get("imageUrl"),
    }
