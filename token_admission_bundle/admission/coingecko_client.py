# token_admission_bundle/admission/coingecko_client.py
"""
Curated token registry client (CoinGecko public API).

Public API
----------
search(query) -> list[dict]          raw `coins` entries (id, symbol, name, market_cap_rank, ...)
coin_details(coin_id) -> dict|None   flattened details, None when the id is unknown

The API key is optional: without it the client runs unauthenticated at the
public rate limit.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import aiohttp

from token_admission_bundle.common.constants import LOGGER_NAME

from .errors import SourceError
from .utils_exec import best_first, redact, to_optional_float
from .upstream_client import UpstreamClient

logger = logging.getLogger(LOGGER_NAME)

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"
API_KEY_HEADER = "x-cg-demo-api-key"


def _homepage(links: Dict[str, Any]) -> Optional[str]:
    homepages = links.get("homepage") or []
    if isinstance(homepages, str):
        return homepages or None
    for h in homepages:
        if h:
            return h
    return None


def _whitepaper(links: Dict[str, Any]) -> Optional[str]:
    wp = links.get("whitepaper")
    if isinstance(wp, list):
        wp = next((w for w in wp if w), None)
    return wp or None


def _contract_platforms(platforms: Any) -> Dict[str, str]:
    # native coins come back as {} or {"": ""}
    if not isinstance(platforms, dict):
        return {}
    return {k: v for k, v in platforms.items() if k and v}


class CoinGeckoClient(UpstreamClient):
    source_name = "registry"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: Optional[str] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 15.0,
        min_interval: float = 0.2,
        cache_ttl: float = 60.0,
    ):
        super().__init__(base_url, session=session, timeout=timeout, min_interval=min_interval, cache_ttl=cache_ttl)
        self.api_key = api_key or os.getenv("COINGECKO_API_KEY") or None
        if self.api_key:
            logger.info("Registry client using API key (redacted=%s)", redact(self.api_key))
        else:
            logger.info("Registry client has no API key; running unauthenticated (public rate limit).")

    def _default_headers(self) -> Dict[str, str]:
        hdrs = {"Accept": "application/json"}
        if self.api_key:
            hdrs[API_KEY_HEADER] = self.api_key
        return hdrs

    async def search(self, query: str) -> List[Dict[str, Any]]:
        data = await self.get_json("/search", params={"query": query})
        if not isinstance(data, dict):
            return []
        coins = data.get("coins") or []
        return [c for c in coins if isinstance(c, dict) and c.get("id")]

    async def coin_details(self, coin_id: str) -> Optional[Dict[str, Any]]:
        params = {
            "localization": "false",
            "tickers": "false",
            "market_data": "true",
            "community_data": "false",
            "developer_data": "false",
        }
        # details are the authoritative fetch; never served from cache
        data = await self.get_json(f"/coins/{coin_id}", params=params, use_cache=False)
        if data is None:
            return None
        if not isinstance(data, dict):
            raise SourceError(self.source_name, f"unexpected details payload for {coin_id}")

        links = data.get("links") or {}
        market_data = data.get("market_data") or {}
        image = data.get("image") or {}
        platforms = _contract_platforms(data.get("platforms"))
        symbol = (data.get("symbol") or coin_id).upper()

        return {
            "id": data.get("id") or coin_id,
            "symbol": symbol,
            "name": data.get("name") or coin_id,
            "website": _homepage(links),
            "whitepaper": _whitepaper(links),
            "market_cap": to_optional_float((market_data.get("market_cap") or {}).get("usd")) or None,
            "platforms": platforms,
            "is_native": not platforms,
            "image": best_first(image.get("large"), image.get("small"), image.get("thumb")) if isinstance(image, dict) else image,
        }
