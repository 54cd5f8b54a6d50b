# token_admission_bundle/admission/aggregator.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from token_admission_bundle.common.constants import LOGGER_NAME

from .errors import SourceError
from .models import SearchResult, TokenCandidate
from .utils_exec import cfg_get

logger = logging.getLogger(LOGGER_NAME)


def deduplicate(candidates: Sequence[TokenCandidate]) -> List[TokenCandidate]:
    """
    Collapse candidates sharing (symbol, name) case-insensitively, keeping the
    higher confidence. Output is ordered by confidence, highest first.
    """
    # stable sort: among equal confidences the earlier candidate wins
    ranked = sorted(candidates, key=lambda c: c.confidence, reverse=True)
    kept: List[TokenCandidate] = []
    for cand in ranked:
        if not any(k.identity_key() == cand.identity_key() for k in kept):
            kept.append(cand)
    return kept


class CandidateAggregator:
    """Fan a query out to every resolver, then rank and dedupe what comes back."""

    def __init__(
        self,
        resolvers: Sequence[Any],
        max_results: int = 5,
        auto_select_threshold: int = 80,
        min_query_length: int = 2,
    ):
        self.resolvers = list(resolvers)
        self.max_results = int(max_results)
        self.auto_select_threshold = int(auto_select_threshold)
        self.min_query_length = int(min_query_length)

    @classmethod
    def from_config(cls, resolvers: Sequence[Any], cfg: Dict[str, Any]) -> "CandidateAggregator":
        return cls(
            resolvers,
            max_results=int(cfg_get(cfg, "search.max_results")),
            auto_select_threshold=int(cfg_get(cfg, "search.auto_select_threshold")),
            min_query_length=int(cfg_get(cfg, "search.min_query_length")),
        )

    async def aggregate(self, query: str, network: Optional[str] = None) -> SearchResult:
        q = (query or "").strip()
        if len(q) < self.min_query_length:
            return SearchResult()

        results = await asyncio.gather(
            *(r.search(q, network) for r in self.resolvers),
            return_exceptions=True,
        )

        collected: List[TokenCandidate] = []
        for resolver, res in zip(self.resolvers, results):
            name = getattr(getattr(resolver, "source", None), "value", type(resolver).__name__)
            if isinstance(res, SourceError):
                logger.warning("Resolver %s failed for %r: %s", name, q, res)
                continue
            if isinstance(res, BaseException):
                logger.error("Resolver %s crashed for %r: %s", name, q, res, exc_info=res)
                continue
            if not res:
                logger.debug("Resolver %s found nothing for %r", name, q)
                continue
            collected.extend(res)

        unique = deduplicate(collected)
        default_choice = None
        if len(unique) == 1 and unique[0].confidence > self.auto_select_threshold:
            default_choice = unique[0]

        return SearchResult(candidates=unique[: self.max_results], default_choice=default_choice)
