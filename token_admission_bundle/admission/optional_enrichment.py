# token_admission_bundle/admission/optional_enrichment.py
# Best-effort lookups that may enrich a record but must never block admission.
#
# Usage:
#   market_cap = await probe(resolver.market_cap_for_symbol(symbol), "market-cap", symbol)
#   if market_cap is not None: ...
#
# Any exception raised by the awaited lookup is logged and discarded; the caller
# only ever sees "value" or "absent".
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, Optional, TypeVar

from token_admission_bundle.common.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

T = TypeVar("T")


@dataclass
class Enrichment(Generic[T]):
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None


async def enrich(awaitable: Awaitable[T], what: str, subject: Any = None) -> Enrichment[T]:
    try:
        value = await awaitable
    except Exception as e:
        logger.info("[enrich] %s for %s unavailable: %s", what, subject, e)
        return Enrichment(error=e)
    if value is None:
        logger.debug("[enrich] %s for %s: no data", what, subject)
    return Enrichment(value=value)


async def probe(awaitable: Awaitable[T], what: str, subject: Any = None) -> Optional[T]:
    return (await enrich(awaitable, what, subject)).value
