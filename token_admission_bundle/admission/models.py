# token_admission_bundle/admission/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import ValidationError

NATIVE_PREFIX = "native:"
NATIVE_NETWORK = "other"


class CandidateSource(str, Enum):
    REGISTRY = "registry"
    DEX_PAIR = "dex-pair"


@dataclass
class TokenCandidate:
    """A provisional token identity produced by one resolver for one search."""

    source: CandidateSource
    external_id: str
    symbol: str
    name: str
    is_native: bool = False
    contract_address: Optional[str] = None
    network: Optional[str] = None
    website: Optional[str] = None
    whitepaper_url: Optional[str] = None
    market_cap: Optional[float] = None
    liquidity_usd: float = 0.0
    confidence: int = 0
    pool_address: Optional[str] = None
    twitter: Optional[str] = None
    telegram: Optional[str] = None
    image: Optional[str] = None

    def identity_key(self) -> tuple[str, str]:
        return (self.symbol or "").lower(), (self.name or "").lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.value,
            "id": self.external_id,
            "symbol": self.symbol,
            "name": self.name,
            "isNative": self.is_native,
            "contractAddress": self.contract_address,
            "network": self.network,
            "website": self.website,
            "whitepaper": self.whitepaper_url,
            "marketCap": self.market_cap,
            "liquidityUsd": self.liquidity_usd,
            "confidence": self.confidence,
            "poolAddress": self.pool_address,
            "twitter": self.twitter,
            "telegram": self.telegram,
            "image": self.image,
        }


@dataclass
class SearchResult:
    candidates: List[TokenCandidate] = field(default_factory=list)
    # UX hint only; the caller still submits its own selection
    default_choice: Optional[TokenCandidate] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidates": [c.to_dict() for c in self.candidates],
            "defaultChoice": self.default_choice.to_dict() if self.default_choice else None,
        }


def _optional_str(body: Dict[str, Any], key: str) -> Optional[str]:
    v = body.get(key)
    if v is None:
        return None
    if not isinstance(v, str):
        raise ValidationError(f"{key} must be a string.")
    v = v.strip()
    return v or None


@dataclass
class AdmissionSubmission:
    """What the caller sends after picking a candidate (the /add-token body)."""

    contract_address: str
    network: str
    website_url: Optional[str] = None
    whitepaper_url: Optional[str] = None
    whitepaper_content: Optional[str] = None
    symbol: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return self.contract_address.startswith(NATIVE_PREFIX)

    @classmethod
    def from_body(cls, body: Any) -> "AdmissionSubmission":
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object.")
        contract_address = body.get("contractAddress")
        network = body.get("network")
        if not contract_address or not network:
            raise ValidationError("Contract address and network are required.")
        if not isinstance(contract_address, str):
            raise ValidationError("Contract address must be a valid string.")
        if not isinstance(network, str):
            raise ValidationError("Network must be a valid string.")

        # whitepaper content is kept verbatim here; the gate trims and truncates it
        content = body.get("whitepaperContent")
        if content is not None and not isinstance(content, str):
            raise ValidationError("whitepaperContent must be a string.")

        return cls(
            contract_address=contract_address.strip(),
            network=network.strip(),
            website_url=_optional_str(body, "websiteUrl"),
            whitepaper_url=_optional_str(body, "whitepaperUrl"),
            whitepaper_content=content,
            symbol=_optional_str(body, "symbol"),
            name=_optional_str(body, "name"),
        )

    @classmethod
    def from_candidate(cls, candidate: TokenCandidate) -> "AdmissionSubmission":
        if candidate.is_native:
            address = f"{NATIVE_PREFIX}{candidate.external_id}"
        else:
            address = candidate.contract_address or ""
        # only registry identities count as caller-confirmed; DEX pairs go back through the liquidity floor
        confirmed = candidate.source is CandidateSource.REGISTRY
        return cls(
            contract_address=address,
            network=candidate.network or "ethereum",
            website_url=candidate.website,
            whitepaper_url=candidate.whitepaper_url,
            symbol=(candidate.symbol or None) if confirmed else None,
            name=(candidate.name or None) if confirmed else None,
        )


@dataclass
class IngestionRequest:
    """Normalized payload handed to the downstream ingestion service."""

    contract_address: str
    network: str
    symbol: str
    name: str
    website_url: str
    pool_address: Optional[str] = None
    whitepaper_url: Optional[str] = None
    whitepaper_content: Optional[str] = None
    market_cap: Optional[float] = None
    trigger_analysis: bool = False
    is_native: bool = False
    liquidity_usd: float = 0.0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "contract_address": self.contract_address,
            "network": self.network,
            "symbol": self.symbol,
            "name": self.name,
            "pool_address": self.pool_address,
            "website_url": self.website_url,
            "whitepaper_url": self.whitepaper_url,
            "whitepaper_content": self.whitepaper_content,
            "source": "manual",
            "trigger_analysis": self.trigger_analysis,
            "market_cap": self.market_cap,
        }


@dataclass
class DispatchResult:
    project_id: Any
    market_cap: Optional[float] = None
    price_usd: Optional[float] = None


@dataclass
class AdmissionOutcome:
    request: IngestionRequest
    result: DispatchResult

    def to_response(self) -> Dict[str, Any]:
        has_website = bool(self.request.website_url)
        return {
            "success": True,
            "tokenId": self.result.project_id,
            "symbol": self.request.symbol,
            "hasWebsite": has_website,
            "liquidity": self.request.liquidity_usd,
            "priceUsd": self.result.price_usd,
            "marketCap": self.result.market_cap,
            "analysisStatus": "pending" if has_website else "not_applicable",
            "message": "Token added successfully! Website analysis in progress (may take 1-2 minutes).",
        }
