# token_admission_bundle/admission/errors.py
"""
Error taxonomy for the admission pipeline.

Every error a caller can see derives from AdmissionError and carries the HTTP
status it maps to at the boundary plus a JSON payload builder. SourceError and
DuplicateRecordError are internal: the aggregator swallows the former, the gate
translates the latter into ConflictError.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class AdmissionError(Exception):
    http_status: int = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = {k: v for k, v in extra.items() if v is not None}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        payload.update(self.extra)
        return payload


class ValidationError(AdmissionError):
    http_status = 400


class NotFoundError(AdmissionError):
    http_status = 404


class ConflictError(AdmissionError):
    http_status = 409

    def __init__(self, message: str, token_id: Any = None, symbol: Optional[str] = None):
        super().__init__(message, tokenId=token_id, symbol=symbol)
        self.token_id = token_id
        self.symbol = symbol


class InsufficientLiquidityError(AdmissionError):
    http_status = 400

    def __init__(self, message: str, liquidity: Optional[float] = None):
        super().__init__(message, liquidity=liquidity)
        self.liquidity = liquidity


class NeedsWebsiteError(AdmissionError):
    http_status = 400

    def __init__(self, message: str, symbol: Optional[str] = None, liquidity: Optional[float] = None):
        super().__init__(message, needsWebsite=True, symbol=symbol, liquidity=liquidity)
        self.symbol = symbol
        self.liquidity = liquidity


class RateLimitedError(AdmissionError):
    http_status = 429


class UpstreamDependencyError(AdmissionError):
    http_status = 500


class ConfigurationError(AdmissionError):
    http_status = 500


class SourceError(Exception):
    """An upstream source (registry or DEX aggregator) failed, as opposed to finding nothing."""

    def __init__(self, source: str, message: str, status: Optional[int] = None):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status = status


class DuplicateRecordError(Exception):
    """The store's uniqueness constraint rejected an insert."""

    def __init__(self, contract_address: str, network: str):
        super().__init__(f"duplicate ({contract_address}, {network})")
        self.contract_address = contract_address
        self.network = network
