# token_admission_bundle/admission/address_validator.py
"""
Per-network contract address validation and normalization.

Networks are first folded through a synonym table (user spellings and the
registry's platform ids) onto a canonical key, then validated by family:

* EVM chains        -> 0x + 40 hex digits, lower-cased on normalize
* base58 chains     -> 32-44 base58 characters, case preserved
* bittensor         -> bare non-negative integer (subnet id)
* anything else     -> accepted if ANY family matches (logged)

Addresses of the form ``native:<registry id>`` are opaque pointers into the
registry's id space and skip format checks entirely.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Optional

from token_admission_bundle.common.constants import LOGGER_NAME

from .models import NATIVE_PREFIX

logger = logging.getLogger(LOGGER_NAME)

# ----------------------------------------------------------------------
# Patterns
# ----------------------------------------------------------------------
EVM_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
BASE58_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
SUBNET_ID_RE = re.compile(r"^\d+$")

# ----------------------------------------------------------------------
# Network tables
# ----------------------------------------------------------------------
EVM_NETWORKS = frozenset({
    "ethereum", "bsc", "base", "polygon", "avalanche", "arbitrum", "optimism",
    "fantom", "zksync", "linea", "scroll", "pulsechain",
})
BASE58_NETWORKS = frozenset({"solana", "sui"})
NUMERIC_NETWORKS = frozenset({"bittensor"})

NETWORK_SYNONYMS: Dict[str, str] = {
    "eth": "ethereum",
    "arb": "arbitrum",
    "op": "optimism",
    "matic": "polygon",
    "avax": "avalanche",
    "binance": "bsc",
    "bnb": "bsc",
    "ftm": "fantom",
    "sol": "solana",
    "pulse": "pulsechain",
    # registry platform ids
    "binance-smart-chain": "bsc",
    "polygon-pos": "polygon",
    "arbitrum-one": "arbitrum",
    "optimistic-ethereum": "optimism",
    "zksync-era": "zksync",
}

# canonical network -> DEX aggregator chain id (None: not traded on DEXes)
DEX_CHAIN_IDS: Dict[str, Optional[str]] = {
    **{n: n for n in EVM_NETWORKS},
    "solana": "solana",
    "sui": "sui",
    "bittensor": None,
}


def canonical_network(network: str) -> str:
    key = (network or "").strip().lower()
    return NETWORK_SYNONYMS.get(key, key)


def dex_chain_id(network: str) -> Optional[str]:
    net = canonical_network(network)
    # unknown networks are passed through as-is
    return DEX_CHAIN_IDS.get(net, net)


def is_native(address: str) -> bool:
    return bool(address) and address.startswith(NATIVE_PREFIX)


def native_id(address: str) -> str:
    return address[len(NATIVE_PREFIX):] if is_native(address) else address


def is_evm_address(address: str) -> bool:
    return bool(EVM_RE.match(address or ""))


def is_base58_address(address: str) -> bool:
    return bool(BASE58_RE.match(address or ""))


def is_subnet_id(address: str) -> bool:
    return bool(SUBNET_ID_RE.match(address or ""))


def looks_like_contract_address(query: str) -> bool:
    """True when a free-text query is plausibly an on-chain address rather than a name."""
    q = (query or "").strip()
    return is_evm_address(q) or is_base58_address(q)


def validate(address: str, network: str) -> bool:
    if not address or not network:
        return False
    if is_native(address):
        return True

    net = canonical_network(network)
    if net in NUMERIC_NETWORKS:
        return is_subnet_id(address)
    if net in BASE58_NETWORKS:
        return is_base58_address(address)
    if net in EVM_NETWORKS:
        return is_evm_address(address)

    logger.warning("Unknown network for validation: %s", network)
    return is_evm_address(address) or is_base58_address(address) or is_subnet_id(address)


def normalize(address: str, network: str) -> str:
    if is_native(address):
        return address
    net = canonical_network(network)
    if net in NUMERIC_NETWORKS or net in BASE58_NETWORKS:
        return address
    # only EVM-shaped addresses have a case-insensitive form
    if is_evm_address(address):
        return address.lower()
    return address


__all__ = [
    "EVM_NETWORKS",
    "BASE58_NETWORKS",
    "NUMERIC_NETWORKS",
    "NETWORK_SYNONYMS",
    "canonical_network",
    "dex_chain_id",
    "is_native",
    "native_id",
    "looks_like_contract_address",
    "validate",
    "normalize",
]
