# token_admission_bundle/admission/__init__.py
from __future__ import annotations

import importlib as _importlib

__all__ = [
    "address_validator",
    "admission_gate",
    "aggregator",
    "database",
    "dispatcher",
    "errors",
    "models",
    "pipeline",
    "rate_limiter",
    "resolvers",
    "server",
    "utils_exec",
]


def __getattr__(name: str):
    if name in __all__:
        return _importlib.import_module(f"{__name__}.{name}")
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(list(globals().keys()) + __all__)
