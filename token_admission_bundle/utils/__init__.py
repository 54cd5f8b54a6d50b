# token_admission_bundle/utils/__init__.py
from __future__ import annotations

from .env_loader import ensure_env_template, get_secret, load_env_first_found

__all__ = [
    "load_env_first_found",
    "get_secret",
    "ensure_env_template",
]
