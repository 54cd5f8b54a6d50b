# token_admission_bundle/utils/env_loader.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from token_admission_bundle.common.constants import env_path

logger = logging.getLogger(__name__)


def _candidate_env_paths() -> list[Path]:
    return [
        env_path(),           # user appdata
        Path.cwd() / ".env",  # project CWD (dev)
    ]


def load_env_first_found(override: bool = False) -> Optional[Path]:
    """
    Priority:
      1) DOTENV_PATH env var (if set and exists)
      2) Per-user appdata path: <appdata>/TokenAdmission/.env
      3) CWD .env
    Returns the Path loaded or None.
    """
    dotenv_override = os.environ.get("DOTENV_PATH")
    if dotenv_override:
        p = Path(dotenv_override)
        if p.exists():
            load_dotenv(dotenv_path=str(p), override=override)
            logger.info("Loaded .env from DOTENV_PATH: %s", str(p))
            return p
        logger.warning("DOTENV_PATH set but file not found: %s", str(p))

    for p in _candidate_env_paths():
        if p.exists():
            load_dotenv(dotenv_path=str(p), override=override)
            logger.info("Loaded .env from candidate path: %s", str(p))
            return p

    logger.warning("No .env file found by loader.")
    return None


ENV_TEMPLATE = (
    "# Token admission service\n"
    "INGESTION_BASE_URL=\n"
    "INGESTION_SERVICE_KEY=\n"
    "# optional; unauthenticated registry access when empty\n"
    "COINGECKO_API_KEY=\n"
    "DEX_WEBSITE_FALLBACK=true\n"
)


def ensure_env_template() -> Path:
    """Write a skeleton .env into the appdata dir unless one is already there."""
    dst = env_path()
    if dst.exists():
        return dst
    dst.parent.mkdir(parents=True, exist_ok=True)
    dst.write_text(ENV_TEMPLATE, encoding="utf-8")
    logger.info("Created skeleton appdata .env at %s", str(dst))
    return dst


def get_secret(name: str) -> Optional[str]:
    v = os.environ.get(name)
    if not v:
        return None
    v = v.strip().strip('"').strip("'")
    return v or None


__all__ = [
    "load_env_first_found",
    "get_secret",
    "ensure_env_template",
]
