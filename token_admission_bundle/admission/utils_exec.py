# token_admission_bundle/admission/utils_exec.py
# Config, logging and small async helpers shared by the admission pipeline.
from __future__ import annotations

import asyncio
import copy
import logging
import os
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from token_admission_bundle.common.constants import (
    LOGGER_NAME,
    config_path,
    db_path,
    ensure_app_dirs,
    logs_dir,
)

logger = logging.getLogger(LOGGER_NAME)

# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------
DEFAULT_CONFIG: Dict[str, Any] = {
    "logging": {
        "log_level": "INFO",
        "log_rotation_size_mb": 10,
        "log_max_files": 5,
    },
    "admission": {
        "liquidity_floor_usd": 100.0,
        "high_liquidity_usd": 100_000.0,
        "native_liquidity_usd": 1_000_000.0,
        "whitepaper_max_chars": 240_000,
    },
    "database": {
        "pending_ttl_seconds": 300,
    },
    "rate_limit": {
        "max_requests": 50,
        "window_seconds": 3600,
    },
    "scoring": {
        "base": 50,
        "symbol_bonus": 30,
        "name_bonus": 20,
        "rank_bonus": 10,
        "rank_cutoff": 100,
        "dex_high": 70,
        "dex_low": 50,
        "registry_detail_limit": 3,
    },
    "search": {
        "max_results": 5,
        "auto_select_threshold": 80,
        "min_query_length": 2,
        "dex_website_fallback": True,
    },
    "sources": {
        "coingecko_base_url": "https://api.coingecko.com/api/v3",
        "dexscreener_base_url": "https://api.dexscreener.com/latest/dex",
        "timeout_seconds": 15,
        "min_interval_seconds": 0.2,
        "cache_ttl_seconds": 60,
    },
    "ingestion": {
        "trigger_whitepaper_fetch": True,
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8080,
    },
}


def cfg_get(d: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Dotted lookup into a nested config dict; falls back to DEFAULT_CONFIG, then `default`."""
    for source in (d or {}, DEFAULT_CONFIG):
        cur: Any = source
        found = True
        for part in path.split("."):
            if not isinstance(cur, dict) or part not in cur:
                found = False
                break
            cur = cur[part]
        if found and cur is not None:
            return cur
    return default


# -----------------------------------------------------------------------------
# Config & logging helpers
# -----------------------------------------------------------------------------
_missing_cfg_last_log_ts: float = 0.0


def _resolve_config_path(path: Optional[str] = None) -> Path:
    if path:
        return Path(path)
    preferred = config_path()
    if preferred.exists():
        return preferred
    local = Path.cwd() / "config.yaml"
    if local.exists():
        return local
    return preferred


def _create_default_config(cfg_path: Path) -> None:
    try:
        if not cfg_path.exists() or (cfg_path.stat().st_size == 0):
            cfg_path.parent.mkdir(parents=True, exist_ok=True)
            default_cfg = copy.deepcopy(DEFAULT_CONFIG)
            default_cfg["logging"]["file"] = str(logs_dir() / "admission.log")
            default_cfg["database"]["path"] = str(db_path())
            cfg_path.write_text("# Auto-generated default config\n" + yaml.safe_dump(default_cfg), encoding="utf-8")
    except OSError as e:
        logger.debug("Could not create default config at %s: %s", cfg_path, e)


def load_config(path: str | None = None) -> Dict:
    global _missing_cfg_last_log_ts
    cfg_path = _resolve_config_path(path)
    _create_default_config(cfg_path)
    try:
        with open(cfg_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
        logger.debug("Loaded configuration from %s", cfg_path)
        return config
    except (OSError, yaml.YAMLError) as e:
        now = time.time()
        if now - _missing_cfg_last_log_ts > 30:
            logger.error("Failed to load config from %s: %s", cfg_path, e)
            _missing_cfg_last_log_ts = now
        return {}


_LOG_SENTINEL_ATTR = "_token_admission_logging_file"


def setup_logging(config: dict[str, Any] | None) -> logging.Logger:
    log_cfg = (config or {}).get("logging", {}) if isinstance(config, dict) else {}
    ensure_app_dirs()

    raw_file = log_cfg.get("file") or (logs_dir() / "admission.log")
    log_file = Path(raw_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level_name = str(log_cfg.get("log_level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    max_size_mb = int(log_cfg.get("log_rotation_size_mb", 10))
    max_files = int(log_cfg.get("log_max_files", 5))

    root = logging.getLogger()
    root.setLevel(level)

    if getattr(root, _LOG_SENTINEL_ATTR, None) == str(log_file):
        for h in root.handlers:
            h.setLevel(level)
        return logging.getLogger(LOGGER_NAME)

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    file_handler: Optional[RotatingFileHandler] = None
    for h in list(root.handlers):
        if isinstance(h, RotatingFileHandler) and getattr(h, "baseFilename", None) == str(log_file):
            file_handler = h
            break
    if file_handler is None:
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=max_files,
            encoding="utf-8",
        )
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)
    file_handler.setLevel(level)

    has_console = any(isinstance(h, logging.StreamHandler) and not hasattr(h, "baseFilename") for h in root.handlers)
    if not has_console:
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        sh.setLevel(level)
        root.addHandler(sh)

    # aiohttp access logs are noisy at DEBUG
    logging.getLogger("aiohttp.access").setLevel(max(level, logging.INFO))

    setattr(root, _LOG_SENTINEL_ATTR, str(log_file))
    logging.getLogger(LOGGER_NAME).info("Logging configured: level=%s, file=%s", level_name, str(log_file))
    return logging.getLogger(LOGGER_NAME)


# -----------------------------------------------------------------------------
# Small value helpers
# -----------------------------------------------------------------------------
def best_first(*vals):
    """
    Return the first non-empty/non-None value among arguments (0 is valid).
    Consider empty strings, None, empty lists and empty dicts as "missing".
    """
    for v in vals:
        if v not in (None, "", [], {}):
            return v
    return None


def to_optional_float(v: Any) -> Optional[float]:
    if v is None or v == "":
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f


def redact(s: Optional[str]) -> str:
    if not s:
        return "<missing>"
    s = str(s)
    if len(s) <= 10:
        return s[:2] + "..." + s[-2:]
    return s[:4] + "..." + s[-4:]


def env_or_cfg(cfg: Dict[str, Any], env_name: str, path: str, default: Any = None) -> Any:
    v = os.getenv(env_name)
    if v is not None and v.strip():
        return v.strip()
    return cfg_get(cfg, path, default)


# -----------------------------------------------------------------------------
# Fire-and-forget scheduling
# -----------------------------------------------------------------------------
def safe_create_task(coro, *, name: Optional[str] = None) -> asyncio.Task:
    """
    Schedule a coroutine on the running loop and log (never raise) its outcome.

    Must be called from inside a running event loop.
    """
    label = name or "<task>"
    task = asyncio.get_running_loop().create_task(coro, name=label)

    def _done_cb(t: asyncio.Task) -> None:
        if t.cancelled():
            logger.info("Background task %s cancelled", label)
            return
        exc = t.exception()
        if exc is not None:
            logger.error("Background task %s raised exception: %s", label, exc, exc_info=exc)

    task.add_done_callback(_done_cb)
    return task


# -----------------------------------------------------------------------------
# Circuit-breaker helper
# -----------------------------------------------------------------------------
class CircuitBreaker429:
    def __init__(self, threshold: int = 5, cooldown_seconds: int = 60):
        self.threshold = int(threshold)
        self.cooldown_seconds = int(cooldown_seconds)
        self._count = 0
        self._last_trip_time: Optional[float] = None

    def record(self, is_429: bool) -> None:
        if is_429:
            self._count += 1
            if self._count >= self.threshold:
                self._last_trip_time = time.time()
        else:
            self._count = 0
            self._last_trip_time = None

    def is_open(self) -> bool:
        if self._last_trip_time is None:
            return False
        if (time.time() - self._last_trip_time) > self.cooldown_seconds:
            self._count = 0
            self._last_trip_time = None
            return False
        return True

    def remaining_cooldown(self) -> float:
        if self._last_trip_time is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (time.time() - self._last_trip_time))


__all__ = [
    "DEFAULT_CONFIG",
    "cfg_get",
    "load_config",
    "setup_logging",
    "best_first",
    "to_optional_float",
    "redact",
    "env_or_cfg",
    "safe_create_task",
    "CircuitBreaker429",
]
