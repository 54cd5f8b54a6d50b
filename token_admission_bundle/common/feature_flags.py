# token_admission_bundle/common/feature_flags.py
import os


def _env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    v = str(v).strip().lower()
    return v in ("1", "true", "yes", "y", "on")


def is_enabled_dex_website_fallback(cfg: dict) -> bool:
    # Hard env kill-switch wins
    if _env_bool("FORCE_DISABLE_DEX_WEBSITE_FALLBACK", False):
        return False
    env_ok = _env_bool("DEX_WEBSITE_FALLBACK", True)
    cfg_toggle = bool((cfg.get("search", {}) or {}).get("dex_website_fallback", True))
    return env_ok and cfg_toggle


def is_enabled_whitepaper_fetch(cfg: dict) -> bool:
    if _env_bool("FORCE_DISABLE_WHITEPAPER_FETCH", False):
        return False
    return bool((cfg.get("ingestion", {}) or {}).get("trigger_whitepaper_fetch", True))
