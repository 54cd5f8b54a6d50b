# token_admission_bundle/common/constants.py
from __future__ import annotations

import os
import platform
from pathlib import Path
from typing import Optional, Final

# Public API re-exported by the package root
__all__ = [
    "APP_NAME",
    "LOGGER_NAME",
    "local_appdata_dir",
    "appdata_dir",
    "logs_dir",
    "config_path",
    "env_path",
    "db_path",
    "ensure_app_dirs",
]

# -----------------------------------------------------------------------------
# App naming
# -----------------------------------------------------------------------------
APP_NAME: Final[str] = "TokenAdmission"  # used as the directory name across platforms
LOGGER_NAME: Final[str] = "TokenAdmission"

# -----------------------------------------------------------------------------
# Platform-aware base dirs
# -----------------------------------------------------------------------------
def _windows_local_appdata() -> Optional[Path]:
    """Return Windows LocalAppData (LOCALAPPDATA), or None."""
    val = os.getenv("LOCALAPPDATA") or os.getenv("APPDATA")
    if not val:
        return None
    p = Path(val).expanduser()
    if p.exists() or p.parent.exists():
        return p
    return None


def _darwin_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def _xdg_data_home() -> Path:
    val = os.getenv("XDG_DATA_HOME")
    return Path(val).expanduser() if val else (Path.home() / ".local" / "share")


def local_appdata_dir() -> Path:
    r"""
    Cross-platform "local app data" root for this user.

    - Windows:  %LOCALAPPDATA%
    - macOS:    ~/Library/Application Support
    - Linux:    ~/.local/share
    """
    override = os.getenv("TOKEN_ADMISSION_HOME")
    if override:
        return Path(override).expanduser()
    system = platform.system().lower()
    if system.startswith("win"):
        return _windows_local_appdata() or Path.home()
    if system == "darwin":
        return _darwin_app_support()
    return _xdg_data_home()


def appdata_dir() -> Path:
    return local_appdata_dir() / APP_NAME


def logs_dir() -> Path:
    """Directory where rotating logs are stored."""
    return appdata_dir() / "logs"


def config_path() -> Path:
    """Default location for YAML config."""
    return appdata_dir() / "config.yaml"


def env_path() -> Path:
    """Default location for a .env file (optional)."""
    return appdata_dir() / ".env"


def db_path() -> Path:
    """Default SQLite location for admitted project records."""
    return appdata_dir() / "projects.sqlite3"


# -----------------------------------------------------------------------------
# Utilities
# -----------------------------------------------------------------------------
def ensure_app_dirs() -> None:
    """
    Create the app data hierarchy if missing. Safe to call multiple times.
    Never raises on filesystem errors.
    """
    try:
        appdata_dir().mkdir(parents=True, exist_ok=True)
        logs_dir().mkdir(parents=True, exist_ok=True)
    except OSError:
        pass

