from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import logging
import os
import sys

log = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class Settings:
    remote_url: Optional[str] = None
    remote_token: Optional[str] = None
    enforce_sale_stock: bool = False
    seed_defaults: bool = True
    mirror_max_attempts: int = 5
    log_level: int = logging.INFO


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "CrediFlow") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "crediflow.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def clean_remote_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    url = url.strip()
    # Dashboard links and random text get pasted here; ignore them instead of failing later.
    if not url.startswith(("http://", "https://")):
        log.warning("remote_url_ignored reason=unsupported_scheme")
        return None
    return url.rstrip("/")


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUTHY


def _int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None and value.strip() else default
    except ValueError:
        log.warning("config_value_ignored value=%r", value)
        return default


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    level_name = (env.get("CREDIFLOW_LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    return Settings(
        remote_url=clean_remote_url(env.get("CREDIFLOW_REMOTE_URL")),
        remote_token=(env.get("CREDIFLOW_REMOTE_TOKEN") or "").strip() or None,
        enforce_sale_stock=_flag(env.get("CREDIFLOW_ENFORCE_SALE_STOCK"), False),
        seed_defaults=_flag(env.get("CREDIFLOW_SEED_DEFAULTS"), True),
        mirror_max_attempts=max(1, _int(env.get("CREDIFLOW_MIRROR_MAX_ATTEMPTS"), 5)),
        log_level=level if isinstance(level, int) else logging.INFO,
    )
