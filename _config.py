# _config.py
# Flat key-value settings: {service}Url, {service}Key, {service}Enabled, serviceOrder, ...
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from modules._mod_base import ConfigError, Endpoint

SERVICES = ("sabnzbd", "sonarr", "radarr", "tautulli", "overseerr", "prowlarr", "unraid")
BADGE_SERVICES = ("sabnzbd", "sonarr", "radarr", "tautulli")

# -------- Paths (Docker-aware) --------
ROOT = Path(__file__).resolve().parent
CONFIG_BASE = Path("/config") if str(ROOT).startswith("/app") else ROOT
SETTINGS_PATH = Path(os.getenv("HSC_CONFIG") or (CONFIG_BASE / "settings.json"))

DEFAULT_SETTINGS: Dict[str, Any] = {
    **{f"{s}Url": "" for s in SERVICES},
    **{f"{s}Key": "" for s in SERVICES},
    **{f"{s}Enabled": True for s in SERVICES},
    "serviceOrder": list(SERVICES),
    "badgeCheckInterval": 5000,
    "enablePersistence": True,
    "lastActiveService": "",
    "darkMode": False,
    "overseerrFilter": "pending",
}


def _read_json(p: Path) -> Dict[str, Any]:
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def _write_json(p: Path, data: Dict[str, Any]) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    tmp.replace(p)


def merge_defaults(cfg: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    out = json.loads(json.dumps(DEFAULT_SETTINGS))
    if isinstance(cfg, dict):
        out.update({k: v for k, v in cfg.items() if v is not None})
    return out


def load_settings(path: Optional[Path] = None) -> Dict[str, Any]:
    p = Path(path) if path else SETTINGS_PATH
    if p.exists():
        try:
            return merge_defaults(_read_json(p))
        except (OSError, ValueError) as e:
            raise ConfigError(f"Could not parse {p} as JSON: {e}") from e
    cfg = merge_defaults({})
    save_settings(cfg, p)
    return cfg


def save_settings(cfg: Dict[str, Any], path: Optional[Path] = None) -> None:
    _write_json(Path(path) if path else SETTINGS_PATH, cfg)


# -------- Validation --------
def normalize_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        return ""
    if not url.startswith("http"):
        url = "http://" + url
    return url.rstrip("/")


def validate_api_key(key: str) -> str:
    key = (key or "").strip()
    if not key:
        return ""
    if any(ch in key for ch in "<>\"'"):
        raise ConfigError("API key contains invalid characters")
    if len(key) < 10:
        raise ConfigError("API key seems too short (min 10 characters)")
    if len(key) > 500:
        raise ConfigError("API key is too long")
    return key


def update_service(
    cfg: Dict[str, Any],
    service: str,
    *,
    url: Optional[str] = None,
    key: Optional[str] = None,
    enabled: Optional[bool] = None,
) -> Dict[str, Any]:
    """Validated copy of cfg with one service's fields replaced."""
    if service not in SERVICES:
        raise ConfigError(f"unknown service: {service}")
    out = dict(cfg)
    if url is not None:
        out[f"{service}Url"] = normalize_url(url)
    if key is not None:
        out[f"{service}Key"] = validate_api_key(key)
    if enabled is not None:
        out[f"{service}Enabled"] = bool(enabled)
    return out


# -------- Accessors --------
def is_enabled(cfg: Dict[str, Any], service: str) -> bool:
    return cfg.get(f"{service}Enabled") is not False


def is_configured(cfg: Dict[str, Any], service: str) -> bool:
    # a key is required for panels; the connection test alone may go without one
    return bool(cfg.get(f"{service}Url")) and bool(cfg.get(f"{service}Key"))


def endpoint_for(cfg: Dict[str, Any], service: str) -> Endpoint:
    if service not in SERVICES:
        raise ConfigError(f"unknown service: {service}")
    url = normalize_url(cfg.get(f"{service}Url") or "")
    if not url:
        raise ConfigError(f"{service}Url is not set")
    return Endpoint(base_url=url, api_key=(cfg.get(f"{service}Key") or "").strip())


def service_order(cfg: Dict[str, Any]) -> List[str]:
    """Configured order, unknown names dropped, missing services appended, disabled ones hidden."""
    order = cfg.get("serviceOrder")
    seq = [s for s in order if s in SERVICES] if isinstance(order, list) else []
    seq += [s for s in SERVICES if s not in seq]
    return [s for s in seq if is_enabled(cfg, s)]


def badge_interval_ms(cfg: Dict[str, Any]) -> int:
    try:
        v = int(cfg.get("badgeCheckInterval") or 5000)
    except (TypeError, ValueError):
        v = 5000
    return max(v, 1000)
