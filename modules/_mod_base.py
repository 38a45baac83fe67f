# /modules/_mod_base.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

import requests

from _logging import log as default_root_log

__VERSION__ = "0.1.0"

UA = f"Home-Server-Companion/{__VERSION__}"
CONNECTION_TEST_TIMEOUT = 5.0

# ---------- Logging

class Logger(Protocol):
    def debug(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None: ...
    def info(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None: ...
    def warn(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None: ...
    def error(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None: ...
    def bind(self, **ctx: Any) -> "Logger": ...
    def child(self, name: str) -> "Logger": ...

# ---------- Errors

class ModuleError(RuntimeError): ...
class ConfigError(ModuleError): ...

class NetworkError(ModuleError):
    """Transport failure: DNS, refused connection, TLS, timeout."""

class HttpError(ModuleError):
    """The remote answered with a non-2xx status."""
    def __init__(self, status: int, message: str = "") -> None:
        self.status = int(status)
        super().__init__(message or f"HTTP {status}")

class ProtocolError(ModuleError):
    """The remote answered, but not with the payload we expect."""

# ---------- Endpoint & meta

@dataclass(frozen=True)
class Endpoint:
    base_url: str
    api_key: str = ""

    def url(self, path: str) -> str:
        base = self.base_url.rstrip("/")
        if not path:
            return base
        return f"{base}/{path.lstrip('/')}"


@dataclass(frozen=True)
class ModuleInfo:
    name: str
    version: str = __VERSION__
    description: str = ""
    period_ms: Optional[int] = None   # None: load once per open


@dataclass(frozen=True)
class ConnectionResult:
    ok: bool
    message: str
    status: Optional[int] = None

# ---------- Payload helpers

def as_dict(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ProtocolError(f"{what}: expected an object, got {type(value).__name__}")
    return value


def as_list(value: Any, what: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ProtocolError(f"{what}: expected a list, got {type(value).__name__}")
    return value


def to_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def to_str(value: Any, default: str = "") -> str:
    return default if value is None else str(value)


def parse_dt(value: Any) -> Optional[datetime]:
    """ISO-8601 (``Z`` suffix allowed) → aware UTC datetime, or None when unusable."""
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

# ---------- Client base

class ServiceClient:
    """One remote service instance: builds requests, maps failures onto the error taxonomy."""

    info: ModuleInfo = ModuleInfo(name="base")

    def __init__(
        self,
        endpoint: Endpoint,
        *,
        session: Optional[requests.Session] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self.endpoint = endpoint
        self._session = session or requests.Session()
        self._log = (logger or default_root_log).child(self.info.name)

    def _headers(self) -> Dict[str, str]:
        return {"User-Agent": UA, "Accept": "application/json"}

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> requests.Response:
        url = self.endpoint.url(path)
        hdrs = self._headers()
        if headers:
            hdrs.update(headers)
        try:
            r = self._session.request(
                method, url, params=dict(params or {}), json=json, headers=hdrs, timeout=timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(f"{self.info.name} {method} {path} failed: {e}") from e
        if not r.ok:
            raise HttpError(r.status_code, f"{self.info.name} {method} {path} → HTTP {r.status_code}: {r.text[:300]}")
        return r

    def _json(self, r: requests.Response, *, empty: Any = None) -> Any:
        ctype = (r.headers.get("content-type") or "").lower()
        if "text/html" in ctype:
            raise ProtocolError(f"{self.info.name} returned HTML instead of JSON (status {r.status_code}); check URL/key")
        if not r.text:
            if empty is not None:
                return empty
            raise ProtocolError(f"{self.info.name} returned an empty body")
        try:
            return r.json()
        except ValueError as e:
            raise ProtocolError(f"{self.info.name} returned invalid JSON: {r.text[:120]!r}") from e

    def _get_json(self, path: str, params: Optional[Mapping[str, Any]] = None, *, timeout: Optional[float] = None) -> Any:
        return self._json(self._request("GET", path, params=params, timeout=timeout))

    # connection test
    def _probe(self, timeout: float) -> None:
        raise NotImplementedError

    def test_connection(self, timeout: float = CONNECTION_TEST_TIMEOUT) -> ConnectionResult:
        try:
            self._probe(timeout)
        except HttpError as e:
            return ConnectionResult(False, f"Error: {e.status}", e.status)
        except NetworkError:
            return ConnectionResult(False, "Connection Failed (Network)")
        except ProtocolError as e:
            return ConnectionResult(False, f"Unexpected response: {e}")
        return ConnectionResult(True, "Connection Successful!")
