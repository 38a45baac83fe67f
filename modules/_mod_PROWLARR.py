# /modules/_mod_PROWLARR.py
from __future__ import annotations

__VERSION__ = "0.1.0"

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from ._mod_base import (
    ServiceClient, ModuleInfo, ModuleError, ProtocolError,
    as_dict, as_list, parse_dt, to_int, to_str,
)

# field names on some private trackers carrying the VIP/cookie expiry
EXPIRY_MARKERS = ("expiration", "expires")


@dataclass(frozen=True)
class ProwlarrIndexer:
    id: int
    name: str
    enabled: bool
    protocol: str
    priority: int
    vip_expires: Optional[datetime] = None


@dataclass(frozen=True)
class IndexerStatus:
    indexer_id: int
    disabled_till: Optional[datetime]


@dataclass(frozen=True)
class IndexerStats:
    name: str
    queries: int
    rss_queries: int
    grabs: int
    failed: int
    average_response_ms: int


@dataclass(frozen=True)
class ClientStats:
    user_agent: str
    queries: int
    grabs: int


@dataclass(frozen=True)
class ProwlarrStats:
    indexers: Tuple[IndexerStats, ...] = ()
    clients: Tuple[ClientStats, ...] = ()
    # per-host totals; None when the server does not report them
    host_queries: Optional[int] = None
    host_grabs: Optional[int] = None


@dataclass(frozen=True)
class ProwlarrSnapshot:
    indexers: Tuple[ProwlarrIndexer, ...]
    stats: ProwlarrStats
    statuses: Tuple[IndexerStatus, ...]

    def disabled_till(self, indexer_id: int) -> Optional[datetime]:
        for s in self.statuses:
            if s.indexer_id == indexer_id:
                return s.disabled_till
        return None


def _vip_expiry(fields: Any) -> Optional[datetime]:
    for f in as_list(fields, "indexer fields"):
        if not isinstance(f, dict):
            continue
        name = to_str(f.get("name")).lower()
        if f.get("value") and any(m in name for m in EXPIRY_MARKERS):
            return parse_dt(f.get("value"))
    return None


def _indexer(raw: Any) -> ProwlarrIndexer:
    d = as_dict(raw, "Prowlarr indexer")
    if d.get("id") is None:
        raise ProtocolError("Prowlarr indexer without id")
    enable = d.get("enable")
    return ProwlarrIndexer(
        id=to_int(d["id"]),
        name=to_str(d.get("name")),
        enabled=True if enable is None else bool(enable),
        protocol=to_str(d.get("protocol"), "Unknown") or "Unknown",
        priority=to_int(d.get("priority")),
        vip_expires=_vip_expiry(d.get("fields")),
    )


def _stats(raw: Any) -> ProwlarrStats:
    d = as_dict(raw, "Prowlarr stats")
    idx = tuple(
        IndexerStats(
            name=to_str(i.get("indexerName")),
            queries=to_int(i.get("numberOfQueries")),
            rss_queries=to_int(i.get("numberOfRssQueries")),
            grabs=to_int(i.get("numberOfGrabs")),
            failed=to_int(i.get("numberOfFailedQueries")) + to_int(i.get("numberOfFailedGrabs")),
            average_response_ms=to_int(i.get("averageResponseTime")),
        )
        for i in as_list(d.get("indexers"), "stats indexers") if isinstance(i, dict)
    )
    clients = tuple(
        ClientStats(
            user_agent=to_str(u.get("userAgent")),
            queries=to_int(u.get("numberOfQueries")),
            grabs=to_int(u.get("numberOfGrabs")),
        )
        for u in as_list(d.get("userAgents"), "stats userAgents") if isinstance(u, dict)
    )
    hosts = d.get("hosts")
    if isinstance(hosts, list):
        rows = [h for h in hosts if isinstance(h, dict)]
        return ProwlarrStats(
            indexers=idx,
            clients=clients,
            host_queries=sum(to_int(h.get("numberOfQueries")) for h in rows),
            host_grabs=sum(to_int(h.get("numberOfGrabs")) for h in rows),
        )
    return ProwlarrStats(indexers=idx, clients=clients)


class ProwlarrClient(ServiceClient):
    info = ModuleInfo(
        name="PROWLARR",
        version=__VERSION__,
        description="Prowlarr indexer health and usage statistics.",
        period_ms=60000,
    )
    api_root = "api/v1"

    def _headers(self) -> Dict[str, str]:
        h = super()._headers()
        h["X-Api-Key"] = self.endpoint.api_key
        return h

    def _path(self, tail: str) -> str:
        return f"{self.api_root}/{tail.lstrip('/')}"

    def get_indexers(self, timeout: Optional[float] = None) -> Tuple[ProwlarrIndexer, ...]:
        rows = as_list(self._get_json(self._path("indexer"), timeout=timeout), "Prowlarr indexers")
        return tuple(_indexer(r) for r in rows)

    def get_stats(self) -> ProwlarrStats:
        return _stats(self._get_json(self._path("indexerstats")))

    def get_statuses(self) -> Tuple[IndexerStatus, ...]:
        """Temporary failure backoffs. Optional: an error here yields no statuses."""
        try:
            rows = as_list(self._get_json(self._path("indexerstatus")), "Prowlarr indexer status")
        except ModuleError as e:
            self._log.warn(f"indexer status unavailable: {e}")
            return ()
        return tuple(
            IndexerStatus(indexer_id=to_int(s.get("indexerId")), disabled_till=parse_dt(s.get("disabledTill")))
            for s in rows if isinstance(s, dict)
        )

    def get_overview(self) -> ProwlarrSnapshot:
        return ProwlarrSnapshot(indexers=self.get_indexers(), stats=self.get_stats(), statuses=self.get_statuses())

    def _probe(self, timeout: float) -> None:
        as_dict(self._get_json(self._path("system/status"), timeout=timeout), "Prowlarr status")
