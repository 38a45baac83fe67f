# /modules/_mod_OVERSEERR.py
# Overseerr v1 REST client: request list, approve/decline, search and new requests.
from __future__ import annotations

__VERSION__ = "0.1.0"

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ._mod_base import (
    ServiceClient, ModuleInfo, ModuleError, ProtocolError,
    as_dict, as_list, parse_dt, to_int, to_str,
)

REQUEST_FILTERS = ("pending", "all", "processing", "available", "unavailable")
REQUEST_PAGE = 50
MEDIA_TYPES = ("movie", "tv")
TMDB_POSTER = "https://image.tmdb.org/t/p/w200"

# request.status
PENDING, APPROVED, DECLINED = 1, 2, 3
# media.status
MEDIA_PENDING, MEDIA_PROCESSING, MEDIA_PARTIAL, MEDIA_AVAILABLE = 2, 3, 4, 5


@dataclass(frozen=True)
class OverseerrRequest:
    id: int
    type: str                 # movie | tv
    status: int
    media_status: int
    tmdb_id: Optional[int]
    requested_by: str = ""
    created_at: Optional[datetime] = None
    # filled in by hydrate()
    title: str = "Unknown"
    poster_path: str = ""
    year: str = ""

    @property
    def pending(self) -> bool:
        return self.status == PENDING

    @property
    def status_label(self) -> str:
        if self.status == PENDING:
            return "Pending Approval"
        if self.status == DECLINED:
            return "Declined"
        if self.status == APPROVED:
            if self.media_status == MEDIA_AVAILABLE:
                return "Available"
            if self.media_status == MEDIA_PARTIAL:
                return "Partially Available"
            if self.media_status == MEDIA_PROCESSING:
                return "Processing"
            return "Approved"
        return "Unknown"


@dataclass(frozen=True)
class OverseerrRequests:
    filter: str
    total: int
    requests: Tuple[OverseerrRequest, ...]


@dataclass(frozen=True)
class SearchResult:
    id: int
    media_type: str
    title: str
    year: str = ""
    poster_path: str = ""
    media_status: int = 0

    @property
    def availability(self) -> str:
        if self.media_status == MEDIA_AVAILABLE:
            return "Available"
        if self.media_status == MEDIA_PARTIAL:
            return "Partially Available"
        if self.media_status in (MEDIA_PENDING, MEDIA_PROCESSING):
            return "Requested"
        return ""

    @property
    def requestable(self) -> bool:
        return not self.availability


@dataclass(frozen=True)
class ServerDefaults:
    server_id: int
    profile_id: Optional[int]
    root_folder: str


def poster_url(path: str) -> str:
    return f"{TMDB_POSTER}{path}" if path else ""


def _year(value: Any) -> str:
    s = to_str(value)
    return s[:4] if len(s) >= 4 else ""


def _parse_request(raw: Any) -> OverseerrRequest:
    d = as_dict(raw, "Overseerr request")
    if d.get("id") is None:
        raise ProtocolError("Overseerr request without id")
    media = d.get("media") if isinstance(d.get("media"), dict) else {}
    user = d.get("requestedBy") if isinstance(d.get("requestedBy"), dict) else {}
    tmdb = media.get("tmdbId")
    return OverseerrRequest(
        id=to_int(d["id"]),
        type=to_str(d.get("type") or media.get("mediaType")).lower(),
        status=to_int(d.get("status")),
        media_status=to_int(media.get("status")),
        tmdb_id=to_int(tmdb) if tmdb is not None else None,
        requested_by=to_str(user.get("displayName") or user.get("plexUsername") or user.get("email")),
        created_at=parse_dt(d.get("createdAt")),
    )


def _result(raw: Any) -> Optional[SearchResult]:
    if not isinstance(raw, dict):
        return None
    kind = to_str(raw.get("mediaType")).lower()
    if kind not in MEDIA_TYPES or raw.get("id") is None:
        return None
    info = raw.get("mediaInfo") if isinstance(raw.get("mediaInfo"), dict) else {}
    return SearchResult(
        id=to_int(raw["id"]),
        media_type=kind,
        title=to_str(raw.get("title") or raw.get("name"), "Unknown"),
        year=_year(raw.get("releaseDate") or raw.get("firstAirDate")),
        poster_path=to_str(raw.get("posterPath")),
        media_status=to_int(info.get("status")),
    )


class OverseerrClient(ServiceClient):
    info = ModuleInfo(
        name="OVERSEERR",
        version=__VERSION__,
        description="Overseerr media requests: review, approve, decline, search and request.",
    )
    api_root = "api/v1"

    def _headers(self) -> Dict[str, str]:
        h = super()._headers()
        h["X-Api-Key"] = self.endpoint.api_key
        return h

    def _path(self, tail: str) -> str:
        return f"{self.api_root}/{tail.lstrip('/')}"

    def get_requests(self, request_filter: str = "pending", take: int = REQUEST_PAGE) -> OverseerrRequests:
        if request_filter not in REQUEST_FILTERS:
            raise ValueError(f"Invalid filter: {request_filter}")
        params = {"take": take, "filter": request_filter, "sort": "added", "skip": 0}
        js = as_dict(self._get_json(self._path("request"), params), "Overseerr requests")
        rows = tuple(_parse_request(r) for r in as_list(js.get("results"), "Overseerr results"))
        page = js.get("pageInfo") if isinstance(js.get("pageInfo"), dict) else {}
        return OverseerrRequests(filter=request_filter, total=to_int(page.get("results"), len(rows)), requests=rows)

    def get_movie(self, tmdb_id: int) -> Dict[str, Any]:
        return as_dict(self._get_json(self._path(f"movie/{tmdb_id}")), "Overseerr movie")

    def get_tv(self, tmdb_id: int) -> Dict[str, Any]:
        return as_dict(self._get_json(self._path(f"tv/{tmdb_id}")), "Overseerr tv")

    def hydrate(self, requests: Iterable[OverseerrRequest]) -> Tuple[OverseerrRequest, ...]:
        """Attach title, poster and year from the media detail endpoints; failures keep the defaults."""
        out: List[OverseerrRequest] = []
        for r in requests:
            if r.tmdb_id is None:
                out.append(r)
                continue
            try:
                d = self.get_tv(r.tmdb_id) if r.type == "tv" else self.get_movie(r.tmdb_id)
            except ModuleError as e:
                self._log.warn(f"details for request {r.id} unavailable: {e}")
                out.append(r)
                continue
            out.append(replace(
                r,
                title=to_str(d.get("title") or d.get("name"), r.title),
                poster_path=to_str(d.get("posterPath")),
                year=_year(d.get("releaseDate") or d.get("firstAirDate")),
            ))
        return tuple(out)

    def approve_request(self, request_id: int) -> Dict[str, Any]:
        self._log.info(f"approving request {request_id}")
        return self._json(self._request("POST", self._path(f"request/{request_id}/approve")), empty={})

    def decline_request(self, request_id: int) -> Dict[str, Any]:
        self._log.info(f"declining request {request_id}")
        return self._json(self._request("POST", self._path(f"request/{request_id}/decline")), empty={})

    def search(self, query: str, page: int = 1) -> Tuple[SearchResult, ...]:
        term = (query or "").strip()
        if not term:
            return ()
        js = as_dict(self._get_json(self._path("search"), {"query": term, "page": page}), "Overseerr search")
        return tuple(r for r in (_result(x) for x in as_list(js.get("results"), "Overseerr search results")) if r)

    def get_defaults(self, media_type: str) -> Optional[ServerDefaults]:
        """Default Radarr (movie) or Sonarr (tv) server as configured in Overseerr."""
        kind = "sonarr" if media_type == "tv" else "radarr"
        servers = [s for s in as_list(self._get_json(self._path(f"settings/{kind}")), f"Overseerr {kind} servers")
                   if isinstance(s, dict)]
        if not servers:
            return None
        s = next((x for x in servers if x.get("isDefault")), servers[0])
        profile = s.get("activeProfileId")
        return ServerDefaults(
            server_id=to_int(s.get("id")),
            profile_id=to_int(profile) if profile is not None else None,
            root_folder=to_str(s.get("activeDirectory")),
        )

    def tv_seasons(self, tmdb_id: int) -> List[int]:
        seasons = as_list(self.get_tv(tmdb_id).get("seasons"), "Overseerr seasons")
        nums = [to_int(s.get("seasonNumber")) for s in seasons if isinstance(s, dict)]
        return [n for n in nums if n > 0] or [1]

    def request_media(self, media_id: int, media_type: str, seasons: Optional[Sequence[int]] = None) -> Dict[str, Any]:
        kind = media_type.lower()
        if kind not in MEDIA_TYPES:
            raise ValueError(f"Invalid media type: {media_type}")
        payload: Dict[str, Any] = {"mediaId": int(media_id), "mediaType": kind}
        if kind == "tv":
            payload["seasons"] = list(seasons) if seasons else self.tv_seasons(media_id)
        defaults = self.get_defaults(kind)
        if defaults is not None:
            payload["serverId"] = defaults.server_id
            payload["rootFolder"] = defaults.root_folder
            if defaults.profile_id is not None:
                payload["profileId"] = defaults.profile_id
        self._log.info(f"requesting {kind} {media_id}")
        return self._json(self._request("POST", self._path("request"), json=payload), empty={})

    def _probe(self, timeout: float) -> None:
        as_dict(self._get_json(self._path("status"), timeout=timeout), "Overseerr status")
