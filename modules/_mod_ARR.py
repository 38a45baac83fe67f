# /modules/_mod_ARR.py
# Shared Sonarr/Radarr v3 REST client.
from __future__ import annotations

__VERSION__ = "0.1.0"

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from ._mod_base import (
    ServiceClient, ModuleInfo, ProtocolError,
    as_dict, as_list, parse_dt, to_float, to_int, to_str,
)

IMPORTED_EVENT = "downloadFolderImported"
CALENDAR_DAYS = 14


@dataclass(frozen=True)
class ArrImage:
    cover_type: str
    url: str = ""
    remote_url: str = ""


@dataclass(frozen=True)
class ArrQueueRecord:
    id: int
    title: str
    status: str
    size: float
    sizeleft: float
    timeleft: str = ""
    tracked_download_status: str = ""
    status_messages: Tuple[str, ...] = ()

    @property
    def percent(self) -> float:
        if self.size <= 0:
            return 0.0
        return 100 - (self.sizeleft / self.size) * 100

    @property
    def needs_attention(self) -> bool:
        return self.tracked_download_status.lower() in ("warning", "error")


@dataclass(frozen=True)
class ArrQueueSnapshot:
    total_records: int
    records: Tuple[ArrQueueRecord, ...]


@dataclass(frozen=True)
class ArrHistoryRecord:
    id: int
    event_type: str
    date: Optional[datetime]
    source_title: str = ""
    quality: str = ""
    # sonarr (includeSeries / includeEpisode)
    series_id: Optional[int] = None
    series_title: str = ""
    season_number: Optional[int] = None
    episode_number: Optional[int] = None
    episode_title: str = ""
    # radarr (includeMovie)
    movie_title: str = ""
    movie_year: Optional[int] = None
    images: Tuple[ArrImage, ...] = ()


@dataclass(frozen=True)
class ArrHistorySnapshot:
    records: Tuple[ArrHistoryRecord, ...]


@dataclass(frozen=True)
class SystemStatus:
    app_name: str
    version: str


def parse_images(raw: Any) -> Tuple[ArrImage, ...]:
    out = []
    for it in as_list(raw, "images"):
        if not isinstance(it, dict):
            continue
        out.append(ArrImage(
            cover_type=to_str(it.get("coverType")).lower(),
            url=to_str(it.get("url")),
            remote_url=to_str(it.get("remoteUrl")),
        ))
    return tuple(out)


def find_image(images: Sequence[ArrImage], *cover_types: str) -> Optional[ArrImage]:
    for ct in cover_types:
        for img in images:
            if img.cover_type == ct:
                return img
    return None


def _queue_record(raw: Any) -> ArrQueueRecord:
    d = as_dict(raw, "queue record")
    if d.get("id") is None:
        raise ProtocolError("queue record without id")
    msgs = []
    for m in as_list(d.get("statusMessages"), "statusMessages"):
        if isinstance(m, dict) and m.get("title"):
            msgs.append(str(m["title"]))
    return ArrQueueRecord(
        id=to_int(d["id"]),
        title=to_str(d.get("title")),
        status=to_str(d.get("status")),
        size=to_float(d.get("size")),
        sizeleft=to_float(d.get("sizeleft")),
        timeleft=to_str(d.get("timeleft")),
        tracked_download_status=to_str(d.get("trackedDownloadStatus")),
        status_messages=tuple(msgs),
    )


def _history_record(raw: Any) -> ArrHistoryRecord:
    d = as_dict(raw, "history record")
    series = d.get("series") if isinstance(d.get("series"), dict) else {}
    episode = d.get("episode") if isinstance(d.get("episode"), dict) else {}
    movie = d.get("movie") if isinstance(d.get("movie"), dict) else {}
    q = d.get("quality") if isinstance(d.get("quality"), dict) else {}
    qname = (q.get("quality") or {}).get("name") if isinstance(q.get("quality"), dict) else ""
    return ArrHistoryRecord(
        id=to_int(d.get("id")),
        event_type=to_str(d.get("eventType")),
        date=parse_dt(d.get("date")),
        source_title=to_str(d.get("sourceTitle")),
        quality=to_str(qname),
        series_id=to_int(series["id"]) if series.get("id") is not None else None,
        series_title=to_str(series.get("title")),
        season_number=to_int(episode["seasonNumber"]) if episode.get("seasonNumber") is not None else None,
        episode_number=to_int(episode["episodeNumber"]) if episode.get("episodeNumber") is not None else None,
        episode_title=to_str(episode.get("title")),
        movie_title=to_str(movie.get("title")),
        movie_year=to_int(movie["year"]) if movie.get("year") is not None else None,
        images=parse_images(series.get("images") or movie.get("images")),
    )


def _flag(v: bool) -> str:
    return "true" if v else "false"


class ArrClient(ServiceClient):
    """Common v3 surface of Sonarr and Radarr; subclasses add calendar parsing."""

    info = ModuleInfo(name="ARR", version=__VERSION__)
    api_root = "api/v3"
    history_params: Dict[str, str] = {}
    calendar_params: Dict[str, str] = {}

    def _headers(self) -> Dict[str, str]:
        h = super()._headers()
        h["X-Api-Key"] = self.endpoint.api_key
        return h

    def _path(self, tail: str) -> str:
        return f"{self.api_root}/{tail.lstrip('/')}"

    @staticmethod
    def calendar_window(now: Optional[datetime] = None, days: int = CALENDAR_DAYS) -> Tuple[str, str]:
        now = now or datetime.now(timezone.utc)
        return now.date().isoformat(), (now + timedelta(days=days)).date().isoformat()

    def _get_calendar_raw(self, now: Optional[datetime] = None) -> list:
        start, end = self.calendar_window(now)
        params = {"start": start, "end": end}
        params.update(self.calendar_params)
        return as_list(self._get_json(self._path("calendar"), params), f"{self.info.name} calendar")

    def get_queue(self) -> ArrQueueSnapshot:
        js = as_dict(self._get_json(self._path("queue")), f"{self.info.name} queue")
        records = tuple(_queue_record(r) for r in as_list(js.get("records"), "queue records"))
        return ArrQueueSnapshot(total_records=to_int(js.get("totalRecords"), len(records)), records=records)

    def get_history(self, page_size: int = 200) -> ArrHistorySnapshot:
        params = {"page": 1, "pageSize": page_size, "sortKey": "date", "sortDirection": "descending"}
        params.update(self.history_params)
        js = as_dict(self._get_json(self._path("history"), params), f"{self.info.name} history")
        return ArrHistorySnapshot(records=tuple(_history_record(r) for r in as_list(js.get("records"), "history records")))

    def get_status(self, timeout: Optional[float] = None) -> SystemStatus:
        js = as_dict(self._get_json(self._path("system/status"), timeout=timeout), f"{self.info.name} status")
        return SystemStatus(app_name=to_str(js.get("appName"), self.info.name.title()), version=to_str(js.get("version")))

    def delete_queue_item(self, item_id: int, remove_from_client: bool = True, blocklist: bool = False) -> Dict[str, Any]:
        self._log.info(f"deleting queue item {item_id} (removeFromClient={remove_from_client}, blocklist={blocklist})")
        r = self._request(
            "DELETE",
            self._path(f"queue/{item_id}"),
            params={"removeFromClient": _flag(remove_from_client), "blocklist": _flag(blocklist)},
        )
        return self._json(r, empty={})

    def image_url(self, image: Optional[ArrImage]) -> str:
        """Local MediaCover paths need our base URL and the api key; remote ones pass through."""
        if image is None:
            return ""
        if image.url:
            if image.url.startswith("http"):
                return image.url
            path = image.url if image.url.startswith("/") else "/" + image.url
            join = "&" if "?" in path else "?"
            return f"{self.endpoint.url(path)}{join}apikey={self.endpoint.api_key}"
        return image.remote_url

    def _probe(self, timeout: float) -> None:
        self.get_status(timeout=timeout)
