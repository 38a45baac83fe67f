# /modules/_mod_SONARR.py
from __future__ import annotations

__VERSION__ = "0.1.0"

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Tuple

from ._mod_base import ModuleInfo, as_dict, parse_dt, to_int, to_str
from ._mod_ARR import ArrClient, ArrImage, parse_images


@dataclass(frozen=True)
class CalendarEpisode:
    id: int
    series_title: str
    series_slug: str
    season_number: int
    episode_number: int
    title: str
    air_date_utc: Optional[datetime]
    has_file: bool
    images: Tuple[ArrImage, ...] = ()

    @property
    def code(self) -> str:
        return f"S{self.season_number:02d}E{self.episode_number:02d}"


@dataclass(frozen=True)
class EpisodeCalendar:
    entries: Tuple[CalendarEpisode, ...]


def _episode(raw: Any) -> CalendarEpisode:
    d = as_dict(raw, "Sonarr calendar entry")
    series = d.get("series") if isinstance(d.get("series"), dict) else {}
    return CalendarEpisode(
        id=to_int(d.get("id")),
        series_title=to_str(series.get("title"), "Unknown"),
        series_slug=to_str(series.get("titleSlug")),
        season_number=to_int(d.get("seasonNumber")),
        episode_number=to_int(d.get("episodeNumber")),
        title=to_str(d.get("title")),
        air_date_utc=parse_dt(d.get("airDateUtc")),
        has_file=bool(d.get("hasFile")),
        images=parse_images(series.get("images")),
    )


class SonarrClient(ArrClient):
    info = ModuleInfo(
        name="SONARR",
        version=__VERSION__,
        description="Sonarr calendar, queue and import history (REST v3).",
    )
    calendar_params = {"includeSeries": "true"}
    history_params = {"includeSeries": "true", "includeEpisode": "true"}

    def get_calendar(self, now: Optional[datetime] = None) -> EpisodeCalendar:
        return EpisodeCalendar(entries=tuple(_episode(e) for e in self._get_calendar_raw(now)))
