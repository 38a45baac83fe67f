# /modules/_mod_RADARR.py
from __future__ import annotations

__VERSION__ = "0.1.0"

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Tuple

from ._mod_base import ModuleInfo, as_dict, parse_dt, to_int, to_str
from ._mod_ARR import ArrClient, ArrImage, parse_images


@dataclass(frozen=True)
class CalendarMovie:
    id: int
    title: str
    studio: str
    title_slug: str
    in_cinemas: Optional[datetime]
    digital_release: Optional[datetime]
    physical_release: Optional[datetime]
    has_file: bool
    is_available: bool
    images: Tuple[ArrImage, ...] = ()


@dataclass(frozen=True)
class MovieCalendar:
    entries: Tuple[CalendarMovie, ...]


def _movie(raw: Any) -> CalendarMovie:
    d = as_dict(raw, "Radarr calendar entry")
    return CalendarMovie(
        id=to_int(d.get("id")),
        title=to_str(d.get("title")),
        studio=to_str(d.get("studio")),
        title_slug=to_str(d.get("titleSlug")),
        in_cinemas=parse_dt(d.get("inCinemas")),
        digital_release=parse_dt(d.get("digitalRelease")),
        physical_release=parse_dt(d.get("physicalRelease")),
        has_file=bool(d.get("hasFile")),
        is_available=bool(d.get("isAvailable")),
        images=parse_images(d.get("images")),
    )


class RadarrClient(ArrClient):
    info = ModuleInfo(
        name="RADARR",
        version=__VERSION__,
        description="Radarr calendar, queue and import history (REST v3).",
    )
    history_params = {"includeMovie": "true"}

    def get_calendar(self, now: Optional[datetime] = None) -> MovieCalendar:
        return MovieCalendar(entries=tuple(_movie(e) for e in self._get_calendar_raw(now)))
