# /modules/_mod_TAUTULLI.py
from __future__ import annotations

__VERSION__ = "0.1.0"

import urllib.parse as _url
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ._mod_base import (
    ServiceClient, ModuleInfo, ProtocolError,
    as_dict, as_list, to_int, to_str,
)

DEFAULT_TERMINATE_REASON = "Terminated by Admin"


@dataclass(frozen=True)
class TautulliSession:
    session_id: str
    title: str
    grandparent_title: str = ""
    parent_media_index: str = ""
    media_index: str = ""
    year: str = ""
    user: str = ""
    user_id: str = ""
    state: str = ""
    progress_percent: int = 0
    duration_ms: int = 0
    view_offset_ms: int = 0
    art: str = ""
    thumb: str = ""
    grandparent_thumb: str = ""
    rating_key: str = ""
    grandparent_rating_key: str = ""
    player: str = ""
    quality_profile: str = ""
    transcode_decision: str = ""

    @property
    def display_title(self) -> str:
        return self.grandparent_title or self.title

    @property
    def subtitle(self) -> str:
        if self.grandparent_title:
            return f"{self.parent_media_index}x{self.media_index} • {self.title}"
        return self.year

    @property
    def minutes_left(self) -> Optional[int]:
        if not self.duration_ms or not self.view_offset_ms:
            return None
        return round((self.duration_ms - self.view_offset_ms) / 1000 / 60)


@dataclass(frozen=True)
class TautulliActivity:
    stream_count: int
    sessions: Tuple[TautulliSession, ...]


def _session(raw: Any) -> TautulliSession:
    d = as_dict(raw, "Tautulli session")
    if not d.get("session_id"):
        raise ProtocolError("Tautulli session without session_id")
    return TautulliSession(
        session_id=str(d["session_id"]),
        title=to_str(d.get("title")),
        grandparent_title=to_str(d.get("grandparent_title")),
        parent_media_index=to_str(d.get("parent_media_index")),
        media_index=to_str(d.get("media_index")),
        year=to_str(d.get("year")),
        user=to_str(d.get("user") or d.get("username")),
        user_id=to_str(d.get("user_id")),
        state=to_str(d.get("state")),
        progress_percent=to_int(d.get("progress_percent")),
        duration_ms=to_int(d.get("duration")),
        view_offset_ms=to_int(d.get("view_offset")),
        art=to_str(d.get("art")),
        thumb=to_str(d.get("thumb")),
        grandparent_thumb=to_str(d.get("grandparent_thumb")),
        rating_key=to_str(d.get("rating_key")),
        grandparent_rating_key=to_str(d.get("grandparent_rating_key")),
        player=to_str(d.get("player")),
        quality_profile=to_str(d.get("quality_profile")),
        transcode_decision=to_str(d.get("transcode_decision")),
    )


class TautulliClient(ServiceClient):
    info = ModuleInfo(
        name="TAUTULLI",
        version=__VERSION__,
        description="Tautulli live activity and stream termination (API v2).",
        period_ms=2000,
    )

    def _cmd(self, cmd: str, *, timeout: Optional[float] = None, **params: Any) -> Any:
        q: Dict[str, Any] = {"apikey": self.endpoint.api_key, "cmd": cmd}
        q.update(params)
        js = as_dict(self._get_json("api/v2", q, timeout=timeout), f"Tautulli {cmd}")
        resp = as_dict(js.get("response"), f"Tautulli {cmd} envelope")
        if resp.get("result") != "success":
            raise ProtocolError(f"Tautulli {cmd}: {resp.get('message') or resp.get('result')}")
        return resp.get("data")

    def get_activity(self) -> TautulliActivity:
        data = as_dict(self._cmd("get_activity"), "Tautulli activity")
        sessions = tuple(_session(s) for s in as_list(data.get("sessions"), "Tautulli sessions"))
        return TautulliActivity(stream_count=to_int(data.get("stream_count"), len(sessions)), sessions=sessions)

    def terminate_session(self, session_id: str, message: str = DEFAULT_TERMINATE_REASON) -> Any:
        self._log.info(f"terminating session {session_id}")
        return self._cmd("terminate_session", session_id=session_id, message=message or DEFAULT_TERMINATE_REASON)

    def image_url(self, img: str, width: int = 300, **extra: Any) -> str:
        if not img:
            return ""
        q: Dict[str, Any] = {"img": img, "width": width}
        q.update(extra)
        q["apikey"] = self.endpoint.api_key
        return f"{self.endpoint.url('pms_image_proxy')}?{_url.urlencode(q)}"

    def _probe(self, timeout: float) -> None:
        self._cmd("get_activity", timeout=timeout)
