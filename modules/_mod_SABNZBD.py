# /modules/_mod_SABNZBD.py
from __future__ import annotations

__VERSION__ = "0.1.0"

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ._mod_base import (
    ServiceClient, ModuleInfo, ProtocolError,
    as_dict, as_list, to_float, to_int, to_str,
)


@dataclass(frozen=True)
class SabSlot:
    nzo_id: str
    filename: str
    status: str
    mb: float
    mbleft: float
    timeleft: str

    @property
    def percent(self) -> int:
        if self.mb <= 0:
            return 0
        return round((self.mb - self.mbleft) / self.mb * 100)


@dataclass(frozen=True)
class SabQueueSnapshot:
    status: str
    paused: bool
    speed: str
    size_left: str
    time_left: str
    slots: Tuple[SabSlot, ...]


@dataclass(frozen=True)
class SabHistorySlot:
    nzo_id: str
    name: str
    status: str
    completed: int      # epoch seconds
    bytes: int
    fail_message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "Completed"


@dataclass(frozen=True)
class SabHistorySnapshot:
    slots: Tuple[SabHistorySlot, ...]


def _slot(raw: Any) -> SabSlot:
    d = as_dict(raw, "SABnzbd queue slot")
    if not d.get("nzo_id"):
        raise ProtocolError("SABnzbd queue slot without nzo_id")
    return SabSlot(
        nzo_id=str(d["nzo_id"]),
        filename=to_str(d.get("filename")),
        status=to_str(d.get("status")),
        mb=to_float(d.get("mb")),
        mbleft=to_float(d.get("mbleft")),
        timeleft=to_str(d.get("timeleft"), "0:00:00"),
    )


def _history_slot(raw: Any) -> SabHistorySlot:
    d = as_dict(raw, "SABnzbd history slot")
    return SabHistorySlot(
        nzo_id=to_str(d.get("nzo_id")),
        name=to_str(d.get("name")),
        status=to_str(d.get("status")),
        completed=to_int(d.get("completed")),
        bytes=to_int(d.get("bytes")),
        fail_message=to_str(d.get("fail_message")),
    )


class SabnzbdClient(ServiceClient):
    info = ModuleInfo(
        name="SABNZBD",
        version=__VERSION__,
        description="SABnzbd queue/history and queue controls via the mode= API.",
        period_ms=1000,
    )

    def _api(self, mode: str, *, timeout: Optional[float] = None, **params: Any) -> Dict[str, Any]:
        q: Dict[str, Any] = {"mode": mode, "apikey": self.endpoint.api_key, "output": "json"}
        q.update({k: v for k, v in params.items() if v is not None})
        js = as_dict(self._get_json("api", q, timeout=timeout), f"SABnzbd mode={mode}")
        # SABnzbd reports bad keys as HTTP 200 + {"status": false, "error": "..."}
        if js.get("error"):
            raise ProtocolError(f"SABnzbd: {js['error']}")
        return js

    # reads
    def get_queue(self) -> SabQueueSnapshot:
        q = as_dict(self._api("queue").get("queue"), "SABnzbd queue")
        return SabQueueSnapshot(
            status=to_str(q.get("status")),
            paused=bool(q.get("paused")),
            speed=to_str(q.get("speed")),
            size_left=to_str(q.get("sizeleft")),
            time_left=to_str(q.get("timeleft")),
            slots=tuple(_slot(s) for s in as_list(q.get("slots"), "SABnzbd queue slots")),
        )

    def get_history(self, limit: int = 10) -> SabHistorySnapshot:
        h = as_dict(self._api("history", limit=limit).get("history"), "SABnzbd history")
        return SabHistorySnapshot(
            slots=tuple(_history_slot(s) for s in as_list(h.get("slots"), "SABnzbd history slots")),
        )

    # controls
    def pause(self, minutes: Optional[int] = None) -> Dict[str, Any]:
        if minutes:
            self._log.info(f"pausing queue for {int(minutes)} min")
            return self._api("config", name="set_pause", value=int(minutes))
        self._log.info("pausing queue")
        return self._api("pause")

    def resume(self) -> Dict[str, Any]:
        self._log.info("resuming queue")
        return self._api("resume")

    def delete_queue_item(self, nzo_id: str) -> Dict[str, Any]:
        self._log.info(f"deleting queue item {nzo_id}")
        return self._api("queue", name="delete", value=nzo_id)

    def delete_history_item(self, nzo_id: str) -> Dict[str, Any]:
        self._log.info(f"deleting history item {nzo_id}")
        return self._api("history", name="delete", value=nzo_id)

    def _probe(self, timeout: float) -> None:
        self._api("queue", timeout=timeout, limit=1)
