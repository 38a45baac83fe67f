# /modules/_mod_UNRAID.py
from __future__ import annotations

__VERSION__ = "0.1.0"

import re
import time
import urllib.parse as _url
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from ._mod_base import (
    ServiceClient, ModuleInfo, ProtocolError,
    as_dict, as_list, to_int, to_str,
)

RESTART_DELAY_SEC = 2.0
CONTAINER_ACTIONS = ("start", "stop", "restart", "pause", "unpause")
VM_ACTIONS = ("start", "stop", "pause", "resume", "forceStop", "reboot", "reset")
WEBUI_LABEL = "net.unraid.docker.webui"

PING_QUERY = "{ info { versions { core { unraid } } } }"

SYSTEM_QUERY = """
{
    info {
        versions { core { unraid } }
        os { uptime }
    }
    registration { type, state }
    array {
        state
        capacity { kilobytes { used total free } }
        parities { name, temp, status, isSpinning }
        disks { name, temp, status, isSpinning, fsUsed, fsSize, fsFree }
        caches { name, temp, status, isSpinning, fsUsed, fsSize, fsFree }
        boot { name, temp, status, fsUsed, fsSize, fsFree }
    }
    metrics {
        cpu { percentTotal }
        memory { percentTotal, total }
    }
    docker {
        containers {
            id
            names
            image
            state
            status
            labels
            isUpdateAvailable
            ports { publicPort type }
        }
    }
}
"""

VMS_QUERY = "{ vms { domains { id name state } } }"

_PORT_RE = re.compile(r"\[PORT:(\d+)\]")
_ID_STRIP_RE = re.compile(r"[\\\"']")


@dataclass(frozen=True)
class UnraidDisk:
    type: str          # Parity | Data | Cache | Flash
    name: str
    temp: Optional[int]
    spinning: Optional[bool]
    status: str
    used: int          # bytes
    total: int
    free: int


@dataclass(frozen=True)
class UnraidContainer:
    id: str
    name: str
    image: str
    running: bool
    status: str
    webui: Optional[str] = None
    update_available: Optional[bool] = None


@dataclass(frozen=True)
class UnraidVm:
    id: str
    name: str
    state: str

    @property
    def running(self) -> bool:
        # paused still counts: it can be stopped
        return self.state in ("RUNNING", "PAUSED")


@dataclass(frozen=True)
class UnraidSystem:
    version: str
    registration: str
    uptime_boot: str
    memory_total: int
    array_status: str
    array_used: int
    array_total: int
    array_free: int
    parities: Tuple[UnraidDisk, ...]
    disks: Tuple[UnraidDisk, ...]
    caches: Tuple[UnraidDisk, ...]
    boot: Optional[UnraidDisk]
    cpu_percent: float
    ram_percent: float
    containers: Tuple[UnraidContainer, ...]


def sanitize_id(value: Any) -> str:
    return _ID_STRIP_RE.sub("", str(value))


def _kb(value: Any) -> int:
    return to_int(value) * 1024


def _disk(raw: Any, typ: str) -> UnraidDisk:
    d = as_dict(raw, f"Unraid {typ} disk")
    used = _kb(d.get("fsUsed"))
    total = _kb(d.get("fsSize"))
    free = _kb(d.get("fsFree")) if d.get("fsFree") else total - used
    temp = d.get("temp")
    return UnraidDisk(
        type=typ,
        name=to_str(d.get("name")) or typ,
        temp=to_int(temp) if temp is not None else None,
        spinning=d.get("isSpinning"),
        status=to_str(d.get("status")),
        used=used,
        total=total,
        free=free,
    )


def webui_url(labels: Dict[str, Any], ports: list, base_url: str) -> Optional[str]:
    parts = _url.urlsplit(base_url)
    host = parts.hostname or ""
    label = labels.get(WEBUI_LABEL) if isinstance(labels, dict) else None
    if label:
        return _PORT_RE.sub(r"\1", str(label).replace("[IP]", host))
    mapped = [p for p in ports if isinstance(p, dict) and p.get("publicPort")]
    port = next((p for p in mapped if p.get("type") == "TCP"), mapped[0] if mapped else None)
    if port:
        return f"{parts.scheme}://{host}:{port['publicPort']}"
    return None


def _container(raw: Any, base_url: str) -> UnraidContainer:
    c = as_dict(raw, "Unraid container")
    names = c.get("names") or []
    name = str(names[0]).lstrip("/") if names else "Unknown"
    return UnraidContainer(
        id=to_str(c.get("id")),
        name=name,
        image=to_str(c.get("image")),
        running=c.get("state") == "RUNNING",
        status=to_str(c.get("status")),
        webui=webui_url(c.get("labels") or {}, as_list(c.get("ports"), "container ports"), base_url),
        update_available=c.get("isUpdateAvailable"),
    )


class UnraidClient(ServiceClient):
    info = ModuleInfo(
        name="UNRAID",
        version=__VERSION__,
        description="Unraid system, array, docker and VM state over the GraphQL API.",
        period_ms=5000,
    )

    def __init__(self, *args: Any, sleep: Callable[[float], None] = time.sleep, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._sleep = sleep

    def _headers(self) -> Dict[str, str]:
        h = super()._headers()
        h["Content-Type"] = "application/json"
        h["X-API-Key"] = self.endpoint.api_key
        return h

    def graphql(self, query: str, *, timeout: Optional[float] = None) -> Dict[str, Any]:
        r = self._request("POST", "graphql", json={"query": query}, timeout=timeout)
        js = as_dict(self._json(r), "Unraid GraphQL response")
        errors = js.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else errors
            msg = first.get("message") if isinstance(first, dict) else str(first)
            raise ProtocolError(f"Unraid GraphQL error: {msg}")
        return as_dict(js.get("data"), "Unraid GraphQL data")

    def get_system(self) -> UnraidSystem:
        res = self.graphql(SYSTEM_QUERY)
        info = res.get("info") or {}
        array = as_dict(res.get("array"), "Unraid array")
        cap = ((array.get("capacity") or {}).get("kilobytes")) or {}
        metrics = as_dict(res.get("metrics"), "Unraid metrics")
        cpu = metrics.get("cpu") or {}
        mem = metrics.get("memory") or {}
        docker = res.get("docker") or {}
        boot = array.get("boot")
        return UnraidSystem(
            version=to_str(((info.get("versions") or {}).get("core") or {}).get("unraid"), "Unknown"),
            registration=to_str((res.get("registration") or {}).get("type"), "Basic"),
            uptime_boot=to_str((info.get("os") or {}).get("uptime")),
            memory_total=to_int(mem.get("total")),
            array_status=to_str(array.get("state")),
            array_used=_kb(cap.get("used")),
            array_total=_kb(cap.get("total")),
            array_free=_kb(cap.get("free")),
            parities=tuple(_disk(d, "Parity") for d in as_list(array.get("parities"), "parities")),
            disks=tuple(_disk(d, "Data") for d in as_list(array.get("disks"), "disks")),
            caches=tuple(_disk(d, "Cache") for d in as_list(array.get("caches"), "caches")),
            boot=_disk(boot, "Flash") if boot else None,
            cpu_percent=float(cpu.get("percentTotal") or 0),
            ram_percent=float(mem.get("percentTotal") or 0),
            containers=tuple(
                _container(c, self.endpoint.base_url)
                for c in as_list(docker.get("containers"), "containers")
            ),
        )

    def control_container(self, container_id: str, action: str) -> Dict[str, Any]:
        if action not in CONTAINER_ACTIONS:
            raise ValueError(f"Invalid action: {action}")
        cid = sanitize_id(container_id)
        if action == "restart":
            # no native restart: stop, wait, start. A failed stop raises before start.
            self.control_container(cid, "stop")
            self._sleep(RESTART_DELAY_SEC)
            return self.control_container(cid, "start")
        self._log.info(f"docker {action} {cid}")
        return self.graphql(f'mutation {{ docker {{ {action}(id: "{cid}") {{ id }} }} }}')

    def get_vms(self) -> Tuple[UnraidVm, ...]:
        vms = as_dict(self.graphql(VMS_QUERY).get("vms"), "Unraid vms")
        return tuple(
            UnraidVm(id=to_str(v.get("id")), name=to_str(v.get("name")), state=to_str(v.get("state")))
            for v in as_list(vms.get("domains"), "vm domains")
            if isinstance(v, dict)
        )

    def control_vm(self, vm_id: str, action: str) -> Dict[str, Any]:
        if action not in VM_ACTIONS:
            raise ValueError(f"Invalid action: {action}")
        vid = sanitize_id(vm_id)
        self._log.info(f"vm {action} {vid}")
        return self.graphql(f'mutation {{ vm {{ {action}(id: "{vid}") }} }}')

    def _probe(self, timeout: float) -> None:
        if not self.endpoint.api_key:
            self._request("HEAD", "", timeout=timeout)
            return
        self.graphql(PING_QUERY, timeout=timeout)
