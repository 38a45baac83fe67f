# _surfaces.py
# One surface per service: client + poll handle + rendered regions + actions.
# Companion owns every surface; the web app keeps a single Companion on app.state.
from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type

import requests
from fastapi.concurrency import run_in_threadpool

from _actions import ActionDispatcher, ActionResult
from _config import (
    BADGE_SERVICES, SERVICES, badge_interval_ms, endpoint_for, is_configured,
    is_enabled, save_settings, service_order,
)
from _logging import Logger, log as root_log
from _polling import PollHandle, run_once, start_polling
from _render import (
    Region, _esc, find_image, overseerr_controls, render_arr_queue, render_episode_calendar,
    render_episode_history, render_movie_calendar, render_movie_history,
    render_overseerr_requests, render_overseerr_search, render_prowlarr_indexers,
    render_prowlarr_stats, render_sab_history, render_sab_queue, render_sab_status,
    render_sessions, render_unraid_containers, render_unraid_overview,
    render_unraid_storage, render_unraid_vms, unraid_controls,
)
from modules._mod_ARR import ArrClient, ArrImage
from modules._mod_base import ConfigError, ServiceClient
from modules._mod_OVERSEERR import REQUEST_FILTERS, OverseerrClient
from modules._mod_PROWLARR import ProwlarrClient
from modules._mod_RADARR import RadarrClient
from modules._mod_SABNZBD import SabnzbdClient
from modules._mod_SONARR import SonarrClient
from modules._mod_TAUTULLI import DEFAULT_TERMINATE_REASON, TautulliActivity, TautulliClient
from modules._mod_UNRAID import UnraidClient, UnraidSystem, UnraidVm

Clock = Callable[[], datetime]

UNRAID_TABS = ("system", "vms")
UNRAID_TAB_REGIONS = {"system": ("overview", "storage", "containers"), "vms": ("vms",)}
CONTAINER_SORTS = ("status-asc", "status-desc")


def local_now() -> datetime:
    return datetime.now(timezone.utc).astimezone()


def _answer(confirmed: bool) -> Callable[[str], bool]:
    return lambda prompt: confirmed


class Surface:
    """Base surface. Subclasses set `service`, `region_names` and implement fetch/render."""

    service = ""
    region_names: Tuple[str, ...] = ()

    def __init__(
        self,
        client: ServiceClient,
        dispatcher: ActionDispatcher,
        *,
        logger: Optional[Logger] = None,
        clock: Clock = local_now,
    ) -> None:
        self.client = client
        self.dispatcher = dispatcher
        self.clock = clock
        self.handle = PollHandle(self.service)
        self.badge_handle = PollHandle(f"{self.service}.badge")
        self.regions: Dict[str, Region] = {n: Region(f"{self.service}-{n}") for n in self.region_names}
        self.error = ""
        self.badge = ""
        self._log = (logger or root_log).child(f"surface.{self.service}")

    @property
    def period_ms(self) -> Optional[int]:
        return self.client.info.period_ms

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await run_in_threadpool(fn, *args, **kwargs)

    async def fetch_and_render(self) -> None:
        raise NotImplementedError

    async def refresh(self) -> None:
        try:
            await self.fetch_and_render()
        except Exception as e:
            self.error = str(e)
            raise
        self.error = ""

    async def open(self) -> bool:
        if self.period_ms:
            return await start_polling(self.refresh, self.period_ms, self.handle, logger=self._log)
        return await run_once(self.refresh, self.handle, logger=self._log)

    def close(self) -> None:
        self.handle.cancel()

    async def badge_count(self) -> Optional[int]:
        return None

    async def update_badge(self) -> None:
        try:
            n = await self.badge_count()
        except Exception:
            self.badge = ""
            raise
        self.badge = str(n) if n else ""

    def remove(self, region: str, key: Any) -> Callable[[], bool]:
        return lambda: self.regions[region].remove(str(key))

    def visible_regions(self) -> Dict[str, Region]:
        return self.regions

    def controls(self) -> str:
        return ""

    def html(self) -> str:
        banner = f'<div class="error-banner">{_esc(self.error)}</div>' if self.error else ""
        return banner + "".join(r.html() for r in self.visible_regions().values())

    def state(self) -> Dict[str, Any]:
        return {}

    def snapshot(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "error": self.error,
            "badge": self.badge,
            "html": self.html(),
            "controls": self.controls(),
            "regions": {k: r.html() for k, r in self.visible_regions().items()},
            "poll": self.handle.status(),
            "state": self.state(),
        }


# -------- SABnzbd --------
class SabnzbdSurface(Surface):
    service = "sabnzbd"
    region_names = ("status", "queue", "history")
    client: SabnzbdClient

    async def fetch_and_render(self) -> None:
        queue = await self._call(self.client.get_queue)
        history = await self._call(self.client.get_history)
        self.regions["status"].replace(render_sab_status(queue))
        self.regions["queue"].replace(render_sab_queue(queue))
        self.regions["history"].replace(render_sab_history(history))

    async def badge_count(self) -> Optional[int]:
        queue = await self._call(self.client.get_queue)
        return len(queue.slots)

    async def pause(self, minutes: Optional[int] = None) -> ActionResult:
        label = f"Pause queue for {minutes} min" if minutes else "Pause queue"
        return await self.dispatcher.dispatch(label, lambda: self.client.pause(minutes), refresh=self.refresh, refresh_delay=0)

    async def resume(self) -> ActionResult:
        return await self.dispatcher.dispatch("Resume queue", self.client.resume, refresh=self.refresh, refresh_delay=0)

    async def delete_queue_item(self, nzo_id: str, *, confirmed: bool = False) -> ActionResult:
        return await self.dispatcher.dispatch(
            f"Delete queue item {nzo_id}",
            lambda: self.client.delete_queue_item(nzo_id),
            destructive=True,
            missing_ok=True,
            prompt="Remove this item from the queue?",
            confirm=_answer(confirmed),
            remove=self.remove("queue", nzo_id),
            refresh=self.refresh,
        )

    async def delete_history_item(self, nzo_id: str, *, confirmed: bool = False) -> ActionResult:
        return await self.dispatcher.dispatch(
            f"Delete history item {nzo_id}",
            lambda: self.client.delete_history_item(nzo_id),
            destructive=True,
            missing_ok=True,
            prompt="Remove this item from history?",
            confirm=_answer(confirmed),
            remove=self.remove("history", nzo_id),
            refresh=self.refresh,
        )


# -------- Sonarr / Radarr --------
class ArrSurface(Surface):
    region_names = ("calendar", "queue", "history")
    client: ArrClient

    def poster(self, images: Iterable[ArrImage]) -> str:
        return self.client.image_url(find_image(tuple(images), "poster"))

    async def badge_count(self) -> Optional[int]:
        queue = await self._call(self.client.get_queue)
        return queue.total_records

    async def delete_queue_item(self, item_id: int, *, blocklist: bool = False, confirmed: bool = False) -> ActionResult:
        prompt = "Remove, Blocklist release and Search for new one?" if blocklist else "Remove from queue?"
        return await self.dispatcher.dispatch(
            f"Delete {self.service} queue item {item_id}",
            lambda: self.client.delete_queue_item(item_id, remove_from_client=True, blocklist=blocklist),
            destructive=True,
            missing_ok=True,
            prompt=prompt,
            confirm=_answer(confirmed),
            remove=self.remove("queue", item_id),
            refresh=self.refresh,
        )


class SonarrSurface(ArrSurface):
    service = "sonarr"
    client: SonarrClient

    async def fetch_and_render(self) -> None:
        now = self.clock()
        calendar = await self._call(self.client.get_calendar, now)
        queue = await self._call(self.client.get_queue)
        history = await self._call(self.client.get_history)
        self.regions["calendar"].replace(render_episode_calendar(calendar, now, self.poster))
        self.regions["queue"].replace(render_arr_queue(queue, self.service))
        self.regions["history"].replace(render_episode_history(history, now, self.poster))


class RadarrSurface(ArrSurface):
    service = "radarr"
    client: RadarrClient

    async def fetch_and_render(self) -> None:
        now = self.clock()
        calendar = await self._call(self.client.get_calendar, now)
        queue = await self._call(self.client.get_queue)
        history = await self._call(self.client.get_history)
        self.regions["calendar"].replace(render_movie_calendar(calendar, now, self.poster))
        self.regions["queue"].replace(render_arr_queue(queue, self.service))
        self.regions["history"].replace(render_movie_history(history, now, self.poster))


# -------- Tautulli --------
class TautulliSurface(Surface):
    service = "tautulli"
    region_names = ("sessions",)
    client: TautulliClient

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.expanded: set = set()
        self._activity: Optional[TautulliActivity] = None

    def _render(self) -> None:
        if self._activity is not None:
            self.regions["sessions"].replace(render_sessions(self._activity, self.client.image_url, self.expanded))

    async def fetch_and_render(self) -> None:
        self._activity = await self._call(self.client.get_activity)
        self._render()

    async def badge_count(self) -> Optional[int]:
        activity = await self._call(self.client.get_activity)
        return activity.stream_count

    def toggle(self, session_id: str) -> bool:
        if session_id in self.expanded:
            self.expanded.discard(session_id)
        else:
            self.expanded.add(session_id)
        self._render()
        return session_id in self.expanded

    def state(self) -> Dict[str, Any]:
        return {"expanded": sorted(self.expanded)}

    async def terminate(self, session_id: str, reason: str = "", *, confirmed: bool = False) -> ActionResult:
        return await self.dispatcher.dispatch(
            f"Terminate stream {session_id}",
            lambda: self.client.terminate_session(session_id, reason or DEFAULT_TERMINATE_REASON),
            destructive=True,
            prompt="Kill this stream?",
            confirm=_answer(confirmed),
            refresh=self.refresh,
        )


# -------- Unraid --------
class UnraidSurface(Surface):
    service = "unraid"
    region_names = ("overview", "storage", "containers", "vms")
    client: UnraidClient

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.tab = "system"
        self.sort = "status-asc"
        self.search = ""
        self._system: Optional[UnraidSystem] = None
        self._vms: Tuple[UnraidVm, ...] = ()

    async def fetch_and_render(self) -> None:
        if self.tab == "vms":
            self._vms = await self._call(self.client.get_vms)
            self.regions["vms"].replace(render_unraid_vms(self._vms))
            return
        self._system = await self._call(self.client.get_system)
        self.regions["overview"].replace(render_unraid_overview(self._system, self.clock()))
        self.regions["storage"].replace(render_unraid_storage(self._system))
        self._render_containers()

    def _render_containers(self) -> None:
        if self._system is not None:
            self.regions["containers"].replace(render_unraid_containers(self._system.containers, self.sort, self.search))

    def visible_regions(self) -> Dict[str, Region]:
        names = UNRAID_TAB_REGIONS[self.tab]
        return {n: self.regions[n] for n in names}

    def controls(self) -> str:
        return unraid_controls(self.tab, self.sort, self.search)

    async def set_tab(self, tab: str) -> None:
        if tab not in UNRAID_TABS:
            raise ValueError(f"unknown tab: {tab}")
        if tab == self.tab:
            return
        self.tab = tab
        for name, region in self.regions.items():
            if name not in UNRAID_TAB_REGIONS[tab]:
                region.clear()
        if tab == "vms":
            self._system = None
        else:
            self._vms = ()
        if self.handle.active:
            await self.open()

    def set_docker_view(self, sort: Optional[str] = None, search: Optional[str] = None) -> None:
        if sort is not None:
            if sort not in CONTAINER_SORTS:
                raise ValueError(f"unknown sort: {sort}")
            self.sort = sort
        if search is not None:
            self.search = search
        self._render_containers()

    def state(self) -> Dict[str, Any]:
        return {"tab": self.tab, "sort": self.sort, "search": self.search}

    async def control_container(self, container_id: str, action: str) -> ActionResult:
        return await self.dispatcher.dispatch(
            f"Container {action}",
            lambda: self.client.control_container(container_id, action),
            refresh=self.refresh,
        )

    async def control_vm(self, vm_id: str, action: str) -> ActionResult:
        return await self.dispatcher.dispatch(
            f"VM {action}",
            lambda: self.client.control_vm(vm_id, action),
            refresh=self.refresh,
        )


# -------- Overseerr --------
class OverseerrSurface(Surface):
    service = "overseerr"
    region_names = ("requests", "search")
    client: OverseerrClient

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.filter = "pending"
        self.query = ""
        self._titles: Dict[int, str] = {}

    async def fetch_and_render(self) -> None:
        reqs = await self._call(self.client.get_requests, self.filter)
        rows = await self._call(self.client.hydrate, reqs.requests)
        self._titles = {r.id: r.title for r in rows}
        self.regions["requests"].replace(render_overseerr_requests(replace(reqs, requests=rows)))

    def controls(self) -> str:
        return overseerr_controls(self.filter, self.query)

    def state(self) -> Dict[str, Any]:
        return {"filter": self.filter, "query": self.query}

    async def set_filter(self, request_filter: str) -> None:
        if request_filter not in REQUEST_FILTERS:
            raise ValueError(f"unknown filter: {request_filter}")
        if request_filter == self.filter:
            return
        self.filter = request_filter
        await self.open()

    async def search(self, query: str) -> None:
        self.query = (query or "").strip()
        if not self.query:
            self.regions["search"].clear()
            return
        results = await self._call(self.client.search, self.query)
        self.regions["search"].replace(render_overseerr_search(results))

    async def approve(self, request_id: int) -> ActionResult:
        return await self.dispatcher.dispatch(
            f"Approve request {request_id}",
            lambda: self.client.approve_request(request_id),
            refresh=self.refresh,
            refresh_delay=0,
        )

    async def decline(self, request_id: int, *, confirmed: bool = False) -> ActionResult:
        title = self._titles.get(request_id, "Unknown")
        return await self.dispatcher.dispatch(
            f"Decline request {request_id}",
            lambda: self.client.decline_request(request_id),
            destructive=True,
            prompt=f"Decline request for {title}?",
            confirm=_answer(confirmed),
            remove=self.remove("requests", request_id) if self.filter == "pending" else None,
            refresh=self.refresh,
        )

    async def request_media(self, media_id: int, media_type: str) -> ActionResult:
        async def after() -> None:
            await self.refresh()
            if self.query:
                await self.search(self.query)

        return await self.dispatcher.dispatch(
            f"Request {media_type} {media_id}",
            lambda: self.client.request_media(media_id, media_type),
            refresh=after,
            refresh_delay=0,
        )


# -------- Prowlarr --------
class ProwlarrSurface(Surface):
    service = "prowlarr"
    region_names = ("indexers", "stats")
    client: ProwlarrClient

    async def fetch_and_render(self) -> None:
        snap = await self._call(self.client.get_overview)
        self.regions["indexers"].replace(render_prowlarr_indexers(snap, self.clock()))
        self.regions["stats"].replace(render_prowlarr_stats(snap))


SURFACES: Dict[str, Type[Surface]] = {
    "sabnzbd": SabnzbdSurface,
    "sonarr": SonarrSurface,
    "radarr": RadarrSurface,
    "tautulli": TautulliSurface,
    "overseerr": OverseerrSurface,
    "prowlarr": ProwlarrSurface,
    "unraid": UnraidSurface,
}

CLIENTS: Dict[str, Type[ServiceClient]] = {
    "sabnzbd": SabnzbdClient,
    "sonarr": SonarrClient,
    "radarr": RadarrClient,
    "tautulli": TautulliClient,
    "overseerr": OverseerrClient,
    "prowlarr": ProwlarrClient,
    "unraid": UnraidClient,
}


class Companion:
    """Owns settings, surfaces and badge pollers for one UI."""

    def __init__(
        self,
        settings: Dict[str, Any],
        *,
        settings_path: Optional[Path] = None,
        session: Optional[requests.Session] = None,
        logger: Optional[Logger] = None,
        clock: Clock = local_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.settings_path = settings_path
        self._session = session
        self._clock = clock
        self._sleep = sleep
        self._log = (logger or root_log).child("companion")
        self.dispatcher = ActionDispatcher(logger=self._log)
        self.surfaces: Dict[str, Surface] = {}
        self.active: Optional[str] = None

    # -------- construction
    def client_for(self, service: str) -> ServiceClient:
        endpoint = endpoint_for(self.settings, service)
        cls = CLIENTS[service]
        kwargs: Dict[str, Any] = {"session": self._session, "logger": self._log}
        if cls is UnraidClient:
            kwargs["sleep"] = self._sleep
        return cls(endpoint, **kwargs)

    def surface(self, service: str) -> Surface:
        if service not in SERVICES:
            raise ConfigError(f"unknown service: {service}")
        s = self.surfaces.get(service)
        if s is not None:
            return s
        if not is_enabled(self.settings, service):
            raise ConfigError(f"{service} is disabled")
        if not is_configured(self.settings, service):
            raise ConfigError(f"{service} is not configured")
        s = SURFACES[service](self.client_for(service), self.dispatcher, logger=self._log, clock=self._clock)
        if isinstance(s, OverseerrSurface) and self.settings.get("overseerrFilter") in REQUEST_FILTERS:
            s.filter = self.settings["overseerrFilter"]
        self.surfaces[service] = s
        return s

    # -------- navigation
    def order(self) -> List[str]:
        return service_order(self.settings)

    def default_service(self) -> Optional[str]:
        order = self.order()
        last = self.settings.get("lastActiveService")
        if self.settings.get("enablePersistence") is not False and last in order:
            return last
        return order[0] if order else None

    async def activate(self, service: str) -> Surface:
        s = self.surface(service)
        if self.active and self.active != service and self.active in self.surfaces:
            self.surfaces[self.active].close()
        self.active = service
        self._remember(service)
        await s.open()
        return s

    async def set_overseerr_filter(self, request_filter: str) -> "OverseerrSurface":
        s = self.surface("overseerr")
        await s.set_filter(request_filter)
        if self.settings.get("overseerrFilter") != request_filter:
            self.settings["overseerrFilter"] = request_filter
            save_settings(self.settings, self.settings_path)
        return s

    def _remember(self, service: str) -> None:
        if self.settings.get("enablePersistence") is False:
            return
        if self.settings.get("lastActiveService") == service:
            return
        self.settings["lastActiveService"] = service
        save_settings(self.settings, self.settings_path)

    # -------- badges
    async def start_badges(self) -> List[str]:
        started = []
        period = badge_interval_ms(self.settings)
        for service in BADGE_SERVICES:
            if not (is_enabled(self.settings, service) and is_configured(self.settings, service)):
                continue
            s = self.surface(service)
            await start_polling(s.update_badge, period, s.badge_handle, logger=self._log)
            started.append(service)
        return started

    def badges(self) -> Dict[str, str]:
        return {k: s.badge for k, s in self.surfaces.items() if k in BADGE_SERVICES}

    # -------- lifecycle
    def shutdown(self) -> None:
        for s in self.surfaces.values():
            s.close()
            s.badge_handle.cancel()
        self.active = None

    def reload(self, settings: Dict[str, Any]) -> None:
        self.shutdown()
        self.surfaces.clear()
        self.settings = settings
