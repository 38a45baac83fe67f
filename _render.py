# _render.py
# Snapshot → panel markup. Every renderer is pure: same snapshot (and `now`) in,
# same nodes out; an empty collection yields exactly one placeholder node.

from __future__ import annotations
import html
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar

from modules._mod_ARR import IMPORTED_EVENT, ArrHistoryRecord, ArrHistorySnapshot, ArrImage, ArrQueueSnapshot, find_image
from modules._mod_OVERSEERR import OverseerrRequests, SearchResult, poster_url
from modules._mod_PROWLARR import ProwlarrIndexer, ProwlarrSnapshot
from modules._mod_RADARR import CalendarMovie, MovieCalendar
from modules._mod_SABNZBD import SabHistorySnapshot, SabQueueSnapshot
from modules._mod_SONARR import CalendarEpisode, EpisodeCalendar
from modules._mod_TAUTULLI import TautulliActivity
from modules._mod_UNRAID import UnraidContainer, UnraidDisk, UnraidSystem, UnraidVm

T = TypeVar("T")

HISTORY_LIMIT = 15
SAB_HISTORY_LIMIT = 10
PAUSE_MINUTES = (5, 15, 30, 60, 180)
VIP_WARN_DAYS = 7
SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

PosterFn = Callable[[Sequence[ArrImage]], str]
ProxyFn = Callable[[str, int], str]


# -------- Nodes & regions --------
@dataclass(frozen=True)
class Node:
    kind: str                          # item | group | empty | status
    body: str = ""
    key: str = ""
    cls: str = ""
    children: Tuple["Node", ...] = ()

    def to_html(self) -> str:
        classes = " ".join(c for c in (self.kind, self.cls) if c)
        attrs = f' class="{_esc(classes)}"'
        if self.key:
            attrs += f' data-key="{_esc(self.key)}"'
        inner = self.body + "".join(c.to_html() for c in self.children)
        return f"<div{attrs}>{inner}</div>"

    def iter_items(self) -> Iterator["Node"]:
        if self.kind == "item":
            yield self
        for c in self.children:
            yield from c.iter_items()


class Region:
    """One list-like area of a panel. Content is only ever replaced wholesale."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._nodes: Tuple[Node, ...] = ()

    @property
    def nodes(self) -> Tuple[Node, ...]:
        return self._nodes

    def replace(self, nodes: Iterable[Node]) -> None:
        self._nodes = tuple(nodes)

    def clear(self) -> None:
        self._nodes = ()

    def remove(self, key: str) -> bool:
        """Drop one item node (and any group it leaves empty). True when something was removed."""
        def prune(nodes: Tuple[Node, ...]) -> Tuple[Tuple[Node, ...], bool]:
            out: List[Node] = []
            hit = False
            for n in nodes:
                if n.kind == "item" and n.key == key:
                    hit = True
                    continue
                if n.children:
                    kids, sub = prune(n.children)
                    hit = hit or sub
                    if sub and n.kind == "group" and not kids:
                        continue
                    if sub:
                        n = Node(n.kind, n.body, n.key, n.cls, kids)
                out.append(n)
            return tuple(out), hit

        self._nodes, removed = prune(self._nodes)
        return removed

    @property
    def placeholders(self) -> int:
        return sum(1 for n in self._nodes if n.kind == "empty")

    def html(self) -> str:
        return f'<div class="region" id="{_esc(self.name)}">' + "".join(n.to_html() for n in self._nodes) + "</div>"


# -------- Formatting --------
def _esc(value: Any) -> str:
    return html.escape(str(value), quote=True)


def _span(cls: str, text: Any) -> str:
    return f'<span class="{cls}">{_esc(text)}</span>'


def _img(cls: str, src: str) -> str:
    return f'<img class="{cls}" src="{_esc(src)}" loading="lazy">' if src else ""


def _button(action: str, key: str, label: str, title: str, **data: str) -> str:
    extra = "".join(f' data-{k}="{_esc(v)}"' for k, v in data.items())
    return f'<button class="act" data-action="{action}" data-id="{_esc(key)}" title="{_esc(title)}"{extra}>{label}</button>'


def _select(ui: str, options: Sequence[Tuple[str, str]], current: str) -> str:
    opts = "".join(
        f'<option value="{_esc(v)}"{" selected" if v == current else ""}>{_esc(label)}</option>'
        for v, label in options
    )
    return f'<select data-ui="{ui}">{opts}</select>'


def _search_box(ui: str, value: str, placeholder: str) -> str:
    return f'<input type="search" data-ui="{ui}" value="{_esc(value)}" placeholder="{_esc(placeholder)}">'


def _progress(percent: float) -> str:
    pct = max(0.0, min(100.0, percent))
    return f'<div class="progress"><div class="fill" style="width:{pct:.1f}%"></div></div>'


def empty(message: str) -> Tuple[Node, ...]:
    return (Node("empty", _esc(message)),)


def format_size(num: Any) -> str:
    n = float(num or 0)
    if n <= 0:
        return "0 B"
    i = 0
    while n >= 1024 and i < len(SIZE_UNITS) - 1:
        n /= 1024
        i += 1
    return f"{round(n, 2):g} {SIZE_UNITS[i]}"


def format_uptime(boot_iso: str, now: datetime) -> str:
    if not boot_iso:
        return "--"
    try:
        boot = datetime.fromisoformat(boot_iso.replace("Z", "+00:00"))
    except ValueError:
        return "--"
    if boot.tzinfo is None:
        boot = boot.replace(tzinfo=timezone.utc)
    secs = max(0, int((_aware(now) - boot).total_seconds()))
    return f"{secs // 86400}d {(secs % 86400) // 3600}h"


def day_label(day: date, today: date) -> str:
    delta = (day - today).days
    if delta == 0:
        return "Today"
    if delta == 1:
        return "Tomorrow"
    return f"{day:%A}, {day:%b} {day.day}"


def _aware(now: datetime) -> datetime:
    return now if now.tzinfo else now.replace(tzinfo=timezone.utc)


def _day(dt: datetime, now: datetime) -> date:
    return dt.astimezone(_aware(now).tzinfo).date()


# -------- Status derivation --------
def episode_status(ep: CalendarEpisode, now: datetime) -> str:
    if ep.has_file:
        return "Downloaded"
    if ep.air_date_utc is not None and _aware(now) > ep.air_date_utc:
        return "Missing"
    return "Upcoming"


def movie_status(movie: CalendarMovie) -> str:
    if movie.has_file:
        return "Downloaded"
    if movie.is_available:
        return "Available"
    return "Upcoming"


# -------- Calendar grouping --------
def effective_release(movie: CalendarMovie, now: datetime) -> datetime:
    """Soonest release on or after the start of today; `now` when every date is past or missing."""
    now = _aware(now)
    floor = now.replace(hour=0, minute=0, second=0, microsecond=0)
    upcoming = [
        d for d in (movie.in_cinemas, movie.digital_release, movie.physical_release)
        if d is not None and d >= floor
    ]
    return min(upcoming) if upcoming else now


def release_type(movie: CalendarMovie, when: datetime, now: datetime) -> str:
    day = _day(when, now)
    if movie.digital_release and _day(movie.digital_release, now) == day:
        return "Digital"
    if movie.physical_release and _day(movie.physical_release, now) == day:
        return "Physical"
    return "Cinema"


def group_by_day(entries: Iterable[T], day_of: Callable[[T], date]) -> List[Tuple[date, List[T]]]:
    groups: Dict[date, List[T]] = {}
    for e in entries:
        groups.setdefault(day_of(e), []).append(e)
    return sorted(groups.items(), key=lambda kv: kv[0])


def group_movies(movies: Iterable[CalendarMovie], now: datetime) -> List[Tuple[date, List[CalendarMovie]]]:
    return group_by_day(movies, lambda m: _day(effective_release(m, now), now))


def group_episodes(episodes: Iterable[CalendarEpisode], now: datetime) -> List[Tuple[date, List[CalendarEpisode]]]:
    return group_by_day(episodes, lambda e: _day(e.air_date_utc or _aware(now), now))


# -------- History --------
def recent_imports(records: Iterable[ArrHistoryRecord], limit: int = HISTORY_LIMIT) -> List[ArrHistoryRecord]:
    imported = [r for r in records if r.event_type == IMPORTED_EVENT]
    imported.sort(key=lambda r: r.date or _EPOCH, reverse=True)
    return imported[:limit]


def group_episode_imports(records: Sequence[ArrHistoryRecord]) -> List[List[ArrHistoryRecord]]:
    """Fold runs of imports from the same series and season into one card."""
    groups: List[List[ArrHistoryRecord]] = []
    for r in records:
        if groups:
            head = groups[-1][0]
            if (
                head.series_id is not None and head.series_id == r.series_id
                and head.season_number is not None and head.season_number == r.season_number
            ):
                groups[-1].append(r)
                continue
        groups.append([r])
    return groups


def episode_range(group: Sequence[ArrHistoryRecord]) -> str:
    head = group[0]
    if head.season_number is None:
        return ""
    nums = sorted(r.episode_number for r in group if r.episode_number is not None)
    if not nums:
        return f"S{head.season_number:02d}"
    if len(nums) == 1 or nums[0] == nums[-1]:
        return f"S{head.season_number:02d}E{nums[0]:02d}"
    return f"S{head.season_number:02d}E{nums[0]:02d}-{nums[-1]:02d}"


def _remote_poster(images: Sequence[ArrImage]) -> str:
    img = find_image(images, "poster")
    return img.remote_url if img else ""


def _no_proxy(img: str, width: int) -> str:
    return ""


def _date_str(dt: Optional[datetime], now: datetime) -> str:
    return _day(dt, now).isoformat() if dt else ""


# -------- SABnzbd --------
def pause_label(minutes: int) -> str:
    return f"{minutes // 60}h" if minutes >= 60 and minutes % 60 == 0 else f"{minutes}m"


def render_sab_status(snap: SabQueueSnapshot) -> Tuple[Node, ...]:
    state = "paused" if snap.paused else "running"
    if snap.paused:
        control = _button("sab-resume", "queue", "▶", "Resume Queue")
    else:
        control = (
            _button("sab-pause", "queue", "⏸", "Pause Queue")
            + '<span class="pause-menu">'
            + "".join(
                _button("sab-pause", "queue", pause_label(m), f"Pause for {pause_label(m)}", minutes=str(m))
                for m in PAUSE_MINUTES
            )
            + "</span>"
        )
    body = (
        _span("state", snap.status or ("Paused" if snap.paused else "Idle"))
        + _span("speed", snap.speed)
        + _span("left", f"{snap.size_left} · {snap.time_left}")
        + control
    )
    return (Node("status", body, cls=state),)


def render_sab_queue(snap: SabQueueSnapshot) -> Tuple[Node, ...]:
    if not snap.slots:
        return empty("Queue is empty")
    nodes = []
    for s in snap.slots:
        body = (
            _span("title", s.filename)
            + _span("status", s.status)
            + _button("sab-queue-delete", s.nzo_id, "×", f'Remove "{s.filename}" from queue?')
            + _progress(s.percent)
            + _span("percent", f"{s.percent}%")
            + _span("eta", f"{s.timeleft} left")
        )
        nodes.append(Node("item", body, key=s.nzo_id, cls="sab-queue-item"))
    return tuple(nodes)


def render_sab_history(snap: SabHistorySnapshot, limit: int = SAB_HISTORY_LIMIT) -> Tuple[Node, ...]:
    if not snap.slots:
        return empty("History is empty")
    nodes = []
    for h in snap.slots[:limit]:
        when = datetime.fromtimestamp(h.completed, tz=timezone.utc).date().isoformat() if h.completed else ""
        body = (
            _span("title", h.name)
            + _span("status", h.status)
            + _span("date", when)
            + _span("size", format_size(h.bytes))
            + (_span("error", h.fail_message) if h.fail_message else "")
            + _button("sab-history-delete", h.nzo_id, "×", f'Remove "{h.name}" from history?')
        )
        nodes.append(Node("item", body, key=h.nzo_id, cls="completed" if h.ok else "failed"))
    return tuple(nodes)


# -------- Sonarr / Radarr --------
def render_arr_queue(snap: ArrQueueSnapshot, service: str) -> Tuple[Node, ...]:
    if not snap.records:
        return empty("Queue Empty")
    nodes = []
    for r in snap.records:
        key = str(r.id)
        status = (r.status_messages[0] if r.status_messages else "Attention Needed") if r.needs_attention else r.status
        body = (
            _span("title", r.title)
            + _progress(r.percent)
            + _span("percent", f"{round(r.percent)}%")
            + _span("size", format_size(r.sizeleft))
            + _span("status warn" if r.needs_attention else "status", status)
            + _button(f"{service}-queue-delete", key, "🗑", "Remove from queue?")
            + _button(f"{service}-queue-delete", key, "🚫", "Remove, Blocklist release and Search for new one?",
                      blocklist="true")
        )
        nodes.append(Node("item", body, key=key, cls="attention" if r.needs_attention else ""))
    return tuple(nodes)


def render_episode_calendar(cal: EpisodeCalendar, now: datetime, poster: PosterFn = _remote_poster) -> Tuple[Node, ...]:
    if not cal.entries:
        return empty("No upcoming episodes")
    today = _aware(now).date()
    groups = []
    for day, eps in group_episodes(cal.entries, now):
        cards = []
        for ep in eps:
            status = episode_status(ep, now)
            air = ep.air_date_utc.astimezone(_aware(now).tzinfo).strftime("%H:%M") if ep.air_date_utc else ""
            body = (
                _img("poster", poster(ep.images))
                + _span("title", ep.series_title)
                + _span("episode", ep.code)
                + _span("time", air)
                + f'<i class="dot {status.lower()}" title="{status}"></i>'
            )
            cards.append(Node("item", body, key=str(ep.id), cls=status.lower()))
        groups.append(Node("group", _span("date-header", day_label(day, today)), key=day.isoformat(), children=tuple(cards)))
    return tuple(groups)


def render_movie_calendar(cal: MovieCalendar, now: datetime, poster: PosterFn = _remote_poster) -> Tuple[Node, ...]:
    if not cal.entries:
        return empty("No upcoming movies")
    today = _aware(now).date()
    groups = []
    for day, movies in group_movies(cal.entries, now):
        cards = []
        for m in movies:
            status = movie_status(m)
            body = (
                _img("poster", poster(m.images))
                + _span("title", m.title)
                + _span("studio", m.studio)
                + _span("release", release_type(m, effective_release(m, now), now))
                + f'<i class="dot {status.lower()}" title="{status}"></i>'
            )
            cards.append(Node("item", body, key=str(m.id), cls=status.lower()))
        groups.append(Node("group", _span("date-header", day_label(day, today)), key=day.isoformat(), children=tuple(cards)))
    return tuple(groups)


def render_episode_history(snap: ArrHistorySnapshot, now: datetime, poster: PosterFn = _remote_poster) -> Tuple[Node, ...]:
    recent = recent_imports(snap.records)
    if not recent:
        return empty("No recent downloads")
    nodes = []
    for group in group_episode_imports(recent):
        head = group[0]
        title = head.episode_title if len(group) == 1 else f"{len(group)} episodes"
        body = (
            _img("poster", poster(head.images))
            + _span("title", head.series_title or head.source_title)
            + _span("episode", episode_range(group))
            + _span("subtitle", title)
            + _span("quality", head.quality)
            + _span("date", _date_str(head.date, now))
        )
        nodes.append(Node("item", body, key=str(head.id), cls="history-card"))
    return tuple(nodes)


def render_movie_history(snap: ArrHistorySnapshot, now: datetime, poster: PosterFn = _remote_poster) -> Tuple[Node, ...]:
    recent = recent_imports(snap.records)
    if not recent:
        return empty("No recent downloads")
    nodes = []
    for r in recent:
        title = f"{r.movie_title} ({r.movie_year})" if r.movie_year else (r.movie_title or r.source_title)
        body = (
            _img("poster", poster(r.images))
            + _span("title", title)
            + _span("quality", r.quality)
            + _span("date", _date_str(r.date, now))
        )
        nodes.append(Node("item", body, key=str(r.id), cls="history-card"))
    return tuple(nodes)


# -------- Tautulli --------
def render_sessions(
    activity: TautulliActivity,
    proxy: ProxyFn = _no_proxy,
    expanded: Iterable[str] = (),
) -> Tuple[Node, ...]:
    if not activity.sessions:
        return empty("No active streams")
    opened = set(expanded)
    nodes = []
    for s in activity.sessions:
        left = s.minutes_left
        body = (
            _img("poster", proxy(s.grandparent_thumb or s.thumb, 300))
            + _span("title", s.display_title)
            + _span("subtitle", s.subtitle)
            + _span("user", s.user)
            + _span("state", s.state)
            + _progress(s.progress_percent)
            + _span("time-left", f"{left}m left" if left is not None else "")
            + _button("tautulli-terminate", s.session_id, "⏹", f'Kill stream for user "{s.user}"?')
        )
        if s.session_id in opened:
            body += (
                '<div class="details">'
                + _span("player", s.player)
                + _span("quality", s.quality_profile)
                + _span("decision", s.transcode_decision)
                + "</div>"
            )
        cls = "expanded" if s.session_id in opened else ""
        nodes.append(Node("item", body, key=s.session_id, cls=cls))
    return tuple(nodes)


# -------- Unraid --------
def render_unraid_overview(system: UnraidSystem, now: datetime) -> Tuple[Node, ...]:
    pct = (system.array_used / system.array_total * 100) if system.array_total else 0.0
    body = (
        _span("status-indicator online", "ONLINE")
        + _span("license", system.registration)
        + _span("version", f"v{system.version}")
        + _span("uptime", format_uptime(system.uptime_boot, now))
        + _span("cpu", f"CPU {system.cpu_percent:.0f}%")
        + _span("ram", f"RAM {system.ram_percent:.0f}%")
        + _span("array", f"{system.array_status} · {format_size(system.array_used)} / {format_size(system.array_total)}")
        + _progress(pct)
    )
    return (Node("status", body),)


def _disk_node(d: UnraidDisk) -> Node:
    pct = (d.used / d.total * 100) if d.total else 0.0
    body = (
        _span("name", d.name)
        + _span("type", d.type)
        + _span("temp", f"{d.temp}°C" if d.temp is not None else "*")
        + _span("usage", f"{format_size(d.used)} / {format_size(d.total)}")
        + _progress(pct)
    )
    cls = "spinning" if d.spinning else ("standby" if d.spinning is False else "")
    return Node("item", body, key=f"{d.type}:{d.name}", cls=cls)


def render_unraid_storage(system: UnraidSystem) -> Tuple[Node, ...]:
    disks = list(system.parities) + list(system.disks) + list(system.caches)
    if system.boot is not None:
        disks.append(system.boot)
    if not disks:
        return empty("No disks reported")
    return tuple(_disk_node(d) for d in disks)


def sort_containers(
    containers: Iterable[UnraidContainer],
    mode: str = "status-asc",
    search: str = "",
) -> List[UnraidContainer]:
    term = (search or "").strip().lower()
    rows = [c for c in containers if term in c.name.lower()] if term else list(containers)
    running_first = mode != "status-desc"
    rows.sort(key=lambda c: (c.running != running_first, c.name.lower()))
    return rows


def render_unraid_containers(
    containers: Iterable[UnraidContainer],
    mode: str = "status-asc",
    search: str = "",
) -> Tuple[Node, ...]:
    rows = sort_containers(containers, mode, search)
    if not rows:
        return empty("No containers found")
    nodes = []
    for c in rows:
        state = "running" if c.running else "stopped"
        body = (
            _span("name", c.name)
            + _span("image", c.image)
            + _span("status", c.status)
            + (_span("update-badge", "Update") if c.update_available else "")
            + (f'<a class="webui" href="{_esc(c.webui)}" target="_blank">↗</a>' if c.webui else "")
            + _button("unraid-container", c.id, "▶", "Start", op="start")
            + _button("unraid-container", c.id, "⏹", "Stop", op="stop")
            + _button("unraid-container", c.id, "↻", "Restart", op="restart")
        )
        nodes.append(Node("item", body, key=c.id, cls=state))
    return tuple(nodes)


def render_unraid_vms(vms: Iterable[UnraidVm]) -> Tuple[Node, ...]:
    rows = list(vms)
    if not rows:
        return empty("No VMs found")
    nodes = []
    for vm in rows:
        body = (
            _span("name", vm.name)
            + _span("state", vm.state)
            + _button("unraid-vm", vm.id, "▶", "Start", op="start")
            + _button("unraid-vm", vm.id, "⏹", "Stop", op="stop")
        )
        nodes.append(Node("item", body, key=vm.id, cls="running" if vm.running else "stopped"))
    return tuple(nodes)


UNRAID_TAB_LABELS = (("system", "System"), ("vms", "VMs"))
CONTAINER_SORT_LABELS = (("status-asc", "Running first"), ("status-desc", "Stopped first"))


def unraid_controls(tab: str, sort: str, search: str) -> str:
    out = "".join(
        f'<button class="tab{" active" if t == tab else ""}" data-ui="unraid-tab" data-tab="{t}">{label}</button>'
        for t, label in UNRAID_TAB_LABELS
    )
    if tab == "system":
        out += _select("unraid-sort", CONTAINER_SORT_LABELS, sort) + _search_box("unraid-search", search, "Filter containers")
    return out


# -------- Overseerr --------
OVERSEERR_FILTER_LABELS = (
    ("pending", "Pending"), ("all", "All"), ("processing", "Processing"),
    ("available", "Available"), ("unavailable", "Unavailable"),
)


def overseerr_controls(request_filter: str, query: str) -> str:
    return (
        _select("overseerr-filter", OVERSEERR_FILTER_LABELS, request_filter)
        + _search_box("overseerr-search", query, "Search movies & shows")
    )


def _title_year(title: str, year: str) -> str:
    return f"{title} ({year})" if year else title


def render_overseerr_requests(reqs: OverseerrRequests) -> Tuple[Node, ...]:
    if not reqs.requests:
        return empty("No pending requests" if reqs.filter == "pending" else "No requests")
    nodes = []
    for r in reqs.requests:
        key = str(r.id)
        body = (
            _img("poster", poster_url(r.poster_path))
            + _span("title", _title_year(r.title, r.year))
            + _span("type", "TV" if r.type == "tv" else "Movie")
            + _span("status", r.status_label)
            + _span("user", r.requested_by)
        )
        if r.pending:
            body += (
                _button("overseerr-approve", key, "✓", "Approve")
                + _button("overseerr-decline", key, "✕", f"Decline request for {r.title}?")
            )
        nodes.append(Node("item", body, key=key, cls=r.status_label.lower().replace(" ", "-")))
    return tuple(nodes)


def render_overseerr_search(results: Iterable[SearchResult]) -> Tuple[Node, ...]:
    rows = list(results)
    if not rows:
        return empty("No results found")
    nodes = []
    for r in rows:
        key = f"{r.media_type}:{r.id}"
        if r.requestable:
            tail = _button("overseerr-request", str(r.id), "Request", f'Request "{r.title}"?', type=r.media_type)
        else:
            tail = _span("availability", r.availability)
        body = (
            _img("poster", poster_url(r.poster_path))
            + _span("title", _title_year(r.title, r.year))
            + _span("type", "TV" if r.media_type == "tv" else "Movie")
            + tail
        )
        nodes.append(Node("item", body, key=key))
    return tuple(nodes)


# -------- Prowlarr --------
def format_countdown(until: datetime, now: datetime) -> str:
    mins = max(0, math.ceil((until - _aware(now)).total_seconds() / 60))
    if mins > 60:
        return f"{mins // 60}h {mins % 60}m"
    return f"{mins}m"


def indexer_state(ix: ProwlarrIndexer, disabled_till: Optional[datetime], now: datetime) -> str:
    if disabled_till is not None and disabled_till > _aware(now):
        return "UNAVAILABLE (FAILURE)"
    if not ix.enabled:
        return "DISABLED"
    return "ENABLED"


def vip_label(expires: datetime, now: datetime) -> Tuple[str, str]:
    days = math.ceil((expires - _aware(now)).total_seconds() / 86400)
    if days > 0:
        return f"VIP: {days}d", "warning" if days <= VIP_WARN_DAYS else ""
    return "VIP Expired", "expired"


def render_prowlarr_indexers(snap: ProwlarrSnapshot, now: datetime) -> Tuple[Node, ...]:
    if not snap.indexers:
        return empty("No indexers found.")
    nodes = []
    for ix in sorted(snap.indexers, key=lambda i: i.name.lower()):
        till = snap.disabled_till(ix.id)
        state = indexer_state(ix, till, now)
        body = _span("name", ix.name)
        if state.startswith("UNAVAILABLE") and till is not None:
            body += _span("countdown", format_countdown(till, now))
        body += (
            _span("state-badge", state)
            + _span("protocol", ix.protocol)
            + _span("priority", f"P: {ix.priority}")
        )
        if ix.vip_expires is not None:
            text, level = vip_label(ix.vip_expires, now)
            body += _span(f"vip {level}".strip(), text)
        cls = {"ENABLED": "enabled", "DISABLED": "disabled"}.get(state, "failing")
        nodes.append(Node("item", body, key=str(ix.id), cls=cls))
    return tuple(nodes)


def prowlarr_summary(snap: ProwlarrSnapshot) -> List[Tuple[str, str]]:
    stats = snap.stats
    enabled = sum(1 for i in snap.indexers if i.enabled)
    queries = stats.host_queries if stats.host_queries is not None else sum(i.queries for i in stats.indexers)
    grabs = stats.host_grabs if stats.host_grabs is not None else sum(i.grabs for i in stats.indexers)
    timed = [i.average_response_ms for i in stats.indexers if i.average_response_ms > 0]
    avg = round(sum(timed) / len(timed)) if timed else 0
    top = max(stats.indexers, key=lambda i: i.queries, default=None)
    grabber = max(stats.indexers, key=lambda i: i.grabs, default=None)
    client = max(stats.clients, key=lambda c: c.queries, default=None)
    return [
        ("Total Indexers", str(len(snap.indexers))),
        ("Available / Disabled", f"{enabled} / {len(snap.indexers) - enabled}"),
        ("Total Queries", f"{queries:,}"),
        ("Total Grabs", f"{grabs:,}"),
        ("Top Indexer (Queries)", top.name if top else "N/A"),
        ("Top Indexer (Grabs)", grabber.name if grabber and grabber.grabs > 0 else "N/A"),
        ("Top Client", f"{client.user_agent} ({client.queries:,})" if client else "N/A"),
        ("Avg Response", f"{avg} ms"),
    ]


def _table(title: str, headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    head = "".join(f"<th>{_esc(h)}</th>" for h in headers)
    body = "".join("<tr>" + "".join(f"<td>{_esc(c)}</td>" for c in row) + "</tr>" for row in rows)
    return f'<h4>{_esc(title)}</h4><table class="stats-table"><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>'


def render_prowlarr_stats(snap: ProwlarrSnapshot) -> Tuple[Node, ...]:
    cards = "".join(
        f'<div class="stat-card">{_span("stat-value", value)}{_span("stat-label", label)}</div>'
        for label, value in prowlarr_summary(snap)
    )
    nodes = [Node("status", cards, cls="stats-grid")]
    by_queries = sorted(snap.stats.indexers, key=lambda i: i.queries, reverse=True)
    if by_queries:
        rows = [
            (i.name, f"{i.queries:,}", f"{i.rss_queries:,}", f"{i.grabs:,}", f"{i.average_response_ms} ms",
             str(i.failed) if i.failed else "-")
            for i in by_queries
        ]
        nodes.append(Node("status", _table("Indexer Performance", ("Indexer", "Queries", "RSS", "Grabs", "Time", "Fail"), rows),
                          key="indexer-performance"))
    clients = sorted(snap.stats.clients, key=lambda c: c.queries, reverse=True)
    if clients:
        rows = [(c.user_agent, f"{c.queries:,}", f"{c.grabs:,}") for c in clients]
        nodes.append(Node("status", _table("Client Activity", ("Client (User Agent)", "Queries", "Grabs"), rows),
                          key="client-activity"))
    return tuple(nodes)
