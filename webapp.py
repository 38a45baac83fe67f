#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Web UI backend (FastAPI)

The browser shell (see _FastAPI.py) polls /api/panel/{service} for rendered
region HTML and posts actions back here. All polling happens server-side on
the event loop; the Companion on app.state owns every poll handle.
"""
import asyncio
import socket
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import requests
import uvicorn
from fastapi import APIRouter, Body, FastAPI, HTTPException, Path as FPath, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse

from _actions import ActionOutcome, ActionResult
from _config import (
    SERVICES, SETTINGS_PATH, load_settings, merge_defaults, save_settings, update_service,
)
from _FastAPI import get_index_html
from _logging import log as root_log
from _surfaces import (
    CLIENTS, Companion, OverseerrSurface, RadarrSurface, SabnzbdSurface, SonarrSurface,
    Surface, TautulliSurface, UnraidSurface,
)
from modules._mod_base import ConfigError, Endpoint, ModuleError

ROOT = Path(__file__).resolve().parent
LOG = root_log.child("webapp")

router = APIRouter()


# --- Lifespan ---

def _log_task_error(task: "asyncio.Task") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOG.error(f"badge startup failed: {exc}")


def _start_badges(companion: Companion) -> "asyncio.Task":
    t = asyncio.ensure_future(companion.start_badges())
    t.add_done_callback(_log_task_error)
    return t


@asynccontextmanager
async def _lifespan(app: FastAPI):
    path = app.state.settings_path
    companion = Companion(
        load_settings(path),
        settings_path=path,
        session=app.state.session,
        sleep=app.state.sleep,
    )
    app.state.companion = companion
    app.state.badge_task = _start_badges(companion)
    try:
        yield
    finally:
        app.state.badge_task.cancel()
        companion.shutdown()


def create_app(
    settings_path: Optional[Path] = None,
    session: Optional[requests.Session] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> FastAPI:
    app = FastAPI(lifespan=_lifespan, title="Home Server Companion")
    app.state.settings_path = Path(settings_path) if settings_path else SETTINGS_PATH
    app.state.session = session
    app.state.sleep = sleep or time.sleep
    app.include_router(router)
    return app


# --- Helpers ---

def _companion(request: Request) -> Companion:
    return request.app.state.companion


def _surface(request: Request, service: str, kind: Any = Surface) -> Surface:
    if service not in SERVICES:
        raise HTTPException(status_code=404, detail=f"unknown service: {service}")
    try:
        s = _companion(request).surface(service)
    except ConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not isinstance(s, kind):
        raise HTTPException(status_code=404, detail=f"{service} does not support this action")
    return s


def _result(res: ActionResult) -> JSONResponse:
    if res.outcome is ActionOutcome.CANCELLED:
        return JSONResponse({"ok": False, "confirm": res.message}, status_code=409)
    if res.outcome is ActionOutcome.FAILED:
        return JSONResponse(res.as_dict(), status_code=502)
    return JSONResponse(res.as_dict())


def _confirmed(payload: Optional[Dict[str, Any]]) -> bool:
    return bool((payload or {}).get("confirmed"))


def get_primary_ip() -> str:
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 80))
        return s.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        s.close()


# --- Index & settings ---

@router.get("/", response_class=HTMLResponse)
def index(request: Request) -> HTMLResponse:
    c = _companion(request)
    return HTMLResponse(get_index_html(c.order(), c.default_service(), bool(c.settings.get("darkMode"))))


@router.get("/api/config")
def api_config(request: Request) -> JSONResponse:
    return JSONResponse(_companion(request).settings)


@router.post("/api/config")
async def api_config_save(request: Request, cfg: Dict[str, Any] = Body(...)) -> JSONResponse:
    c = _companion(request)
    merged = merge_defaults({**c.settings, **cfg})
    try:
        for s in SERVICES:
            merged = update_service(merged, s, url=merged.get(f"{s}Url"), key=merged.get(f"{s}Key"))
    except ConfigError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
    save_settings(merged, request.app.state.settings_path)
    request.app.state.badge_task.cancel()
    c.reload(merged)
    request.app.state.badge_task = _start_badges(c)
    return JSONResponse({"ok": True})


@router.post("/api/services/{service}/test")
async def api_service_test(
    request: Request,
    service: str = FPath(...),
    payload: Optional[Dict[str, Any]] = Body(None),
) -> JSONResponse:
    """Test saved settings, or unsaved url/key from the settings form."""
    if service not in SERVICES:
        raise HTTPException(status_code=404, detail=f"unknown service: {service}")
    c = _companion(request)
    payload = payload or {}
    try:
        draft = update_service(
            dict(c.settings), service,
            url=payload.get("url", c.settings.get(f"{service}Url")),
            key=payload.get("key", c.settings.get(f"{service}Key")),
        )
        url = draft.get(f"{service}Url") or ""
        if not url:
            raise ConfigError("Please enter a URL")
    except ConfigError as e:
        return JSONResponse({"ok": False, "message": str(e)}, status_code=400)
    client = CLIENTS[service](
        Endpoint(url, draft.get(f"{service}Key") or ""),
        session=request.app.state.session,
        logger=LOG,
    )
    res = await run_in_threadpool(client.test_connection)
    return JSONResponse({"ok": res.ok, "message": res.message, "status": res.status})


# --- Panels ---

@router.post("/api/panel/{service}/open")
async def api_panel_open(request: Request, service: str = FPath(...)) -> JSONResponse:
    _surface(request, service)
    s = await _companion(request).activate(service)
    return JSONResponse(s.snapshot())


@router.get("/api/panel/{service}")
def api_panel(request: Request, service: str = FPath(...)) -> JSONResponse:
    return JSONResponse(_surface(request, service).snapshot(), headers={"Cache-Control": "no-store"})


@router.post("/api/panel/unraid/tab")
async def api_unraid_tab(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    s = _surface(request, "unraid", UnraidSurface)
    try:
        await s.set_tab(str(payload.get("tab") or ""))
    except ValueError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
    return JSONResponse(s.snapshot())


@router.post("/api/panel/unraid/docker")
def api_unraid_docker(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    s = _surface(request, "unraid", UnraidSurface)
    try:
        s.set_docker_view(sort=payload.get("sort"), search=payload.get("search"))
    except ValueError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
    return JSONResponse(s.snapshot())


@router.post("/api/panel/overseerr/filter")
async def api_overseerr_filter(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    _surface(request, "overseerr", OverseerrSurface)
    try:
        s = await _companion(request).set_overseerr_filter(str(payload.get("filter") or ""))
    except ValueError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
    return JSONResponse(s.snapshot())


@router.post("/api/panel/overseerr/search")
async def api_overseerr_search(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    s = _surface(request, "overseerr", OverseerrSurface)
    try:
        await s.search(str(payload.get("query") or ""))
    except ModuleError as e:
        return JSONResponse({"ok": False, "error": f"Search failed: {e}"}, status_code=502)
    return JSONResponse(s.snapshot())


@router.post("/api/panel/tautulli/expand/{session_id}")
def api_tautulli_expand(request: Request, session_id: str = FPath(...)) -> JSONResponse:
    s = _surface(request, "tautulli", TautulliSurface)
    expanded = s.toggle(session_id)
    return JSONResponse({"expanded": expanded, **s.snapshot()})


@router.get("/api/badges")
def api_badges(request: Request) -> JSONResponse:
    return JSONResponse({"badges": _companion(request).badges()}, headers={"Cache-Control": "no-store"})


# --- Actions: SABnzbd ---

@router.post("/api/sabnzbd/pause")
async def api_sab_pause(request: Request, payload: Optional[Dict[str, Any]] = Body(None)) -> JSONResponse:
    s = _surface(request, "sabnzbd", SabnzbdSurface)
    minutes = (payload or {}).get("minutes")
    return _result(await s.pause(int(minutes) if minutes else None))


@router.post("/api/sabnzbd/resume")
async def api_sab_resume(request: Request) -> JSONResponse:
    s = _surface(request, "sabnzbd", SabnzbdSurface)
    return _result(await s.resume())


@router.post("/api/sabnzbd/queue/{nzo_id}/delete")
async def api_sab_queue_delete(
    request: Request,
    nzo_id: str = FPath(...),
    payload: Optional[Dict[str, Any]] = Body(None),
) -> JSONResponse:
    s = _surface(request, "sabnzbd", SabnzbdSurface)
    return _result(await s.delete_queue_item(nzo_id, confirmed=_confirmed(payload)))


@router.post("/api/sabnzbd/history/{nzo_id}/delete")
async def api_sab_history_delete(
    request: Request,
    nzo_id: str = FPath(...),
    payload: Optional[Dict[str, Any]] = Body(None),
) -> JSONResponse:
    s = _surface(request, "sabnzbd", SabnzbdSurface)
    return _result(await s.delete_history_item(nzo_id, confirmed=_confirmed(payload)))


# --- Actions: Sonarr / Radarr ---

@router.post("/api/{service}/queue/{item_id}/delete")
async def api_arr_queue_delete(
    request: Request,
    service: str = FPath(..., pattern="^(sonarr|radarr)$"),
    item_id: int = FPath(...),
    payload: Optional[Dict[str, Any]] = Body(None),
) -> JSONResponse:
    s = _surface(request, service, (SonarrSurface, RadarrSurface))
    blocklist = bool((payload or {}).get("blocklist"))
    return _result(await s.delete_queue_item(item_id, blocklist=blocklist, confirmed=_confirmed(payload)))


# --- Actions: Tautulli ---

@router.post("/api/tautulli/sessions/{session_id}/terminate")
async def api_tautulli_terminate(
    request: Request,
    session_id: str = FPath(...),
    payload: Optional[Dict[str, Any]] = Body(None),
) -> JSONResponse:
    s = _surface(request, "tautulli", TautulliSurface)
    reason = str((payload or {}).get("reason") or "")
    return _result(await s.terminate(session_id, reason, confirmed=_confirmed(payload)))


# --- Actions: Overseerr ---

@router.post("/api/overseerr/requests/{request_id}/approve")
async def api_overseerr_approve(request: Request, request_id: int = FPath(...)) -> JSONResponse:
    s = _surface(request, "overseerr", OverseerrSurface)
    return _result(await s.approve(request_id))


@router.post("/api/overseerr/requests/{request_id}/decline")
async def api_overseerr_decline(
    request: Request,
    request_id: int = FPath(...),
    payload: Optional[Dict[str, Any]] = Body(None),
) -> JSONResponse:
    s = _surface(request, "overseerr", OverseerrSurface)
    return _result(await s.decline(request_id, confirmed=_confirmed(payload)))


@router.post("/api/overseerr/request")
async def api_overseerr_request(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    s = _surface(request, "overseerr", OverseerrSurface)
    try:
        media_id = int(payload.get("mediaId"))
    except (TypeError, ValueError):
        return JSONResponse({"ok": False, "error": "mediaId must be an integer"}, status_code=400)
    return _result(await s.request_media(media_id, str(payload.get("mediaType") or "")))


# --- Actions: Unraid ---

@router.post("/api/unraid/containers/{container_id}/{action}")
async def api_unraid_container(
    request: Request,
    container_id: str = FPath(...),
    action: str = FPath(...),
) -> JSONResponse:
    s = _surface(request, "unraid", UnraidSurface)
    return _result(await s.control_container(container_id, action))


@router.post("/api/unraid/vms/{vm_id}/{action}")
async def api_unraid_vm(
    request: Request,
    vm_id: str = FPath(...),
    action: str = FPath(...),
) -> JSONResponse:
    s = _surface(request, "unraid", UnraidSurface)
    return _result(await s.control_vm(vm_id, action))


app = create_app()


def main(host: str = "0.0.0.0", port: int = 8787, settings_path: Optional[Path] = None) -> None:
    target = create_app(settings_path) if settings_path else app
    ip = get_primary_ip()
    print("\nHome Server Companion Web UI running:")
    print(f"  Local:   http://127.0.0.1:{port}")
    print(f"  Docker:  http://{ip}:{port}")
    print(f"  Bind:    {host}:{port}")
    print(f"  Config:  {target.state.settings_path} (JSON)\n")
    uvicorn.run(target, host=host, port=port)


if __name__ == "__main__":
    main()
