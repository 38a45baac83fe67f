#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
_polling.py

Fixed-period refresh driver for one UI surface.

start_polling(refresh, period_ms, handle) runs refresh once right away,
then keeps calling it every period_ms on the event loop. The timer lives on
the surface's PollHandle; starting again on the same handle replaces it.

Ticks follow setInterval semantics: each tick is spawned as its own task, so
a tick slower than the period overlaps the next one and may finish after it.
"""

from __future__ import annotations
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set, TypeVar

from _logging import Logger, log as root_log

T = TypeVar("T")

RefreshFn = Callable[[], Awaitable[Any]]


class PollHandle:
    """Per-surface slot holding the one scheduled timer."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._timer: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._status: Dict[str, Any] = {
            "period_ms": 0,
            "ticks": 0,
            "errors": 0,
            "last_ok_at": 0,
            "last_error": None,
        }

    @property
    def active(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def cancel(self) -> None:
        """Stop the schedule. In-flight ticks are left to finish."""
        t = self._timer
        self._timer = None
        if t is not None and not t.done():
            t.cancel()

    def status(self) -> Dict[str, Any]:
        st = dict(self._status)
        st["active"] = self.active
        st["inflight"] = self.inflight
        return st

    def _install(self, timer: asyncio.Task, period_ms: int) -> None:
        self.cancel()
        self._timer = timer
        self._status["period_ms"] = period_ms

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        t = asyncio.ensure_future(coro)
        self._inflight.add(t)
        t.add_done_callback(self._inflight.discard)
        return t


async def _tick(refresh: RefreshFn, handle: PollHandle, logger: Logger) -> bool:
    handle._status["ticks"] += 1
    try:
        await refresh()
    except Exception as e:
        handle._status["errors"] += 1
        handle._status["last_error"] = str(e)
        logger.error(f"refresh failed: {e}")
        return False
    handle._status["last_ok_at"] = int(time.time())
    handle._status["last_error"] = None
    return True


async def _timer_loop(refresh: RefreshFn, period_s: float, handle: PollHandle, logger: Logger) -> None:
    while True:
        await asyncio.sleep(period_s)
        handle._spawn(_tick(refresh, handle, logger))


async def start_polling(
    refresh: RefreshFn,
    period_ms: int,
    handle: PollHandle,
    *,
    logger: Optional[Logger] = None,
) -> bool:
    """Run refresh now, then every period_ms. Returns whether the first run succeeded."""
    if period_ms <= 0:
        raise ValueError("period_ms must be positive")
    lg = (logger or root_log).child(f"poll.{handle.name}")
    ok = await _tick(refresh, handle, lg)
    timer = asyncio.create_task(_timer_loop(refresh, period_ms / 1000.0, handle, lg), name=f"poll:{handle.name}")
    handle._install(timer, period_ms)
    lg.debug(f"scheduled every {period_ms} ms")
    return ok


def poll(
    fetch: Callable[[], Awaitable[T]],
    render: Callable[[T], Any],
    period_ms: int,
    handle: PollHandle,
    *,
    logger: Optional[Logger] = None,
) -> Awaitable[bool]:
    """Generic fetch → render loop on top of start_polling."""
    async def refresh() -> None:
        snapshot = await fetch()
        render(snapshot)

    return start_polling(refresh, period_ms, handle, logger=logger)


async def run_once(refresh: RefreshFn, handle: PollHandle, *, logger: Optional[Logger] = None) -> bool:
    """Single guarded refresh for surfaces that load on open instead of polling."""
    lg = (logger or root_log).child(f"poll.{handle.name}")
    return await _tick(refresh, handle, lg)
