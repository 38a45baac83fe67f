# _actions.py
# One-shot user actions: confirm → call → remove/refresh or surface the error.
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from fastapi.concurrency import run_in_threadpool

from _logging import Logger, log as root_log
from modules._mod_base import HttpError, ModuleError

ConfirmFn = Callable[[str], bool]
NotifyFn = Callable[[str], None]
RefreshFn = Callable[[], Awaitable[Any]]

REFRESH_DELAY_SEC = 0.25


class ActionOutcome(str, Enum):
    DONE = "done"
    ALREADY_GONE = "already_gone"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class ActionResult:
    outcome: ActionOutcome
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome in (ActionOutcome.DONE, ActionOutcome.ALREADY_GONE)

    def as_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "outcome": self.outcome.value, "message": self.message, "data": self.data}


def _deny(prompt: str) -> bool:
    return False


def _silent(message: str) -> None:
    return None


class ActionDispatcher:
    """Runs blocking client mutations off the loop and decides what the UI does next.

    Success never touches the snapshot: it triggers a refresh. Failure keeps the
    item and notifies the user, except a 404 on a delete, which means the item is
    already gone and is removed quietly.
    """

    def __init__(
        self,
        confirm: ConfirmFn = _deny,
        notify: NotifyFn = _silent,
        logger: Optional[Logger] = None,
        refresh_delay: float = REFRESH_DELAY_SEC,
    ) -> None:
        self.confirm = confirm
        self.notify = notify
        self.refresh_delay = refresh_delay
        self._log = (logger or root_log).child("actions")
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def _refresh_later(self, refresh: RefreshFn, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await refresh()
        except Exception as e:
            self._log.error(f"post-action refresh failed: {e}")

    async def _refresh(self, refresh: Optional[RefreshFn], delay: float) -> None:
        if refresh is None:
            return
        if delay <= 0:
            try:
                await refresh()
            except Exception as e:
                self._log.error(f"post-action refresh failed: {e}")
            return
        t = asyncio.ensure_future(self._refresh_later(refresh, delay))
        self._pending.add(t)
        t.add_done_callback(self._pending.discard)

    async def dispatch(
        self,
        label: str,
        call: Callable[[], Any],
        *,
        destructive: bool = False,
        missing_ok: bool = False,
        prompt: Optional[str] = None,
        confirm: Optional[ConfirmFn] = None,
        remove: Optional[Callable[[], Any]] = None,
        refresh: Optional[RefreshFn] = None,
        refresh_delay: Optional[float] = None,
    ) -> ActionResult:
        delay = self.refresh_delay if refresh_delay is None else refresh_delay
        if destructive:
            question = prompt or f"{label}?"
            if not (confirm or self.confirm)(question):
                self._log.debug(f"{label}: cancelled")
                return ActionResult(ActionOutcome.CANCELLED, question)

        try:
            data = await run_in_threadpool(call)
        except HttpError as e:
            if missing_ok and e.status == 404:
                self._log.info(f"{label}: already gone (404)")
                if remove is not None:
                    remove()
                await self._refresh(refresh, delay)
                return ActionResult(ActionOutcome.ALREADY_GONE, "Item already removed")
            return self._failed(label, e)
        except (ModuleError, ValueError) as e:
            return self._failed(label, e)

        self._log.success(f"{label}: done")
        await self._refresh(refresh, delay)
        return ActionResult(ActionOutcome.DONE, f"{label}: done", data if isinstance(data, dict) else {})

    def _failed(self, label: str, err: Exception) -> ActionResult:
        msg = f"{label} failed: {err}"
        self._log.error(msg)
        self.notify(msg)
        return ActionResult(ActionOutcome.FAILED, msg)
