import asyncio

import pytest

from _polling import PollHandle, poll, run_once, start_polling


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


def _live_timers(name):
    return [t for t in asyncio.all_tasks() if t.get_name() == f"poll:{name}" and not t.done()]


@pytest.mark.asyncio
async def test_first_tick_runs_before_start_returns(quiet_log):
    calls = []

    async def refresh():
        calls.append(1)

    handle = PollHandle("sab")
    ok = await start_polling(refresh, 1000, handle, logger=quiet_log)
    assert ok is True
    assert len(calls) == 1
    assert handle.active
    handle.cancel()
    await _settle()
    assert not handle.active


@pytest.mark.asyncio
async def test_restart_on_same_handle_leaves_one_timer(quiet_log):
    async def refresh():
        return None

    handle = PollHandle("tautulli")
    await start_polling(refresh, 1000, handle, logger=quiet_log)
    first = handle._timer
    await start_polling(refresh, 1000, handle, logger=quiet_log)
    await _settle()
    assert first.cancelled()
    assert len(_live_timers("tautulli")) == 1
    handle.cancel()
    await _settle()
    assert _live_timers("tautulli") == []


@pytest.mark.asyncio
async def test_failing_tick_does_not_stop_schedule(quiet_log):
    calls = []

    async def refresh():
        calls.append(1)
        if len(calls) <= 2:
            raise RuntimeError("boom")

    handle = PollHandle("unraid")
    ok = await start_polling(refresh, 10, handle, logger=quiet_log)
    assert ok is False
    await asyncio.sleep(0.1)
    handle.cancel()
    assert len(calls) >= 3
    st = handle.status()
    assert st["errors"] == 2
    assert st["last_error"] is None
    assert st["ticks"] == len(calls)


@pytest.mark.asyncio
async def test_slow_tick_overlaps_next_one(quiet_log):
    started = []
    finished = []

    async def refresh():
        n = len(started) + 1
        started.append(n)
        if n == 2:
            await asyncio.sleep(0.06)
        finished.append(n)

    handle = PollHandle("race")
    await start_polling(refresh, 10, handle, logger=quiet_log)
    await asyncio.sleep(0.12)
    handle.cancel()
    await asyncio.sleep(0.08)
    assert 2 in finished and 3 in finished
    # tick 3 started after tick 2 but completed first
    assert finished.index(3) < finished.index(2)


@pytest.mark.asyncio
async def test_cancel_lets_inflight_tick_finish(quiet_log):
    finished = []
    gate = asyncio.Event()

    async def refresh():
        if finished:
            await gate.wait()
        finished.append(1)

    handle = PollHandle("arr")
    await start_polling(refresh, 10, handle, logger=quiet_log)
    await asyncio.sleep(0.03)
    assert handle.inflight >= 1
    handle.cancel()
    gate.set()
    await _settle()
    assert len(finished) >= 2
    assert handle.inflight == 0


@pytest.mark.asyncio
async def test_poll_feeds_render_with_fetch_result(quiet_log):
    rendered = []

    async def fetch():
        return {"n": len(rendered)}

    handle = PollHandle("generic")
    await poll(fetch, rendered.append, 1000, handle, logger=quiet_log)
    handle.cancel()
    assert rendered == [{"n": 0}]


@pytest.mark.asyncio
async def test_run_once_and_period_validation(quiet_log):
    async def broken():
        raise ValueError("nope")

    handle = PollHandle("once")
    assert await run_once(broken, handle, logger=quiet_log) is False
    assert handle.status()["last_error"] == "nope"
    assert not handle.active
    with pytest.raises(ValueError):
        await start_polling(broken, 0, handle, logger=quiet_log)
