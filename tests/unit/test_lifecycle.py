from __future__ import annotations

import asyncio
import logging

import pytest

from src.puushy.expiry.expiry_sweeper import SweepReport
from src.puushy.lifecycle import run_periodic_sweep, sweep_iteration


class FlakySweeper:
    def __init__(self, shutdown_event: asyncio.Event, *, stop_after: int = 2) -> None:
        self.calls = 0
        self.shutdown_event = shutdown_event
        self.stop_after = stop_after

    async def sweep_once(self, now=None) -> SweepReport:
        self.calls += 1
        if self.calls >= self.stop_after:
            self.shutdown_event.set()
        if self.calls == 1:
            raise RuntimeError("disk unavailable")
        return SweepReport()


@pytest.mark.asyncio
async def test_sweep_iteration_logs_and_swallows_failures(caplog) -> None:
    sweeper = FlakySweeper(asyncio.Event(), stop_after=99)

    with caplog.at_level(logging.ERROR, logger="src.puushy.lifecycle"):
        result = await sweep_iteration(sweeper)

    assert result is None
    assert "Expiry sweep iteration failed" in caplog.text


@pytest.mark.asyncio
async def test_periodic_sweep_continues_after_failure() -> None:
    shutdown_event = asyncio.Event()
    sweeper = FlakySweeper(shutdown_event, stop_after=3)

    await asyncio.wait_for(
        run_periodic_sweep(sweeper=sweeper, shutdown_event=shutdown_event, interval_seconds=0.01),
        timeout=2,
    )

    assert sweeper.calls == 3


@pytest.mark.asyncio
async def test_periodic_sweep_stops_when_shutdown_requested() -> None:
    shutdown_event = asyncio.Event()
    sweeper = FlakySweeper(shutdown_event, stop_after=99)
    task = asyncio.create_task(
        run_periodic_sweep(sweeper=sweeper, shutdown_event=shutdown_event, interval_seconds=60)
    )
    await asyncio.sleep(0.05)

    shutdown_event.set()
    await asyncio.wait_for(task, timeout=1)

    assert sweeper.calls == 1
