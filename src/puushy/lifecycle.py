"""Lifecycle helpers wiring background tasks for FastAPI startup."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from .expiry.expiry_sweeper import ExpirySweeper, SweepReport
from .metadata.metadata_models import utcnow

logger = logging.getLogger(__name__)


async def sweep_iteration(
    sweeper: ExpirySweeper,
    *,
    now: datetime | None = None,
) -> SweepReport | None:
    """Run a single sweep, logging instead of raising on failure."""
    try:
        return await sweeper.sweep_once(now=now)
    except Exception:
        logger.exception("Expiry sweep iteration failed")
        return None


async def run_periodic_sweep(
    *,
    sweeper: ExpirySweeper,
    shutdown_event: asyncio.Event,
    interval_seconds: float = 60.0,
    clock: Callable[[], datetime] | None = None,
) -> None:
    """Execute the expiry sweep until ``shutdown_event`` is signalled."""
    interval = max(0.01, float(interval_seconds))
    tick = clock or utcnow
    while not shutdown_event.is_set():
        # Shielded so shutdown never interrupts a sweep halfway through.
        await asyncio.shield(sweep_iteration(sweeper, now=tick()))
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue


__all__ = ["run_periodic_sweep", "sweep_iteration"]
