"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import AppConfig, load_config
from .dependencies import include_routers
from .lifecycle import run_periodic_sweep
from .logging import configure_logging

logger = logging.getLogger(__name__)


async def _startup_expiry_sweep(app: FastAPI) -> None:
    if getattr(app.state, "disable_expiry_sweep", False):
        logger.info("Expiry sweep startup skipped: disabled via app state")
        return
    config: AppConfig = app.state.config
    shutdown_event = asyncio.Event()
    task = asyncio.create_task(
        run_periodic_sweep(
            sweeper=app.state.expiry_sweeper,
            shutdown_event=shutdown_event,
            interval_seconds=config.sweep_interval_seconds,
        ),
        name="puushy-expiry-sweep",
    )
    app.state.expiry_sweep_task = task
    app.state.expiry_sweep_shutdown_event = shutdown_event


async def _shutdown_expiry_sweep(app: FastAPI) -> None:
    shutdown_event = getattr(app.state, "expiry_sweep_shutdown_event", None)
    if shutdown_event is not None:
        shutdown_event.set()
    task: asyncio.Task[None] | None = getattr(app.state, "expiry_sweep_task", None)
    if task is not None:
        # A sweep in progress is shielded; setting the event lets it finish.
        with contextlib.suppress(asyncio.CancelledError):
            await task
    app.state.expiry_sweep_task = None
    app.state.expiry_sweep_shutdown_event = None


@contextlib.asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    await _startup_expiry_sweep(app)
    try:
        yield
    finally:
        await _shutdown_expiry_sweep(app)


def create_app(
    config: AppConfig | None = None, *, enable_expiry_sweep: bool = True
) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    cfg = config or load_config()
    cfg.ensure_directories()
    configure_logging(cfg.log_level)
    app = FastAPI(title="puushy", lifespan=_lifespan)
    app.state.disable_expiry_sweep = not enable_expiry_sweep
    app.state.expiry_sweep_task = None
    app.state.expiry_sweep_shutdown_event = None
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "Content-Length"],
    )
    include_routers(app, cfg)
    return app


__all__ = ["create_app"]
