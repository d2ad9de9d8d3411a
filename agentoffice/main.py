from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from .api.routes import router as api_router
from .core.config import get_settings
from .core.logging import configure_logging, get_logger
from .dependencies import get_runtime_singleton
from .services.seeding import seed_demo_roster

settings = get_settings()
configure_logging(settings.observability.log_level)
logger = get_logger(name=__name__)


async def _voting_sweep_loop() -> None:
    interval = max(1, settings.sweeper.interval_seconds)
    sweeper = get_runtime_singleton(settings).sweeper
    while True:
        await asyncio.sleep(interval)
        try:
            await sweeper.run_once()
        except Exception as exc:  # pragma: no cover - background error logging
            logger.exception("voting_sweep_loop_failed", error=str(exc))


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    if settings.seeding.enabled:
        await seed_demo_roster(get_runtime_singleton(settings).registry)
    task: asyncio.Task[None] | None = None
    if settings.sweeper.enabled:
        task = asyncio.create_task(_voting_sweep_loop())
        app.state.voting_sweep_task = task
    try:
        yield
    finally:
        task = getattr(app.state, "voting_sweep_task", None)
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):  # pragma: no cover - managed shutdown
                await task


app = FastAPI(title="Agent Office Core", version="0.1.0", lifespan=app_lifespan)
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/", tags=["health"])
async def root() -> dict[str, str]:
    return {"message": "Agent office core running"}


if settings.observability.prometheus_enabled:

    @app.get("/metrics", tags=["observability"])
    async def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
