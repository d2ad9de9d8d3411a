from __future__ import annotations

import asyncio

import httpx
import pytest

from agentoffice import dependencies
from agentoffice.core.metrics import record_vote


@pytest.mark.asyncio
async def test_voting_sweep_loop_lifecycle(monkeypatch: pytest.MonkeyPatch) -> None:
    from agentoffice import main

    start_event = asyncio.Event()
    cancel_event = asyncio.Event()

    async def fake_loop() -> None:
        start_event.set()
        try:
            await asyncio.Future()
        except asyncio.CancelledError:  # pragma: no cover - cancellation path exercised in test
            cancel_event.set()
            raise

    monkeypatch.setattr(main, "_voting_sweep_loop", fake_loop)
    monkeypatch.setattr(main.settings.sweeper, "enabled", True, raising=False)

    transport = httpx.ASGITransport(app=main.app)
    async with main.app.router.lifespan_context(main.app):
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            response = await client.get("/")
            assert response.status_code == 200
            await asyncio.wait_for(start_event.wait(), timeout=1.0)

    await asyncio.wait_for(cancel_event.wait(), timeout=1.0)
    await transport.aclose()


@pytest.mark.asyncio
async def test_lifespan_seeds_demo_roster(monkeypatch: pytest.MonkeyPatch) -> None:
    from agentoffice import main

    dependencies.reset_runtime()
    monkeypatch.setattr(main.settings.seeding, "enabled", True, raising=False)
    monkeypatch.setattr(main.settings.sweeper, "enabled", False, raising=False)

    try:
        async with main.app.router.lifespan_context(main.app):
            agents = await dependencies.get_runtime_singleton(main.settings).registry.list()
            assert len(agents) == 5
    finally:
        dependencies.reset_runtime()


@pytest.mark.asyncio
async def test_metrics_endpoint_exposes_core_series() -> None:
    from agentoffice import main

    record_vote(outcome="accepted")

    transport = httpx.ASGITransport(app=main.app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            response = await client.get("/metrics")
    finally:
        await transport.aclose()

    assert response.status_code == 200
    assert response.headers.get("content-type", "").startswith("text/plain")
    assert 'agentoffice_votes_cast_total{outcome="accepted"}' in response.text
