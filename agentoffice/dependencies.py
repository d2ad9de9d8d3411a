from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends

from .core.config import Settings, get_settings
from .runtime import OfficeRuntime

_runtime_singleton: OfficeRuntime | None = None


def get_runtime_singleton(settings: Settings) -> OfficeRuntime:
    global _runtime_singleton
    if _runtime_singleton is None:
        _runtime_singleton = OfficeRuntime.from_settings(settings)
    return _runtime_singleton


def reset_runtime(runtime: OfficeRuntime | None = None) -> None:
    """Replace (or drop) the process-wide runtime; used by tests."""
    global _runtime_singleton
    _runtime_singleton = runtime


async def get_app_settings() -> AsyncIterator[Settings]:
    yield get_settings()


async def get_runtime(
    settings: Settings = Depends(get_app_settings),
) -> AsyncIterator[OfficeRuntime]:
    yield get_runtime_singleton(settings)
