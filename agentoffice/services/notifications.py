from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from ..core.clock import utc_now
from ..core.logging import get_logger
from ..orchestration.enums import EventType

logger = get_logger(name=__name__)


@dataclass(slots=True)
class CoreEvent:
    event: EventType
    entity: BaseModel
    actor: str | None = None
    emitted_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.emitted_at is None:
            self.emitted_at = utc_now()

    @property
    def entity_id(self) -> str | None:
        value = getattr(self.entity, "id", None)
        return None if value is None else str(value)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "event": self.event.value,
            "entity": self.entity.model_dump(mode="json"),
            "emitted_at": self.emitted_at.isoformat() if self.emitted_at else None,
        }
        if self.actor:
            payload["actor"] = self.actor
        return payload


Subscriber = Callable[[CoreEvent], Awaitable[None]]


class EventBus:
    """Outbound event sink; delivery to subscribers is best effort."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        if subscriber not in self._subscribers:
            self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    async def publish(self, event: CoreEvent) -> None:
        if not self._subscribers:
            logger.debug("core_event_unobserved", event_type=event.event.value, entity_id=event.entity_id)
            return
        results = await asyncio.gather(
            *(self._safe_invoke(subscriber, event) for subscriber in list(self._subscribers)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):  # pragma: no cover - _safe_invoke already guards
                logger.warning("core_event_delivery_error", error=str(result))

    async def _safe_invoke(self, subscriber: Subscriber, event: CoreEvent) -> None:
        try:
            await subscriber(event)
        except Exception as exc:
            logger.warning(
                "core_event_subscriber_failed",
                subscriber=getattr(subscriber, "__qualname__", repr(subscriber)),
                event_type=event.event.value,
                error=str(exc),
            )


class RecordingSubscriber:
    """Collects every published event in order."""

    def __init__(self) -> None:
        self.events: list[CoreEvent] = []

    async def __call__(self, event: CoreEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[CoreEvent]:
        return [event for event in self.events if event.event is event_type]


async def log_event(event: CoreEvent) -> None:
    logger.info("core_event", event_type=event.event.value, entity_id=event.entity_id, actor=event.actor)
