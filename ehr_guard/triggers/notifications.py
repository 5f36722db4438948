"""Notification channel: publish(topic, payload) over pluggable sinks.

Notifications are dispatched after the triggering transaction commits, in a
background task so slow sinks never delay the response.
Delivery failures are logged and swallowed; they never reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

from ehr_guard.config import Settings, get_settings
from ehr_guard.observability import get_observability_logger

logger = logging.getLogger(__name__)

HIGH_RISK_TOPIC = "high_risk_assessment"


@dataclass(frozen=True)
class Notification:
    topic: str
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    name: str

    async def publish(self, topic: str, payload: dict[str, Any]) -> None: ...


class LoggingSink:
    """Writes notifications to the application log."""

    name = "log"

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        logger.warning(f"Notification [{topic}]: {payload}")


class InMemorySink:
    """Keeps published notifications in a list."""

    name = "memory"

    def __init__(self):
        self.published: list[Notification] = []

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        self.published.append(Notification(topic=topic, payload=dict(payload)))

    def for_topic(self, topic: str) -> list[Notification]:
        return [n for n in self.published if n.topic == topic]

    def clear(self) -> None:
        self.published.clear()


class WebhookSink:
    """POSTs ``{"topic": ..., "payload": ...}`` as JSON to a configured URL."""

    name = "webhook"

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        body = {"topic": topic, "payload": payload}
        if self._client is not None:
            response = await self._client.post(self.url, json=body, timeout=self.timeout)
            response.raise_for_status()
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=body)
            response.raise_for_status()


class NotificationDispatcher:
    """Fans a notification out to every sink, isolating each sink's failures."""

    def __init__(self, sinks: Optional[list[NotificationSink]] = None):
        self.sinks: list[NotificationSink] = list(sinks) if sinks is not None else [LoggingSink()]
        self._tasks: set[asyncio.Task] = set()

    def add_sink(self, sink: NotificationSink) -> None:
        self.sinks.append(sink)

    async def publish(self, topic: str, payload: dict[str, Any]) -> int:
        """Deliver to all sinks. Returns how many sinks accepted it."""
        delivered = 0
        obs = get_observability_logger()
        for sink in self.sinks:
            start = time.time()
            try:
                await sink.publish(topic, payload)
            except Exception as e:
                logger.warning(f"Notification sink '{sink.name}' failed for topic {topic}: {e}")
                obs.log_notification(topic, sink.name, payload, error=str(e))
                continue
            delivered += 1
            obs.log_notification(topic, sink.name, payload, duration_ms=(time.time() - start) * 1000)
        return delivered

    async def dispatch(self, notifications: list[Notification]) -> None:
        for notification in notifications:
            await self.publish(notification.topic, notification.payload)

    def dispatch_in_background(self, notifications: list[Notification]) -> asyncio.Task:
        """Deliver without holding up the caller. The task is tracked until it finishes."""
        task = asyncio.create_task(self.dispatch(list(notifications)))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Notification delivery was cancelled")
        elif task.exception() is not None:
            logger.error(f"Notification delivery failed: {task.exception()}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for background deliveries still in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def build_dispatcher(settings: Optional[Settings] = None) -> NotificationDispatcher:
    """Default dispatcher: log sink, plus a webhook sink if one is configured."""
    settings = settings or get_settings()
    sinks: list[NotificationSink] = [LoggingSink()]
    if settings.has_webhook:
        sinks.append(WebhookSink(settings.notification_webhook_url, timeout=settings.notification_timeout))
    return NotificationDispatcher(sinks)
