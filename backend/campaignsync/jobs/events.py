"""
Sync Progress Events — Publish-only event channel for running sync jobs.

Progress ticks go to `sync:{job_id}`; the terminal completed/error event is
also published on `sync:{job_id}:done` so a listener can stop on one channel.
InMemoryEventBus serves a single process (and tests); UpstashEventPublisher
publishes through the Upstash Redis REST API for the streaming layer to fan out.
"""

import abc
import asyncio
import json
import logging
from collections import defaultdict
from typing import Any, Literal, Optional

import httpx
from pydantic import BaseModel, Field

from campaignsync.config import Settings, get_settings
from campaignsync.utils import utcnow

logger = logging.getLogger(__name__)

SyncEventType = Literal["progress", "completed", "error"]


def progress_channel(job_id: str) -> str:
    return f"sync:{job_id}"


def done_channel(job_id: str) -> str:
    return f"sync:{job_id}:done"


class SyncProgressEvent(BaseModel):
    type: SyncEventType
    job_id: str
    campaign_set_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=lambda: utcnow().isoformat() + "Z")


class EventPublisher(abc.ABC):
    @abc.abstractmethod
    async def publish(self, channel: str, event: SyncProgressEvent) -> None: ...

    async def emit(self, event: SyncProgressEvent) -> None:
        """Publish on the job's progress channel, and on its done channel for terminal events."""
        await self.publish(progress_channel(event.job_id), event)
        if event.type in ("completed", "error"):
            await self.publish(done_channel(event.job_id), event)


class InMemoryEventBus(EventPublisher):
    def __init__(self, maxsize: int = 0):
        self.maxsize = maxsize
        self._subscribers: dict[str, list[asyncio.Queue]] = defaultdict(list)

    def subscribe(self, channel: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.maxsize)
        self._subscribers[channel].append(queue)
        return queue

    def unsubscribe(self, channel: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(channel)
        if not queues:
            return
        if queue in queues:
            queues.remove(queue)
        if not queues:
            del self._subscribers[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))

    async def publish(self, channel: str, event: SyncProgressEvent) -> None:
        for queue in list(self._subscribers.get(channel, [])):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Dropping {event.type} event on {channel}: subscriber queue full")


class UpstashEventPublisher(EventPublisher):
    """Redis PUBLISH through Upstash's REST endpoint."""

    def __init__(self, url: str, token: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url.rstrip("/")
        self.token = token
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> Optional["UpstashEventPublisher"]:
        settings = settings or get_settings()
        if not settings.upstash_redis_rest_url or not settings.upstash_redis_rest_token:
            return None
        return cls(settings.upstash_redis_rest_url, settings.upstash_redis_rest_token)

    async def publish(self, channel: str, event: SyncProgressEvent) -> None:
        async with httpx.AsyncClient(transport=self.transport, timeout=10) as client:
            resp = await client.post(
                f"{self.url}/publish/{channel}",
                headers={"Authorization": f"Bearer {self.token}"},
                content=json.dumps(event.model_dump()),
            )
            resp.raise_for_status()
