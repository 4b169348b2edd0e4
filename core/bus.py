from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any, Protocol, cast

from redis.asyncio import Redis


class BusProto(Protocol):
    """Pub/sub surface the target engine depends on.

    ``subscribe`` is a plain method returning an async iterator, used as
    ``async for msg in bus.subscribe(topic)`` without ``await``.
    """

    async def publish_json(self, topic: str, payload: Any) -> None: ...

    def subscribe(self, topic: str) -> AsyncIterator[Any]: ...


class Bus:
    """Redis pub/sub carrying order-hub pushes, target commands and snapshots."""

    def __init__(self, url: str) -> None:
        self._url = url
        self._client: Redis | None = None

    async def _get_client(self) -> Redis:
        if self._client is None:
            self._client = Redis.from_url(self._url, encoding="utf-8", decode_responses=True)
        return self._client

    async def publish_json(self, topic: str, payload: Any) -> None:
        client = await self._get_client()
        await client.publish(topic, json.dumps(payload, separators=(",", ":"), default=str))

    def subscribe(self, topic: str) -> AsyncIterator[Any]:
        async def stream() -> AsyncIterator[Any]:
            client = await self._get_client()
            pubsub = cast(Any, client.pubsub())
            await pubsub.subscribe(topic)
            try:
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    data = message.get("data")
                    if isinstance(data, bytes):
                        data = data.decode("utf-8")
                    try:
                        yield json.loads(data)
                    except (TypeError, ValueError):
                        # hub pushes are best effort; a garbled frame is skipped
                        continue
            finally:
                await pubsub.unsubscribe(topic)
                await pubsub.aclose()

        return stream()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
