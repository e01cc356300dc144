"""Reload the catalog whenever the store reports an outside change.

Writers other than this process announce changes on a Redis channel. The
message body is not trusted: any notice triggers a full reload. The single
exception is a notice whose ``origin`` is this process, which is an echo of
our own write and is skipped.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Awaitable, Callable

from redis.exceptions import RedisError

logger = logging.getLogger("menusync.realtime")

RETRY_MAX_SEC = 30.0


def change_notice(origin: str) -> str:
    """Return the message this process publishes after its own writes."""
    return json.dumps({"origin": origin})


class ChangeListener:
    """Consume change notices from ``channel`` and call ``on_change``."""

    def __init__(
        self,
        redis_client,
        channel: str,
        on_change: Callable[[], Awaitable[object]],
        origin: str | None = None,
    ) -> None:
        self._redis = redis_client
        self.channel = channel
        self._on_change = on_change
        self.origin = origin

    def is_own_notice(self, data) -> bool:
        if self.origin is None:
            return False
        if isinstance(data, bytes):
            data = data.decode(errors="replace")
        try:
            payload = json.loads(data)
        except (TypeError, ValueError):
            return False
        return isinstance(payload, dict) and payload.get("origin") == self.origin

    async def handle(self, message: dict) -> bool:
        """Process one pub/sub message; return True when a reload ran."""
        if message.get("type") != "message":
            return False
        if self.is_own_notice(message.get("data")):
            return False
        logger.info("external_change", extra={"channel": self.channel})
        await self._on_change()
        return True

    async def run(self) -> None:
        """Listen until cancelled, resubscribing after Redis failures."""
        backoff = 1.0
        reconnecting = False
        while True:
            pubsub = self._redis.pubsub()
            try:
                await pubsub.subscribe(self.channel)
                logger.info("change_listener_subscribed", extra={"channel": self.channel})
                if reconnecting:
                    # Notices sent while disconnected are lost.
                    await self._on_change()
                backoff = 1.0
                async for message in pubsub.listen():
                    await self.handle(message)
            except (RedisError, OSError) as exc:
                logger.warning(
                    "change_listener_disconnected",
                    extra={"error": str(exc), "retry_in": backoff},
                )
                reconnecting = True
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, RETRY_MAX_SEC)
            finally:
                await pubsub.aclose()


__all__ = ["ChangeListener", "change_notice"]
