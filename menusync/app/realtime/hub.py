"""Fan-out of catalog snapshots to live WebSocket subscribers.

Every subscriber first receives an ``init`` envelope with the full current
state, then one ``update`` envelope per successful mutation. Envelope
``type`` values ``heartbeat`` and ``shutdown`` carry keepalives and the
server going away.

A subscriber is dropped as soon as a send to it fails or times out; the
heartbeat loop is only a backstop for connections that never get written to.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from starlette.websockets import WebSocketState

from ..catalog.state import CanonicalState, StateCache
from ..routes_metrics import ws_messages_total, ws_pruned_total, ws_subscribers

logger = logging.getLogger("menusync.realtime")


class Subscriber:
    """Per-connection bookkeeping."""

    __slots__ = ("client_id", "ws", "lock", "last_seen")

    def __init__(self, ws: Any) -> None:
        self.client_id: str = uuid.uuid4().hex[:12]
        self.ws = ws
        # Serializes sends so ``init`` always precedes any ``update``.
        self.lock = asyncio.Lock()
        self.last_seen = time.monotonic()

    def is_open(self) -> bool:
        for attr in ("client_state", "application_state"):
            if getattr(self.ws, attr, WebSocketState.CONNECTED) != WebSocketState.CONNECTED:
                return False
        return True


class BroadcastHub:
    """Tracks subscribers and pushes serialized snapshots to all of them."""

    def __init__(
        self,
        cache: StateCache,
        send_timeout: float = 5.0,
        heartbeat_interval: float = 30.0,
        liveness_timeout: float = 0.0,
    ) -> None:
        self._cache = cache
        self.send_timeout = send_timeout
        self.heartbeat_interval = heartbeat_interval
        self.liveness_timeout = liveness_timeout
        # Keyed by ``id(ws)``: Starlette connections are unhashable mappings.
        self._subscribers: Dict[int, Subscriber] = {}

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, ws: Any) -> bool:
        return id(ws) in self._subscribers

    @staticmethod
    def encode(kind: str, state: CanonicalState | None = None, **extra: Any) -> str:
        envelope: Dict[str, Any] = {"type": kind}
        if state is not None:
            envelope["data"] = state.to_dict()
        envelope.update(extra)
        return json.dumps(envelope, default=str)

    async def subscribe(self, ws: Any) -> Subscriber:
        """Register ``ws`` and send it the current state as ``init``."""
        sub = Subscriber(ws)
        async with sub.lock:
            # No suspension between registering and reading the snapshot.
            self._subscribers[id(ws)] = sub
            ws_subscribers.set(len(self._subscribers))
            delivered = await self._write(sub, self.encode("init", self._cache.get()))
        if delivered:
            ws_messages_total.labels(type="init").inc()
            logger.info(
                "subscriber_added",
                extra={"client_id": sub.client_id, "subscribers": len(self)},
            )
        else:
            await self._prune([sub])
        return sub

    def unsubscribe(self, ws: Any) -> None:
        sub = self._subscribers.pop(id(ws), None)
        ws_subscribers.set(len(self._subscribers))
        if sub is not None:
            logger.info(
                "subscriber_removed",
                extra={"client_id": sub.client_id, "subscribers": len(self)},
            )

    def touch(self, ws: Any) -> None:
        """Record inbound traffic from ``ws`` as a liveness signal."""
        sub = self._subscribers.get(id(ws))
        if sub is not None:
            sub.last_seen = time.monotonic()

    async def publish(self, state: CanonicalState, kind: str = "update") -> int:
        """Send ``state`` to every subscriber; return how many received it."""
        return await self._broadcast(kind, self.encode(kind, state))

    async def heartbeat(self) -> int:
        await self.expire_silent()
        ts = datetime.now(timezone.utc).isoformat()
        return await self._broadcast("heartbeat", self.encode("heartbeat", ts=ts))

    async def run_heartbeat(self) -> None:
        """Send keepalives until cancelled."""
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            await self.heartbeat()

    async def expire_silent(self) -> None:
        if self.liveness_timeout <= 0:
            return
        cutoff = time.monotonic() - self.liveness_timeout
        silent = [s for s in self._subscribers.values() if s.last_seen < cutoff]
        await self._prune(silent)

    async def close(self) -> None:
        """Tell every subscriber the server is going away and drop them all."""
        await self._broadcast("shutdown", self.encode("shutdown"))
        subs = list(self._subscribers.values())
        self._subscribers.clear()
        ws_subscribers.set(0)
        await asyncio.gather(*(self._close(sub) for sub in subs))

    async def _broadcast(self, kind: str, message: str) -> int:
        subs = list(self._subscribers.values())
        if not subs:
            return 0
        results = await asyncio.gather(*(self._deliver(s, message) for s in subs))
        dead = [sub for sub, delivered in zip(subs, results) if not delivered]
        await self._prune(dead)
        delivered = len(subs) - len(dead)
        ws_messages_total.labels(type=kind).inc(delivered)
        return delivered

    async def _deliver(self, sub: Subscriber, message: str) -> bool:
        async with sub.lock:
            return await self._write(sub, message)

    async def _write(self, sub: Subscriber, message: str) -> bool:
        if not sub.is_open():
            return False
        try:
            await asyncio.wait_for(sub.ws.send_text(message), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning("ws_send_timeout", extra={"client_id": sub.client_id})
            return False
        except Exception as exc:
            logger.info(
                "ws_send_failed",
                extra={"client_id": sub.client_id, "error": type(exc).__name__},
            )
            return False
        return True

    async def _prune(self, dead: Iterable[Subscriber]) -> None:
        removed: List[Subscriber] = []
        for sub in dead:
            if self._subscribers.pop(id(sub.ws), None) is not None:
                removed.append(sub)
        if not removed:
            return
        ws_subscribers.set(len(self._subscribers))
        ws_pruned_total.inc(len(removed))
        logger.info(
            "subscribers_pruned",
            extra={"pruned": len(removed), "subscribers": len(self)},
        )
        await asyncio.gather(*(self._close(sub) for sub in removed))

    async def _close(self, sub: Subscriber) -> None:
        """Close ``sub`` within the send timeout; a stalled peer is abandoned."""
        if not sub.is_open():
            return
        try:
            await asyncio.wait_for(sub.ws.close(code=1001), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning("ws_close_timeout", extra={"client_id": sub.client_id})
        except Exception as exc:  # pragma: no cover - peer already gone
            logger.debug("ws_close_failed", extra={"error": type(exc).__name__})


__all__ = ["BroadcastHub", "Subscriber"]
