"""Per-IP connection limits for the realtime WebSocket channel.

``MAX_CONN_PER_IP`` (default ``20``) is the fallback limit when the caller
does not pass one from settings.
"""

from __future__ import annotations

import os
from collections import defaultdict

from fastapi import HTTPException

MAX_CONN_PER_IP = int(os.getenv("MAX_CONN_PER_IP", "20"))

connections: dict[str, int] = defaultdict(int)


def register(ip: str, limit: int | None = None) -> None:
    """Increment connection count for ``ip`` or raise ``HTTPException``."""
    if connections[ip] >= (limit or MAX_CONN_PER_IP):
        raise HTTPException(status_code=429, detail="RETRY")
    connections[ip] += 1


def unregister(ip: str) -> None:
    """Decrement connection count for ``ip``."""
    if connections[ip] > 0:
        connections[ip] -= 1
    if connections[ip] == 0:
        connections.pop(ip, None)
