"""Shared fixtures: fake store, fake connections and an app client."""

import asyncio
import json

import fakeredis.aioredis
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from menusync.app.catalog.normalize import SchemaNormalizer
from menusync.app.catalog.state import StateCache
from menusync.app.errors import StoreError
from menusync.app.main import app
from menusync.app.middlewares import realtime_guard
from menusync.app.realtime.hub import BroadcastHub
from menusync.app.repos.catalog_repo import CatalogRepo
from menusync.app.services.catalog_service import CatalogService

KINDS = ["kiss", "scratches", "massage", "dishes"]
ALIASES = {"kisses": "kiss", "licks": "dishes"}


class FakeRepo(CatalogRepo):
    """In-memory store with per-operation failure and delay injection."""

    def __init__(self):
        self.rows = {}
        self.wallet = None
        self.calls = []
        self.fail_on = {}
        self.delay = {}

    async def _enter(self, op, key=None):
        if self.delay.get(op):
            await asyncio.sleep(self.delay[op])
        rule = self.fail_on.get(op)
        if rule is True or (isinstance(rule, set) and key in rule):
            raise StoreError(f"{op} failed", op=op)

    async def list_items(self):
        await self._enter("list_items")
        return [dict(item) for _, item in sorted(self.rows.values(), key=lambda r: r[0])]

    async def upsert_item(self, item, position):
        self.calls.append(("upsert", item["id"]))
        await self._enter("upsert_item", str(item["id"]))
        self.rows[str(item["id"])] = (position, dict(item))

    async def delete_items(self, ids):
        self.calls.append(("delete", list(ids)))
        await self._enter("delete_items")
        for item_id in ids:
            self.rows.pop(str(item_id), None)

    async def load_wallet(self):
        await self._enter("load_wallet")
        return self.wallet

    async def save_wallet(self, balances, tasks):
        self.calls.append(("save_wallet",))
        await self._enter("save_wallet")
        self.wallet = (dict(balances), dict(tasks) if tasks is not None else None)

    async def ping(self):
        await self._enter("ping")


class FakeConnection:
    """Stands in for a Starlette WebSocket on the hub side."""

    def __init__(self, fail_times=0, delay=0.0):
        self.sent = []
        self.fail_times = fail_times
        self.delay = delay
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.closed_with = None
        self.close_delay = 0.0

    async def send_text(self, text):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_times:
            self.fail_times -= 1
            raise RuntimeError("connection reset")
        self.sent.append(json.loads(text))

    async def close(self, code=1000):
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.closed_with = code
        self.application_state = WebSocketState.DISCONNECTED

    def types(self):
        return [message["type"] for message in self.sent]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def normalizer():
    return SchemaNormalizer(KINDS, "kiss", ALIASES, ["kissPrice"])


@pytest.fixture
def repo():
    return FakeRepo()


@pytest.fixture
def cache():
    return StateCache()


@pytest.fixture
def hub(cache):
    return BroadcastHub(cache, send_timeout=1.0)


@pytest.fixture
def service(repo, cache, hub, normalizer):
    return CatalogService(
        repo,
        cache,
        hub,
        normalizer,
        store_timeout=0.5,
        default_wallet={"kisses": 10, "scratches": 5, "massage": 2, "licks": 1},
    )


@pytest.fixture
def fake_redis():
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def client(fake_redis):
    """App client with a fresh in-memory store and fake Redis."""
    app.state.redis = fake_redis
    with TestClient(app) as test_client:
        yield test_client
    app.state.redis = None
    realtime_guard.connections.clear()


@pytest.fixture
def make_connection():
    return FakeConnection
