import asyncio
import json
import logging

import pytest

from menusync.app.errors import InsufficientFunds, StoreError, ValidationError
from menusync.app.services.catalog_service import CatalogService

pytestmark = pytest.mark.anyio


async def _seed(service, *ids):
    await service.replace_state([{"id": i, "name": f"item {i}"} for i in ids])


async def test_replace_reconciles_and_publishes(service, repo, hub, make_connection):
    await _seed(service, 2, 3)
    ws = make_connection()
    await hub.subscribe(ws)
    repo.calls.clear()

    plan = await service.replace_state([{"id": 1}, {"id": 2, "name": "renamed"}])

    assert plan.summary == {"inserted": [1], "updated": [2], "deleted": [3]}
    assert repo.calls == [("delete", [3]), ("upsert", 1), ("upsert", 2)]
    assert [item["id"] for item in service.cache.get().items] == [1, 2]
    assert ws.types() == ["init", "update"]
    assert ws.sent[1]["data"]["items"] == [{"id": 1}, {"id": 2, "name": "renamed"}]


async def test_replace_normalizes_legacy_items(service, repo):
    await service.replace_state([{"id": 1, "kissPrice": 4}])
    item = service.cache.get().items[0]
    assert item["prices"]["kiss"] == 4
    assert "kissPrice" not in repo.rows["1"][1]


async def test_items_without_id_get_one(service):
    await service.replace_state([{"name": "anonymous"}])
    item = service.cache.get().items[0]
    assert isinstance(item["id"], str) and item["id"]


async def test_duplicate_ids_leave_everything_untouched(service, repo):
    await _seed(service, 1)
    before = service.cache.get()
    repo.calls.clear()
    with pytest.raises(ValidationError):
        await service.replace_state([{"id": 2}, {"id": "2"}])
    assert repo.calls == []
    assert service.cache.get() is before


async def test_store_failure_is_fail_fast(service, repo, hub, make_connection):
    await _seed(service, 3)
    before = service.cache.get()
    ws = make_connection()
    await hub.subscribe(ws)
    repo.fail_on["upsert_item"] = {"2"}
    repo.calls.clear()

    with pytest.raises(StoreError) as info:
        await service.replace_state([{"id": 1}, {"id": 2}, {"id": 4}])

    assert info.value.details == {"deleted": [3], "applied": [1], "failed_id": 2}
    assert ("upsert", 4) not in repo.calls
    assert service.cache.get() is before
    assert ws.types() == ["init"]
    assert not service.store_online


async def test_failed_delete_reports_nothing_applied(service, repo):
    await _seed(service, 3)
    repo.fail_on["delete_items"] = True
    with pytest.raises(StoreError) as info:
        await service.replace_state([{"id": 1}])
    assert info.value.details == {"deleted": [], "applied": []}


async def test_store_timeout(service, repo):
    repo.delay["upsert_item"] = 2
    with pytest.raises(StoreError) as info:
        await service.replace_state([{"id": 1}])
    assert "timed out" in info.value.message
    assert service.cache.get().items == ()


async def test_wallet_failure_after_items_only_logged(service, repo, caplog):
    repo.fail_on["save_wallet"] = True
    with caplog.at_level(logging.WARNING, logger="menusync.catalog"):
        plan = await service.replace_state([{"id": 1}], wallet={"kisses": 4})
    assert plan.summary["inserted"] == [1]
    assert service.cache.get().wallet == {"kiss": 4}
    assert "1" in repo.rows
    assert "aux_store_failure" in caplog.messages


async def test_wallet_and_tasks_persisted_with_items(service, repo):
    await service.replace_state([], wallet={"kiss": 2}, tasks={"licks": 1})
    assert repo.wallet == ({"kiss": 2}, {"dishes": 1})
    assert service.cache.get().tasks == {"dishes": 1}


async def test_load_uses_defaults_without_stored_wallet(service):
    state = await service.load()
    assert state.items == ()
    assert state.wallet == {"kiss": 10, "scratches": 5, "massage": 2, "dishes": 1}
    assert state.tasks is None
    assert service.store_online


async def test_load_normalizes_stored_records(service, repo):
    repo.rows["5"] = (0, {"id": 5, "kissPrice": 1})
    repo.wallet = ({"kisses": 1}, {"licks": 2})
    state = await service.load()
    assert state.items[0]["prices"]["kiss"] == 1
    assert state.wallet == {"kiss": 1}
    assert state.tasks == {"dishes": 2}


async def test_load_survives_store_outage(service, repo):
    repo.fail_on["list_items"] = True
    state = await service.load()
    assert state.items == ()
    assert state.wallet["kiss"] == 10
    assert not service.store_online


async def test_reload_publishes_store_contents(service, repo, hub, make_connection):
    ws = make_connection()
    await hub.subscribe(ws)
    repo.rows["9"] = (0, {"id": 9, "name": "added elsewhere"})
    state = await service.reload()
    assert [item["id"] for item in state.items] == [9]
    assert ws.types() == ["init", "update"]


async def test_reload_failure_keeps_cache(service, repo, hub, make_connection):
    await _seed(service, 1)
    before = service.cache.get()
    ws = make_connection()
    await hub.subscribe(ws)
    repo.fail_on["list_items"] = True
    assert await service.reload() is None
    assert service.cache.get() is before
    assert ws.types() == ["init"]


async def test_check_store(service, repo):
    assert await service.check_store()
    repo.fail_on["ping"] = True
    assert not await service.check_store()
    assert not service.store_online


async def test_adjust_wallet_accepts_legacy_name(service, repo):
    await service.load()
    state = await service.adjust_wallet("kisses", -20)
    assert state.wallet["kiss"] == 0
    assert repo.wallet[0]["kiss"] == 0


async def test_adjust_wallet_rejects_unknown_currency(service):
    await service.load()
    with pytest.raises(ValidationError):
        await service.adjust_wallet("hugs", 1)


async def test_adjust_wallet_store_failure_keeps_cache(service, repo):
    await service.load()
    before = service.cache.get()
    repo.fail_on["save_wallet"] = True
    with pytest.raises(StoreError):
        await service.adjust_wallet("kiss", 1)
    assert service.cache.get() is before


async def test_complete_task_credits_currency(service):
    await service.load()
    state = await service.complete_task("massage")
    assert state.tasks == {"massage": 1}
    assert state.wallet["massage"] == 3


async def test_order_flow(service, repo):
    await service.load()
    await service.replace_state(
        [{"id": 1, "prices": {"kiss": 3}}, {"id": 2, "prices": {"massage": 1}}],
        wallet={"kiss": 5, "massage": 0},
    )
    with pytest.raises(ValidationError):
        await service.order("add", 99)
    await service.order("add", 1)
    state = await service.order("add", 2)
    assert state.selection == (1, 2)

    with pytest.raises(InsufficientFunds) as info:
        await service.order("checkout")
    assert info.value.details == {"currency": "massage", "needed": 1, "available": 0}
    assert service.cache.get().wallet == {"kiss": 5, "massage": 0}

    await service.order("remove", 2)
    state = await service.order("checkout")
    assert state.wallet == {"kiss": 2, "massage": 0}
    assert state.selection == ()
    assert repo.wallet[0] == {"kiss": 2, "massage": 0}


async def test_order_rejects_unknown_action(service):
    with pytest.raises(ValidationError):
        await service.order("refund")
    with pytest.raises(ValidationError):
        await service.order("add")


async def test_selection_pruned_on_replace(service):
    await _seed(service, 1, 2)
    await service.order("add", 2)
    await service.replace_state([{"id": 1}])
    assert service.cache.get().selection == ()


async def test_mutations_are_serialized(service, repo):
    repo.delay["upsert_item"] = 0.05
    await asyncio.gather(
        service.replace_state([{"id": 1}]),
        service.replace_state([{"id": 2}]),
    )
    upserts = [call for call in repo.calls if call[0] == "upsert"]
    assert upserts == [("upsert", 1), ("upsert", 2)]
    assert [item["id"] for item in service.cache.get().items] == [2]
    assert set(repo.rows) == {"2"}


async def test_changes_are_announced(repo, cache, hub, normalizer, fake_redis):
    service = CatalogService(
        repo,
        cache,
        hub,
        normalizer,
        redis_client=fake_redis,
        change_channel="catalog:changed",
        origin="proc-a",
    )
    pubsub = fake_redis.pubsub(ignore_subscribe_messages=True)
    await pubsub.subscribe("catalog:changed")
    await pubsub.get_message(timeout=0.1)

    await service.replace_state([{"id": 1}])

    message = None
    for _ in range(20):
        message = await pubsub.get_message(timeout=0.1)
        if message is not None:
            break
    await pubsub.aclose()
    assert message is not None
    assert json.loads(message["data"]) == {"origin": "proc-a"}


async def test_reload_keeps_wallet_when_wallet_read_fails(service, repo, hub, make_connection):
    await service.load()
    await service.adjust_wallet("kiss", 100)
    before = service.cache.get()
    ws = make_connection()
    await hub.subscribe(ws)
    repo.fail_on["load_wallet"] = True

    assert await service.reload() is None
    assert service.cache.get() is before
    assert ws.types() == ["init"]

    repo.fail_on.clear()
    await service.complete_task("massage")
    assert repo.wallet[0]["kiss"] == 110


async def test_load_tolerates_wallet_read_failure(service, repo):
    repo.rows["1"] = (0, {"id": 1})
    repo.fail_on["load_wallet"] = True
    state = await service.load()
    assert [item["id"] for item in state.items] == [1]
    assert state.wallet["kiss"] == 10


@pytest.mark.parametrize(
    "item",
    [
        {"id": 1, "prices": {"kiss": -50}},
        {"id": 1, "prices": {"kiss": "3"}},
        {"id": 1, "prices": 7},
        {"id": 1, "prices": {"gold": 1}},
        {"id": 1, "prices": {"kiss": True}},
        {"id": 1, "kissPrice": -1},
        {"id": 1, "kissPrice": "2"},
    ],
)
async def test_malformed_prices_rejected_before_store(service, repo, item):
    with pytest.raises(ValidationError):
        await service.replace_state([item])
    assert repo.calls == []
    assert service.cache.get().items == ()


async def test_fractional_and_legacy_prices_accepted(service):
    await service.replace_state(
        [{"id": 1, "prices": {"kisses": 1.5, "massage": 0}}, {"id": 2, "kissPrice": 3}]
    )
    items = service.cache.get().items
    assert items[0]["prices"] == {"kiss": 1.5, "massage": 0}
    assert items[1]["prices"]["kiss"] == 3


async def test_unknown_wallet_and_task_kinds_rejected(service, repo):
    with pytest.raises(ValidationError):
        await service.replace_state([], wallet={"gold": 3})
    with pytest.raises(ValidationError):
        await service.replace_state([], tasks={"gold": 1})
    assert repo.calls == []
