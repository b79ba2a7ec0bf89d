import asyncio
import logging

import pytest

from easysign.client.errors import TransientError
from easysign.client.field_sync import FieldSyncEngine
from easysign.client.types import PlacedSignature

from fake_api import FakeApi, last_payload, settle


def make_field(field_id="field-1", **extra):
    values = dict(id=field_id, email="alice@example.com", x=50, y=50, width=100, height=40, page=1)
    values.update(extra)
    return PlacedSignature(**values)


def test_generate_field_id_is_unique():
    ids = {FieldSyncEngine.generate_field_id() for _ in range(200)}
    assert len(ids) == 200
    assert all(i.startswith("field-") for i in ids)


def test_update_during_pending_create_replays_after_create():
    async def scenario():
        api = FakeApi()
        gate = api.gate("create_field")
        engine = FieldSyncEngine(api, "doc-1", debounce=0.01)
        field = make_field()

        create = asyncio.create_task(engine.create_field(field, "signer-1"))
        await settle()
        assert engine.is_pending(field.id)
        assert engine.pending_count == 1

        engine.update_field(field.model_copy(update={"x": 110}))
        engine.update_field(field.model_copy(update={"x": 120}))
        await settle()
        assert api.names() == ["create_field"]
        assert len(engine.operation_queue) == 2

        gate.set()
        server_id = await create
        await engine.flush()

        assert engine.synced_fields == {field.id: server_id}
        assert engine.operation_queue == []
        updates = api.calls_for("update_field")
        assert len(updates) == 1
        assert updates[0][1] == server_id
        assert updates[0][2]["x_position"] == 120

    asyncio.run(scenario())


def test_rapid_updates_collapse_into_one_request():
    async def scenario():
        api = FakeApi()
        engine = FieldSyncEngine(api, "doc-1", debounce=0.05)
        engine.synced_fields["srv-1"] = "srv-1"
        field = make_field("srv-1")

        for step in range(5):
            engine.update_field(field.model_copy(update={"x": 60 + step, "width": 120 + step}))
            await asyncio.sleep(0.005)
        assert api.calls_for("update_field") == []

        await asyncio.sleep(0.15)
        updates = api.calls_for("update_field")
        assert len(updates) == 1
        assert updates[0][2]["x_position"] == 64
        assert updates[0][2]["width"] == 124

    asyncio.run(scenario())


def test_unmapped_field_updates_under_its_own_id():
    async def scenario():
        api = FakeApi()
        engine = FieldSyncEngine(api, "doc-1", debounce=0.01)
        engine.update_field(make_field("srv-9"), immediate=True)
        await engine.flush()
        assert api.calls_for("update_field")[0][1] == "srv-9"

    asyncio.run(scenario())


def test_create_failure_clears_pending_and_queue():
    async def scenario():
        api = FakeApi()
        gate = api.gate("create_field")
        api.failures["create_field"] = TransientError("boom", 503)
        engine = FieldSyncEngine(api, "doc-1")
        field = make_field()

        create = asyncio.create_task(engine.create_field(field, "signer-1"))
        await settle()
        engine.update_field(field.model_copy(update={"x": 80}))
        gate.set()
        with pytest.raises(TransientError):
            await create

        assert engine.pending_count == 0
        assert engine.synced_count == 0
        assert engine.operation_queue == []

    asyncio.run(scenario())


def test_delete_during_pending_create_sends_no_delete(caplog):
    async def scenario():
        api = FakeApi()
        gate = api.gate("create_field")
        engine = FieldSyncEngine(api, "doc-1")
        field = make_field()

        create = asyncio.create_task(engine.create_field(field, "signer-1"))
        await settle()
        engine.update_field(field.model_copy(update={"x": 90}))
        await engine.delete_field(field.id)
        assert not engine.is_pending(field.id)

        gate.set()
        assert await create is None
        await engine.flush()

        assert "delete_field" not in api.names()
        assert "update_field" not in api.names()
        assert field.id not in engine.synced_fields

    with caplog.at_level(logging.WARNING, logger="easysign.client.field_sync"):
        asyncio.run(scenario())
    assert "deleted while being created" in caplog.text


def test_delete_synced_field_removes_mapping():
    async def scenario():
        api = FakeApi()
        engine = FieldSyncEngine(api, "doc-1", debounce=0.05)
        field = make_field()
        server_id = await engine.create_field(field, "signer-1")

        engine.update_field(field.model_copy(update={"x": 75}))
        await engine.delete_field(field.id)
        await asyncio.sleep(0.1)

        assert api.calls_for("delete_field") == [("doc-1", server_id)]
        assert api.calls_for("update_field") == []
        assert engine.synced_count == 0

    asyncio.run(scenario())


def test_identical_update_in_flight_is_skipped():
    async def scenario():
        api = FakeApi()
        gate = api.gate("update_field")
        engine = FieldSyncEngine(api, "doc-1")
        engine.synced_fields["srv-1"] = "srv-1"
        field = make_field("srv-1", x=200)

        engine.update_field(field, immediate=True)
        await settle()
        engine.update_field(field, immediate=True)
        await settle()

        gate.set()
        await engine.flush()
        assert len(api.calls_for("update_field")) == 1

    asyncio.run(scenario())


def test_newer_update_waits_for_in_flight_request():
    async def scenario():
        api = FakeApi()
        gate = api.gate("update_field")
        engine = FieldSyncEngine(api, "doc-1")
        engine.synced_fields["srv-1"] = "srv-1"
        field = make_field("srv-1")

        engine.update_field(field.model_copy(update={"x": 200}), immediate=True)
        await settle()
        engine.update_field(field.model_copy(update={"x": 210}), immediate=True)
        await settle()
        engine.update_field(field.model_copy(update={"x": 220}), immediate=True)
        await settle()
        assert len(api.calls_for("update_field")) == 1

        gate.set()
        await engine.flush()
        xs = [call[2]["x_position"] for call in api.calls_for("update_field")]
        assert xs == [200, 220]

    asyncio.run(scenario())


def test_update_failure_is_logged_not_raised(caplog):
    async def scenario():
        api = FakeApi()
        api.failures["update_field"] = TransientError("down", 502)
        engine = FieldSyncEngine(api, "doc-1")
        engine.synced_fields["srv-1"] = "srv-1"
        engine.update_field(make_field("srv-1"), immediate=True)
        await engine.flush()

        engine.update_field(make_field("srv-1", x=99), immediate=True)
        await engine.flush()
        assert last_payload(api, "update_field")["x_position"] == 99

    with caplog.at_level(logging.WARNING, logger="easysign.client.field_sync"):
        asyncio.run(scenario())
    assert "failed to update field srv-1" in caplog.text


def test_load_fields_seeds_identity_mappings():
    async def scenario():
        api = FakeApi()
        signer = api.seed_signer("alice@example.com", "Alice")
        first = api.seed_field(signer)
        second = api.seed_field(signer, page=2)
        engine = FieldSyncEngine(api, "doc-1")

        records = await engine.load_fields()
        assert [r["id"] for r in records] == [first["id"], second["id"]]
        assert engine.synced_fields == {first["id"]: first["id"], second["id"]: second["id"]}
        assert engine.resolve_id(first["id"]) == first["id"]

    asyncio.run(scenario())


def test_aclose_cancels_scheduled_updates():
    async def scenario():
        api = FakeApi()
        engine = FieldSyncEngine(api, "doc-1", debounce=0.05)
        engine.synced_fields["srv-1"] = "srv-1"
        engine.update_field(make_field("srv-1"))
        await engine.aclose()
        await asyncio.sleep(0.1)
        assert api.calls_for("update_field") == []

    asyncio.run(scenario())


def test_cancelled_create_is_no_longer_pending():
    async def scenario():
        api = FakeApi()
        api.gate("create_field")
        engine = FieldSyncEngine(api, "doc-1", debounce=0.01)
        field = make_field()

        create = asyncio.create_task(engine.create_field(field, "signer-1"))
        await settle()
        engine.update_field(field.model_copy(update={"x": 110}))
        assert engine.pending_count == 1

        create.cancel()
        with pytest.raises(asyncio.CancelledError):
            await create
        assert engine.pending_count == 0
        assert engine.operation_queue == []
        assert not engine.is_tracked(field.id)

    asyncio.run(scenario())
