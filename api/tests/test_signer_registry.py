import asyncio

import pytest

from easysign.client.errors import SignerUnavailableError, StateConflictError, ValidationFailedError
from easysign.client.signer_registry import SignerRegistry
from easysign.client.types import Recipient

from fake_api import FakeApi, settle


def alice():
    return Recipient(id="recipient-1", email="alice@example.com", name="Alice")


def test_ensure_signer_then_lookup_by_email():
    async def scenario():
        api = FakeApi()
        registry = SignerRegistry(api, "doc-1")
        signer_id = await registry.ensure_signer(alice())

        assert signer_id is not None
        assert registry.get_signer_id_by_email("alice@example.com") == signer_id
        assert registry.get_signer_id_by_email("ALICE@example.com ") == signer_id
        assert registry.get_signer_id_by_email("bob@example.com") is None
        assert await registry.ensure_signer(alice()) == signer_id
        assert api.names() == ["create_signer"]

    asyncio.run(scenario())


def test_concurrent_ensure_creates_once():
    async def scenario():
        api = FakeApi()
        gate = api.gate("create_signer")
        registry = SignerRegistry(api, "doc-1")

        first = asyncio.create_task(registry.ensure_signer(alice()))
        second = asyncio.create_task(registry.ensure_signer(alice()))
        await settle()
        assert registry.get("recipient-1").is_creating is True

        gate.set()
        first_id, second_id = await asyncio.gather(first, second)
        assert first_id == second_id
        assert first_id is not None
        assert len(api.calls_for("create_signer")) == 1
        assert registry.get("recipient-1").is_creating is False

    asyncio.run(scenario())


def test_waiting_for_signer_times_out():
    async def scenario():
        api = FakeApi()
        gate = api.gate("create_signer")
        registry = SignerRegistry(api, "doc-1", wait_timeout=0.05)

        first = asyncio.create_task(registry.ensure_signer(alice()))
        await settle()
        assert await registry.ensure_signer(alice()) is None

        gate.set()
        assert await first is not None

    asyncio.run(scenario())


def test_failed_create_stores_error_and_retries_on_request():
    async def scenario():
        api = FakeApi()
        api.failures["create_signer"] = ValidationFailedError("Invalid email format", 400)
        registry = SignerRegistry(api, "doc-1")

        assert await registry.ensure_signer(alice()) is None
        info = registry.get("recipient-1")
        assert info.error == "Invalid email format"
        assert info.is_creating is False
        assert info.signer_id is None

        signer_id = await registry.ensure_signer(alice())
        assert signer_id is not None
        assert registry.get("recipient-1").error is None
        assert len(api.calls_for("create_signer")) == 2

    asyncio.run(scenario())


def test_create_signer_propagates_errors():
    async def scenario():
        api = FakeApi()
        api.failures["create_signer"] = StateConflictError("Cannot add signers to finalized documents", 400)
        registry = SignerRegistry(api, "doc-1")
        with pytest.raises(StateConflictError):
            await registry.create_signer(alice())

    asyncio.run(scenario())


def test_sync_recipients_reports_counts():
    async def scenario():
        api = FakeApi()
        api.failures["create_signer"] = ValidationFailedError("bad", 400)
        registry = SignerRegistry(api, "doc-1")
        recipients = [
            Recipient(id=f"r-{i}", email=f"user{i}@example.com", name=f"User {i}") for i in range(3)
        ]
        summary = await registry.sync_recipients(recipients)
        assert summary.total == 3
        assert summary.successful == 2
        assert summary.failed == 1

    asyncio.run(scenario())


def test_load_keys_persisted_signers_by_id():
    async def scenario():
        api = FakeApi()
        seeded = api.seed_signer("bob@example.com", "Bob")
        registry = SignerRegistry(api, "doc-1")
        await registry.load()
        await registry.load()

        assert [s.signer_id for s in registry.signers] == [seeded["id"]]
        assert registry.get(seeded["id"]).email == "bob@example.com"
        assert registry.get_signer_id_by_email("bob@example.com") == seeded["id"]

    asyncio.run(scenario())


def test_delete_signer():
    async def scenario():
        api = FakeApi()
        registry = SignerRegistry(api, "doc-1")

        await registry.delete_signer("never-created")
        assert api.calls == []

        signer_id = await registry.ensure_signer(alice())
        await registry.delete_signer("recipient-1")
        assert api.calls_for("delete_signer") == [("doc-1", signer_id)]
        assert registry.get("recipient-1") is None

    asyncio.run(scenario())


def test_update_signer_requires_persisted_signer():
    async def scenario():
        api = FakeApi()
        registry = SignerRegistry(api, "doc-1")
        with pytest.raises(SignerUnavailableError):
            await registry.update_signer("recipient-1", name="Alice B")

        await registry.ensure_signer(alice())
        info = await registry.update_signer("recipient-1", name="Alice B")
        assert info.name == "Alice B"
        assert registry.get("recipient-1").name == "Alice B"

    asyncio.run(scenario())
