"""
Unit tests for the CollectionSynchronizer.

Snapshot replacement, teardown, error retention and following the session.
"""

import asyncio

import pytest

from core.context import AppContext
from core.exceptions import SubscriptionError, UnknownCollectionError
from core.memory_backend import MemoryDocumentStore
from core.store import DocumentStore, Subscription
from models.records import Order
from services.collection_sync import CollectionSynchronizer
from services.session_manager import SessionManager

from helpers import settle


ORDERS_PATH = "tenants/test-tenant/orders"


@pytest.fixture
def seeded_store():
    """Store with two orders already in the tenant partition."""
    return MemoryDocumentStore(seed={
        ORDERS_PATH: {
            "o1": {"cliente": "A", "total": 100, "adelanto": 10, "estado": "Pendiente"},
            "o2": {"cliente": "B", "total": 200, "adelanto": 200, "estado": "Entregado"},
        }
    })


@pytest.fixture
def seeded_context(seeded_store, identity_provider):
    return AppContext(seeded_store, identity_provider, "test-tenant")


class GatedStore(DocumentStore):
    """Store whose subscribe() waits until the test opens the gate."""

    def __init__(self):
        self.gate = None
        self.subscriptions = []

    async def subscribe(self, path, on_snapshot, on_error=None):
        self.gate = asyncio.Event()
        await self.gate.wait()
        subscription = Subscription(path, on_snapshot, on_error)
        self.subscriptions.append(subscription)
        return subscription

    async def create(self, path, fields):
        raise NotImplementedError

    async def update_fields(self, path, document_id, fields):
        raise NotImplementedError

    async def delete(self, path, document_id):
        raise NotImplementedError


class TestConstruction:

    def test_path_is_tenant_scoped(self, context):
        sync = CollectionSynchronizer(context, "orders")
        assert sync.path == ORDERS_PATH
        assert sync.snapshot == ()
        assert sync.is_attached is False

    def test_unknown_collection(self, context):
        with pytest.raises(UnknownCollectionError):
            CollectionSynchronizer(context, "clients")


class TestSnapshots:
    """Test snapshot delivery and replacement."""

    def test_initial_snapshot(self, seeded_context):
        """Test attaching delivers the current documents as typed records."""
        sync = CollectionSynchronizer(seeded_context, "orders")

        async def scenario():
            assert await sync.attach() is True
            await settle()

        asyncio.run(scenario())

        assert isinstance(sync.snapshot, tuple)
        assert {o.id for o in sync.snapshot} == {"o1", "o2"}
        assert all(isinstance(o, Order) for o in sync.snapshot)
        assert sync.received_at is not None

    def test_each_notification_replaces_snapshot(self, seeded_context, seeded_store):
        """Test a write produces a new snapshot and exactly one event."""
        sync = CollectionSynchronizer(seeded_context, "orders")
        events = []
        sync.subscribe(events.append)

        async def scenario():
            await sync.attach()
            await settle()
            first = sync.snapshot
            await seeded_store.create(ORDERS_PATH, {"cliente": "C", "total": 50})
            await settle()
            return first

        first = asyncio.run(scenario())

        assert len(events) == 2
        assert len(first) == 2
        assert len(sync.snapshot) == 3
        assert sync.snapshot is not first
        assert events[-1] is sync.snapshot

    def test_delete_shrinks_snapshot(self, seeded_context, seeded_store):
        sync = CollectionSynchronizer(seeded_context, "orders")

        async def scenario():
            await sync.attach()
            await settle()
            await seeded_store.delete(ORDERS_PATH, "o1")
            await settle()

        asyncio.run(scenario())

        assert [o.id for o in sync.snapshot] == ["o2"]

    def test_attach_twice_is_noop(self, seeded_context, seeded_store):
        """Test a second attach keeps the single subscription."""
        sync = CollectionSynchronizer(seeded_context, "orders")

        async def scenario():
            first = await sync.attach()
            second = await sync.attach()
            return first, second

        assert asyncio.run(scenario()) == (True, False)
        assert seeded_store.subscription_count(ORDERS_PATH) == 1


class TestTeardown:
    """Test detach stops every later notification."""

    def test_queued_notification_dropped_after_detach(self, seeded_context, seeded_store):
        """Test a notification already queued is not reflected after detach."""
        sync = CollectionSynchronizer(seeded_context, "orders")
        events = []
        sync.subscribe(events.append)

        async def scenario():
            await sync.attach()
            await settle()
            await seeded_store.create(ORDERS_PATH, {"cliente": "late"})
            sync.detach()
            await settle()

        asyncio.run(scenario())

        assert len(events) == 1
        assert len(sync.snapshot) == 2
        assert sync.is_attached is False
        assert seeded_store.subscription_count(ORDERS_PATH) == 0

    def test_detach_twice(self, seeded_context):
        sync = CollectionSynchronizer(seeded_context, "orders")

        async def scenario():
            await sync.attach()
            sync.detach()
            sync.detach()

        asyncio.run(scenario())
        assert sync.is_attached is False

    def test_detach_while_attaching(self, identity_provider):
        """Test a subscription that resolves after detach is torn down at once."""
        store = GatedStore()
        sync = CollectionSynchronizer(AppContext(store, identity_provider, "test-tenant"), "orders")

        async def scenario():
            task = asyncio.get_running_loop().create_task(sync.attach())
            await settle()
            sync.detach()
            store.gate.set()
            return await task

        assert asyncio.run(scenario()) is False
        assert sync.is_attached is False
        assert store.subscriptions[0].is_active is False


class TestErrors:
    """Test subscription failures keep the last good snapshot."""

    def test_stream_error_keeps_snapshot(self, seeded_context, seeded_store):
        sync = CollectionSynchronizer(seeded_context, "orders")
        errors = []
        sync.subscribe(lambda records: None, errors.append)

        async def scenario():
            await sync.attach()
            await settle()
            seeded_store.emit_error(ORDERS_PATH, SubscriptionError(ORDERS_PATH, "permission denied"))
            await settle()

        asyncio.run(scenario())

        assert len(sync.snapshot) == 2
        assert sync.is_stale is True
        assert isinstance(errors[0], SubscriptionError)

    def test_next_snapshot_clears_stale(self, seeded_context, seeded_store):
        sync = CollectionSynchronizer(seeded_context, "orders")

        async def scenario():
            await sync.attach()
            await settle()
            seeded_store.emit_error(ORDERS_PATH, SubscriptionError(ORDERS_PATH, "blip"))
            await settle()
            await seeded_store.create(ORDERS_PATH, {"cliente": "C"})
            await settle()

        asyncio.run(scenario())

        assert sync.is_stale is False
        assert len(sync.snapshot) == 3

    def test_subscribe_failure(self, seeded_context, seeded_store):
        """Test a refused subscription is recorded and not retried."""
        seeded_store.fail_next("subscribe", ConnectionError("refused"))
        sync = CollectionSynchronizer(seeded_context, "orders")

        attached = asyncio.run(sync.attach())

        assert attached is False
        assert sync.is_attached is False
        assert isinstance(sync.last_error, ConnectionError)


class TestSessionBinding:
    """Test attach/detach following the session."""

    def test_attaches_when_session_ready(self, seeded_context, seeded_store):
        session = SessionManager(seeded_context)
        sync = CollectionSynchronizer(seeded_context, "orders")

        async def scenario():
            sync.bind_session(session)
            await settle()
            attached_before = sync.is_attached
            await session.start()
            await settle()
            return attached_before

        assert asyncio.run(scenario()) is False
        assert sync.is_attached is True
        assert len(sync.snapshot) == 2

    def test_detaches_when_session_lost(self, seeded_context, seeded_store, identity_provider):
        session = SessionManager(seeded_context)
        sync = CollectionSynchronizer(seeded_context, "orders")

        async def scenario():
            sync.bind_session(session)
            await session.start()
            await settle()
            identity_provider.sign_out()
            await settle()

        asyncio.run(scenario())

        assert sync.is_attached is False
        assert seeded_store.subscription_count(ORDERS_PATH) == 0

    def test_new_identity_gets_new_subscription(self, seeded_context, seeded_store, identity_provider):
        """Test switching user never keeps the old subscription."""
        session = SessionManager(seeded_context)
        sync = CollectionSynchronizer(seeded_context, "orders")

        async def scenario():
            sync.bind_session(session)
            await session.start()
            await settle()
            first = sync._subscription
            await identity_provider.sign_in_anonymously()
            await settle()
            return first

        first = asyncio.run(scenario())

        assert first.is_active is False
        assert sync.is_attached is True
        assert seeded_store.subscription_count(ORDERS_PATH) == 1
