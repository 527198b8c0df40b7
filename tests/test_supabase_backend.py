"""
Unit tests for the Supabase backend.

The async client is replaced by mocks; these tests check the query shapes,
the refetch-on-change subscription and stale refetch discarding.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.exceptions import (
    DocumentNotFoundError,
    IdentityExchangeError,
    StoreConfigurationError,
    SubscriptionError,
)
from core.supabase_backend import (
    SupabaseBackend,
    SupabaseDocumentStore,
    SupabaseIdentityProvider,
    _split_path,
)

from helpers import settle


PATH = "tenants/studio-1/orders"


@pytest.fixture
def client():
    """Mock async Supabase client with chainable table queries."""
    client = MagicMock()
    query = client.table.return_value
    for method in ("select", "insert", "update", "delete", "eq"):
        getattr(query, method).return_value = query
    query.execute = AsyncMock(return_value=SimpleNamespace(data=[]))
    client.remove_channel = AsyncMock()

    channel = client.channel.return_value
    channel.subscribe = AsyncMock()
    return client


@pytest.fixture
def backend(client):
    backend = SupabaseBackend("https://studio.supabase.co", "anon-key")
    backend._client = client
    return backend


@pytest.fixture
def store(backend):
    return SupabaseDocumentStore(backend)


def _query(client):
    return client.table.return_value


class TestPaths:

    def test_split_path(self):
        assert _split_path(PATH) == ("studio-1", "orders")

    @pytest.mark.parametrize("path", ["orders", "tenants//orders", "artifacts/x/orders", "tenants/a/b/c"])
    def test_unsupported_path(self, path):
        with pytest.raises(ValueError):
            _split_path(path)


class TestBackend:

    def test_requires_credentials(self):
        with pytest.raises(StoreConfigurationError):
            SupabaseBackend("", "")

    def test_client_before_connect(self):
        backend = SupabaseBackend("https://studio.supabase.co", "anon-key")
        with pytest.raises(RuntimeError):
            backend.client


class TestWrites:
    """Test write query shapes."""

    def test_create_adds_tenant_column(self, store, client):
        _query(client).execute.return_value = SimpleNamespace(data=[{"id": 42}])

        document_id = asyncio.run(store.create(PATH, {"cliente": "A"}))

        assert document_id == "42"
        client.table.assert_called_with("orders")
        _query(client).insert.assert_called_once_with({"cliente": "A", "tenant_id": "studio-1"})

    def test_update_scoped_to_tenant(self, store, client):
        _query(client).execute.return_value = SimpleNamespace(data=[{"id": "o1"}])

        asyncio.run(store.update_fields(PATH, "o1", {"estado": "Listo"}))

        _query(client).update.assert_called_once_with({"estado": "Listo"})
        _query(client).eq.assert_any_call("id", "o1")
        _query(client).eq.assert_any_call("tenant_id", "studio-1")

    def test_update_no_rows_is_not_found(self, store, client):
        with pytest.raises(DocumentNotFoundError):
            asyncio.run(store.update_fields(PATH, "missing", {"estado": "Listo"}))

    def test_delete(self, store, client):
        asyncio.run(store.delete(PATH, "o1"))

        _query(client).delete.assert_called_once()
        _query(client).eq.assert_any_call("id", "o1")


class TestSubscriptions:
    """Test realtime-triggered refetch subscriptions."""

    def test_initial_fetch_strips_internal_columns(self, store, client):
        _query(client).execute.return_value = SimpleNamespace(
            data=[{"id": "o1", "tenant_id": "studio-1", "cliente": "A"}]
        )
        received = []

        async def scenario():
            await store.subscribe(PATH, received.append)
            await settle()

        asyncio.run(scenario())

        assert len(received) == 1
        assert received[0][0].id == "o1"
        assert received[0][0].data == {"cliente": "A"}
        client.channel.return_value.on_postgres_changes.assert_called_once()

    def test_change_triggers_refetch(self, store, client):
        received = []

        async def scenario():
            await store.subscribe(PATH, received.append)
            await settle()
            _query(client).execute.return_value = SimpleNamespace(data=[{"id": "o9", "cliente": "Z"}])
            on_change = client.channel.return_value.on_postgres_changes.call_args.kwargs["callback"]
            on_change({"eventType": "INSERT"})
            await settle()

        asyncio.run(scenario())

        assert [len(snapshot) for snapshot in received] == [0, 1]

    def test_superseded_refetch_discarded(self, store, client):
        """Test a slow older refetch never overwrites a newer snapshot."""
        received = []

        async def scenario():
            gate = asyncio.Event()
            calls = {"n": 0}

            async def execute():
                calls["n"] += 1
                if calls["n"] == 1:
                    await gate.wait()
                    return SimpleNamespace(data=[{"id": "old"}])
                return SimpleNamespace(data=[{"id": "new"}])

            _query(client).execute = AsyncMock(side_effect=execute)
            await store.subscribe(PATH, received.append)
            await settle()
            on_change = client.channel.return_value.on_postgres_changes.call_args.kwargs["callback"]
            on_change({"eventType": "UPDATE"})
            await settle()
            gate.set()
            await settle()

        asyncio.run(scenario())

        assert [[doc.id for doc in snapshot] for snapshot in received] == [["new"]]

    def test_channel_error_fails_subscription(self, store, client):
        errors = []

        async def scenario():
            await store.subscribe(PATH, lambda docs: None, errors.append)
            on_status = client.channel.return_value.subscribe.call_args.args[0]
            on_status("CHANNEL_ERROR", Exception("jwt expired"))

        asyncio.run(scenario())

        assert isinstance(errors[0], SubscriptionError)
        assert "jwt expired" in str(errors[0])

    def test_unsubscribe_removes_channel(self, store, client):
        async def scenario():
            subscription = await store.subscribe(PATH, lambda docs: None)
            await settle()
            subscription.unsubscribe()
            await settle()

        asyncio.run(scenario())

        client.remove_channel.assert_awaited_once_with(client.channel.return_value)

    def test_refetch_after_unsubscribe_is_skipped(self, store, client):
        """Test a refetch scheduled before unsubscribe neither queries nor leaves bookkeeping."""
        received = []

        async def scenario():
            subscription = await store.subscribe(PATH, received.append)
            subscription.unsubscribe()
            await settle()

        asyncio.run(scenario())

        _query(client).execute.assert_not_awaited()
        assert received == []
        assert store._latest_refresh == {}


class TestIdentityProvider:
    """Test Supabase Auth sign-in paths."""

    def test_anonymous(self, backend, client):
        client.auth.sign_in_anonymously = AsyncMock(
            return_value=SimpleNamespace(user=SimpleNamespace(id="user-1"))
        )
        provider = SupabaseIdentityProvider(backend)

        identity = asyncio.run(provider.sign_in_anonymously())

        assert identity.uid == "user-1"
        assert identity.is_anonymous is True

    def test_token_exchange_authorizes_queries(self, backend, client):
        client.auth.get_user = AsyncMock(return_value=SimpleNamespace(user=SimpleNamespace(id="user-2")))
        provider = SupabaseIdentityProvider(backend)

        identity = asyncio.run(provider.exchange_custom_token("jwt-token"))

        assert identity.uid == "user-2"
        assert identity.is_anonymous is False
        client.postgrest.auth.assert_called_once_with("jwt-token")

    def test_token_exchange_failure(self, backend, client):
        client.auth.get_user = AsyncMock(side_effect=Exception("invalid JWT"))
        provider = SupabaseIdentityProvider(backend)

        with pytest.raises(IdentityExchangeError):
            asyncio.run(provider.exchange_custom_token("bad"))

    def test_signed_out_event_clears_identity(self, backend, client):
        client.auth.sign_in_anonymously = AsyncMock(
            return_value=SimpleNamespace(user=SimpleNamespace(id="user-1"))
        )
        provider = SupabaseIdentityProvider(backend)
        asyncio.run(provider.sign_in_anonymously())

        provider._handle_auth_event("SIGNED_OUT", None)

        assert provider.current_identity is None
