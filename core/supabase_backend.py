"""
Supabase-backed document store and identity provider.

Selected with {"backend": "supabase", "url": ..., "key": ...}.

Table layout (one table per collection, in the public schema):

    orders     (id uuid pk default gen_random_uuid(), tenant_id text, cliente text,
                descripcion text, total numeric, adelanto numeric, estado text,
                "fechaEntrega" text, "createdAt" text)
    expenses   (id, tenant_id, concepto text, monto numeric, fecha text, "createdAt" text)
    inventory  (id, tenant_id, item text, stock int, minimo int, "createdAt" text)

Realtime must be enabled for the three tables. A change event is only used
as a trigger: the subscription refetches the whole tenant partition and
delivers it as one snapshot. Refetches that finish after a newer one
started are discarded, so snapshots never go backwards.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from core.exceptions import (
    DocumentNotFoundError,
    IdentityExchangeError,
    StoreConfigurationError,
    SubscriptionError,
)
from core.identity import Identity, IdentityProvider
from core.store import (
    DocumentStore,
    ErrorCallback,
    SnapshotCallback,
    StoredDocument,
    Subscription,
)
from logging_config import get_logger


logger = get_logger(__name__)

TENANT_COLUMN = "tenant_id"
CHANNEL_FAILURE_STATES = {"CHANNEL_ERROR", "TIMED_OUT"}


def _split_path(path: str) -> Tuple[str, str]:
    """tenants/{tenant}/{collection} -> (tenant, table)."""
    parts = path.split("/")
    if len(parts) != 3 or parts[0] != "tenants" or not parts[1] or not parts[2]:
        raise ValueError(f"Unsupported collection path: {path}")
    return parts[1], parts[2]


def _row_to_document(row: Dict[str, Any]) -> StoredDocument:
    data = dict(row)
    document_id = str(data.pop("id"))
    data.pop(TENANT_COLUMN, None)
    return StoredDocument(id=document_id, data=data)


class SupabaseBackend:
    """Owns the single async Supabase client shared by store and auth."""

    def __init__(self, url: str, key: str):
        if not url or not key or "YOUR_PROJECT" in url:
            raise StoreConfigurationError("Supabase backend requires 'url' and 'key'")
        self.url = url
        self.key = key
        self._client = None
        self._connect_lock: Optional[asyncio.Lock] = None

    @property
    def client(self):
        if self._client is None:
            raise RuntimeError("Supabase client not connected - call connect() first")
        return self._client

    async def connect(self) -> None:
        if self._connect_lock is None:
            self._connect_lock = asyncio.Lock()
        async with self._connect_lock:
            if self._client is not None:
                return
            from supabase import acreate_client

            self._client = await acreate_client(self.url, self.key)
            logger.info(f"Connected to Supabase at {self.url}")

    async def close(self) -> None:
        self._client = None


class SupabaseDocumentStore(DocumentStore):
    """DocumentStore over Supabase tables with Realtime change triggers."""

    def __init__(self, backend: SupabaseBackend):
        self._backend = backend
        self._channels: Dict[int, Any] = {}
        self._latest_refresh: Dict[int, int] = {}
        self._tasks: Set[asyncio.Task] = set()

    async def connect(self) -> None:
        await self._backend.connect()

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self._backend.close()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _fetch_all(self, path: str) -> List[StoredDocument]:
        tenant_id, table = _split_path(path)
        response = await (
            self._backend.client.table(table)
            .select("*")
            .eq(TENANT_COLUMN, tenant_id)
            .execute()
        )
        return [_row_to_document(row) for row in response.data]

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        tenant_id, table = _split_path(path)
        loop = asyncio.get_running_loop()
        subscription = Subscription(path, on_snapshot, on_error, on_cancel=self._cancel)
        key = id(subscription)
        self._latest_refresh[key] = 0

        def handle_change(_payload: Any) -> None:
            self._spawn(loop, self._refresh(subscription))

        def handle_status(status: Any, error: Optional[Exception] = None) -> None:
            state = str(getattr(status, "value", status))
            if state in CHANNEL_FAILURE_STATES:
                reason = str(error) if error else state
                subscription.fail(SubscriptionError(path, reason))

        channel = self._backend.client.channel(f"{tenant_id}:{table}:{key}")
        channel.on_postgres_changes(
            "*",
            callback=handle_change,
            table=table,
            schema="public",
            filter=f"{TENANT_COLUMN}=eq.{tenant_id}",
        )
        await channel.subscribe(handle_status)
        self._channels[key] = channel

        # Initial snapshot
        self._spawn(loop, self._refresh(subscription))
        return subscription

    async def _refresh(self, subscription: Subscription) -> None:
        if not subscription.is_active:
            return
        key = id(subscription)
        sequence = self._latest_refresh.get(key, 0) + 1
        self._latest_refresh[key] = sequence
        try:
            documents = await self._fetch_all(subscription.path)
        except Exception as e:
            subscription.fail(SubscriptionError(subscription.path, str(e)))
            return
        if self._latest_refresh.get(key) != sequence:
            logger.debug(f"Discarding superseded snapshot for {subscription.path}")
            return
        subscription.deliver(documents)

    def _cancel(self, subscription: Subscription) -> None:
        key = id(subscription)
        self._latest_refresh.pop(key, None)
        channel = self._channels.pop(key, None)
        if channel is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running loop to remove channel for {subscription.path}")
            return
        self._spawn(loop, self._backend.client.remove_channel(channel))

    def _spawn(self, loop: asyncio.AbstractEventLoop, coro) -> None:
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create(self, path: str, fields: Mapping[str, Any]) -> str:
        tenant_id, table = _split_path(path)
        row = dict(fields)
        row[TENANT_COLUMN] = tenant_id
        response = await self._backend.client.table(table).insert(row).execute()
        return str(response.data[0]["id"])

    async def update_fields(self, path: str, document_id: str, fields: Mapping[str, Any]) -> None:
        tenant_id, table = _split_path(path)
        response = await (
            self._backend.client.table(table)
            .update(dict(fields))
            .eq("id", document_id)
            .eq(TENANT_COLUMN, tenant_id)
            .execute()
        )
        if not response.data:
            raise DocumentNotFoundError(path, document_id, operation="update")

    async def delete(self, path: str, document_id: str) -> None:
        tenant_id, table = _split_path(path)
        await (
            self._backend.client.table(table)
            .delete()
            .eq("id", document_id)
            .eq(TENANT_COLUMN, tenant_id)
            .execute()
        )


class SupabaseIdentityProvider(IdentityProvider):
    """
    Supabase Auth (GoTrue) identity provider.

    A pre-issued token is an access token (JWT) for an existing user: it is
    validated with get_user() and then attached to table requests.
    """

    def __init__(self, backend: SupabaseBackend):
        super().__init__()
        self._backend = backend
        self._auth_subscription = None

    async def connect(self) -> None:
        await self._backend.connect()
        self._auth_subscription = self._backend.client.auth.on_auth_state_change(
            self._handle_auth_event
        )

    async def close(self) -> None:
        if self._auth_subscription is not None:
            self._auth_subscription.unsubscribe()
            self._auth_subscription = None

    def _handle_auth_event(self, event: Any, session: Any) -> None:
        name = str(getattr(event, "value", event))
        if name == "SIGNED_OUT":
            logger.info("Supabase reported sign-out")
            self._set_identity(None)

    async def exchange_custom_token(self, token: str) -> Identity:
        client = self._backend.client
        try:
            response = await client.auth.get_user(token)
        except Exception as e:
            raise IdentityExchangeError("custom_token", str(e))
        if response is None or response.user is None:
            raise IdentityExchangeError("custom_token", "token did not resolve to a user")
        client.postgrest.auth(token)
        identity = Identity(uid=str(response.user.id), is_anonymous=False)
        self._set_identity(identity)
        return identity

    async def sign_in_anonymously(self) -> Identity:
        try:
            response = await self._backend.client.auth.sign_in_anonymously()
        except Exception as e:
            raise IdentityExchangeError("anonymous", str(e))
        if response.user is None:
            raise IdentityExchangeError("anonymous", "no user in response")
        identity = Identity(uid=str(response.user.id), is_anonymous=True)
        self._set_identity(identity)
        return identity
