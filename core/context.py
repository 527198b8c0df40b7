"""
Application context: the shared store and identity handles.

One AppContext is built at startup from configuration and handed to every
component that needs the store or the identity provider. Nothing reaches
for module-level globals.

FAIL FAST BEHAVIOR:
    - STORE_CONNECTION_CONFIG missing: raises StoreConfigurationError
    - STORE_CONNECTION_CONFIG not a JSON object: raises StoreConfigurationError
    - Unknown backend: raises StoreConfigurationError

LIFECYCLE:
    - AppContext.from_config(config) builds backends (no I/O)
    - await context.open() connects them, exactly once, on the event loop
    - await context.close() releases them (idempotent)

Usage:
    context = AppContext.from_config(app.config)
    await context.open()
    path = context.collection_path("orders")   # tenants/<tenant>/orders
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from core.exceptions import StoreConfigurationError, UnknownCollectionError
from core.identity import IdentityProvider
from core.store import DocumentStore, collection_path
from logging_config import get_logger
from models.records import COLLECTIONS


logger = get_logger(__name__)

SUPPORTED_BACKENDS = ("memory", "supabase")


def parse_store_connection_config(raw: Any) -> Dict[str, Any]:
    """
    Parse the STORE_CONNECTION_CONFIG setting.

    Args:
        raw: JSON string, or an already-parsed dict

    Returns:
        Config dict with at least a "backend" key

    Raises:
        StoreConfigurationError: If missing, invalid JSON, or not an object
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise StoreConfigurationError("STORE_CONNECTION_CONFIG is not set")

    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreConfigurationError(f"STORE_CONNECTION_CONFIG is not valid JSON: {e}")
    else:
        parsed = raw

    if not isinstance(parsed, dict):
        raise StoreConfigurationError("STORE_CONNECTION_CONFIG must be a JSON object")

    backend = parsed.get("backend", "supabase")
    if backend not in SUPPORTED_BACKENDS:
        raise StoreConfigurationError(
            f"Unknown store backend {backend!r} (expected one of {', '.join(SUPPORTED_BACKENDS)})"
        )
    return {**parsed, "backend": backend}


class AppContext:
    """
    Explicitly constructed holder for store, identity provider and tenant.

    Attributes:
        store: DocumentStore for the three collections
        identity_provider: IdentityProvider used by the SessionManager
        tenant_id: Partition all collection paths are scoped under
        initial_auth_token: Pre-issued token, or None for anonymous sign-in
        is_open: True between open() and close()
    """

    def __init__(
        self,
        store: DocumentStore,
        identity_provider: IdentityProvider,
        tenant_id: str,
        initial_auth_token: Optional[str] = None,
    ):
        if not tenant_id:
            raise StoreConfigurationError("Tenant id must not be empty", setting="TENANT_ID")
        self._store = store
        self._identity_provider = identity_provider
        self._tenant_id = tenant_id
        self._initial_auth_token = initial_auth_token or None
        self._is_open = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "AppContext":
        """
        Build a context from Flask-style config.

        Reads STORE_CONNECTION_CONFIG, TENANT_ID and INITIAL_AUTH_TOKEN.

        Raises:
            StoreConfigurationError: If the store config is missing or invalid
        """
        connection = parse_store_connection_config(config.get("STORE_CONNECTION_CONFIG"))
        backend = connection["backend"]

        if backend == "memory":
            from core.memory_backend import MemoryDocumentStore, MemoryIdentityProvider

            store: DocumentStore = MemoryDocumentStore()
            identity_provider: IdentityProvider = MemoryIdentityProvider()
        else:
            from core.supabase_backend import (
                SupabaseBackend,
                SupabaseDocumentStore,
                SupabaseIdentityProvider,
            )

            supabase = SupabaseBackend(connection.get("url", ""), connection.get("key", ""))
            store = SupabaseDocumentStore(supabase)
            identity_provider = SupabaseIdentityProvider(supabase)

        logger.info(f"Store backend: {backend}")
        return cls(
            store=store,
            identity_provider=identity_provider,
            tenant_id=config.get("TENANT_ID") or "",
            initial_auth_token=config.get("INITIAL_AUTH_TOKEN"),
        )

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def identity_provider(self) -> IdentityProvider:
        return self._identity_provider

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    @property
    def initial_auth_token(self) -> Optional[str]:
        return self._initial_auth_token

    @property
    def is_open(self) -> bool:
        return self._is_open

    def collection_path(self, collection: str) -> str:
        """
        Tenant-scoped path for a collection.

        Raises:
            UnknownCollectionError: If collection is not orders/expenses/inventory
        """
        if collection not in COLLECTIONS:
            raise UnknownCollectionError(collection)
        return collection_path(self._tenant_id, collection)

    async def open(self) -> None:
        """
        Connect store and identity provider.

        Raises:
            RuntimeError: If called when already open
        """
        if self._is_open:
            raise RuntimeError("AppContext already opened")

        await self._store.connect()
        await self._identity_provider.connect()
        self._is_open = True
        logger.info(f"AppContext opened for tenant {self._tenant_id}")

    async def close(self) -> None:
        """Release connections. Safe to call multiple times."""
        if not self._is_open:
            return
        self._is_open = False
        try:
            await self._identity_provider.close()
        finally:
            await self._store.close()
        logger.info("AppContext closed")
