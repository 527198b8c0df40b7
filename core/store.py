"""
Document store interface.

The remote document store is an external collaborator. This module pins
down the small surface the rest of the application relies on:

    subscribe(path, on_snapshot, on_error) -> Subscription
    create(path, fields)                   -> new document id
    update_fields(path, id, partial)       -> None (raises on failure)
    delete(path, id)                       -> None (raises on failure)

All store methods are coroutines and run on the application's event loop.
Collection paths look like ``tenants/{tenant_id}/{collection}``.

Concrete backends:
    - core.memory_backend.MemoryDocumentStore (in-process, local runs/tests)
    - core.supabase_backend.SupabaseDocumentStore (Supabase tables + Realtime)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from logging_config import get_logger


logger = get_logger(__name__)


def collection_path(tenant_id: str, collection: str) -> str:
    """Build the tenant-scoped path for one collection."""
    return f"tenants/{tenant_id}/{collection}"


@dataclass(frozen=True)
class StoredDocument:
    """One document as delivered by the store: its id plus raw fields."""

    id: str
    """Store-assigned id, stable and unique within the collection."""

    data: Dict[str, Any] = field(default_factory=dict)
    """Field values exactly as stored."""


SnapshotCallback = Callable[[Sequence[StoredDocument]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    """
    Handle for one live collection subscription.

    Backends push snapshots through ``deliver()`` and stream errors through
    ``fail()``. Once ``unsubscribe()`` has run, both become no-ops, so a
    notification that was already queued on the loop is dropped rather than
    reaching the consumer.

    ``unsubscribe()`` is synchronous and idempotent; backend cleanup that
    needs I/O is handed to ``on_cancel`` and scheduled by the backend.
    """

    def __init__(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        on_cancel: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.path = path
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._on_cancel = on_cancel
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    def deliver(self, documents: Sequence[StoredDocument]) -> bool:
        """Hand a full snapshot to the consumer. Returns False if cancelled."""
        if not self._active:
            return False
        self._on_snapshot(tuple(documents))
        return True

    def fail(self, error: Exception) -> bool:
        """Report a stream error to the consumer. Returns False if cancelled."""
        if not self._active:
            return False
        if self._on_error is not None:
            self._on_error(error)
        else:
            logger.error(f"Unhandled subscription error on {self.path}: {error}")
        return True

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._on_cancel is not None:
            self._on_cancel(self)


class DocumentStore(ABC):
    """Abstract remote document store."""

    async def connect(self) -> None:
        """Open connections. Called once by AppContext.open()."""

    async def close(self) -> None:
        """Release connections. Called once by AppContext.close()."""

    @abstractmethod
    async def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Start a live subscription to every document under ``path``.

        The first snapshot and all later ones arrive through ``on_snapshot``
        as full, unordered sequences of StoredDocument. Delivery continues
        until the returned Subscription is unsubscribed.
        """

    @abstractmethod
    async def create(self, path: str, fields: Mapping[str, Any]) -> str:
        """Create a document and return its store-assigned id."""

    @abstractmethod
    async def update_fields(self, path: str, document_id: str, fields: Mapping[str, Any]) -> None:
        """Partially update a document. Raises if it does not exist."""

    @abstractmethod
    async def delete(self, path: str, document_id: str) -> None:
        """Remove a document."""
