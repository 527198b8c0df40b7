"""
Collection synchronizer: one live snapshot per remote collection.

Each instance subscribes to every document of
``tenants/{tenant_id}/{collection}`` and keeps the latest snapshot as an
immutable tuple of typed records.

Snapshot semantics:
    - Every store notification REPLACES the snapshot wholesale (no merge,
      no diff). The tuple is swapped in one assignment.
    - Record order is whatever the store delivered. No ordering is implied.
    - Each replacement is one event delivered to all current listeners.

Lifecycle:
    - bind_session(): attach when an identity appears, detach when it goes
    - detach() is synchronous: once it returns no notification is reflected
      in the snapshot, even one already queued on the loop
    - At most one live subscription per synchronizer

Failure semantics:
    - Subscription errors are logged, never retried
    - The last known-good snapshot is kept (``is_stale`` becomes True)

Runs on the event-loop thread only.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Generic, List, Mapping, Optional, Sequence, Tuple, TypeVar

from core.context import AppContext
from core.identity import Identity
from core.store import StoredDocument, Subscription
from logging_config import get_logger
from models.records import RECORD_TYPES
from services.session_manager import SessionManager


# Module logger
logger = get_logger(__name__)

RecordT = TypeVar("RecordT")
RecordFactory = Callable[[str, Mapping[str, Any]], Any]
SnapshotListener = Callable[[Tuple[Any, ...]], None]
ErrorListener = Callable[[Exception], None]


class CollectionSynchronizer(Generic[RecordT]):
    """
    Maintains the local snapshot of one collection.

    Attributes:
        collection: Collection name (orders, expenses, inventory)
        path: Tenant-scoped store path
        snapshot: Latest tuple of records (empty until the first notification)
        is_attached: Whether a live subscription is held
        is_stale: True after a subscription error, until the next snapshot
    """

    def __init__(
        self,
        context: AppContext,
        collection: str,
        record_factory: Optional[RecordFactory] = None
    ):
        """
        Args:
            context: Opened AppContext
            collection: Collection name

        Raises:
            UnknownCollectionError: If collection is not synchronized
        """
        self._context = context
        self._collection = collection
        self._path = context.collection_path(collection)
        self._record_factory = record_factory or RECORD_TYPES[collection].from_document

        self._snapshot: Tuple[RecordT, ...] = ()
        self._received_at: Optional[datetime] = None
        self._last_error: Optional[Exception] = None

        self._subscription: Optional[Subscription] = None
        self._attaching = False
        # Bumped by detach(); an attach that resolves under an old value is undone
        self._generation = 0

        self._listeners: List[Tuple[SnapshotListener, Optional[ErrorListener]]] = []
        self._bound_identity: Optional[Identity] = None
        self._wants_attach = False
        self._attach_task: Optional[asyncio.Task] = None

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def path(self) -> str:
        return self._path

    @property
    def snapshot(self) -> Tuple[RecordT, ...]:
        return self._snapshot

    @property
    def received_at(self) -> Optional[datetime]:
        """When the current snapshot arrived (None before the first one)."""
        return self._received_at

    @property
    def is_attached(self) -> bool:
        return self._subscription is not None

    @property
    def is_stale(self) -> bool:
        return self._last_error is not None

    @property
    def last_error(self) -> Optional[Exception]:
        return self._last_error

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        listener: SnapshotListener,
        on_error: Optional[ErrorListener] = None
    ) -> Callable[[], None]:
        """
        Register for snapshot replacements.

        Args:
            listener: Called with the new snapshot tuple on every replacement
            on_error: Called with the error when the subscription fails

        Returns:
            Callable that removes the listener
        """
        entry = (listener, on_error)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def attach(self) -> bool:
        """
        Open the live subscription.

        Returns:
            True if a subscription is now held, False if already attached,
            detached meanwhile, or the store refused
        """
        if self._subscription is not None or self._attaching:
            logger.warning(f"{self._collection}: already attached")
            return False

        self._attaching = True
        generation = self._generation
        try:
            subscription = await self._context.store.subscribe(
                self._path, self._handle_snapshot, self._handle_error
            )
        except Exception as e:
            self._record_error(e)
            logger.error(f"{self._collection}: could not subscribe to {self._path}: {e}")
            return False
        finally:
            self._attaching = False

        if generation != self._generation:
            # detach() ran while we were waiting on the store
            subscription.unsubscribe()
            logger.debug(f"{self._collection}: attach superseded by detach")
            if self._wants_attach:
                self._schedule_attach()
            return False

        self._subscription = subscription
        logger.info(f"{self._collection}: attached to {self._path}")
        return True

    def detach(self) -> None:
        """Tear the subscription down. Safe to call multiple times."""
        self._generation += 1
        self._wants_attach = False

        if self._subscription is None:
            return

        subscription = self._subscription
        self._subscription = None
        subscription.unsubscribe()
        logger.info(f"{self._collection}: detached from {self._path}")

    def bind_session(self, session: SessionManager) -> Callable[[], None]:
        """
        Follow the session: attach while an identity exists, detach otherwise.

        Must be called on the event loop.

        Returns:
            Callable that stops following (does not detach)
        """
        return session.subscribe(self._handle_identity)

    def _handle_identity(self, identity: Optional[Identity]) -> None:
        previous = self._bound_identity
        self._bound_identity = identity

        if identity is None:
            self.detach()
            return
        if previous is not None and previous != identity:
            # Different user: never carry a subscription across identities
            self.detach()
        self._wants_attach = True
        if self._subscription is None and not self._attaching:
            self._schedule_attach()

    def _schedule_attach(self) -> None:
        self._attach_task = asyncio.get_running_loop().create_task(self._attach_if_wanted())

    async def _attach_if_wanted(self) -> None:
        # detach() may have run between scheduling and now
        if self._wants_attach:
            await self.attach()

    # -------------------------------------------------------------------------
    # Store callbacks
    # -------------------------------------------------------------------------

    def _handle_snapshot(self, documents: Sequence[StoredDocument]) -> None:
        records = tuple(self._record_factory(doc.id, doc.data) for doc in documents)

        # Atomic replacement
        self._snapshot = records
        self._received_at = datetime.now(timezone.utc)
        if self._last_error is not None:
            logger.info(f"{self._collection}: subscription recovered")
        self._last_error = None

        logger.debug(f"{self._collection}: snapshot with {len(records)} records")
        for listener, _ in list(self._listeners):
            listener(records)

    def _handle_error(self, error: Exception) -> None:
        self._record_error(error)
        logger.error(
            f"{self._collection}: subscription error, keeping last snapshot "
            f"({len(self._snapshot)} records): {error}"
        )

    def _record_error(self, error: Exception) -> None:
        self._last_error = error
        for _, on_error in list(self._listeners):
            if on_error is not None:
                on_error(error)
