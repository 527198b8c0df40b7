"""
Dashboard service: event-loop thread, session, synchronizers and metrics.

This service owns the single asyncio event loop the synchronization core
runs on. Everything that touches the store happens on that loop:

    SyncLoop thread (background)
    ├── AppContext.open()
    ├── SessionManager.start()          sign in once
    ├── CollectionSynchronizer x3       orders / expenses / inventory
    │     └── each snapshot -> metrics recompute -> publish DashboardState
    └── MutationGateway                 writes submitted from web threads

Web threads never touch the loop's objects directly. They:
    - read get_state(), an immutable DashboardState swapped atomically
    - submit writes with the blocking helpers below, which hand a
      coroutine to the loop via run_coroutine_threadsafe and wait

Usage:
    # At app startup
    dashboard = DashboardService(context)
    dashboard.start()
    dashboard.wait_until_ready(timeout=10)

    # In routes
    state = dashboard.get_state()
    result = dashboard.create_expense("Papel", 300.0)

    # At app shutdown
    dashboard.stop()
"""

from __future__ import annotations

import asyncio
import atexit
import concurrent.futures
import threading
from datetime import datetime, timezone
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from core.context import AppContext
from core.exceptions import DocumentNotFoundError, StudioManagerError
from core.identity import Identity
from logging_config import get_logger, set_thread_name
from models.dashboard import DashboardMetrics, DashboardState
from models.mutation_result import MutationOperation, MutationResult
from models.records import COLLECTIONS, EXPENSES, INVENTORY, ORDERS
from modules.metrics import compute_metrics
from services.collection_sync import CollectionSynchronizer
from services.mutation_gateway import MutationGateway
from services.session_manager import SessionManager


# Module logger
logger = get_logger(__name__)

LOOP_THREAD_NAME = "SyncLoop"


class DashboardService:
    """
    Runs the synchronization core on a dedicated event-loop thread.

    Attributes:
        is_running: Whether the loop thread is active
        mutation_timeout_seconds: How long blocking write helpers wait
    """

    def __init__(self, context: AppContext, mutation_timeout_seconds: float = 10.0):
        self._context = context
        self._mutation_timeout = mutation_timeout_seconds

        self._session = SessionManager(context)
        self._synchronizers: Dict[str, CollectionSynchronizer] = {
            name: CollectionSynchronizer(context, name) for name in COLLECTIONS
        }
        self._gateway = MutationGateway(context, self._session)

        # Loop thread control
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._is_running = False
        self._stopped = False
        self._ready_event = threading.Event()

        # Published state (atomic reference)
        self._metrics = DashboardMetrics()
        self._state: DashboardState = DashboardState.create_empty()

        logger.info(f"DashboardService initialized for tenant {context.tenant_id}")

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def mutation_timeout_seconds(self) -> float:
        return self._mutation_timeout

    @property
    def context(self) -> AppContext:
        return self._context

    @property
    def session(self) -> SessionManager:
        return self._session

    @property
    def gateway(self) -> MutationGateway:
        return self._gateway

    def synchronizer(self, collection: str) -> CollectionSynchronizer:
        return self._synchronizers[collection]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """
        Start the loop thread and kick off sign-in.

        Returns immediately; use wait_until_ready() to block on sign-in.
        Calling it again while running is a no-op. A stopped service cannot
        be restarted (the session signs in only once); build a new one.

        Raises:
            RuntimeError: If called after stop()
        """
        if self._stopped:
            raise RuntimeError("DashboardService was stopped and cannot be restarted")
        if self._is_running:
            logger.warning("DashboardService already running")
            return

        logger.info("Starting sync loop thread...")
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop,
            name=LOOP_THREAD_NAME,
            daemon=True  # Thread will exit when main process exits
        )
        self._is_running = True
        self._thread.start()
        atexit.register(self.stop)

        asyncio.run_coroutine_threadsafe(self._startup(), self._loop)

    def stop(self) -> None:
        """
        Detach all collections, close the context and stop the loop.

        Safe to call multiple times. Also runs at interpreter exit while
        the service is running.
        """
        if not self._is_running or self._loop is None:
            return

        atexit.unregister(self.stop)
        self._stopped = True
        logger.info("Stopping sync loop thread...")
        future = asyncio.run_coroutine_threadsafe(self._shutdown(), self._loop)
        try:
            future.result(timeout=5.0)
        except Exception as e:
            logger.error(f"Error during dashboard shutdown: {e}")

        self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("Sync loop thread did not stop cleanly")

        self._is_running = False
        self._thread = None
        logger.info("Sync loop thread stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the session is ready. Returns False on timeout."""
        return self._ready_event.wait(timeout=timeout)

    def _run_loop(self) -> None:
        set_thread_name(LOOP_THREAD_NAME)
        asyncio.set_event_loop(self._loop)
        logger.info("Sync loop starting")
        try:
            self._loop.run_forever()
        finally:
            self._loop.close()
            logger.info("Sync loop exited")

    async def _startup(self) -> None:
        try:
            await self._context.open()
        except Exception as e:
            logger.error(f"Could not open store/identity connections: {e}", exc_info=True)
            return

        for name, synchronizer in self._synchronizers.items():
            synchronizer.subscribe(
                partial(self._handle_snapshot, name),
                partial(self._handle_sync_error, name),
            )
            synchronizer.bind_session(self._session)
        self._session.subscribe(self._handle_session_change)

        await self._session.start()

    async def _shutdown(self) -> None:
        for synchronizer in self._synchronizers.values():
            synchronizer.detach()
        self._session.stop()
        await self._context.close()

    # -------------------------------------------------------------------------
    # Loop-side event handlers
    # -------------------------------------------------------------------------

    def _handle_session_change(self, identity: Optional[Identity]) -> None:
        if identity is None:
            self._ready_event.clear()
        else:
            self._ready_event.set()
        self._publish()

    def _handle_snapshot(self, collection: str, records: Tuple[Any, ...]) -> None:
        if collection in (ORDERS, EXPENSES):
            self._metrics = compute_metrics(
                self._synchronizers[ORDERS].snapshot,
                self._synchronizers[EXPENSES].snapshot,
            )
        self._publish()

    def _handle_sync_error(self, collection: str, error: Exception) -> None:
        self._publish()

    def _publish(self) -> None:
        identity = self._session.identity
        self._state = DashboardState(
            updated_at=datetime.now(timezone.utc),
            session_uid=identity.uid if identity else None,
            orders=self._synchronizers[ORDERS].snapshot,
            expenses=self._synchronizers[EXPENSES].snapshot,
            inventory=self._synchronizers[INVENTORY].snapshot,
            metrics=self._metrics,
            stale_collections=frozenset(
                name for name, sync in self._synchronizers.items() if sync.is_stale
            ),
        )

    # -------------------------------------------------------------------------
    # Reader API (any thread)
    # -------------------------------------------------------------------------

    def get_state(self) -> DashboardState:
        """Latest published DashboardState (never None)."""
        return self._state

    def get_health(self) -> Dict[str, Any]:
        """Session and per-collection subscription status."""
        collections = {}
        for name, synchronizer in self._synchronizers.items():
            if synchronizer.is_stale:
                status = "stale"
            elif synchronizer.is_attached:
                status = "ok"
            else:
                status = "detached"
            collections[name] = {
                "status": status,
                "records": len(synchronizer.snapshot),
                "error": str(synchronizer.last_error) if synchronizer.last_error else None,
            }

        session_error = self._session.last_error
        return {
            "loop_running": self._is_running,
            "session": {
                "ready": self._session.is_ready,
                "uid": self._session.identity.uid if self._session.identity else None,
                "error": str(session_error) if session_error else None,
            },
            "collections": collections,
        }

    # -------------------------------------------------------------------------
    # Blocking write helpers (web threads)
    # -------------------------------------------------------------------------

    def create_order(self, **fields: Any) -> MutationResult:
        return self._submit(
            MutationOperation.CREATE, ORDERS, None,
            lambda gateway: gateway.create_order(**fields),
        )

    def create_expense(self, concept: str, amount: float, expense_date: Optional[str] = None) -> MutationResult:
        return self._submit(
            MutationOperation.CREATE, EXPENSES, None,
            lambda gateway: gateway.create_expense(concept, amount, expense_date),
        )

    def create_inventory_item(self, name: str, stock: int, minimum: int) -> MutationResult:
        return self._submit(
            MutationOperation.CREATE, INVENTORY, None,
            lambda gateway: gateway.create_inventory_item(name, stock, minimum),
        )

    def set_order_status(self, order_id: str, status: str) -> MutationResult:
        return self._submit(
            MutationOperation.UPDATE, ORDERS, order_id,
            lambda gateway: gateway.set_order_status(order_id, status),
        )

    def increment_stock(self, item_id: str) -> MutationResult:
        return self._submit(
            MutationOperation.UPDATE, INVENTORY, item_id,
            lambda gateway: self._adjust_stock(gateway, item_id, gateway.increment_stock),
        )

    def decrement_stock(self, item_id: str) -> MutationResult:
        return self._submit(
            MutationOperation.UPDATE, INVENTORY, item_id,
            lambda gateway: self._adjust_stock(gateway, item_id, gateway.decrement_stock),
        )

    def delete(self, collection: str, document_id: str) -> MutationResult:
        return self._submit(
            MutationOperation.DELETE, collection, document_id,
            lambda gateway: gateway.delete(collection, document_id),
        )

    async def _adjust_stock(
        self,
        gateway: MutationGateway,
        item_id: str,
        adjust: Callable[[Any], Awaitable[MutationResult]],
    ) -> MutationResult:
        # Runs on the loop, so the snapshot read here is the loop's latest
        item = next(
            (i for i in self._synchronizers[INVENTORY].snapshot if i.id == item_id),
            None,
        )
        if item is None:
            error = DocumentNotFoundError(self._synchronizers[INVENTORY].path, item_id)
            return MutationResult.failure(MutationOperation.UPDATE, INVENTORY, error, item_id)
        return await adjust(item)

    def _submit(
        self,
        operation: MutationOperation,
        collection: str,
        document_id: Optional[str],
        call: Callable[[MutationGateway], Awaitable[MutationResult]],
    ) -> MutationResult:
        if not self._is_running or self._loop is None:
            error = StudioManagerError("Sync loop is not running")
            return MutationResult.failure(operation, collection, error, document_id)

        future = asyncio.run_coroutine_threadsafe(call(self._gateway), self._loop)
        try:
            return future.result(timeout=self._mutation_timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            logger.error(
                f"{operation.value} on {collection} timed out after {self._mutation_timeout:.1f}s"
            )
            error = TimeoutError(f"Store did not answer within {self._mutation_timeout:.1f}s")
            return MutationResult.failure(operation, collection, error, document_id)
