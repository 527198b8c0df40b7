"""
Mutation gateway: the write path to the three collections.

Three operation families, each translated 1:1 into one store call:

    create(collection, fields)                      -> store.create
    update_field(collection, id, field, value)      -> store.update_fields
    delete(collection, id)                          -> store.delete

There is NO optimistic local update. A write's effect reaches the rest of
the application only through the next collection snapshot. What the caller
gets back is a MutationResult saying whether the store accepted the write,
so a UI can re-open a form or show an inline error.

Failure handling:
    - Session not ready: refused without touching the store
    - Unknown collection / invalid status: refused without touching the store
    - Store failure: logged and returned as a failed result (never raised)

Runs on the event-loop thread only.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional

from core.context import AppContext
from core.exceptions import InvalidStatusError, SessionNotReadyError, StudioManagerError
from logging_config import get_logger
from models.mutation_result import MutationOperation, MutationResult
from models.records import (
    DEFAULT_MINIMUM_STOCK,
    EXPENSES,
    INVENTORY,
    ORDERS,
    ORDER_STATUSES,
    InventoryItem,
    OrderStatus,
)
from services.session_manager import SessionManager


# Module logger
logger = get_logger(__name__)


def utc_timestamp() -> str:
    """Creation stamp in the store's format, e.g. 2026-10-18T10:15:30.123Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MutationGateway:
    """Create/update/delete against the tenant's collections."""

    def __init__(self, context: AppContext, session: SessionManager):
        self._context = context
        self._session = session

    # -------------------------------------------------------------------------
    # Operation families
    # -------------------------------------------------------------------------

    async def create(self, collection: str, fields: Mapping[str, Any]) -> MutationResult:
        """
        Create a document stamped with ``createdAt``.

        Returns:
            MutationResult whose document_id is the store-assigned id
        """
        stamped = {**fields, "createdAt": utc_timestamp()}

        async def write(path: str) -> Optional[str]:
            return await self._context.store.create(path, stamped)

        return await self._run(MutationOperation.CREATE, collection, None, write)

    async def update_field(
        self,
        collection: str,
        document_id: str,
        field_name: str,
        value: Any
    ) -> MutationResult:
        """Partially update exactly one field of one document."""

        async def write(path: str) -> Optional[str]:
            await self._context.store.update_fields(path, document_id, {field_name: value})
            return document_id

        return await self._run(MutationOperation.UPDATE, collection, document_id, write)

    async def delete(self, collection: str, document_id: str) -> MutationResult:
        """Remove a document. No confirmation, no soft delete, no cascade."""

        async def write(path: str) -> Optional[str]:
            await self._context.store.delete(path, document_id)
            return document_id

        return await self._run(MutationOperation.DELETE, collection, document_id, write)

    # -------------------------------------------------------------------------
    # Intent helpers (what the dashboard's buttons do)
    # -------------------------------------------------------------------------

    async def create_order(
        self,
        client: str,
        description: str,
        total: float = 0.0,
        advance: float = 0.0,
        status: str = OrderStatus.PENDING.value,
        delivery_date: str = "",
    ) -> MutationResult:
        if status not in ORDER_STATUSES:
            return self._refuse(MutationOperation.CREATE, ORDERS, InvalidStatusError(status))
        return await self.create(ORDERS, {
            "cliente": client,
            "descripcion": description,
            "total": total,
            "adelanto": advance,
            "estado": status,
            "fechaEntrega": delivery_date,
        })

    async def create_expense(
        self,
        concept: str,
        amount: float,
        expense_date: Optional[str] = None
    ) -> MutationResult:
        return await self.create(EXPENSES, {
            "concepto": concept,
            "monto": amount,
            "fecha": expense_date or date.today().isoformat(),
        })

    async def create_inventory_item(
        self,
        name: str,
        stock: int = 0,
        minimum: int = DEFAULT_MINIMUM_STOCK
    ) -> MutationResult:
        return await self.create(INVENTORY, {
            "item": name,
            "stock": stock,
            "minimo": minimum,
        })

    async def set_order_status(self, order_id: str, status: str) -> MutationResult:
        """Move an order to another workflow state."""
        if status not in ORDER_STATUSES:
            return self._refuse(
                MutationOperation.UPDATE, ORDERS, InvalidStatusError(status, order_id), order_id
            )
        return await self.update_field(ORDERS, order_id, "estado", status)

    async def increment_stock(self, item: InventoryItem) -> MutationResult:
        """Write ``stock + 1`` computed from the caller's current record."""
        return await self.update_field(INVENTORY, item.id, "stock", item.stock + 1)

    async def decrement_stock(self, item: InventoryItem) -> MutationResult:
        """Write ``max(0, stock - 1)``: stock never goes negative."""
        return await self.update_field(INVENTORY, item.id, "stock", max(0, item.stock - 1))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _run(
        self,
        operation: MutationOperation,
        collection: str,
        document_id: Optional[str],
        write: Callable[[str], Awaitable[Optional[str]]],
    ) -> MutationResult:
        if not self._session.is_ready:
            return self._refuse(operation, collection, SessionNotReadyError(), document_id)

        try:
            path = self._context.collection_path(collection)
        except StudioManagerError as e:
            return self._refuse(operation, collection, e, document_id)

        try:
            written_id = await write(path)
        except Exception as e:
            target = f"{path}/{document_id}" if document_id else path
            logger.error(f"{operation.value} on {target} failed: {e}")
            return MutationResult.failure(operation, collection, e, document_id)

        logger.info(f"{operation.value} on {path} acknowledged: {written_id}")
        return MutationResult.success(operation, collection, written_id)

    def _refuse(
        self,
        operation: MutationOperation,
        collection: str,
        error: Exception,
        document_id: Optional[str] = None
    ) -> MutationResult:
        logger.warning(f"{operation.value} on {collection} refused: {error}")
        return MutationResult.failure(operation, collection, error, document_id)

