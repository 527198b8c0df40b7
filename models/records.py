"""
Studio record models.

These models are typed, read-only views of the documents held in the three
synchronized collections (orders, expenses, inventory).

Stored field names are the studio's document keys (cliente, total, monto,
stock, ...). Documents written by older clients may be missing fields or
carry strings where numbers are expected, so every record is built through
a tolerant ``from_document()`` constructor: numeric fields are coerced once,
here, and nowhere else.

Thread Safety:
    - All records are frozen dataclasses (immutable)
    - Snapshots are tuples of records, replaced atomically
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Mapping, Optional


# Collection names (last segment of tenants/{tenant}/{collection})
ORDERS = "orders"
EXPENSES = "expenses"
INVENTORY = "inventory"
COLLECTIONS = (ORDERS, EXPENSES, INVENTORY)


class OrderStatus(Enum):
    """
    Workflow state of a studio order.

    Lifecycle (in display order):
        PENDING -> IN_DESIGN -> IN_PRINTING -> READY -> DELIVERED
    """

    PENDING = "Pendiente"
    """Order taken, work not started."""

    IN_DESIGN = "En Diseño"
    """Layout/design in progress."""

    IN_PRINTING = "En Impresión"
    """Sent to the printer."""

    READY = "Listo"
    """Finished, waiting for pickup."""

    DELIVERED = "Entregado"
    """Handed over to the client. Delivered orders are no longer active."""


ORDER_STATUSES = tuple(status.value for status in OrderStatus)

LOW_STOCK_LABEL = "Bajo Stock"
NORMAL_STOCK_LABEL = "Normal"
DEFAULT_MINIMUM_STOCK = 5


def coerce_number(value: Any) -> float:
    """
    Parse a stored numeric field, falling back to 0.

    Numbers pass through, numeric strings are parsed, and anything else
    (None, empty or non-numeric strings, booleans, NaN, infinities) is 0.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    else:
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


@dataclass(frozen=True)
class Order:
    """
    A studio job (yearbook, photo prints, ...) for one client.

    ``status`` holds whatever the store holds; values outside ORDER_STATUSES
    are tolerated and displayed as-is.
    """

    id: str
    """Store-assigned document id."""

    client: str
    """Client or school name (``cliente``)."""

    description: str
    """Job description (``descripcion``)."""

    total: float
    """Total price (``total``)."""

    advance: float
    """Advance payment received (``adelanto``). Not validated against total."""

    status: str
    """Workflow status (``estado``)."""

    created_at: str = ""
    """ISO-8601 creation timestamp (``createdAt``)."""

    delivery_date: str = ""
    """Promised delivery date (``fechaEntrega``), free text."""

    fields: Dict[str, Any] = field(default_factory=dict, repr=False)
    """Raw stored fields, including any unknown keys."""

    @property
    def remaining_balance(self) -> float:
        """Amount still owed. Negative when the advance exceeds the total."""
        return self.total - self.advance

    @property
    def is_active(self) -> bool:
        """Anything not delivered counts as active."""
        return self.status != OrderStatus.DELIVERED.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "cliente": self.client,
            "descripcion": self.description,
            "total": self.total,
            "adelanto": self.advance,
            "saldo": self.remaining_balance,
            "estado": self.status,
            "fechaEntrega": self.delivery_date,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, document_id: str, data: Mapping[str, Any]) -> "Order":
        """Build from a stored document, tolerating missing or odd fields."""
        return cls(
            id=document_id,
            client=_text(data.get("cliente")),
            description=_text(data.get("descripcion")),
            total=coerce_number(data.get("total")),
            advance=coerce_number(data.get("adelanto")),
            status=_text(data.get("estado")),
            created_at=_text(data.get("createdAt")),
            delivery_date=_text(data.get("fechaEntrega")),
            fields=dict(data),
        )


@dataclass(frozen=True)
class Expense:
    """A business expense. Expenses are never edited, only deleted."""

    id: str
    """Store-assigned document id."""

    concept: str
    """What the money was spent on (``concepto``)."""

    amount: float
    """Amount spent (``monto``)."""

    date: str
    """Calendar date, YYYY-MM-DD (``fecha``)."""

    created_at: str = ""
    """ISO-8601 creation timestamp (``createdAt``)."""

    fields: Dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "concepto": self.concept,
            "monto": self.amount,
            "fecha": self.date,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, document_id: str, data: Mapping[str, Any]) -> "Expense":
        return cls(
            id=document_id,
            concept=_text(data.get("concepto")),
            amount=coerce_number(data.get("monto")),
            date=_text(data.get("fecha")),
            created_at=_text(data.get("createdAt")),
            fields=dict(data),
        )


@dataclass(frozen=True)
class InventoryItem:
    """
    A supply tracked in the studio's stockroom (paper, ink, covers...).

    Stock is adjusted one unit at a time; decrements are clamped at zero by
    the caller before the write.
    """

    id: str
    """Store-assigned document id."""

    name: str
    """Supply name (``item``)."""

    stock: int
    """Units on hand (``stock``)."""

    minimum: int = DEFAULT_MINIMUM_STOCK
    """Alert threshold (``minimo``)."""

    created_at: str = ""

    fields: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_low_stock(self) -> bool:
        """At or below the alert threshold."""
        return self.stock <= self.minimum

    @property
    def stock_label(self) -> str:
        """Classification shown on the inventory card."""
        return LOW_STOCK_LABEL if self.is_low_stock else NORMAL_STOCK_LABEL

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "item": self.name,
            "stock": self.stock,
            "minimo": self.minimum,
            "bajoStock": self.is_low_stock,
            "clasificacion": self.stock_label,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, document_id: str, data: Mapping[str, Any]) -> "InventoryItem":
        minimum_raw: Optional[Any] = data.get("minimo")
        return cls(
            id=document_id,
            name=_text(data.get("item")),
            stock=int(coerce_number(data.get("stock"))),
            minimum=int(coerce_number(minimum_raw)) if minimum_raw is not None else DEFAULT_MINIMUM_STOCK,
            created_at=_text(data.get("createdAt")),
            fields=dict(data),
        )


RECORD_TYPES = {
    ORDERS: Order,
    EXPENSES: Expense,
    INVENTORY: InventoryItem,
}
