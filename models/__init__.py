"""
Data models for StudioManager.

This module contains immutable dataclasses for:
- Order, Expense, InventoryItem: typed views of stored documents
- MutationResult: outcome of one store write
- DashboardMetrics, DashboardState: derived state published to the web layer
"""

from .records import (
    Order,
    Expense,
    InventoryItem,
    OrderStatus,
    ORDER_STATUSES,
    ORDERS,
    EXPENSES,
    INVENTORY,
    COLLECTIONS,
    coerce_number,
)
from .mutation_result import MutationResult, MutationOperation
from .dashboard import DashboardMetrics, DashboardState

__all__ = [
    # Records
    "Order",
    "Expense",
    "InventoryItem",
    "OrderStatus",
    "ORDER_STATUSES",
    "ORDERS",
    "EXPENSES",
    "INVENTORY",
    "COLLECTIONS",
    "coerce_number",
    # Writes
    "MutationResult",
    "MutationOperation",
    # Derived state
    "DashboardMetrics",
    "DashboardState",
]
