"""Dashboard metrics and derived views over collection snapshots."""

from __future__ import annotations

from typing import Iterable, List, Sequence

from models.dashboard import DashboardMetrics
from models.records import Expense, InventoryItem, Order


RECENT_ORDERS_LIMIT = 5
INCOME_BY_ORDER_LIMIT = 5


def compute_metrics(orders: Iterable[Order], expenses: Iterable[Expense]) -> DashboardMetrics:
    """
    Fold the orders and expenses snapshots into summary statistics.

    Pure: the result depends only on the arguments. Records already carry
    zero-fallback numbers (see models.records.coerce_number), so a
    malformed total or amount simply contributes 0.
    """
    total_sales = 0.0
    total_collected = 0.0
    active_order_count = 0
    for order in orders:
        total_sales += order.total
        total_collected += order.advance
        if order.is_active:
            active_order_count += 1

    total_expenses = 0.0
    for expense in expenses:
        total_expenses += expense.amount

    return DashboardMetrics(
        total_sales=total_sales,
        total_collected=total_collected,
        total_expenses=total_expenses,
        active_order_count=active_order_count,
        balance=total_collected - total_expenses,
    )


def recent_orders(
    orders: Sequence[Order],
    limit: int = RECENT_ORDERS_LIMIT,
    newest_first: bool = False,
) -> List[Order]:
    """
    Orders for the "recent orders" card.

    By default this is the first ``limit`` entries in snapshot order, which
    the store does not guarantee to be chronological. Pass
    ``newest_first=True`` to sort by creation timestamp before truncating.
    """
    if newest_first:
        # ISO-8601 strings sort chronologically; undated orders go last
        ordered = sorted(orders, key=lambda o: (o.created_at != "", o.created_at), reverse=True)
        return ordered[:limit]
    return list(orders[:limit])


def low_stock_items(inventory: Iterable[InventoryItem]) -> List[InventoryItem]:
    """Items at or below their alert threshold, in snapshot order."""
    return [item for item in inventory if item.is_low_stock]


def income_by_order(orders: Iterable[Order], limit: int = INCOME_BY_ORDER_LIMIT) -> List[Order]:
    """First ``limit`` orders that have received an advance payment."""
    paid = [order for order in orders if order.advance > 0]
    return paid[:limit]
