"""
Dashboard state models.

DashboardState is the single object the web layer reads. The dashboard
service builds a new one on the event-loop thread every time a snapshot or
the session changes, and swaps the reference; request threads only ever see
complete states.

Thread Safety:
    - DashboardMetrics and DashboardState are frozen dataclasses
    - Record collections are tuples
    - New states replace old ones atomically
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, FrozenSet, Optional

from .records import Expense, InventoryItem, Order


@dataclass(frozen=True)
class DashboardMetrics:
    """Summary statistics over the orders and expenses snapshots."""

    total_sales: float = 0.0
    """Sum of order totals."""

    total_collected: float = 0.0
    """Sum of advance payments received."""

    total_expenses: float = 0.0
    """Sum of expense amounts."""

    active_order_count: int = 0
    """Orders not yet delivered."""

    balance: float = 0.0
    """total_collected - total_expenses."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_sales": self.total_sales,
            "total_collected": self.total_collected,
            "total_expenses": self.total_expenses,
            "active_order_count": self.active_order_count,
            "balance": self.balance,
        }


@dataclass(frozen=True)
class DashboardState:
    """
    Point-in-time view of everything the dashboard shows.

    Usage:
        state = dashboard_service.get_state()
        if not state.session_ready:
            # Still signing in - show loading
            ...
        for order in state.orders:
            print(order.client, order.status)
    """

    updated_at: datetime
    """When this state was published."""

    session_uid: Optional[str] = None
    """Signed-in user id, None until the session is ready."""

    orders: tuple[Order, ...] = ()
    expenses: tuple[Expense, ...] = ()
    inventory: tuple[InventoryItem, ...] = ()

    metrics: DashboardMetrics = field(default_factory=DashboardMetrics)

    stale_collections: FrozenSet[str] = frozenset()
    """Collections whose subscription errored; their records are last known-good."""

    @property
    def session_ready(self) -> bool:
        return self.session_uid is not None

    @property
    def age_seconds(self) -> float:
        now = datetime.now(timezone.utc)
        return (now - self.updated_at).total_seconds()

    @classmethod
    def create_empty(cls) -> "DashboardState":
        """State before the session is ready: no records, zero metrics."""
        return cls(updated_at=datetime.now(timezone.utc))
