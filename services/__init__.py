"""
Services layer for StudioManager.

This module contains the synchronization core:
- SessionManager: signs in once and publishes the identity
- CollectionSynchronizer: live snapshot of one collection
- MutationGateway: create / update-field / delete
- DashboardService: event-loop thread wiring the above together

Thread Model:
    Main Thread (Flask)
    └── request threads read DashboardState, submit writes

    SyncLoop thread (background)
    └── asyncio loop: session, three synchronizers, gateway writes
"""

from .session_manager import SessionManager
from .collection_sync import CollectionSynchronizer
from .mutation_gateway import MutationGateway
from .dashboard_service import DashboardService

__all__ = [
    "SessionManager",
    "CollectionSynchronizer",
    "MutationGateway",
    "DashboardService",
]
