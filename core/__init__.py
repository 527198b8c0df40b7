"""
Core module for StudioManager.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- store: Document store interface and subscription handle
- identity: Identity provider interface
- context: AppContext holding the shared store/identity handles
- memory_backend / supabase_backend: concrete backends
"""

from .exceptions import (
    StudioManagerError,
    StoreConfigurationError,
    IdentityExchangeError,
    SessionNotReadyError,
    SubscriptionError,
    UnknownCollectionError,
    MutationError,
    InvalidStatusError,
    DocumentNotFoundError,
)
from .store import DocumentStore, StoredDocument, Subscription, collection_path
from .identity import Identity, IdentityProvider
from .context import AppContext, parse_store_connection_config

__all__ = [
    "StudioManagerError",
    "StoreConfigurationError",
    "IdentityExchangeError",
    "SessionNotReadyError",
    "SubscriptionError",
    "UnknownCollectionError",
    "MutationError",
    "InvalidStatusError",
    "DocumentNotFoundError",
    "DocumentStore",
    "StoredDocument",
    "Subscription",
    "collection_path",
    "Identity",
    "IdentityProvider",
    "AppContext",
    "parse_store_connection_config",
]
