"""
Custom exceptions for StudioManager.

Exception Hierarchy:
    StudioManagerError (base)
    ├── StoreConfigurationError - Store connection config missing/invalid (startup failure)
    ├── IdentityExchangeError   - Sign-in with the identity provider failed (runtime, logged)
    ├── SessionNotReadyError    - No identity yet, writes are refused (runtime, graceful)
    ├── SubscriptionError       - Live collection subscription failed (runtime, logged)
    ├── UnknownCollectionError  - Collection name outside orders/expenses/inventory
    └── MutationError           - A write to the store failed (runtime, graceful)
        ├── InvalidStatusError    - Order status outside the allowed set
        └── DocumentNotFoundError - Update/delete target does not exist

Usage:
    Startup errors (StoreConfigurationError) cause the app to fail fast.
    Runtime errors are logged and surfaced to callers as failed MutationResults.
"""

from typing import Optional, Dict, Any


class StudioManagerError(Exception):
    """
    Base exception for all StudioManager errors.

    All custom exceptions inherit from this class, allowing callers to catch
    all application-specific errors with a single except clause if needed.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# STARTUP ERRORS - Application will not start if these occur
# =============================================================================

class StoreConfigurationError(StudioManagerError):
    """
    The store connection configuration is missing or unusable.

    This is a FATAL error - without it the document store cannot be
    addressed at all. The app logs a critical diagnostic and refuses to start.

    Typical causes:
    - STORE_CONNECTION_CONFIG not set in the environment or .env
    - STORE_CONNECTION_CONFIG is not valid JSON
    - Unknown backend name, or backend-specific keys missing
    """

    def __init__(self, message: str, setting: str = "STORE_CONNECTION_CONFIG"):
        details = {
            "setting": setting,
            "resolution": f"Set {setting} in the environment or .env to a JSON object"
        }
        super().__init__(message, details)
        self.setting = setting


# =============================================================================
# RUNTIME ERRORS - Application continues, but operation fails gracefully
# =============================================================================

class IdentityExchangeError(StudioManagerError):
    """
    Signing in with the identity provider failed.

    The session stays unready until the process is restarted. There is no
    automatic retry.
    """

    def __init__(self, method: str, reason: str):
        message = f"Identity exchange ({method}) failed: {reason}"
        super().__init__(message, {"method": method})
        self.method = method
        self.reason = reason


class SessionNotReadyError(StudioManagerError):
    """
    No identity has been established yet.

    Collection subscriptions do not attach and writes are refused while
    the session is in this state.
    """

    def __init__(self, message: str = "Session is not ready"):
        details = {
            "resolution": "Wait for sign-in to complete or check identity provider logs"
        }
        super().__init__(message, details)


class SubscriptionError(StudioManagerError):
    """
    A live collection subscription reported an error.

    The synchronizer keeps serving its last known-good snapshot.
    """

    def __init__(self, path: str, reason: str):
        super().__init__(f"Subscription to {path} failed: {reason}", {"path": path})
        self.path = path
        self.reason = reason


class UnknownCollectionError(StudioManagerError):
    """Collection name is not one of the synchronized collections."""

    def __init__(self, collection: str):
        super().__init__(f"Unknown collection: {collection}", {"collection": collection})
        self.collection = collection


class MutationError(StudioManagerError):
    """
    Base class for write failures.

    Carries the operation and collection so callers (and logs) can tell
    which write went wrong.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        collection: Optional[str] = None,
        document_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        error_details = details or {}
        if operation:
            error_details["operation"] = operation
        if collection:
            error_details["collection"] = collection
        if document_id:
            error_details["document_id"] = document_id
        super().__init__(message, error_details)
        self.operation = operation
        self.collection = collection
        self.document_id = document_id


class InvalidStatusError(MutationError):
    """Order status is not one of the allowed workflow states."""

    def __init__(self, status: str, document_id: Optional[str] = None):
        super().__init__(
            f"Invalid order status: {status!r}",
            operation="update",
            collection="orders",
            document_id=document_id,
            details={"status": status},
        )
        self.status = status


class DocumentNotFoundError(MutationError):
    """Update or delete targeted a document that does not exist."""

    def __init__(self, path: str, document_id: str, operation: str = "update"):
        super().__init__(
            f"Document {document_id} not found in {path}",
            operation=operation,
            document_id=document_id,
            details={"path": path},
        )
        self.path = path
