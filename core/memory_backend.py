"""
In-process document store and identity provider.

Used for local runs without a Supabase project ({"backend": "memory"}) and
by the test suite. Behaves like a remote store in the ways that matter to
the synchronizers:

    - Every notification is queued on the event loop with call_soon(),
      never delivered inline from subscribe() or from a write.
    - Each write queues one full snapshot per live subscription, in write
      order, so per-collection delivery stays monotonic.
    - Unsubscribed handles drop anything still queued.

Failures can be injected to exercise the error paths (``fail_next()``,
``emit_error()``, ``reject_sign_in``).
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from core.exceptions import DocumentNotFoundError, IdentityExchangeError
from core.identity import Identity, IdentityProvider
from core.store import (
    DocumentStore,
    ErrorCallback,
    SnapshotCallback,
    StoredDocument,
    Subscription,
)
from logging_config import get_logger


logger = get_logger(__name__)


class MemoryDocumentStore(DocumentStore):
    """
    Dictionary-backed document store.

    Documents are kept per path in insertion order. Ids are random
    20-character hex strings, assigned only here.
    """

    def __init__(self, seed: Optional[Mapping[str, Mapping[str, Mapping[str, Any]]]] = None):
        """
        Initialize the store.

        Args:
            seed: Optional {path: {document_id: fields}} initial contents
        """
        self._documents: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._pending_failures: Dict[str, Exception] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        for path, documents in (seed or {}).items():
            self._documents[path] = {doc_id: dict(fields) for doc_id, fields in documents.items()}

    # -------------------------------------------------------------------------
    # Failure injection
    # -------------------------------------------------------------------------

    def fail_next(self, operation: str, error: Exception) -> None:
        """
        Make the next call of ``operation`` raise ``error``.

        Args:
            operation: "subscribe", "create", "update" or "delete"
            error: Exception to raise (one-shot)
        """
        self._pending_failures[operation] = error

    def emit_error(self, path: str, error: Exception) -> None:
        """Queue a stream error for every live subscription on ``path``."""
        loop = self._require_loop()
        for subscription in list(self._subscriptions.get(path, [])):
            loop.call_soon(subscription.fail, error)

    def _raise_if_injected(self, operation: str) -> None:
        error = self._pending_failures.pop(operation, None)
        if error is not None:
            raise error

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def documents(self, path: str) -> Dict[str, Dict[str, Any]]:
        """Copy of the documents stored under ``path``."""
        return {doc_id: dict(fields) for doc_id, fields in self._documents.get(path, {}).items()}

    def subscription_count(self, path: str) -> int:
        return len(self._subscriptions.get(path, []))

    # -------------------------------------------------------------------------
    # DocumentStore API
    # -------------------------------------------------------------------------

    async def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        self._loop = asyncio.get_running_loop()
        self._raise_if_injected("subscribe")

        subscription = Subscription(path, on_snapshot, on_error, on_cancel=self._remove_subscription)
        self._subscriptions.setdefault(path, []).append(subscription)
        logger.debug(f"Memory store: subscribed to {path}")

        self._loop.call_soon(subscription.deliver, self._snapshot(path))
        return subscription

    async def create(self, path: str, fields: Mapping[str, Any]) -> str:
        self._loop = asyncio.get_running_loop()
        self._raise_if_injected("create")

        document_id = uuid4().hex[:20]
        self._documents.setdefault(path, {})[document_id] = dict(fields)
        self._notify(path)
        return document_id

    async def update_fields(self, path: str, document_id: str, fields: Mapping[str, Any]) -> None:
        self._loop = asyncio.get_running_loop()
        self._raise_if_injected("update")

        documents = self._documents.get(path, {})
        if document_id not in documents:
            raise DocumentNotFoundError(path, document_id, operation="update")
        documents[document_id].update(fields)
        self._notify(path)

    async def delete(self, path: str, document_id: str) -> None:
        self._loop = asyncio.get_running_loop()
        self._raise_if_injected("delete")

        # Deleting a missing document is not an error (matches remote stores)
        self._documents.get(path, {}).pop(document_id, None)
        self._notify(path)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _snapshot(self, path: str) -> tuple:
        return tuple(
            StoredDocument(id=doc_id, data=dict(fields))
            for doc_id, fields in self._documents.get(path, {}).items()
        )

    def _notify(self, path: str) -> None:
        subscriptions = self._subscriptions.get(path, [])
        if not subscriptions:
            return
        loop = self._require_loop()
        snapshot = self._snapshot(path)
        for subscription in list(subscriptions):
            loop.call_soon(subscription.deliver, snapshot)

    def _remove_subscription(self, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(subscription.path, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        logger.debug(f"Memory store: unsubscribed from {subscription.path}")

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop


class MemoryIdentityProvider(IdentityProvider):
    """
    Identity provider that accepts any sign-in.

    Anonymous sign-in issues a random uid. Token exchange derives a stable
    uid from the token so the same token always maps to the same user.
    """

    def __init__(self, reject_sign_in: bool = False):
        """
        Args:
            reject_sign_in: When True, every sign-in raises IdentityExchangeError
        """
        super().__init__()
        self.reject_sign_in = reject_sign_in

    async def exchange_custom_token(self, token: str) -> Identity:
        if self.reject_sign_in:
            raise IdentityExchangeError("custom_token", "sign-in rejected")
        if not token:
            raise IdentityExchangeError("custom_token", "empty token")
        uid = hashlib.sha256(token.encode("utf-8")).hexdigest()[:28]
        identity = Identity(uid=uid, is_anonymous=False)
        self._set_identity(identity)
        return identity

    async def sign_in_anonymously(self) -> Identity:
        if self.reject_sign_in:
            raise IdentityExchangeError("anonymous", "sign-in rejected")
        identity = Identity(uid=uuid4().hex[:28], is_anonymous=True)
        self._set_identity(identity)
        return identity

    def sign_out(self) -> None:
        """Drop the current identity (simulates revocation/expiry)."""
        self._set_identity(None)
