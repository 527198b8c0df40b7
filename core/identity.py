"""
Identity provider interface.

The identity provider is an external collaborator. The application needs
three things from it:

    exchange_custom_token(token) -> Identity
    sign_in_anonymously()        -> Identity
    on_identity_change(callback) -> unsubscribe callable

Sign-in coroutines run on the application's event loop. Listener
bookkeeping lives here so every backend notifies the same way.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from logging_config import get_logger


logger = get_logger(__name__)

IdentityListener = Callable[[Optional["Identity"]], None]


@dataclass(frozen=True)
class Identity:
    """The signed-in identity for this process."""

    uid: str
    """Opaque user id issued by the provider."""

    is_anonymous: bool = True
    """True for anonymous sign-in, False for a pre-issued token."""

    signed_in_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "is_anonymous": self.is_anonymous,
            "signed_in_at": self.signed_in_at.isoformat(),
        }


class IdentityProvider(ABC):
    """
    Abstract identity provider.

    Subclasses implement the two sign-in coroutines and call
    ``_set_identity()`` whenever the provider's notion of the current user
    changes (sign-in, sign-out, token revoked).
    """

    def __init__(self) -> None:
        self._listeners: List[IdentityListener] = []
        self._current: Optional[Identity] = None

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._current

    async def connect(self) -> None:
        """Open connections. Called once by AppContext.open()."""

    async def close(self) -> None:
        """Release connections. Called once by AppContext.close()."""

    @abstractmethod
    async def exchange_custom_token(self, token: str) -> Identity:
        """Sign in with a pre-issued token. Raises IdentityExchangeError."""

    @abstractmethod
    async def sign_in_anonymously(self) -> Identity:
        """Create an anonymous identity. Raises IdentityExchangeError."""

    def on_identity_change(self, callback: IdentityListener) -> Callable[[], None]:
        """
        Register a listener for identity changes.

        Returns:
            Callable that removes the listener (safe to call twice)
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _set_identity(self, identity: Optional[Identity]) -> None:
        if identity == self._current:
            return
        self._current = identity
        for listener in list(self._listeners):
            try:
                listener(identity)
            except Exception as e:
                logger.error(f"Identity listener failed: {e}", exc_info=True)
