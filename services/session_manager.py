"""
Session manager: establishes the process identity.

On start it signs in once - with the pre-issued token if one is
configured, otherwise anonymously - and from then on mirrors the identity
provider's notion of the current user.

Readiness contract:
    - subscribe(listener) calls listener(identity_or_None) immediately,
      then again on every change
    - While identity is None the session is suspended: synchronizers stay
      detached and the mutation gateway refuses writes

Failure handling:
    - Sign-in failures are logged and NOT retried
    - The session stays unready until the process restarts

Runs on the event-loop thread only.
"""

from __future__ import annotations

from typing import Callable, List, Optional

from core.context import AppContext
from core.exceptions import IdentityExchangeError
from core.identity import Identity
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

SessionListener = Callable[[Optional[Identity]], None]


class SessionManager:
    """
    Owns the Session for the lifetime of the process.

    Attributes:
        identity: Current Identity, or None while unready
        is_ready: True once an identity exists
        last_error: Last sign-in failure, if any
    """

    def __init__(self, context: AppContext):
        self._context = context
        self._identity: Optional[Identity] = None
        self._listeners: List[SessionListener] = []
        self._started = False
        self._last_error: Optional[Exception] = None
        self._unsubscribe_provider: Optional[Callable[[], None]] = None

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def is_ready(self) -> bool:
        return self._identity is not None

    @property
    def last_error(self) -> Optional[Exception]:
        return self._last_error

    async def start(self) -> Optional[Identity]:
        """
        Sign in once.

        Returns:
            The Identity, or None if sign-in failed

        Raises:
            RuntimeError: If called more than once
        """
        if self._started:
            raise RuntimeError("SessionManager already started")
        self._started = True

        provider = self._context.identity_provider
        self._unsubscribe_provider = provider.on_identity_change(self._handle_identity_change)

        token = self._context.initial_auth_token
        method = "custom_token" if token else "anonymous"
        logger.info(f"Signing in ({method})...")

        try:
            if token:
                identity = await provider.exchange_custom_token(token)
            else:
                identity = await provider.sign_in_anonymously()
        except IdentityExchangeError as e:
            self._last_error = e
            logger.error(f"Sign-in failed, session stays unready until restart: {e}")
            return None
        except Exception as e:
            self._last_error = IdentityExchangeError(method, str(e))
            logger.error(f"Sign-in failed, session stays unready until restart: {e}", exc_info=True)
            return None

        self._handle_identity_change(identity)
        return identity

    def stop(self) -> None:
        """Stop following the identity provider. Listeners are dropped."""
        if self._unsubscribe_provider is not None:
            self._unsubscribe_provider()
            self._unsubscribe_provider = None
        self._listeners.clear()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register for identity changes; the current value is delivered at once.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)
        listener(self._identity)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _handle_identity_change(self, identity: Optional[Identity]) -> None:
        if identity == self._identity:
            return
        self._identity = identity
        if identity is None:
            logger.warning("Session lost - collections will detach")
        else:
            kind = "anonymous" if identity.is_anonymous else "token"
            logger.info(f"Session ready: uid={identity.uid} ({kind})")
        for listener in list(self._listeners):
            listener(identity)
