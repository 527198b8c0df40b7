"""
Unit tests for the SessionManager.

Sign-in path selection, readiness notifications and the no-retry
failure behavior.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from core.context import AppContext
from core.exceptions import IdentityExchangeError
from core.memory_backend import MemoryIdentityProvider
from services.session_manager import SessionManager


class TestSignIn:
    """Test how the session signs in."""

    def test_anonymous_without_token(self, context):
        """Test anonymous sign-in is used when no token is configured."""
        session = SessionManager(context)

        identity = asyncio.run(session.start())

        assert identity is not None
        assert identity.is_anonymous is True
        assert session.is_ready is True
        assert session.identity == identity

    def test_token_exchange_with_token(self, token_context):
        """Test the pre-issued token is exchanged when configured."""
        session = SessionManager(token_context)

        identity = asyncio.run(session.start())

        assert identity.is_anonymous is False
        assert session.is_ready is True

    def test_same_token_same_uid(self, memory_store):
        """Test token exchange maps one token onto one user."""
        uids = []
        for _ in range(2):
            ctx = AppContext(memory_store, MemoryIdentityProvider(), "t", initial_auth_token="tok")
            uids.append(asyncio.run(SessionManager(ctx).start()).uid)

        assert uids[0] == uids[1]

    def test_start_twice_is_an_error(self, context):
        """Test a second start raises."""
        session = SessionManager(context)

        async def scenario():
            await session.start()
            await session.start()

        with pytest.raises(RuntimeError):
            asyncio.run(scenario())


class TestSignInFailure:
    """Test failed sign-in leaves the session unready."""

    def test_rejected_sign_in(self, memory_store):
        """Test a provider rejection is recorded, not raised."""
        provider = MemoryIdentityProvider(reject_sign_in=True)
        session = SessionManager(AppContext(memory_store, provider, "t"))

        identity = asyncio.run(session.start())

        assert identity is None
        assert session.is_ready is False
        assert isinstance(session.last_error, IdentityExchangeError)

    def test_unexpected_error_is_wrapped(self, memory_store):
        """Test a non-provider exception becomes an IdentityExchangeError."""
        provider = MemoryIdentityProvider()
        provider.sign_in_anonymously = AsyncMock(side_effect=ConnectionError("offline"))
        session = SessionManager(AppContext(memory_store, provider, "t"))

        asyncio.run(session.start())

        assert session.is_ready is False
        assert isinstance(session.last_error, IdentityExchangeError)
        assert "offline" in str(session.last_error)

    def test_no_retry(self, memory_store):
        """Test the provider is called exactly once after a failure."""
        provider = MemoryIdentityProvider()
        provider.sign_in_anonymously = AsyncMock(side_effect=IdentityExchangeError("anonymous", "down"))
        session = SessionManager(AppContext(memory_store, provider, "t"))

        async def scenario():
            await session.start()
            await asyncio.sleep(0.05)

        asyncio.run(scenario())

        assert provider.sign_in_anonymously.await_count == 1
        assert session.is_ready is False


class TestListeners:
    """Test the readiness observer contract."""

    def test_current_value_delivered_immediately(self, context):
        """Test a new listener receives None before sign-in."""
        session = SessionManager(context)
        seen = []

        session.subscribe(seen.append)

        assert seen == [None]

    def test_identity_delivered_once_on_sign_in(self, context):
        session = SessionManager(context)
        seen = []
        session.subscribe(seen.append)

        identity = asyncio.run(session.start())

        assert seen == [None, identity]

    def test_sign_out_delivers_none(self, context, identity_provider):
        """Test losing the identity suspends the session."""
        session = SessionManager(context)
        seen = []
        session.subscribe(seen.append)

        asyncio.run(session.start())
        identity_provider.sign_out()

        assert seen[-1] is None
        assert session.is_ready is False

    def test_unsubscribe(self, context):
        session = SessionManager(context)
        seen = []
        unsubscribe = session.subscribe(seen.append)
        unsubscribe()

        asyncio.run(session.start())

        assert seen == [None]

    def test_stop_detaches_from_provider(self, context, identity_provider):
        """Test stop() ignores later provider changes."""
        session = SessionManager(context)
        asyncio.run(session.start())
        session.stop()

        identity_provider.sign_out()

        assert session.is_ready is True
