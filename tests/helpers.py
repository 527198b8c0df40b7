"""Shared helpers for driving the event loop and background threads in tests."""

import asyncio
import time


async def settle(rounds: int = 10) -> None:
    """Let callbacks queued with call_soon (and tasks they spawn) run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` from a test thread until it is true or time runs out."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
