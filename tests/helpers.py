"""Small async helpers shared by the tests."""

from __future__ import annotations

import asyncio


async def settle(rounds: int = 5) -> None:
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
