"""Per-issue serialisation of automator runs.

Two deliveries for the same issue that arrive close together can both
pass the existing-comment check before either posts its comment. Running
them under a shared lock makes the second one see the first one's
comment. The lock only covers runs inside this process.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class IssueLockRegistry:
    """Hands out one asyncio.Lock per issue id.

    Locks are created on first use and dropped once no task holds or
    waits on them, so the registry does not grow with every issue seen.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, issue_id: str) -> AsyncIterator[None]:
        """Hold the lock for ``issue_id`` for the duration of the block."""
        lock = self._locks.setdefault(issue_id, asyncio.Lock())
        self._users[issue_id] = self._users.get(issue_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[issue_id] -= 1
            if self._users[issue_id] == 0:
                del self._users[issue_id]
                del self._locks[issue_id]
