"""Per-scope mutual exclusion for backup creation."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

WHOLE_STORE = None


class ScopeLocks:
    """Exclusive locks keyed by note id, where ``None`` means the whole store.

    A note scope conflicts with the same note and with the whole store; the
    whole-store scope conflicts with every scope.
    """

    def __init__(self):
        self._condition: Optional[asyncio.Condition] = None
        self._held: List[Optional[str]] = []

    @property
    def held(self) -> List[Optional[str]]:
        return list(self._held)

    def _get_condition(self) -> asyncio.Condition:
        # Created lazily so it binds to the running loop
        if self._condition is None:
            self._condition = asyncio.Condition()
        return self._condition

    @staticmethod
    def conflicts(a: Optional[str], b: Optional[str]) -> bool:
        return a is WHOLE_STORE or b is WHOLE_STORE or a == b

    def _is_free(self, scope: Optional[str]) -> bool:
        return not any(self.conflicts(scope, held) for held in self._held)

    @asynccontextmanager
    async def hold(self, scope: Optional[str] = WHOLE_STORE) -> AsyncIterator[None]:
        condition = self._get_condition()
        async with condition:
            await condition.wait_for(lambda: self._is_free(scope))
            self._held.append(scope)
        try:
            yield
        finally:
            async with condition:
                self._held.remove(scope)
                condition.notify_all()
