"""Coordination primitives for the single-threaded asyncio pipeline."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Hashable
from contextlib import asynccontextmanager
from typing import AsyncIterator, TypeVar

T = TypeVar("T")


class DraftAccess:
    """Per-draft guard: reads share access with each other, mutations run alone.

    A mutation waits for in-flight reads to finish and blocks new reads until it is done.
    Mutations queue behind each other in arrival order.
    """

    def __init__(self) -> None:
        self._condition = asyncio.Condition()
        self._readers = 0
        self._writing = False
        self._waiting_writers = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def writing(self) -> bool:
        return self._writing

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(lambda: not self._writing and self._waiting_writers == 0)
            self._readers += 1
        try:
            yield
        finally:
            async with self._condition:
                self._readers -= 1
                self._condition.notify_all()

    @asynccontextmanager
    async def mutate(self) -> AsyncIterator[None]:
        async with self._condition:
            self._waiting_writers += 1
            try:
                await self._condition.wait_for(lambda: not self._writing and self._readers == 0)
            finally:
                self._waiting_writers -= 1
            self._writing = True
        try:
            yield
        finally:
            async with self._condition:
                self._writing = False
                self._condition.notify_all()


class DraftAccessRegistry:
    def __init__(self) -> None:
        self._guards: dict[str, DraftAccess] = defaultdict(DraftAccess)

    def for_draft(self, draft_id: str) -> DraftAccess:
        return self._guards[draft_id]

    def forget(self, draft_id: str) -> None:
        self._guards.pop(draft_id, None)


class LatestOnly:
    """Drops responses of fetches that were superseded by a newer fetch for the same key."""

    def __init__(self) -> None:
        self._tokens: dict[Hashable, int] = defaultdict(int)

    def begin(self, key: Hashable) -> int:
        self._tokens[key] += 1
        return self._tokens[key]

    def is_current(self, key: Hashable, token: int) -> bool:
        return self._tokens[key] == token

    def invalidate(self, key: Hashable) -> None:
        self._tokens[key] += 1

    async def run(self, key: Hashable, fetch: Awaitable[T]) -> T | None:
        """Await ``fetch`` and return its result, or None if a newer fetch started meanwhile."""
        token = self.begin(key)
        result = await fetch
        if not self.is_current(key, token):
            return None
        return result
