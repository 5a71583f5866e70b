"""Config broadcast for driptrap.

The ConfigStore holds the latest Config snapshot. A single writer (the
server) publishes whole snapshots; every session holds a ConfigSubscriber
that can read the current snapshot at any time and wait for the next one.
Publishing never waits on subscribers. A subscriber that falls behind skips
straight to the newest snapshot, so it never goes backwards.
"""

from __future__ import annotations

import asyncio
from typing import Tuple

from .config import Config


class ConfigStore:
    """Single-writer, multi-reader holder of the live Config."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._version = 0
        self._changed = asyncio.Event()

    @property
    def version(self) -> int:
        return self._version

    def current(self) -> Config:
        return self._config

    def snapshot(self) -> Tuple[int, Config]:
        return self._version, self._config

    def publish(self, config: Config) -> None:
        """Replace the snapshot and wake every waiting subscriber."""
        self._config = config
        self._version += 1
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    def subscribe(self) -> "ConfigSubscriber":
        return ConfigSubscriber(self)

    async def _wait_past(self, version: int) -> None:
        while self._version == version:
            await self._changed.wait()


class ConfigSubscriber:
    """Read handle on a ConfigStore.

    The handle remembers the version it last consumed. :meth:`changed`
    waits until a newer snapshot exists; :meth:`borrow_and_update` reads it
    and marks it as consumed.
    """

    def __init__(self, store: ConfigStore) -> None:
        self._store = store
        self._seen = store.version

    def borrow(self) -> Config:
        return self._store.current()

    def borrow_and_update(self) -> Config:
        self._seen, config = self._store.snapshot()
        return config

    def has_changed(self) -> bool:
        return self._store.version != self._seen

    async def changed(self) -> None:
        """Wait until a snapshot newer than the last consumed one exists."""
        await self._store._wait_past(self._seen)
