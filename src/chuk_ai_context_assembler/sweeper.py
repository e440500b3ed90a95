# chuk_ai_context_assembler/sweeper.py
"""
Periodic TTL sweep for the shared caches.

Expired entries are already ignored on read; the sweep only reclaims
memory for keys that are never read again. One asyncio task sweeps every
registered cache each interval until stopped.

Usage::

    sweeper = CacheSweeper([assembler.delta_cache, assembler.image_processor])
    await sweeper.start()
    ...
    await sweeper.stop()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from .config import SweeperConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class Sweepable(Protocol):
    """Anything that can drop its expired entries."""

    def sweep(self) -> int: ...


class CacheSweeper:
    """Runs ``sweep()`` on each registered cache at a fixed interval."""

    def __init__(
        self,
        caches: Iterable[Sweepable] = (),
        config: SweeperConfig | None = None,
    ) -> None:
        self.config = config or SweeperConfig()
        self._caches: list[Sweepable] = list(caches)
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.runs = 0
        self.total_removed = 0

    def register(self, cache: Sweepable) -> None:
        self._caches.append(cache)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> int:
        """Sweep every cache now. A failing cache does not stop the others."""
        removed = 0
        for cache in self._caches:
            try:
                removed += cache.sweep()
            except Exception:
                logger.exception("Sweep failed for %s", type(cache).__name__)
        self.runs += 1
        self.total_removed += removed
        if removed:
            logger.debug("Cache sweep removed %d expired entries", removed)
        return removed

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.config.interval_seconds)
            except asyncio.TimeoutError:
                self.sweep_once()

    async def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="context-cache-sweeper")
        logger.debug("Cache sweeper started (interval %.0fs)", self.config.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop.set()
        await self._task
        self._task = None
        logger.debug("Cache sweeper stopped after %d runs", self.runs)

    async def __aenter__(self) -> CacheSweeper:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
