"""Accumulate-then-flush buffer bounding route file writes per origin."""

from __future__ import annotations

import logging
from typing import Callable, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class FlushBuffer(Generic[K, V]):
    """Collects items per key and hands them to ``flush`` every ``batch_size`` items.

    ``flush_all`` writes whatever is left; at most one batch per key is lost if the
    process dies between flushes. Callers that write asynchronously use ``stage`` and
    ``take`` and perform the write themselves.
    """

    def __init__(self, flush: Optional[Callable[[K, list[V]], object]] = None, batch_size: int = 50) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1.")
        self._flush = flush
        self.batch_size = batch_size
        self._items: dict[K, list[V]] = {}
        self.flush_count = 0

    def stage(self, key: K, item: V) -> list[V]:
        """Stage ``item``; returns the full batch for ``key`` once it reaches ``batch_size``, else []."""
        items = self._items.setdefault(key, [])
        items.append(item)
        if len(items) < self.batch_size:
            return []
        return self.take(key)

    def take(self, key: K) -> list[V]:
        items = self._items.pop(key, [])
        if items:
            self.flush_count += 1
        return items

    def add(self, key: K, item: V) -> bool:
        """Stage ``item``; returns True when this call triggered a flush of ``key``."""
        batch = self.stage(key, item)
        if batch:
            self._write(key, batch)
        return bool(batch)

    def pending(self, key: K) -> int:
        return len(self._items.get(key, ()))

    def keys(self) -> list[K]:
        return [key for key, items in self._items.items() if items]

    def flush(self, key: K) -> int:
        items = self.take(key)
        if items:
            self._write(key, items)
        return len(items)

    def flush_all(self) -> int:
        return sum(self.flush(key) for key in self.keys())

    def _write(self, key: K, items: list[V]) -> None:
        if self._flush is None:
            raise RuntimeError("FlushBuffer has no flush callable; use take() and write the batch.")
        self._flush(key, items)
        logger.debug(f"Flushed {len(items)} items for {key}")
