"""TTL cache for per-studio values that are read on every booking request."""
from __future__ import annotations

from typing import Callable, Dict, Generic, Optional, TypeVar

from cachetools import TTLCache

T = TypeVar("T")


class StudioCache(Generic[T]):
    """Values keyed by studio id, expiring after ``ttl`` seconds.

    A ``ttl`` of zero disables caching entirely, which keeps every read
    going to the store.

    Each studio carries a generation counter bumped by :meth:`invalidate`.
    A load that started before an invalidation does not store its result.
    """

    def __init__(self, namespace: str, ttl: int, maxsize: int = 256) -> None:
        self.namespace = namespace
        self._enabled = ttl > 0
        self._cache: TTLCache[str, T] = TTLCache(maxsize=maxsize, ttl=max(ttl, 1))
        self._generations: Dict[str, int] = {}

    def _key(self, studio_id: str) -> str:
        return f"{self.namespace}:{studio_id}"

    def get(self, studio_id: str) -> Optional[T]:
        if not self._enabled:
            return None
        return self._cache.get(self._key(studio_id))

    def set(self, studio_id: str, value: T) -> None:
        if self._enabled:
            self._cache[self._key(studio_id)] = value

    def get_or_load(self, studio_id: str, loader: Callable[[], T]) -> T:
        cached = self.get(studio_id)
        if cached is not None:
            return cached
        generation = self._generations.get(studio_id, 0)
        value = loader()
        if self._generations.get(studio_id, 0) == generation:
            self.set(studio_id, value)
        return value

    def invalidate(self, studio_id: str) -> None:
        self._generations[studio_id] = self._generations.get(studio_id, 0) + 1
        self._cache.pop(self._key(studio_id), None)

    def clear(self) -> None:
        self._cache.clear()
        self._generations.clear()

    def __len__(self) -> int:
        return len(self._cache)
