import threading
import time
from typing import Callable, Dict, Iterable, Optional

from .models import CacheEntry, JourneyLeg, utc_now_iso
from .stations import Route


class FreshnessCache:
    """Last good result per route, superseded in place on every refresh.

    Staleness is only reported here; whether a stale entry may still be served
    is the fetcher's decision.
    """

    def __init__(self, ttl_sec: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_sec = max(0, ttl_sec)
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, route: Route) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(route.key)

    def put(
        self,
        route: Route,
        payload: Iterable[JourneyLeg],
        source: str,
        strategy: Optional[str] = None,
    ) -> CacheEntry:
        entry = CacheEntry(
            payload=tuple(payload),
            fetched_at=self._clock(),
            fetched_at_iso=utc_now_iso(),
            source=source,
            strategy=strategy,
        )
        with self._lock:
            self._entries[route.key] = entry
        return entry

    def age(self, entry: CacheEntry) -> float:
        return max(0.0, self._clock() - entry.fetched_at)

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self.age(entry) < self.ttl_sec

    def remaining_ttl(self, entry: CacheEntry) -> int:
        return max(0, int(self.ttl_sec - self.age(entry)))

    def snapshot(self) -> Dict[str, CacheEntry]:
        with self._lock:
            return dict(self._entries)
