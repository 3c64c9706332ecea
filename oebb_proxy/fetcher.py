from contextlib import contextmanager
import datetime
from dataclasses import dataclass
import logging
import threading
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from .cache import FreshnessCache
from .errors import Busy
from .models import (
    CacheEntry,
    JourneyLeg,
    SOURCE_LIVE,
    SOURCE_STALE,
    SOURCE_SYNTHETIC,
    local_now,
    utc_now_iso,
)
from .stations import Route
from .strategies import AcquisitionStrategy
from .synthetic import SyntheticScheduleGenerator

log = logging.getLogger(__name__)


class SingleFlightGate:
    """Process-wide marker allowing one acquisition sequence at a time."""

    def __init__(self, wait_sec: float = 2.0) -> None:
        self.wait_sec = max(0.0, wait_sec)
        self._lock = threading.Lock()

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self) -> Iterator[None]:
        acquired = (
            self._lock.acquire(timeout=self.wait_sec)
            if self.wait_sec > 0
            else self._lock.acquire(blocking=False)
        )
        if not acquired:
            raise Busy(retry_after=max(1, int(self.wait_sec)))
        try:
            yield
        finally:
            self._lock.release()


@dataclass(frozen=True)
class FetchResult:
    legs: Tuple[JourneyLeg, ...]
    source: str
    fetched_at: str
    cached: bool = False
    strategy: Optional[str] = None
    error: Optional[str] = None

    @property
    def real_time(self) -> bool:
        return self.source == SOURCE_LIVE


class TieredFetcher:
    """Cache check, then each strategy in order, then stale data or a synthetic schedule."""

    def __init__(
        self,
        strategies: Sequence[AcquisitionStrategy],
        cache: FreshnessCache,
        generator: SyntheticScheduleGenerator,
        gate: Optional[SingleFlightGate] = None,
        clock: Callable[[], datetime.datetime] = local_now,
    ) -> None:
        self.strategies = list(strategies)
        self.cache = cache
        self.generator = generator
        self.gate = gate or SingleFlightGate()
        self.clock = clock

    def fetch(self, route: Route, now: Optional[datetime.datetime] = None) -> FetchResult:
        now = now or self.clock()
        entry = self.cache.get(route)
        if entry is not None and self.cache.is_fresh(entry):
            return self._from_cache(entry, cached=True)

        try:
            with self.gate.hold():
                # another request may have refreshed while we waited on the gate
                entry = self.cache.get(route)
                if entry is not None and self.cache.is_fresh(entry):
                    return self._from_cache(entry, cached=True)
                return self._refresh(route, now, entry)
        except Busy:
            if entry is None:
                raise
            log.info("Refresh in flight, serving cached %s for %s", entry.source, route.key)
            return self._degraded(
                route, now, entry, "fetch already in progress", holding_gate=False
            )

    def _refresh(
        self, route: Route, now: datetime.datetime, entry: Optional[CacheEntry]
    ) -> FetchResult:
        failures: List[str] = []
        for strategy in self.strategies:
            try:
                legs = strategy.attempt(route, now)
            except Exception as exc:
                log.warning("Strategy %s raised for %s: %s", strategy.name, route.key, exc)
                failures.append(strategy.name)
                continue
            if legs:
                log.info("Got %d trains via %s for %s", len(legs), strategy.name, route.key)
                stored = self.cache.put(route, legs, SOURCE_LIVE, strategy=strategy.name)
                return self._from_cache(stored, cached=False)
            failures.append(strategy.name)

        message = "All acquisition strategies returned no data"
        if failures:
            message += f" ({', '.join(failures)})"
        log.warning("%s for %s", message, route.key)
        return self._degraded(route, now, entry, message)

    def _degraded(
        self,
        route: Route,
        now: datetime.datetime,
        entry: Optional[CacheEntry],
        message: str,
        *,
        holding_gate: bool = True,
    ) -> FetchResult:
        if entry is not None and entry.source in (SOURCE_LIVE, SOURCE_STALE):
            return FetchResult(
                legs=entry.payload,
                source=SOURCE_STALE,
                fetched_at=entry.fetched_at_iso,
                cached=True,
                strategy=entry.strategy,
                error=message,
            )

        legs = self.generator.generate(route, now)
        if not holding_gate:
            return FetchResult(
                legs=tuple(legs),
                source=SOURCE_SYNTHETIC,
                fetched_at=utc_now_iso(),
                error=message,
            )
        stored = self.cache.put(route, legs, SOURCE_SYNTHETIC)
        return self._from_cache(stored, cached=False, error=message)

    @staticmethod
    def _from_cache(
        entry: CacheEntry, *, cached: bool, error: Optional[str] = None
    ) -> FetchResult:
        return FetchResult(
            legs=entry.payload,
            source=entry.source,
            fetched_at=entry.fetched_at_iso,
            cached=cached,
            strategy=entry.strategy,
            error=error,
        )
