import datetime
from dataclasses import dataclass
import logging
import random
from typing import Callable, List, Optional, Sequence, Tuple

from .models import DISPLAY_LIMIT, JourneyLeg, build_leg, minutes_of_day, order_legs
from .schedule import ScheduleEntry, schedule_for
from .stations import Route

log = logging.getLogger(__name__)

ScheduleLookup = Callable[[Route], Sequence[ScheduleEntry]]


@dataclass(frozen=True)
class DelayPolicy:
    """Probability and size of the random delays drawn per departure."""

    base_probability: float = 0.15
    rush_probability: float = 0.30
    base_max_delay: int = 8
    rush_max_delay: int = 12
    # inclusive hour ranges
    rush_hours: Tuple[Tuple[int, int], ...] = ((7, 9), (17, 19))

    def is_rush_hour(self, hour: int) -> bool:
        return any(start <= hour <= end for start, end in self.rush_hours)

    def max_delay(self, hour: int) -> int:
        return self.rush_max_delay if self.is_rush_hour(hour) else self.base_max_delay

    def draw(self, hour: int, rng: random.Random) -> int:
        rush = self.is_rush_hour(hour)
        probability = self.rush_probability if rush else self.base_probability
        if rng.random() >= probability:
            return 0
        return rng.randint(1, self.max_delay(hour))


class SyntheticScheduleGenerator:
    def __init__(
        self,
        rng: Optional[random.Random] = None,
        policy: Optional[DelayPolicy] = None,
        schedules: ScheduleLookup = schedule_for,
        limit: int = DISPLAY_LIMIT,
    ) -> None:
        self.rng = rng if rng is not None else random.Random()
        self.policy = policy or DelayPolicy()
        self.schedules = schedules
        self.limit = limit

    def next_departures(
        self, route: Route, now: datetime.datetime
    ) -> List[Tuple[ScheduleEntry, bool]]:
        """Pick the next entries strictly after ``now``, wrapping to tomorrow."""
        entries = sorted(self.schedules(route), key=lambda entry: entry.minute_of_day)
        current = minutes_of_day(now)

        picked = [(entry, False) for entry in entries if entry.minute_of_day > current]
        picked = picked[: self.limit]
        for entry in entries[: self.limit - len(picked)]:
            picked.append((entry, True))
        return picked

    def generate(self, route: Route, now: datetime.datetime) -> List[JourneyLeg]:
        legs = self._legs(route, now, lambda hour: self.policy.draw(hour, self.rng))
        log.info("Synthesized %d departures for %s", len(legs), route.key)
        return legs

    def timetable(self, route: Route, now: datetime.datetime) -> List[JourneyLeg]:
        """The same departures as :meth:`generate`, all on time."""
        return self._legs(route, now, lambda hour: 0)

    def _legs(
        self, route: Route, now: datetime.datetime, delay_for: Callable[[int], int]
    ) -> List[JourneyLeg]:
        legs: List[JourneyLeg] = []
        for entry, tomorrow in self.next_departures(route, now):
            hour = entry.minute_of_day // 60
            legs.append(
                build_leg(
                    entry.departure,
                    entry.train_number,
                    duration_minutes=entry.duration_minutes,
                    delay_minutes=delay_for(hour),
                    platform=entry.platform,
                    next_day=tomorrow,
                )
            )
        return order_legs(legs)
