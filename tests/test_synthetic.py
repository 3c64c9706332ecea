import datetime
import random

import pytest

from oebb_proxy.models import (
    DISPLAY_LIMIT,
    LOCAL_TZ,
    add_minutes,
    classify_delay,
    parse_clock,
)
from oebb_proxy.schedule import SCHEDULES, ScheduleEntry, schedule_for
from oebb_proxy.stations import all_routes, resolve_route
from oebb_proxy.synthetic import DelayPolicy, SyntheticScheduleGenerator


class FixedRandom:
    """Always delays, always by the largest allowed amount."""

    def random(self):
        return 0.0

    def randint(self, low, high):
        return high


class NeverRandom:
    def random(self):
        return 0.99

    def randint(self, low, high):
        raise AssertionError("no delay should be drawn")


def at(hour, minute):
    return datetime.datetime(2026, 10, 19, hour, minute, tzinfo=LOCAL_TZ)


def entry_by_number(route, number):
    return next(entry for entry in schedule_for(route) if entry.train_number == number)


def test_eight_oclock_scenario():
    route = resolve_route("stpoelten", "linz")
    generator = SyntheticScheduleGenerator(rng=NeverRandom())

    legs = generator.generate(route, at(8, 0))

    assert [leg.train_number for leg in legs] == ["WB 8642", "RJ 546", "WB 8644"]
    for leg in legs:
        entry = entry_by_number(route, leg.train_number)
        assert parse_clock(leg.departure) > 8 * 60
        assert leg.arrival == add_minutes(leg.departure, entry.duration_minutes)
        assert leg.platform == entry.platform
        assert leg.delay_minutes == 0
        assert leg.status == "on-time"
        assert leg.next_day is False


@pytest.mark.parametrize("hour", range(24))
def test_legs_within_policy_for_every_hour(hour):
    policy = DelayPolicy()
    generator = SyntheticScheduleGenerator(rng=random.Random(hour), policy=policy)
    now = at(hour, 30)
    for route in all_routes():
        legs = generator.generate(route, now)
        assert 1 <= len(legs) <= DISPLAY_LIMIT
        for leg in legs:
            assert leg.next_day or parse_clock(leg.departure) > hour * 60 + 30
            dep_hour = parse_clock(leg.departure) // 60
            assert 0 <= leg.delay_minutes <= policy.max_delay(dep_hour)
            assert leg.status == classify_delay(leg.delay_minutes)


def test_wraps_to_tomorrow_after_last_departure():
    route = resolve_route("linz", "stpoelten")
    generator = SyntheticScheduleGenerator(rng=NeverRandom())

    legs = generator.generate(route, at(21, 0))

    assert [leg.departure for leg in legs] == ["21:07", "05:07", "06:07"]
    assert [leg.next_day for leg in legs] == [False, True, True]


def test_exactly_at_departure_is_not_next():
    route = resolve_route("stpoelten", "linz")
    legs = SyntheticScheduleGenerator(rng=NeverRandom()).generate(route, at(8, 12))
    assert legs[0].departure == "08:42"


def test_rush_hour_delays_use_rush_bounds():
    policy = DelayPolicy()
    route = resolve_route("stpoelten", "linz")
    legs = SyntheticScheduleGenerator(rng=FixedRandom(), policy=policy).generate(route, at(7, 0))

    # 07:12, 07:42, 08:12 all fall inside the morning window
    assert [leg.delay_minutes for leg in legs] == [policy.rush_max_delay] * 3
    assert all(leg.status == "delayed" for leg in legs)


def test_off_peak_uses_base_bounds():
    policy = DelayPolicy(base_max_delay=4)
    route = resolve_route("stpoelten", "linz")
    legs = SyntheticScheduleGenerator(rng=FixedRandom(), policy=policy).generate(route, at(11, 0))

    assert [leg.delay_minutes for leg in legs] == [4, 4, 4]
    assert all(leg.status == "slightly-delayed" for leg in legs)


def test_short_table_from_injected_lookup():
    table = (ScheduleEntry("10:00", "REX 1", 90, "3"),)
    generator = SyntheticScheduleGenerator(rng=NeverRandom(), schedules=lambda route: table)
    legs = generator.generate(resolve_route("stpoelten", "linz"), at(12, 0))

    assert len(legs) == 1
    assert legs[0].next_day is True
    assert legs[0].arrival == "11:30"


def test_tables_cover_both_directions():
    for route in all_routes():
        entries = schedule_for(route)
        assert entries
        assert list(entries) == sorted(entries, key=lambda entry: entry.minute_of_day)
    assert len(SCHEDULES) == 2


def test_timetable_is_on_time_and_draws_nothing():
    class UntouchedRandom:
        def random(self):
            raise AssertionError("timetable must not draw delays")

    route = resolve_route("linz", "stpoelten")
    timetable = SyntheticScheduleGenerator(rng=UntouchedRandom()).timetable(route, at(23, 50))
    delayed = SyntheticScheduleGenerator(rng=FixedRandom()).generate(route, at(23, 50))

    assert len(timetable) == DISPLAY_LIMIT
    assert {leg.train_number for leg in timetable} == {leg.train_number for leg in delayed}
    assert all(leg.delay_minutes == 0 and leg.status == "on-time" for leg in timetable)
    assert any(leg.next_day for leg in timetable)
