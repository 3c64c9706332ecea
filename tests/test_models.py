import pytest

from oebb_proxy.models import (
    DISPLAY_LIMIT,
    STATUS_DELAYED,
    STATUS_ON_TIME,
    STATUS_SLIGHTLY_DELAYED,
    add_minutes,
    build_leg,
    cap_legs,
    classify_delay,
    normalize_train_type,
    order_legs,
)
from oebb_proxy.stations import parse_route_slug, resolve_route
from oebb_proxy.errors import ConfigurationMissing


def test_delay_status_boundaries():
    assert classify_delay(0) == STATUS_ON_TIME
    assert classify_delay(-3) == STATUS_ON_TIME
    assert classify_delay(1) == STATUS_SLIGHTLY_DELAYED
    assert classify_delay(5) == STATUS_SLIGHTLY_DELAYED
    assert classify_delay(6) == STATUS_DELAYED
    assert classify_delay(45) == STATUS_DELAYED


@pytest.mark.parametrize(
    "name, expected",
    [
        ("RJX 762", "RJX"),
        ("RJ 540", "RJ"),
        ("ICE 91", "ICE"),
        ("IC 690", "IC"),
        ("WB 8640", "WB"),
        ("WESTbahn 8642", "WB"),
        ("NJ 246", "NJ"),
        ("Nightjet 40490", "NJ"),
        ("REX 1620", "REX"),
        ("D 345", "D"),
        ("S 1", "S"),
        ("R 2012", "R"),
        ("CJX 9", "Train"),
        ("", "Train"),
        (None, "Train"),
    ],
)
def test_normalize_train_type(name, expected):
    assert normalize_train_type(name) == expected


def test_add_minutes_wraps_midnight():
    assert add_minutes("08:42", 71) == "09:53"
    assert add_minutes("23:30", 71) == "00:41"
    assert add_minutes("7:05", 0) == "07:05"


def test_build_leg_derives_arrival_and_status():
    leg = build_leg("21:42", "RJ  572", duration_minutes=71, delay_minutes=7)
    assert leg.departure == "21:42"
    assert leg.arrival == "22:53"
    assert leg.train_type == "RJ"
    assert leg.train_number == "RJ 572"
    assert leg.delay_minutes == 7
    assert leg.status == STATUS_DELAYED
    assert leg.platform == "?"


def test_build_leg_keeps_live_arrival_and_clamps_delay():
    leg = build_leg(
        "08:12", "WB 8642", duration_minutes=71, arrival="9:20", delay_minutes=-2, platform=" 1 "
    )
    assert leg.arrival == "09:20"
    assert leg.delay_minutes == 0
    assert leg.status == STATUS_ON_TIME
    assert leg.platform == "1"


def test_build_leg_without_train_name():
    leg = build_leg("06:07", None, duration_minutes=71)
    assert leg.train_type == "Train"
    assert leg.train_number == "Train 0607"


def test_build_leg_rejects_bad_clock():
    with pytest.raises(ValueError):
        build_leg("25:99", "RJ 1", duration_minutes=71)


def test_order_legs_by_actual_departure():
    legs = [
        build_leg("08:42", "RJ 546", duration_minutes=71, delay_minutes=40),
        build_leg("09:12", "WB 8644", duration_minutes=68),
        build_leg("09:42", "RJ 548", duration_minutes=71),
    ]
    ordered = order_legs(legs)
    assert [leg.train_number for leg in ordered] == ["WB 8644", "RJ 546", "RJ 548"]


def test_order_legs_keeps_source_order_without_delays():
    legs = [
        build_leg("09:42", "RJ 548", duration_minutes=71),
        build_leg("09:12", "WB 8644", duration_minutes=68),
    ]
    assert order_legs(legs) == legs


def test_order_legs_across_midnight():
    legs = [
        build_leg("23:50", "NJ 40490", duration_minutes=71, delay_minutes=3),
        build_leg("00:20", "NJ 246", duration_minutes=71),
    ]
    assert [leg.train_number for leg in order_legs(legs)] == ["NJ 40490", "NJ 246"]


def test_cap_legs():
    legs = [build_leg(f"1{i}:00", "RJ 1", duration_minutes=71) for i in range(5)]
    assert len(cap_legs(legs)) == DISPLAY_LIMIT


def test_leg_json_shape():
    leg = build_leg("08:42", "RJ 546", duration_minutes=71, delay_minutes=2, platform="2")
    assert leg.to_dict() == {
        "departure": "08:42",
        "arrival": "09:53",
        "trainType": "RJ",
        "trainNumber": "RJ 546",
        "delay": 2,
        "status": STATUS_SLIGHTLY_DELAYED,
        "platform": "2",
        "nextDay": False,
    }


def test_route_resolution():
    route = parse_route_slug("stpoelten-linz")
    assert route.label == "St. Pölten → Linz"
    assert route.key == "stpoelten-linz"
    assert resolve_route("LINZ", "stpoelten").origin.eva_id == "8100013"

    with pytest.raises(ConfigurationMissing):
        parse_route_slug("wien-linz")
    with pytest.raises(ConfigurationMissing):
        parse_route_slug("stpoelten")
