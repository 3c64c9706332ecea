import datetime
from dataclasses import dataclass
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

LOCAL_TZ = ZoneInfo("Europe/Vienna")

DISPLAY_LIMIT = 3
MINUTES_PER_DAY = 24 * 60

STATUS_ON_TIME = "on-time"
STATUS_SLIGHTLY_DELAYED = "slightly-delayed"
STATUS_DELAYED = "delayed"
SLIGHT_DELAY_MAX_MIN = 5

SOURCE_LIVE = "live"
SOURCE_STALE = "stale-live"
SOURCE_SYNTHETIC = "synthetic"
SOURCE_TIMETABLE = "timetable"

DEFAULT_TRAIN_TYPE = "Train"
UNKNOWN_PLATFORM = "?"

_CLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})")

JsonDict = Dict[str, Any]


@dataclass(frozen=True)
class JourneyLeg:
    departure: str
    arrival: str
    train_type: str
    train_number: str
    delay_minutes: int
    status: str
    platform: str
    next_day: bool = False

    def to_dict(self) -> JsonDict:
        return {
            "departure": self.departure,
            "arrival": self.arrival,
            "trainType": self.train_type,
            "trainNumber": self.train_number,
            "delay": self.delay_minutes,
            "status": self.status,
            "platform": self.platform,
            "nextDay": self.next_day,
        }


@dataclass(frozen=True)
class CacheEntry:
    payload: Tuple[JourneyLeg, ...]
    fetched_at: float
    fetched_at_iso: str
    source: str
    strategy: Optional[str] = None


def classify_delay(delay_minutes: int) -> str:
    delay = max(0, delay_minutes)
    if delay == 0:
        return STATUS_ON_TIME
    if delay <= SLIGHT_DELAY_MAX_MIN:
        return STATUS_SLIGHTLY_DELAYED
    return STATUS_DELAYED


def normalize_train_type(name: Optional[str]) -> str:
    """Map a free-text train name like ``"RJX 762"`` to its short product code."""
    if not name:
        return DEFAULT_TRAIN_TYPE
    upper = str(name).upper()
    if "RJX" in upper:
        return "RJX"
    if "RJ" in upper:
        return "RJ"
    if "ICE" in upper:
        return "ICE"
    if upper.startswith("IC") or "IC " in upper:
        return "IC"
    if "WESTBAHN" in upper or "WB" in upper:
        return "WB"
    if "NIGHTJET" in upper or "NJ" in upper:
        return "NJ"
    if "REX" in upper:
        return "REX"
    # single-letter products only count when followed by a number
    padded = upper + " "
    for code in ("D", "S", "R"):
        if padded.startswith(code + " ") or f" {code} " in padded:
            return code
    return DEFAULT_TRAIN_TYPE


def parse_clock(value: str) -> int:
    """Return minutes after midnight for an ``H:MM``/``HH:MM`` string."""
    match = _CLOCK_RE.match(value or "")
    if not match:
        raise ValueError(f"Unexpected time of day: {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Unexpected time of day: {value!r}")
    return hour * 60 + minute


def format_clock(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes(clock: str, minutes: int) -> str:
    return format_clock(parse_clock(clock) + minutes)


def minutes_of_day(moment: datetime.datetime) -> int:
    return moment.hour * 60 + moment.minute


def build_leg(
    departure: str,
    train_name: Optional[str],
    *,
    duration_minutes: int,
    delay_minutes: Optional[int] = 0,
    arrival: Optional[str] = None,
    platform: Optional[str] = None,
    next_day: bool = False,
) -> JourneyLeg:
    """Assemble a leg, deriving arrival from the route duration when absent."""
    dep_minutes = parse_clock(departure)
    if arrival:
        arrival = format_clock(parse_clock(arrival))
    else:
        arrival = format_clock(dep_minutes + duration_minutes)

    delay = max(0, int(delay_minutes or 0))
    train_type = normalize_train_type(train_name)
    train_number = " ".join(str(train_name).split()) if train_name else ""
    if not train_number:
        train_number = f"{train_type} {format_clock(dep_minutes).replace(':', '')}"

    platform = str(platform).strip() if platform is not None else ""
    return JourneyLeg(
        departure=format_clock(dep_minutes),
        arrival=arrival,
        train_type=train_type,
        train_number=train_number,
        delay_minutes=delay,
        status=classify_delay(delay),
        platform=platform or UNKNOWN_PLATFORM,
        next_day=next_day,
    )


def order_legs(legs: Sequence[JourneyLeg]) -> List[JourneyLeg]:
    """Order by actual departure when any delay is known, else keep source order.

    Without ``next_day`` flags, departures are compared relative to the first
    leg so a live list that crosses midnight keeps its order.
    """
    legs = list(legs)
    if not legs or not any(leg.delay_minutes for leg in legs):
        return legs
    anchor = parse_clock(legs[0].departure)
    flagged = any(leg.next_day for leg in legs)

    def actual(leg: JourneyLeg) -> int:
        if flagged:
            scheduled = parse_clock(leg.departure) + (MINUTES_PER_DAY if leg.next_day else 0)
        else:
            scheduled = (parse_clock(leg.departure) - anchor) % MINUTES_PER_DAY
        return scheduled + leg.delay_minutes

    return sorted(legs, key=actual)


def cap_legs(legs: Sequence[JourneyLeg], limit: int = DISPLAY_LIMIT) -> List[JourneyLeg]:
    return list(legs[:limit])


def local_now() -> datetime.datetime:
    return datetime.datetime.now(LOCAL_TZ)


def to_local(moment: datetime.datetime) -> datetime.datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=LOCAL_TZ)
    return moment.astimezone(LOCAL_TZ)


def utc_now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")
