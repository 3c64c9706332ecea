"""Acquisition strategies: independent ways of getting next departures from ÖBB.

Every strategy follows the same template. ``fetch`` talks to the network and
may raise :class:`AcquisitionError`; ``parse`` turns whatever came back into
legs on a best-effort basis. :meth:`AcquisitionStrategy.attempt` swallows both
kinds of failure and reports them as an empty list so the fetcher can move on
to the next tier.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
import datetime
import logging
import math
import re
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from bs4 import BeautifulSoup
from pyhafas import HafasClient
from pyhafas.profile import DBProfile
from pyhafas.types.fptf import Mode

from .errors import (
    AcquisitionError,
    ConfigurationMissing,
    OutboundRateLimited,
    UnparseableResponse,
    UpstreamUnavailable,
)
from .models import (
    DISPLAY_LIMIT,
    JourneyLeg,
    JsonDict,
    MINUTES_PER_DAY,
    build_leg,
    cap_legs,
    order_legs,
    to_local,
)
from .settings import Settings
from .stations import Route
from .upstream import HTML_ACCEPT, SlidingWindowLimiter, TimeoutSession, UpstreamClient

log = logging.getLogger(__name__)

PARSE_ERRORS = (ValueError, KeyError, TypeError, AttributeError, IndexError, OverflowError)

TIME_RE = re.compile(r"\b(\d{1,2}:\d{2})\b")
TRAIN_RE = re.compile(r"\b(RJX|RJ|ICE|IC|WB|NJ|REX|D|S|R)\s*(\d+)?\b", re.IGNORECASE)
DELAY_RE = re.compile(r"(?:\+|Vers\.?)\s*(\d+)", re.IGNORECASE)


class AcquisitionStrategy:
    name = "strategy"

    def attempt(self, route: Route, now: datetime.datetime) -> List[JourneyLeg]:
        try:
            raw = self.fetch(route, now)
            legs = self.parse(raw, route, now)
        except OutboundRateLimited as exc:
            log.warning(
                "%s skipped for %s: outbound budget spent, retry in %ss",
                self.name,
                route.key,
                exc.retry_after,
            )
            return []
        except UpstreamUnavailable as exc:
            log.warning("%s failed for %s: %s (status %d)", self.name, route.key, exc, exc.status)
            return []
        except AcquisitionError as exc:
            log.warning("%s failed for %s: %s", self.name, route.key, exc)
            return []
        except PARSE_ERRORS as exc:
            log.warning("%s returned unusable data for %s: %r", self.name, route.key, exc)
            return []
        if not legs:
            log.info("%s found no departures for %s", self.name, route.key)
        return cap_legs(order_legs(legs))

    def fetch(self, route: Route, now: datetime.datetime) -> Any:
        raise NotImplementedError

    def parse(self, raw: Any, route: Route, now: datetime.datetime) -> List[JourneyLeg]:
        raise NotImplementedError


def train_designator(match: "re.Match[str]") -> str:
    code, number = match.group(1).upper(), match.group(2)
    return f"{code} {number}" if number else code


def leg_from_text(text: str, route: Route) -> Optional[JourneyLeg]:
    """Pull the first time, train and delay out of a row of markup text."""
    times = TIME_RE.findall(text)
    if not times:
        return None
    train = TRAIN_RE.search(text)
    delay = DELAY_RE.search(text)
    try:
        return build_leg(
            times[0],
            train_designator(train) if train else None,
            duration_minutes=route.duration_minutes,
            delay_minutes=int(delay.group(1)) if delay else 0,
        )
    except ValueError:
        return None


class QueryFormStrategy(AcquisitionStrategy):
    """Submit the timetable search form the way the website does."""

    name = "query-form"
    row_selector = "tr.journey, tr.connection, .overview tr, table.result tr"

    def __init__(self, upstream: UpstreamClient, base_url: str) -> None:
        self.upstream = upstream
        self.base_url = base_url

    def fetch(self, route: Route, now: datetime.datetime) -> str:
        form = {
            "REQ0JourneyStopsS0A": "1",
            "REQ0JourneyStopsS0G": route.origin.query_name,
            "REQ0JourneyStopsZ0A": "1",
            "REQ0JourneyStopsZ0G": route.destination.query_name,
            "date": now.strftime("%d.%m.%Y"),
            "time": now.strftime("%H:%M"),
            "timesel": "depart",
            "start": "Suchen",
            "REQ0JourneyProduct_prod_list_1": "1:1111111111111111",
        }
        html = self.upstream.post_text(
            f"{self.base_url}/bin/query.exe/dn",
            data=form,
            headers={"Accept": HTML_ACCEPT, "Referer": f"{self.base_url}/"},
        )
        if "journey" not in html:
            raise UnparseableResponse("no journey data in query response")
        return html

    def parse(self, raw: str, route: Route, now: datetime.datetime) -> List[JourneyLeg]:
        soup = BeautifulSoup(raw, "html.parser")
        legs: List[JourneyLeg] = []
        for index, row in enumerate(soup.select(self.row_selector)):
            if len(legs) >= DISPLAY_LIMIT:
                break
            text = row.get_text(" ", strip=True)
            # first row is the table header
            if index == 0 or not text or "Zeit" in text or "Dauer" in text:
                continue
            leg = leg_from_text(text, route)
            if leg is not None:
                legs.append(leg)
        return legs


class StationBoardStrategy(AcquisitionStrategy):
    """Read the origin's departure board and keep trains that serve the destination."""

    name = "station-board"
    row_selector = "tr.rowOdd, tr.rowEven, tbody tr"

    def __init__(self, upstream: UpstreamClient, base_url: str) -> None:
        self.upstream = upstream
        self.base_url = base_url

    def fetch(self, route: Route, now: datetime.datetime) -> str:
        params = {
            "input": route.origin.eva_id,
            "boardType": "dep",
            "time": now.strftime("%H:%M"),
            "date": now.strftime("%d.%m.%Y"),
            "maxJourneys": "10",
            "start": "yes",
        }
        return self.upstream.get_text(f"{self.base_url}/bin/stboard.exe/dn", params=params)

    def parse(self, raw: str, route: Route, now: datetime.datetime) -> List[JourneyLeg]:
        soup = BeautifulSoup(raw, "html.parser")
        legs: List[JourneyLeg] = []
        for row in soup.select(self.row_selector):
            if len(legs) >= DISPLAY_LIMIT:
                break
            text = row.get_text(" ", strip=True)
            if not route.destination.board_pattern.search(text):
                continue
            leg = leg_from_text(text, route)
            if leg is not None:
                legs.append(leg)
        return legs


def seconds_to_minutes(value: Any) -> int:
    if value is None:
        return 0
    seconds = float(value)
    if not math.isfinite(seconds):
        raise ValueError(f"Unexpected delay: {value!r}")
    return max(0, int(round(seconds / 60)))


def mgate_minutes(value: Any) -> Optional[int]:
    """Minutes after midnight for ``HHMMSS`` or ``DDHHMMSS`` (day offset) strings."""
    if value is None:
        return None
    digits = str(value)
    if not digits.isdigit() or len(digits) < 4:
        return None
    if len(digits) == 4:
        return int(digits[:2]) * 60 + int(digits[2:])
    digits = digits.zfill(6)
    days = int(digits[:-6] or 0)
    return days * MINUTES_PER_DAY + int(digits[-6:-4]) * 60 + int(digits[-4:-2])


def mgate_clock(value: Any) -> Optional[str]:
    minutes = mgate_minutes(value)
    if minutes is None:
        return None
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def mgate_delay(stop: Mapping[str, Any]) -> int:
    scheduled = mgate_minutes(stop.get("dTimeS"))
    realtime = mgate_minutes(stop.get("dTimeR"))
    if scheduled is not None and realtime is not None:
        return max(0, realtime - scheduled)
    # dDelay is reported in seconds
    return seconds_to_minutes(stop.get("dDelay"))


def mgate_platform(stop: Mapping[str, Any]) -> Optional[str]:
    for key in ("dPlatfR", "dPlatfS"):
        if stop.get(key):
            return str(stop[key])
    for key in ("dPltfR", "dPltfS"):
        platform = stop.get(key)
        if isinstance(platform, dict) and platform.get("txt"):
            return str(platform["txt"])
    return None


class MgateStrategy(AcquisitionStrategy):
    """Call the HAFAS ``mgate.exe`` TripSearch method used by the ÖBB webapp."""

    name = "mgate"
    auth = {"type": "AID", "aid": "OWDL4fE4ixNiPBBm"}
    client = {"id": "OEBB", "v": 6020200, "type": "WEB", "name": "webapp"}

    def __init__(self, upstream: UpstreamClient, base_url: str) -> None:
        self.upstream = upstream
        self.base_url = base_url

    def request_body(self, route: Route, now: datetime.datetime) -> JsonDict:
        return {
            "id": "o91nXlRd90kF0FPs",
            "ver": "1.16",
            "lang": "deu",
            "auth": self.auth,
            "client": self.client,
            "formatted": False,
            "svcReqL": [
                {
                    "cfg": {"polyEnc": "GPA", "rtMode": "HYBRID"},
                    "meth": "TripSearch",
                    "req": {
                        "depLocL": [{"lid": route.origin.lid}],
                        "arrLocL": [{"lid": route.destination.lid}],
                        "outDate": now.strftime("%Y%m%d"),
                        "outTime": now.strftime("%H%M%S"),
                        "jnyFltrL": [{"type": "PROD", "mode": "INC", "value": "1023"}],
                        "numF": 5,
                        "getPasslist": False,
                        "getPolyline": False,
                    },
                }
            ],
        }

    def fetch(self, route: Route, now: datetime.datetime) -> JsonDict:
        data = self.upstream.post_json(
            f"{self.base_url}/bin/mgate.exe",
            self.request_body(route, now),
            headers={"Accept": "application/json", "Referer": f"{self.base_url}/"},
        )
        if not isinstance(data, dict) or not data.get("svcResL"):
            raise UnparseableResponse("mgate response without svcResL")
        return data

    def parse(self, raw: JsonDict, route: Route, now: datetime.datetime) -> List[JourneyLeg]:
        result = raw["svcResL"][0]
        if result.get("err") not in (None, "OK"):
            raise UnparseableResponse(f"mgate error {result.get('err')}")
        res = result.get("res") or {}
        products: Sequence[JsonDict] = (res.get("common") or {}).get("prodL") or []

        legs: List[JourneyLeg] = []
        for connection in res.get("outConL") or []:
            if len(legs) >= DISPLAY_LIMIT:
                break
            sections = [s for s in connection.get("secL") or [] if s.get("type", "JNY") == "JNY"]
            if not sections:
                continue
            first, last = sections[0], sections[-1]
            dep = first.get("dep") or {}
            arr = last.get("arr") or {}
            departure = mgate_clock(dep.get("dTimeS"))
            if departure is None:
                continue

            prod_x = (first.get("jny") or {}).get("prodX", dep.get("prodX"))
            product: JsonDict = {}
            if isinstance(prod_x, int) and 0 <= prod_x < len(products):
                product = products[prod_x]
            legs.append(
                build_leg(
                    departure,
                    product.get("name") or product.get("nameS"),
                    duration_minutes=route.duration_minutes,
                    delay_minutes=mgate_delay(dep),
                    arrival=mgate_clock(arr.get("aTimeS")),
                    platform=mgate_platform(dep),
                )
            )
        return legs


def parse_iso_local(value: str) -> datetime.datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return to_local(datetime.datetime.fromisoformat(value))


class TransportRestStrategy(AcquisitionStrategy):
    """Query a hafas-rest-api mirror (``/journeys``) of the ÖBB backend."""

    name = "transport-rest"

    def __init__(self, upstream: UpstreamClient, base_url: str) -> None:
        self.upstream = upstream
        self.base_url = base_url

    def fetch(self, route: Route, now: datetime.datetime) -> JsonDict:
        params = {
            "from": route.origin.eva_id,
            "to": route.destination.eva_id,
            "departure": now.isoformat(),
            "results": str(DISPLAY_LIMIT),
            "stopovers": "false",
            "remarks": "false",
        }
        data = self.upstream.get_json(f"{self.base_url}/journeys", params=params)
        if not isinstance(data, dict) or "journeys" not in data:
            raise UnparseableResponse("transport.rest response without journeys")
        return data

    def parse(self, raw: JsonDict, route: Route, now: datetime.datetime) -> List[JourneyLeg]:
        legs: List[JourneyLeg] = []
        for journey in raw.get("journeys") or []:
            if len(legs) >= DISPLAY_LIMIT:
                break
            rides = [leg for leg in journey.get("legs") or [] if not leg.get("walking")]
            if not rides:
                continue
            first, last = rides[0], rides[-1]
            planned_dep = first.get("plannedDeparture") or first.get("departure")
            if not planned_dep:
                continue
            planned_arr = last.get("plannedArrival") or last.get("arrival")
            line = first.get("line") or {}
            legs.append(
                build_leg(
                    parse_iso_local(planned_dep).strftime("%H:%M"),
                    line.get("name"),
                    duration_minutes=route.duration_minutes,
                    delay_minutes=seconds_to_minutes(first.get("departureDelay")),
                    arrival=parse_iso_local(planned_arr).strftime("%H:%M") if planned_arr else None,
                    platform=first.get("departurePlatform") or first.get("plannedDeparturePlatform"),
                )
            )
        return legs


def default_hafas_client(request_timeout: Tuple[float, float] = (3.0, 15.0)) -> HafasClient:
    profile = DBProfile()
    # pyhafas posts through a shared class-level session with no timeout
    profile.request_session = TimeoutSession(request_timeout)
    return HafasClient(profile)


class HafasClientStrategy(AcquisitionStrategy):
    """Ask the DB HAFAS profile through ``pyhafas``; it covers ÖBB long-distance trains."""

    name = "hafas-client"

    def __init__(
        self,
        client_factory: Optional[Callable[[], Any]] = None,
        timeout_sec: float = 15.0,
        request_timeout: Tuple[float, float] = (3.0, 15.0),
    ) -> None:
        self._client_factory = client_factory or (lambda: default_hafas_client(request_timeout))
        self._client: Optional[Any] = None
        self._client_lock = threading.Lock()
        self.timeout_sec = timeout_sec
        # the session timeout bounds each POST, the worker timeout bounds the whole call
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hafas")

    def _get_client(self) -> Any:
        with self._client_lock:
            if self._client is None:
                self._client = self._client_factory()
            return self._client

    def _journeys(self, route: Route, now: datetime.datetime) -> List[Any]:
        try:
            return self._get_client().journeys(
                origin=route.origin.eva_id,
                destination=route.destination.eva_id,
                date=now,
                max_journeys=DISPLAY_LIMIT,
            )
        except Exception as exc:
            raise UpstreamUnavailable(502, f"HAFAS client call failed: {exc}") from exc

    def fetch(self, route: Route, now: datetime.datetime) -> List[Any]:
        future = self._executor.submit(self._journeys, route, now)
        try:
            return future.result(timeout=self.timeout_sec)
        except FutureTimeout as exc:
            future.cancel()
            raise UpstreamUnavailable(504, "HAFAS client timed out") from exc

    def parse(self, raw: List[Any], route: Route, now: datetime.datetime) -> List[JourneyLeg]:
        legs: List[JourneyLeg] = []
        for journey in raw or []:
            if len(legs) >= DISPLAY_LIMIT:
                break
            rides = [leg for leg in journey.legs or [] if leg.mode != Mode.WALKING]
            if not rides or rides[0].departure is None:
                continue
            first, last = rides[0], rides[-1]
            delay = first.departure_delay
            legs.append(
                build_leg(
                    to_local(first.departure).strftime("%H:%M"),
                    first.name,
                    duration_minutes=route.duration_minutes,
                    delay_minutes=seconds_to_minutes(delay.total_seconds()) if delay else 0,
                    arrival=to_local(last.arrival).strftime("%H:%M") if last.arrival else None,
                    platform=first.departure_platform,
                )
            )
        return legs


StrategyFactory = Callable[[Settings, UpstreamClient], AcquisitionStrategy]

STRATEGY_FACTORIES: Dict[str, StrategyFactory] = {
    MgateStrategy.name: lambda s, up: MgateStrategy(up, s.oebb_base_url),
    TransportRestStrategy.name: lambda s, up: TransportRestStrategy(up, s.transport_rest_base_url),
    HafasClientStrategy.name: lambda s, up: HafasClientStrategy(
        timeout_sec=s.connect_timeout_sec + s.read_timeout_sec,
        request_timeout=s.upstream_timeout,
    ),
    QueryFormStrategy.name: lambda s, up: QueryFormStrategy(up, s.oebb_base_url),
    StationBoardStrategy.name: lambda s, up: StationBoardStrategy(up, s.oebb_base_url),
}


def build_strategies(
    settings: Settings, upstream: Optional[UpstreamClient] = None
) -> List[AcquisitionStrategy]:
    if upstream is None:
        upstream = UpstreamClient(
            timeout=settings.upstream_timeout,
            limiter=SlidingWindowLimiter(
                settings.outbound_rate_limit_per_min, settings.rate_limit_window_sec
            ),
            service_name="ÖBB",
        )
    strategies: List[AcquisitionStrategy] = []
    for name in settings.strategy_order:
        factory = STRATEGY_FACTORIES.get(name)
        if factory is None:
            raise ConfigurationMissing(f"Unknown acquisition strategy {name!r}")
        strategies.append(factory(settings, upstream))
    return strategies
