from dataclasses import dataclass
import re
from typing import Dict, List, Tuple

from .errors import ConfigurationMissing

DEFAULT_JOURNEY_MIN = 71


@dataclass(frozen=True)
class Station:
    slug: str
    name: str
    query_name: str
    eva_id: str
    lid: str
    # destinations on the other station's departure board that pass through here
    board_pattern: "re.Pattern[str]"


@dataclass(frozen=True)
class Route:
    origin: Station
    destination: Station
    duration_minutes: int = DEFAULT_JOURNEY_MIN

    @property
    def key(self) -> str:
        return f"{self.origin.slug}-{self.destination.slug}"

    @property
    def label(self) -> str:
        return f"{self.origin.name} → {self.destination.name}"


ST_POELTEN = Station(
    slug="stpoelten",
    name="St. Pölten",
    query_name="St. Pölten Hbf",
    eva_id="8100008",
    lid="A=1@O=St. Pölten Hbf@X=15623800@Y=48208331@U=81@L=008100008@B=1@p=1275041666@",
    board_pattern=re.compile(r"St\.?\s*P[öo]e?lten|Wien|Flughafen", re.IGNORECASE),
)

LINZ = Station(
    slug="linz",
    name="Linz",
    query_name="Linz/Donau Hbf",
    eva_id="8100013",
    lid="A=1@O=Linz/Donau Hbf@X=14291814@Y=48290150@U=81@L=008100013@B=1@p=1275041666@",
    board_pattern=re.compile(
        r"Linz|Wels|Salzburg|Innsbruck|Bregenz|Z[üu]rich|M[üu]nchen|Passau", re.IGNORECASE
    ),
)

STATIONS: Dict[str, Station] = {station.slug: station for station in (ST_POELTEN, LINZ)}

_ROUTES: Dict[Tuple[str, str], Route] = {
    (ST_POELTEN.slug, LINZ.slug): Route(ST_POELTEN, LINZ),
    (LINZ.slug, ST_POELTEN.slug): Route(LINZ, ST_POELTEN),
}


def resolve_route(origin_slug: str, destination_slug: str) -> Route:
    route = _ROUTES.get((origin_slug.lower(), destination_slug.lower()))
    if route is None:
        raise ConfigurationMissing(
            f"No station mapping for {origin_slug!r} -> {destination_slug!r}"
        )
    return route


def parse_route_slug(slug: str) -> Route:
    """Resolve ``"stpoelten-linz"`` style path segments."""
    origin, sep, destination = slug.partition("-")
    if not sep or not origin or not destination:
        raise ConfigurationMissing(f"Malformed route {slug!r}")
    return resolve_route(origin, destination)


def all_routes() -> List[Route]:
    return list(_ROUTES.values())
