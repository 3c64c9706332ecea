#!/usr/bin/env python3
# ÖBB next-trains proxy: St. Pölten <-> Linz.

import logging
import random
from typing import Any, Dict, Optional, Sequence, Tuple

from dotenv import load_dotenv
from flask import Flask, jsonify, make_response, request, Response

from . import __version__
from .cache import FreshnessCache
from .errors import Busy, ConfigurationMissing
from .fetcher import FetchResult, SingleFlightGate, TieredFetcher
from .models import (
    JourneyLeg,
    JsonDict,
    SOURCE_LIVE,
    SOURCE_STALE,
    SOURCE_SYNTHETIC,
    SOURCE_TIMETABLE,
    utc_now_iso,
)
from .settings import Settings
from .stations import Route, all_routes, parse_route_slug
from .strategies import build_strategies
from .synthetic import SyntheticScheduleGenerator

load_dotenv()

log = logging.getLogger("oebb_proxy")
logging.basicConfig(level=Settings.from_env().log_level)

FEATURES = [
    "multi-strategy-acquisition",
    "freshness-cache",
    "single-flight",
    "synthetic-fallback",
]


def build_fetcher(settings: Settings) -> TieredFetcher:
    return TieredFetcher(
        strategies=build_strategies(settings),
        cache=FreshnessCache(settings.cache_ttl_sec),
        generator=SyntheticScheduleGenerator(rng=random.Random(settings.random_seed)),
        gate=SingleFlightGate(settings.gate_wait_sec),
    )


def add_cache_headers(resp: Response, ttl_sec: int) -> Response:
    resp.headers["Cache-Control"] = f"max-age={ttl_sec}"
    resp.headers["X-Cache-Ttl-Seconds"] = str(ttl_sec)
    return resp


def error_response(
    status: int,
    code: str,
    message: str,
    *,
    route: str,
    trains: Sequence[JourneyLeg] = (),
    source: str = "none",
) -> Response:
    payload: Dict[str, Any] = {
        "route": route,
        "timestamp": utc_now_iso(),
        "trains": [leg.to_dict() for leg in trains],
        "source": source,
        "realTimeData": False,
        "error": {"code": code, "message": message},
    }
    resp = jsonify(payload)
    resp.status_code = status
    resp.headers["Cache-Control"] = "no-store"
    return resp


def trains_payload(route: Route, result: FetchResult) -> JsonDict:
    payload: JsonDict = {
        "route": route.label,
        "timestamp": utc_now_iso(),
        "trains": [leg.to_dict() for leg in result.legs],
        "source": result.source,
        "realTimeData": result.real_time,
        "cached": result.cached,
        "fetchedAt": result.fetched_at,
        "strategy": result.strategy,
    }
    if result.error:
        payload["error"] = result.error
    return payload


def create_app(
    settings: Optional[Settings] = None, fetcher: Optional[TieredFetcher] = None
) -> Flask:
    settings = settings or Settings.from_env()
    fetcher = fetcher or build_fetcher(settings)
    allowed_origins = set(settings.cors_allowed_origins)

    app = Flask(__name__)
    app.config["SETTINGS"] = settings
    app.config["FETCHER"] = fetcher

    @app.after_request
    def add_common_headers(resp: Response) -> Response:
        origin = request.headers.get("Origin")
        if "*" in allowed_origins:
            resp.headers["Access-Control-Allow-Origin"] = "*"
        elif origin and origin in allowed_origins:
            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.headers["Vary"] = "Origin"
        if "Access-Control-Allow-Origin" in resp.headers:
            resp.headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"
            resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
            resp.headers["Access-Control-Expose-Headers"] = (
                "Cache-Control, Retry-After, X-Cache-Ttl-Seconds"
            )

        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        return resp

    @app.route("/trains/<route_slug>", methods=["GET", "OPTIONS"])
    def trains(route_slug: str) -> Response:
        if request.method == "OPTIONS":
            return make_response("", 204)

        try:
            route = parse_route_slug(route_slug)
        except ConfigurationMissing as exc:
            return error_response(404, "unknown_route", str(exc), route=route_slug)

        retry_after: Optional[int] = None
        try:
            result = fetcher.fetch(route)
        except Busy as exc:
            log.info("Fetch busy for %s, answering from timetable", route.key)
            retry_after = exc.retry_after
            result = synthesize(route, str(exc))
        except Exception as exc:
            log.exception("Fetch pipeline failed for %s", route.key)
            result = synthesize(route, f"Unexpected error: {exc.__class__.__name__}")

        if result is None:
            legs, source = last_resort(route)
            return error_response(
                500,
                "internal_error",
                "No schedule data available",
                route=route.label,
                trains=legs,
                source=source,
            )

        resp = jsonify(trains_payload(route, result))
        entry = fetcher.cache.get(route)
        if result.source == SOURCE_LIVE and entry is not None:
            return add_cache_headers(resp, fetcher.cache.remaining_ttl(entry))
        resp.headers["Cache-Control"] = "no-store"
        if retry_after is not None:
            resp.headers["Retry-After"] = str(retry_after)
        return resp

    def synthesize(route: Route, message: str) -> Optional[FetchResult]:
        try:
            legs = fetcher.generator.generate(route, fetcher.clock())
        except Exception:
            log.exception("Synthetic fallback failed for %s", route.key)
            return None
        return FetchResult(
            legs=tuple(legs),
            source=SOURCE_SYNTHETIC,
            fetched_at=utc_now_iso(),
            error=message,
        )

    def last_resort(route: Route) -> Tuple[Sequence[JourneyLeg], str]:
        """Whatever can still be shown once the generator itself has failed."""
        entry = fetcher.cache.get(route)
        if entry is not None and entry.payload:
            source = SOURCE_STALE if entry.source == SOURCE_LIVE else entry.source
            return entry.payload, source
        try:
            return fetcher.generator.timetable(route, fetcher.clock()), SOURCE_TIMETABLE
        except Exception:
            log.exception("Timetable fallback failed for %s", route.key)
            return (), "none"

    @app.route("/health")
    def health() -> Response:
        return jsonify(
            {
                "status": "ok",
                "timestamp": utc_now_iso(),
                "version": __version__,
                "fetchInProgress": fetcher.gate.in_flight,
                "cacheTtlSec": fetcher.cache.ttl_sec,
                "strategies": [strategy.name for strategy in fetcher.strategies],
                "features": FEATURES,
            }
        )

    @app.route("/")
    def index() -> Response:
        endpoints = [f"/trains/{route.key} - {route.label}" for route in all_routes()]
        endpoints.append("/health - service status")
        if settings.enable_debug_endpoints:
            endpoints.append("/debug/cache - cache introspection")
        return jsonify(
            {
                "message": f"ÖBB Train Proxy v{__version__}",
                "description": "Next trains from live ÖBB sources with a timetable fallback",
                "endpoints": endpoints,
                "strategies": [strategy.name for strategy in fetcher.strategies],
                "status": {
                    "fetchInProgress": fetcher.gate.in_flight,
                    "lastCheck": utc_now_iso(),
                },
            }
        )

    if settings.enable_debug_endpoints:

        @app.route("/debug/cache")
        def debug_cache() -> Response:
            cache = fetcher.cache
            snapshot = cache.snapshot()
            routes: Dict[str, Any] = {}
            for route in all_routes():
                entry = snapshot.get(route.key)
                if entry is None:
                    routes[route.key] = {"present": False}
                    continue
                routes[route.key] = {
                    "present": True,
                    "source": entry.source,
                    "strategy": entry.strategy,
                    "ageSec": round(cache.age(entry), 1),
                    "fresh": cache.is_fresh(entry),
                    "count": len(entry.payload),
                }
            return jsonify(
                {
                    "timestamp": utc_now_iso(),
                    "ttlSec": cache.ttl_sec,
                    "entries": len(snapshot),
                    "routes": routes,
                }
            )

    return app


def main() -> None:
    settings = Settings.from_env()
    create_app(settings).run(host=settings.app_host, port=settings.port, threaded=True)


if __name__ == "__main__":
    main()
