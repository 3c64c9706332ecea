from dataclasses import dataclass, field
import os
from typing import List, Optional, Tuple

DEFAULT_STRATEGY_ORDER = "mgate,transport-rest,hafas-client,query-form,station-board"


def env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_csv(name: str, default: str) -> List[str]:
    value = os.getenv(name, default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    cache_ttl_sec: int = 120
    gate_wait_sec: float = 2.0
    connect_timeout_sec: float = 3.0
    read_timeout_sec: float = 15.0
    outbound_rate_limit_per_min: int = 30
    rate_limit_window_sec: int = 60
    strategy_order: Tuple[str, ...] = tuple(DEFAULT_STRATEGY_ORDER.split(","))
    oebb_base_url: str = "https://fahrplan.oebb.at"
    transport_rest_base_url: str = "https://v6.oebb.transport.rest"
    cors_allowed_origins: Tuple[str, ...] = ("*",)
    enable_debug_endpoints: bool = False
    app_host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    random_seed: Optional[int] = field(default=None)

    @property
    def upstream_timeout(self) -> Tuple[float, float]:
        return (self.connect_timeout_sec, self.read_timeout_sec)

    @classmethod
    def from_env(cls) -> "Settings":
        seed = os.getenv("SYNTHETIC_RANDOM_SEED")
        return cls(
            cache_ttl_sec=max(0, env_int("CACHE_TTL_SEC", 120)),
            gate_wait_sec=max(0.0, env_float("GATE_WAIT_SEC", 2.0)),
            connect_timeout_sec=env_float("UPSTREAM_CONNECT_TIMEOUT_SEC", 3.0),
            read_timeout_sec=env_float("UPSTREAM_READ_TIMEOUT_SEC", 15.0),
            outbound_rate_limit_per_min=env_int("OUTBOUND_RATE_LIMIT_PER_MIN", 30),
            rate_limit_window_sec=env_int("RATE_LIMIT_WINDOW_SEC", 60),
            strategy_order=tuple(env_csv("STRATEGY_ORDER", DEFAULT_STRATEGY_ORDER)),
            oebb_base_url=os.getenv("OEBB_BASE_URL", "https://fahrplan.oebb.at").rstrip("/"),
            transport_rest_base_url=os.getenv(
                "TRANSPORT_REST_BASE_URL", "https://v6.oebb.transport.rest"
            ).rstrip("/"),
            cors_allowed_origins=tuple(env_csv("CORS_ALLOWED_ORIGINS", "*")),
            enable_debug_endpoints=env_bool("ENABLE_DEBUG_ENDPOINTS", False),
            app_host=os.getenv("APP_HOST", "0.0.0.0"),
            port=env_int("PORT", 3000),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            random_seed=int(seed) if seed and seed.strip().lstrip("-").isdigit() else None,
        )
