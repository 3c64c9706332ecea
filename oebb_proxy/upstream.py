from collections import deque
import threading
import time
from typing import Any, Deque, Dict, Mapping, Optional, Tuple

import requests

from .errors import OutboundRateLimited, UnparseableResponse, UpstreamUnavailable

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept-Language": "de-AT,de;q=0.9,en;q=0.8",
}
HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


class TimeoutSession(requests.Session):
    """Session that applies a default timeout to calls made without one."""

    def __init__(self, timeout: Tuple[float, float] = (3.0, 15.0)) -> None:
        super().__init__()
        self.timeout = timeout

    def request(self, method: str, url: str, *args: Any, **kwargs: Any) -> requests.Response:
        if kwargs.get("timeout") is None:
            kwargs["timeout"] = self.timeout
        return super().request(method, url, *args, **kwargs)


class SlidingWindowLimiter:
    def __init__(self, limit: int, window_sec: int) -> None:
        self.limit = max(1, limit)
        self.window_sec = max(1, window_sec)
        self._events: Deque[float] = deque()
        self._lock = threading.Lock()

    def allow(self) -> Tuple[bool, int]:
        now = time.monotonic()
        with self._lock:
            while self._events and self._events[0] <= now - self.window_sec:
                self._events.popleft()
            if len(self._events) >= self.limit:
                retry_after = int(self.window_sec - (now - self._events[0]))
                return False, max(1, retry_after)
            self._events.append(now)
            return True, 0


class UpstreamClient:
    """Single-shot HTTP calls with a timeout and an outbound budget; never retries."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        timeout: Tuple[float, float] = (3.0, 15.0),
        limiter: Optional[SlidingWindowLimiter] = None,
        service_name: str = "upstream",
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout
        self.limiter = limiter
        self.service_name = service_name

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        **kwargs: Any,
    ) -> requests.Response:
        if self.limiter is not None:
            allowed, retry_after = self.limiter.allow()
            if not allowed:
                raise OutboundRateLimited(retry_after)

        merged: Dict[str, str] = dict(BROWSER_HEADERS)
        if headers:
            merged.update(headers)
        try:
            resp = self.session.request(
                method, url, headers=merged, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise UpstreamUnavailable(504, f"{self.service_name} request failed") from exc

        if resp.status_code >= 400:
            raise UpstreamUnavailable(resp.status_code, f"{self.service_name} upstream error")
        return resp

    def get_text(self, url: str, **kwargs: Any) -> str:
        kwargs.setdefault("headers", {"Accept": HTML_ACCEPT})
        return self.request("GET", url, **kwargs).text

    def post_text(self, url: str, **kwargs: Any) -> str:
        kwargs.setdefault("headers", {"Accept": HTML_ACCEPT})
        return self.request("POST", url, **kwargs).text

    def get_json(self, url: str, **kwargs: Any) -> Any:
        kwargs.setdefault("headers", {"Accept": "application/json"})
        return self._json(self.request("GET", url, **kwargs))

    def post_json(self, url: str, payload: Any, **kwargs: Any) -> Any:
        kwargs.setdefault("headers", {"Accept": "application/json"})
        return self._json(self.request("POST", url, json=payload, **kwargs))

    def _json(self, resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise UnparseableResponse(f"{self.service_name} invalid JSON") from exc
