"""Composable request pipeline for the GitHub client.

A handler takes an :class:`ApiRequest` and returns a ``requests.Response``.
Middleware wraps a handler and returns a new one, so the client builds its
pipeline as ``throttle -> attach headers -> execute -> audit log`` without
subclassing anything from ``requests``.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from functools import reduce
from typing import Any

import requests

from .logging import StructuredLogger

Handler = Callable[["ApiRequest"], requests.Response]
Middleware = Callable[[Handler], Handler]


@dataclass(frozen=True)
class ApiRequest:
    method: str
    url: str
    accept: str
    params: Mapping[str, Any] | None = None
    json_body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)


class Throttle:
    """Keeps consecutive calls at least ``interval`` seconds apart.

    The wait happens while holding ``lock`` so concurrent callers queue up
    behind each other instead of all waking at the same instant.
    """

    def __init__(
        self,
        interval: float = 1.0,
        lock: threading.RLock | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.interval = interval
        self._lock = lock or threading.RLock()
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None

    @property
    def last_call(self) -> float | None:
        return self._last

    def _now(self) -> float:
        return self._clock() if self._clock else time.monotonic()

    def wait(self) -> float:
        """Block until the interval has passed; return the seconds slept."""
        with self._lock:
            now = self._now()
            slept = 0.0
            if self._last is not None:
                remaining = self._last + self.interval - now
                if remaining > 0:
                    (self._sleep or time.sleep)(remaining)
                    slept = remaining
                    now = self._now()
            self._last = now
            return slept


def session_executor(session: requests.Session, timeout: float) -> Handler:
    """Base handler performing the HTTP call."""

    def execute(request: ApiRequest) -> requests.Response:
        return session.request(
            request.method,
            request.url,
            params=dict(request.params) if request.params else None,
            json=request.json_body,
            headers=dict(request.headers),
            timeout=timeout,
        )

    return execute


def throttled(throttle: Throttle) -> Middleware:
    def wrap(handler: Handler) -> Handler:
        def run(request: ApiRequest) -> requests.Response:
            throttle.wait()
            return handler(request)

        return run

    return wrap


def with_headers(header_source: Callable[[ApiRequest], Mapping[str, str]]) -> Middleware:
    """Merge standard headers under the request's own (request headers win)."""

    def wrap(handler: Handler) -> Handler:
        def run(request: ApiRequest) -> requests.Response:
            merged = {**header_source(request), **request.headers}
            return handler(replace(request, headers=merged))

        return run

    return wrap


def audited(logger: StructuredLogger) -> Middleware:
    def wrap(handler: Handler) -> Handler:
        def run(request: ApiRequest) -> requests.Response:
            start = time.perf_counter()
            try:
                response = handler(request)
            except requests.RequestException as exc:
                logger.log_request(
                    request.method, request.url, None, (time.perf_counter() - start) * 1000
                )
                logger.debug("request raised", url=request.url, error=exc.__class__.__name__)
                raise
            logger.log_request(
                request.method,
                request.url,
                response.status_code,
                (time.perf_counter() - start) * 1000,
            )
            return response

        return run

    return wrap


def compose(handler: Handler, middlewares: Sequence[Middleware]) -> Handler:
    """Wrap ``handler`` so the first middleware listed runs outermost."""
    return reduce(lambda inner, mw: mw(inner), reversed(middlewares), handler)


__all__ = [
    "ApiRequest",
    "Handler",
    "Middleware",
    "Throttle",
    "audited",
    "compose",
    "session_executor",
    "throttled",
    "with_headers",
]
