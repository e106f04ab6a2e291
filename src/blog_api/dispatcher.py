"""Method + path dispatch over an explicit route table."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from blog_api.errors import ApiError, ErrorKind, not_found
from blog_api.metrics import api_errors_total, api_request_duration, api_requests_total
from blog_api.responses import ApiResponse, empty_response, error_response

if TYPE_CHECKING:
    from blog_api.handlers import AppContext

log = structlog.get_logger()

PREFLIGHT_METHOD = "OPTIONS"
_UNMATCHED = "unmatched"


@dataclass(frozen=True)
class ApiRequest:
    """An inbound request, independent of the HTTP framework that carried it."""

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str | bytes | None = None


Handler = Callable[["ApiRequest", dict[str, str], "AppContext"], Awaitable[ApiResponse]]


@dataclass(frozen=True)
class Route:
    """One entry of the route table.

    ``pattern`` is a ``/``-separated path where ``{name}`` segments capture a
    non-empty path parameter and every other segment must match exactly.
    """

    method: str
    pattern: str
    handler: Handler
    name: str = ""
    segments: tuple[str, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "segments", tuple(self.pattern.strip("/").split("/")))
        if not self.name:
            object.__setattr__(self, "name", f"{self.method} {self.pattern}")

    def match(self, method: str, segments: Sequence[str]) -> dict[str, str] | None:
        if method != self.method or len(segments) != len(self.segments):
            return None
        params: dict[str, str] = {}
        for expected, actual in zip(self.segments, segments, strict=True):
            if expected.startswith("{") and expected.endswith("}"):
                if not actual:
                    return None
                params[expected[1:-1]] = actual
            elif expected != actual:
                return None
        return params


def split_path(path: str) -> list[str] | None:
    """Split an absolute path into segments; no trailing-slash normalization."""
    if not path.startswith("/"):
        return None
    return path[1:].split("/")


class Router:
    """Resolves a request to exactly one route, or fails with "Endpoint not found"."""

    def __init__(self, routes: Sequence[Route]) -> None:
        self._routes = tuple(routes)

    @property
    def routes(self) -> tuple[Route, ...]:
        return self._routes

    def resolve(self, method: str, path: str) -> tuple[Route, dict[str, str]]:
        segments = split_path(path)
        if segments is not None:
            for route in self._routes:
                params = route.match(method.upper(), segments)
                if params is not None:
                    return route, params
        raise not_found("Endpoint")

    async def dispatch(self, request: ApiRequest, ctx: AppContext) -> ApiResponse:
        """Run the matched handler and convert its outcome into a response.

        Pre-flight requests are answered directly. Every error is logged with
        the request context and mapped at this single point.
        """
        if request.method.upper() == PREFLIGHT_METHOD:
            return empty_response(200)

        structlog.contextvars.bind_contextvars(method=request.method, path=request.path)
        start = time.monotonic()
        route_name = _UNMATCHED
        try:
            route, params = self.resolve(request.method, request.path)
            route_name = route.name
            structlog.contextvars.bind_contextvars(route=route_name, **params)
            await log.ainfo("request_received")
            response = await route.handler(request, params, ctx)
        except ApiError as exc:
            if exc.kind is ErrorKind.INTERNAL:
                await log.aexception("request_failed", kind=exc.kind.value)
            else:
                await log.awarning("request_rejected", kind=exc.kind.value, error=exc.message)
            api_errors_total.add(1, {"route": route_name, "kind": exc.kind.value})
            response = error_response(exc)
        except Exception as exc:
            await log.aexception("request_failed", kind=ErrorKind.INTERNAL.value)
            api_errors_total.add(1, {"route": route_name, "kind": ErrorKind.INTERNAL.value})
            response = error_response(exc)
        finally:
            api_request_duration.record(time.monotonic() - start, {"route": route_name})
            structlog.contextvars.clear_contextvars()

        api_requests_total.add(1, {"route": route_name, "status": response.status_code})
        return response
