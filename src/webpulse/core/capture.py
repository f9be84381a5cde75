"""
Request capture middleware.

Times each request, builds an EventRecord once the response is ready and
hands it to the analytics service. Capture failures are logged and never
reach the response.
"""

import os
import re
import time
from typing import TYPE_CHECKING, List, Optional, Pattern, Protocol, Sequence

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from ..models.event import EventRecord
from .anonymizer import Anonymizer

if TYPE_CHECKING:
    from .service import AnalyticsService

logger = structlog.get_logger(__name__)


class CapturePolicy(Protocol):
    """Host-supplied hooks deciding what gets recorded."""

    def normalize_route(self, request: Request) -> Optional[str]:
        ...

    def get_user_id(self, request: Request) -> Optional[str]:
        ...

    def sample(self, request: Request, response: Response) -> bool:
        ...


class DefaultCapturePolicy:
    """
    Default capture hooks.

    - route: the matched route's path template, else the raw path
    - user id: request.state.user.id when the host sets a user
    - sample: record everything
    """

    def normalize_route(self, request: Request) -> Optional[str]:
        route = request.scope.get("route")
        path = getattr(route, "path", None)
        return path or request.url.path

    def get_user_id(self, request: Request) -> Optional[str]:
        user = getattr(request.state, "user", None)
        user_id = getattr(user, "id", None)
        return str(user_id) if user_id is not None else None

    def sample(self, request: Request, response: Response) -> bool:
        return True


def client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else ""
    if not ip and request.client:
        ip = request.client.host or ""
    return ip or None


def compile_redact_patterns(patterns: Sequence[str]) -> List[Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


def build_event(
    request: Request,
    response: Response,
    latency_ms: int,
    anonymizer: Anonymizer,
    policy: CapturePolicy,
) -> EventRecord:
    """Build the event record for a finished request."""
    ip_anonymized, ip_full = anonymizer.split(client_ip(request))
    return EventRecord(
        user_id=policy.get_user_id(request),
        route=policy.normalize_route(request),
        method=request.method,
        status=response.status_code,
        latency_ms=max(0, latency_ms),
        ip_anonymized=ip_anonymized,
        ip_full=ip_full,
        user_agent=request.headers.get("user-agent"),
        meta={
            "url": str(request.url.path) + (f"?{request.url.query}" if request.url.query else ""),
            "ref": request.headers.get("referer"),
            "hostname": os.environ.get("HOSTNAME"),
        },
    )


class AnalyticsMiddleware(BaseHTTPMiddleware):
    """
    Records one EventRecord per handled request.

    Only the enqueue happens on the request path; persistence is left to
    the batch flusher.
    """

    def __init__(
        self,
        app: ASGIApp,
        service: "AnalyticsService",
        policy: Optional[CapturePolicy] = None,
        redact_paths: Optional[Sequence[str]] = None,
        exclude_prefixes: Sequence[str] = (),
    ) -> None:
        super().__init__(app)
        self.service = service
        self.policy = policy or DefaultCapturePolicy()
        self.exclude_prefixes = tuple(p for p in exclude_prefixes if p)
        patterns = redact_paths if redact_paths is not None else service.settings.capture.redact_paths
        self.redact_patterns = compile_redact_patterns(patterns)

    def is_redacted(self, path: str) -> bool:
        if self.exclude_prefixes and path.startswith(self.exclude_prefixes):
            return True
        return any(p.search(path) for p in self.redact_patterns)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self.is_redacted(request.url.path):
            return await call_next(request)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            # The error handler upstream turns this into a 500
            self._capture(request, Response(status_code=500), start)
            raise

        self._capture(request, response, start)
        return response

    def _capture(self, request: Request, response: Response, start: float) -> None:
        try:
            if self.policy.sample(request, response):
                latency_ms = round((time.perf_counter() - start) * 1000)
                event = build_event(request, response, latency_ms, self.service.anonymizer, self.policy)
                self.service.record(event)
        except Exception as e:
            logger.warning(
                "Request capture failed",
                path=request.url.path,
                error=str(e),
                error_type=type(e).__name__,
            )
