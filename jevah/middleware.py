"""
Per-request context for the API.

``RequestContextMiddleware`` opens a ``RequestContext`` for every HTTP
request: an id (taken from a well-formed ``X-Request-Id`` header or
generated), a start time and a SQL statement count.  The response carries
``x-request-id``, ``x-response-time-ms`` and ``x-query-count``, and one
access line is logged per request.  ``RequestIdFilter`` stamps the id on
log records emitted while the request is in flight.
"""
import logging
import re
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field

from sqlalchemy import event
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from jevah.config import settings

logger = logging.getLogger(__name__)

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


@dataclass
class RequestContext:
    request_id: str
    started: float = field(default_factory=time.perf_counter)
    queries: int = 0

    @property
    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.started) * 1000, 2)


request_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)


def current_request_id() -> str | None:
    ctx = request_context.get()
    return ctx.request_id if ctx else None


def install_query_counter(engine) -> None:
    """Attribute every statement run on *engine* to the active request.  Call once per engine."""

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        ctx = request_context.get()
        if ctx is not None:
            ctx.queries += 1


class RequestIdFilter(logging.Filter):
    """Adds ``record.request_id`` ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = current_request_id() or "-"
        return True


def _incoming_request_id(scope: Scope) -> str:
    for name, value in scope.get("headers", []):
        if name == b"x-request-id":
            candidate = value.decode("latin-1")
            if _REQUEST_ID_RE.match(candidate):
                return candidate
            break
    return uuid.uuid4().hex


class RequestContextMiddleware:
    """Pure ASGI so the context stays in the task that runs the endpoint."""

    def __init__(self, app: ASGIApp, slow_request_ms: float | None = None) -> None:
        self.app = app
        self.slow_request_ms = settings.SLOW_REQUEST_MS if slow_request_ms is None else slow_request_ms

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        ctx = RequestContext(request_id=_incoming_request_id(scope))
        token = request_context.set(ctx)

        async def send_with_context(message: Message) -> None:
            if message["type"] == "http.response.start":
                elapsed = ctx.elapsed_ms
                message["headers"] = [
                    *message.get("headers", []),
                    (b"x-request-id", ctx.request_id.encode("latin-1")),
                    (b"x-response-time-ms", str(elapsed).encode()),
                    (b"x-query-count", str(ctx.queries).encode()),
                ]
                self._log(scope, message["status"], elapsed, ctx.queries)
            await send(message)

        try:
            await self.app(scope, receive, send_with_context)
        finally:
            request_context.reset(token)

    def _log(self, scope: Scope, status: int, elapsed: float, queries: int) -> None:
        level = logging.WARNING if elapsed > self.slow_request_ms else logging.DEBUG
        logger.log(
            level,
            "%s %s -> %d in %.2fms (%d queries)",
            scope.get("method"), scope.get("path"), status, elapsed, queries,
        )
