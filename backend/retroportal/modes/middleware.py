"""ASGI middleware that classifies each request before any handler runs."""
import logging

from starlette.datastructures import Headers, QueryParams
from starlette.requests import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from retroportal.modes.classifier import classify
from retroportal.modes.models import RequestContext

logger = logging.getLogger("retroportal.modes")

MODE_QUERY_PARAM = "mode"


class ClientModeMiddleware:
    """
    Store a RequestContext in request.state for every HTTP request.
    Plain ASGI (not BaseHTTPMiddleware) so streamed bodies and disconnects pass straight through.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            headers = Headers(scope=scope)
            override = QueryParams(scope.get("query_string", b"")).get(MODE_QUERY_PARAM)
            context = RequestContext(mode=classify(headers, override))
            scope.setdefault("state", {})["context"] = context
            logger.debug("Detected mode %s for %s", context.mode.value, scope.get("path"))
        await self.app(scope, receive, send)


def get_request_context(request: Request) -> RequestContext:
    context = getattr(request.state, "context", None)
    if context is None:
        context = RequestContext(
            mode=classify(request.headers, request.query_params.get(MODE_QUERY_PARAM))
        )
        request.state.context = context
    return context
