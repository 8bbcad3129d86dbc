"""Mode-aware rendering: every page render goes to the template variant of the request's class."""
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Union

from fastapi import Request
from fastapi.templating import Jinja2Templates
from starlette.responses import Response

from retroportal.modes.middleware import get_request_context
from retroportal.modes.models import ClientMode

logger = logging.getLogger("retroportal.render")

# WML decks must be served with their own media type or WAP 1.x browsers refuse them
MODE_MEDIA_TYPES = {
    ClientMode.WAP: "text/vnd.wap.wml",
}
DEFAULT_MEDIA_TYPE = "text/html"


class Renderer(Protocol):
    def render(
        self,
        request: Request,
        name: str,
        context: Optional[Mapping[str, Any]] = None,
        status_code: int = 200,
    ) -> Response:
        ...


class JinjaRenderer:
    """Base renderer: resolves 'name' to '<name>.html' under the templates directory."""

    def __init__(self, directory: Union[str, Path], extension: str = ".html"):
        self.templates = Jinja2Templates(directory=str(directory))
        self.extension = extension

    def render(
        self,
        request: Request,
        name: str,
        context: Optional[Mapping[str, Any]] = None,
        status_code: int = 200,
    ) -> Response:
        context = dict(context or {})
        mode = context.get("mode")
        media_type = MODE_MEDIA_TYPES.get(ClientMode(mode), DEFAULT_MEDIA_TYPE) if mode else DEFAULT_MEDIA_TYPE
        return self.templates.TemplateResponse(
            request,
            f"{name}{self.extension}",
            context,
            status_code=status_code,
            media_type=media_type,
        )


class ModeRenderer:
    """
    Wraps a base renderer for one request.
    render("contact", ctx) becomes base.render("<mode>/contact", ctx + {"mode": <mode>}).
    A missing template for the mode is not retried under another mode.
    """

    def __init__(self, base: Renderer, mode: ClientMode):
        self.base = base
        self.mode = mode

    def render(
        self,
        request: Request,
        name: str,
        context: Optional[Mapping[str, Any]] = None,
        status_code: int = 200,
    ) -> Response:
        merged = {**(context or {}), "mode": self.mode.value}
        return self.base.render(request, f"{self.mode.value}/{name}", merged, status_code=status_code)


def renderer_for(request: Request) -> ModeRenderer:
    return ModeRenderer(request.app.state.renderer, get_request_context(request).mode)


def get_renderer(request: Request) -> ModeRenderer:
    """FastAPI dependency."""
    return renderer_for(request)
