from .classifier import classify, detect_mode
from .filters import adapt_filters
from .middleware import ClientModeMiddleware, get_request_context
from .models import ClientMode, RequestContext, RENDER_MODES, parse_mode
from .render import JinjaRenderer, ModeRenderer, get_renderer, renderer_for

__all__ = [
    "ClientMode",
    "ClientModeMiddleware",
    "JinjaRenderer",
    "ModeRenderer",
    "RENDER_MODES",
    "RequestContext",
    "adapt_filters",
    "classify",
    "detect_mode",
    "get_renderer",
    "get_request_context",
    "parse_mode",
    "renderer_for",
]
