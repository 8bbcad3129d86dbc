# pylint: disable=missing-module-docstring,missing-function-docstring

import io
import json
import sys
from typing import Any, Callable, Optional

import httpx
import pytest
from PIL import Image

from retroportal.config import TEMPLATES_DIR
from retroportal.conversion.converter import PillowConverter, SubprocessConverter
from retroportal.main import create_app
from retroportal.modes.render import JinjaRenderer


def make_png(width: int = 200, height: int = 200, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def python_converter(script: str) -> SubprocessConverter:
    """A stand-in converter process: the script gets the convert arguments in sys.argv."""
    return SubprocessConverter(program=[sys.executable, "-c", script])


# Echoes the arguments it was given instead of converting
ARGS_SCRIPT = "import sys; sys.stdin.buffer.read(); sys.stdout.write(' '.join(sys.argv[1:]))"
# Writes some output, then fails
PARTIAL_THEN_FAIL_SCRIPT = (
    "import sys; sys.stdin.buffer.read(); "
    "sys.stdout.buffer.write(b'GIF89a-partial'); sys.stdout.flush(); "
    "sys.stderr.write('convert: corrupt image'); sys.exit(3)"
)
# Writes one chunk, then hangs
SLOW_SCRIPT = (
    "import sys, time; sys.stdin.buffer.read(); "
    "sys.stdout.buffer.write(b'x' * 10); sys.stdout.flush(); time.sleep(30)"
)
# Never reads its input
STALLED_SCRIPT = "import time; time.sleep(30)"
# Writes 4000 bytes and exits straight away
SHORT_OUTPUT_SCRIPT = (
    "import sys; sys.stdin.buffer.read(); sys.stdout.buffer.write(b'y' * 4000)"
)
# Writes 4 MiB, far more than the pipes hold
LARGE_OUTPUT_SCRIPT = (
    "import sys; sys.stdin.buffer.read(); sys.stdout.buffer.write(b'z' * (4 * 1024 * 1024))"
)


class CountingConverter:
    def __init__(self, inner):
        self.inner = inner
        self.spawned = []
        self.handles = []

    async def spawn(self, spec):
        self.spawned.append(spec)
        handle = await self.inner.spawn(spec)
        self.handles.append(handle)
        return handle


class RecordingRenderer:
    """Delegates to the real templates and remembers what was asked for."""

    def __init__(self, base=None):
        self.base = base or JinjaRenderer(TEMPLATES_DIR)
        self.calls: list[tuple[str, dict, int]] = []

    def render(self, request, name, context=None, status_code=200):
        self.calls.append((name, dict(context or {}), status_code))
        return self.base.render(request, name, context, status_code=status_code)

    @property
    def names(self) -> list[str]:
        return [c[0] for c in self.calls]


class Upstream:
    """MockTransport handler that records requests; routes are set per test."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for prefix, responder in self.routes.items():
            if request.url.path.startswith(prefix):
                return responder(request)
        return httpx.Response(404, content=b"not found")

    def json_route(self, prefix: str, payload: Any, status_code: int = 200) -> None:
        self.routes[prefix] = lambda request: httpx.Response(
            status_code, content=json.dumps(payload).encode(), headers={"content-type": "application/json"}
        )

    def image_route(self, data: bytes, status_code: int = 200) -> None:
        self.routes["/services/img/"] = lambda request: httpx.Response(
            status_code, content=data, headers={"content-type": "image/png"}
        )

    def hits(self, prefix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith(prefix)]


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def make_test_app(upstream):
    def factory(converter=None, renderer: Optional[RecordingRenderer] = None):
        app = create_app()
        app.state.http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
        app.state.converter = converter or CountingConverter(PillowConverter())
        app.state.renderer = renderer or RecordingRenderer()
        return app

    return factory
