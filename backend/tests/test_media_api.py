# pylint: disable=missing-module-docstring,missing-function-docstring

import io

from fastapi.testclient import TestClient
from PIL import Image

from conftest import (
    ARGS_SCRIPT,
    PARTIAL_THEN_FAIL_SCRIPT,
    CountingConverter,
    make_png,
    python_converter,
)
from retroportal.config import MAX_IMAGE_DIMENSION
from retroportal.conversion import PillowConverter


def test_goodtitle_gif_50x50(make_test_app, upstream):
    upstream.image_route(make_png(400, 400))
    app = make_test_app()
    with TestClient(app) as client:
        resp = client.get("/services/img/goodtitle_id?w=50&h=50")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/gif"
    with Image.open(io.BytesIO(resp.content)) as img:
        assert img.size == (50, 50)
    assert [r.url.path for r in upstream.requests] == ["/services/img/goodtitle_id"]


def test_wbmp_output(make_test_app, upstream):
    upstream.image_route(make_png(40, 40))
    with TestClient(make_test_app()) as client:
        resp = client.get("/services/img/goodtitle_id?w=20&h=20&format=wbmp")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/vnd.wap.wbmp"
    assert resp.content[:4] == b"\x00\x00\x14\x14"


def test_single_dimension_means_no_resize(make_test_app, upstream):
    upstream.image_route(b"raw image bytes")
    app = make_test_app(converter=CountingConverter(python_converter(ARGS_SCRIPT)))
    with TestClient(app) as client:
        resp = client.get("/services/img/goodtitle_id?w=100&h=0")

    assert resp.status_code == 200
    assert resp.content == b"- GIF:-"


def test_non_numeric_dimensions_default_to_zero(make_test_app, upstream):
    upstream.image_route(b"raw image bytes")
    app = make_test_app(converter=CountingConverter(python_converter(ARGS_SCRIPT)))
    with TestClient(app) as client:
        resp = client.get("/services/img/goodtitle_id?w=abc&h=50&format=wbmp")

    assert resp.status_code == 200
    assert resp.content == b"- WBMP:-"


def test_invalid_identifier_is_400_without_side_effects(make_test_app, upstream):
    upstream.image_route(make_png())
    converter = CountingConverter(PillowConverter())
    app = make_test_app(converter=converter)
    with TestClient(app) as client:
        resp = client.get("/services/img/bad%20id!?w=50&h=50")

    assert resp.status_code == 400
    assert upstream.requests == []
    assert converter.spawned == []


def test_unsupported_format_is_400(make_test_app, upstream):
    converter = CountingConverter(PillowConverter())
    with TestClient(make_test_app(converter=converter)) as client:
        resp = client.get("/services/img/goodtitle_id?format=png")

    assert resp.status_code == 400
    assert upstream.requests == []
    assert converter.spawned == []


def test_upstream_error_is_502_and_converter_never_spawned(make_test_app, upstream):
    upstream.image_route(b"gone", status_code=404)
    converter = CountingConverter(PillowConverter())
    app = make_test_app(converter=converter)
    with TestClient(app) as client:
        resp = client.get("/services/img/goodtitle_id?w=50&h=50")

    assert resp.status_code == 502
    assert converter.spawned == []
    assert "gone" not in resp.text
    assert app.state.renderer.names == ["html4/message"]


def test_undecodable_image_is_502(make_test_app, upstream):
    upstream.image_route(b"this is not an image")
    with TestClient(make_test_app()) as client:
        resp = client.get("/services/img/goodtitle_id")

    assert resp.status_code == 502


def test_failure_after_partial_output_keeps_the_original_status(make_test_app, upstream):
    upstream.image_route(b"abc")
    converter = CountingConverter(python_converter(PARTIAL_THEN_FAIL_SCRIPT))
    app = make_test_app(converter=converter)
    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.get("/services/img/goodtitle_id")

    # Status line was already sent; the body is just cut short
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/gif"
    assert resp.content == b"GIF89a-partial"
    assert converter.handles[0].returncode == 3


def test_dimension_limit(make_test_app, upstream):
    upstream.image_route(b"raw image bytes")
    converter = CountingConverter(python_converter(ARGS_SCRIPT))
    with TestClient(make_test_app(converter=converter)) as client:
        at_limit = client.get(f"/services/img/goodtitle_id?w={MAX_IMAGE_DIMENSION}&h={MAX_IMAGE_DIMENSION}")
        too_wide = client.get(f"/services/img/goodtitle_id?w={MAX_IMAGE_DIMENSION + 1}&h=10")
        too_tall = client.get("/services/img/goodtitle_id?w=10&h=50000")

    assert at_limit.status_code == 200
    assert at_limit.content == f"- -resize {MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION} GIF:-".encode()
    assert too_wide.status_code == 400
    assert too_tall.status_code == 400
    assert len(converter.spawned) == 1
    assert len(upstream.hits("/services/img/")) == 1
