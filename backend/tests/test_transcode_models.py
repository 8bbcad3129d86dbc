# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from retroportal.conversion import ImageFormat, TranscodeSpec, build_convert_args
from retroportal.conversion.models import (
    check_dimensions,
    is_valid_identifier,
    parse_dimension,
    parse_format,
    source_url_for,
)
from retroportal.errors import InvalidDimension, UnsupportedFormat

URL = "https://archive.org/services/img/goodtitle_id"


def test_resize_needs_both_dimensions():
    assert TranscodeSpec(URL, 50, 40).resize == (50, 40)
    assert TranscodeSpec(URL, 100, 0).resize is None
    assert TranscodeSpec(URL, 0, 100).resize is None
    assert TranscodeSpec(URL).resize is None


def test_negative_dimensions_rejected():
    with pytest.raises(ValueError):
        TranscodeSpec(URL, -1, 10)


def test_convert_args_with_resize():
    spec = TranscodeSpec(URL, 50, 50, ImageFormat.GIF)
    assert build_convert_args(spec) == ["-", "-resize", "50x50", "GIF:-"]


@pytest.mark.parametrize("w,h", [(100, 0), (0, 100), (0, 0)])
def test_convert_args_without_resize(w, h):
    spec = TranscodeSpec(URL, w, h, ImageFormat.WBMP)
    assert build_convert_args(spec) == ["-", "WBMP:-"]


def test_format_media_types():
    assert ImageFormat.GIF.media_type == "image/gif"
    assert ImageFormat.WBMP.media_type == "image/vnd.wap.wbmp"


def test_parse_format():
    assert parse_format(None) is ImageFormat.GIF
    assert parse_format("WBMP") is ImageFormat.WBMP
    with pytest.raises(UnsupportedFormat):
        parse_format("png")


@pytest.mark.parametrize(
    "value,expected",
    [("50", 50), (None, 0), ("", 0), ("abc", 0), ("-5", 0), ("12px", 0), (" 7 ", 7)],
)
def test_parse_dimension(value, expected):
    assert parse_dimension(value) == expected


@pytest.mark.parametrize("identifier", ["goodtitle_id", "nasa", "GratefulDead1977-05-08.sbd", "a"])
def test_valid_identifiers(identifier):
    assert is_valid_identifier(identifier)


@pytest.mark.parametrize(
    "identifier",
    ["", None, "_leading", "has space", "semi;colon", "../etc", "x" * 101, "line\n"],
)
def test_invalid_identifiers(identifier):
    assert not is_valid_identifier(identifier)


def test_source_url_for():
    assert source_url_for("goodtitle_id").endswith("/services/img/goodtitle_id")


def test_check_dimensions_limit():
    check_dimensions(2048, 2048, limit=2048)
    check_dimensions(0, 0, limit=2048)
    with pytest.raises(InvalidDimension):
        check_dimensions(2049, 10, limit=2048)
    with pytest.raises(InvalidDimension):
        check_dimensions(10, 2049, limit=2048)
