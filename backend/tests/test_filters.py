# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from retroportal.modes import ClientMode, adapt_filters
from retroportal.modes.filters import WAP_SNAPSHOT_FILTERS


@pytest.mark.parametrize("mode", [ClientMode.WAP, ClientMode.WAP2])
def test_wap_modes_get_status_and_mimetype_filters(mode):
    assert adapt_filters(mode, ("urlkey:com,example",)) == ("urlkey:com,example",) + WAP_SNAPSHOT_FILTERS
    assert "statuscode:200" in adapt_filters(mode)
    assert any(f.startswith("mimetype:") for f in adapt_filters(mode))


@pytest.mark.parametrize("mode", [ClientMode.TEXT, ClientMode.HTML4, ClientMode.PPC])
def test_other_modes_pass_through(mode):
    assert adapt_filters(mode, ["a", "b"]) == ("a", "b")
    assert adapt_filters(mode) == ()


def test_base_filters_are_not_mutated():
    base = ["original:.*"]
    result = adapt_filters(ClientMode.WAP, base)
    assert base == ["original:.*"]
    assert result is not base
