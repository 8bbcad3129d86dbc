"""Adjust archive API filters to what the requesting client can display."""
from typing import Sequence

from retroportal.modes.models import ClientMode

# Wayback CDX filter syntax: field:regex
WAP_SNAPSHOT_FILTERS = (
    "statuscode:200",
    r"mimetype:(text/vnd\.wap\.wml|application/vnd\.wap\.xhtml\+xml)",
)
WAP_MODES = frozenset({ClientMode.WAP, ClientMode.WAP2})


def adapt_filters(mode: ClientMode, base_filters: Sequence[str] = ()) -> tuple[str, ...]:
    """Return a new filter tuple; WAP clients only get captures they can render."""
    if mode in WAP_MODES:
        return tuple(base_filters) + WAP_SNAPSHOT_FILTERS
    return tuple(base_filters)
