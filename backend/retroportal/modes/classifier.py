"""Pick a client capability class from request headers."""
import re
from typing import Mapping, Optional

from retroportal.modes.models import ClientMode, parse_mode

WAP2_ACCEPT = "application/vnd.wap.xhtml+xml"

# First match wins.
USER_AGENT_RULES: tuple[tuple[re.Pattern, ClientMode], ...] = (
    (re.compile(r"^(?:Lynx|Links|w3m)"), ClientMode.TEXT),
    (re.compile(r"240x320"), ClientMode.PPC),
    (re.compile(r"MSPIE|Windows CE"), ClientMode.HTML4),
)
DEFAULT_MODE = ClientMode.HTML4


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        # Plain dicts keep whatever case the caller used
        for key, val in headers.items():
            if key.lower() == name:
                value = val
                break
    return value or ""


def detect_mode(headers: Mapping[str, str]) -> ClientMode:
    """Header-based classification, without the override."""
    if WAP2_ACCEPT in _header(headers, "accept") and _header(headers, "x-wap-profile"):
        return ClientMode.WAP2
    ua = _header(headers, "user-agent")
    for pattern, mode in USER_AGENT_RULES:
        if pattern.search(ua):
            return mode
    return DEFAULT_MODE


def classify(headers: Mapping[str, str], override: Optional[str] = None) -> ClientMode:
    """
    Classify a request. Never fails.
    A recognised override replaces whatever the headers say; unknown or empty overrides are ignored.
    """
    return parse_mode(override) or detect_mode(headers)
