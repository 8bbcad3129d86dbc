"""Client capability classes and the per-request context."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ClientMode(str, Enum):
    TEXT = "text"
    HTML4 = "html4"
    PPC = "ppc"
    WAP = "wap"
    WAP2 = "wap2"


RENDER_MODES = tuple(m.value for m in ClientMode)


def parse_mode(value: Optional[str]) -> Optional[ClientMode]:
    """Exact match against the class names; anything else is None."""
    if not value or value not in RENDER_MODES:
        return None
    return ClientMode(value)


@dataclass(frozen=True)
class RequestContext:
    mode: ClientMode
