"""Transcode request models."""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from retroportal.config import ARCHIVE_BASE_URL, MAX_IMAGE_DIMENSION
from retroportal.errors import InvalidDimension, UnsupportedFormat


class ImageFormat(str, Enum):
    GIF = "gif"
    WBMP = "wbmp"

    @property
    def converter_name(self) -> str:
        return self.value.upper()

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self]


_MEDIA_TYPES = {
    ImageFormat.GIF: "image/gif",
    ImageFormat.WBMP: "image/vnd.wap.wbmp",
}


class PipelineState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    CONVERTING = "converting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TranscodeSpec:
    source_url: str
    width: int = 0
    height: int = 0
    output_format: ImageFormat = ImageFormat.GIF

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError("width and height must be >= 0")

    @property
    def resize(self) -> Optional[tuple[int, int]]:
        """(width, height) when both are positive; a single dimension means no resize."""
        if self.width > 0 and self.height > 0:
            return (self.width, self.height)
        return None


IDENTIFIER_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.\-]{0,99}")


def is_valid_identifier(identifier: Optional[str]) -> bool:
    return bool(identifier) and IDENTIFIER_RE.fullmatch(identifier) is not None


def source_url_for(identifier: str) -> str:
    return f"{ARCHIVE_BASE_URL}/services/img/{identifier}"


def parse_dimension(value: Any) -> int:
    """Query value -> non-negative int. Missing, non-numeric or negative gives 0."""
    try:
        n = int(str(value).strip())
    except (TypeError, ValueError):
        return 0
    return n if n > 0 else 0


def check_dimensions(width: int, height: int, limit: int = MAX_IMAGE_DIMENSION) -> None:
    if width > limit or height > limit:
        raise InvalidDimension(f"Requested {width}x{height}, limit is {limit}")


def parse_format(value: Optional[str]) -> ImageFormat:
    try:
        return ImageFormat((value or ImageFormat.GIF.value).strip().lower())
    except ValueError as e:
        raise UnsupportedFormat(f"Unsupported output format {value!r}") from e
