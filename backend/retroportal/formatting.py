"""Small value formatters used by the page templates."""
import re
from datetime import datetime, timezone
from typing import Any, Optional

SI_PREFIXES = [
    (1e12, "T"),
    (1e9, "G"),
    (1e6, "M"),
    (1e3, "k"),
    (1, ""),
    (1e-3, "m"),
    (1e-6, "\xb5"),
    (1e-9, "n"),
    (1e-12, "p"),
]

# Counts rather than units: billions are "B"
DEC_PREFIXES = [
    (1e12, "T"),
    (1e9, "B"),
    (1e6, "M"),
    (1e3, "k"),
    (1, ""),
]


def _to_precision(value: float, digits: int) -> str:
    """Three significant digits the way JavaScript's toPrecision writes them (no exponent)."""
    if value == 0:
        return "0"
    formatted = f"{value:.{digits}g}"
    if "e" in formatted:
        formatted = f"{float(formatted):f}"
    return formatted


def format_unit(value: Optional[float], prefixes=SI_PREFIXES) -> str:
    """format_unit(1234) -> '1.23k', format_unit(1500000, DEC_PREFIXES) -> '1.5M'."""
    if value is None:
        return ""
    if value == 0:
        return "0"
    abs_value = abs(value)
    scale, symbol = next(
        ((s, sym) for s, sym in prefixes if 1 <= abs_value / s < 1e3),
        prefixes[-1],
    )
    formatted = _to_precision(value / scale, 3)
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")
    return f"{formatted}{symbol}"


def try_parse_int(value: Any, default: int = 1) -> int:
    """Never fails: leading integer of value, else default."""
    if isinstance(value, int):
        return value
    m = re.match(r"\s*([+-]?\d+)", str(value) if value is not None else "")
    return int(m.group(1)) if m else default


def make_array(value: Any) -> list:
    if value is None:
        return []
    return list(value) if isinstance(value, (list, tuple)) else [value]


def parse_wayback_timestamp(timestamp: str) -> datetime:
    """'20010203040506', or any prefix of it down to the year, -> UTC datetime."""
    digits = re.sub(r"\D", "", timestamp)[:14]
    if len(digits) < 4:
        raise ValueError(f"Not a wayback timestamp: {timestamp!r}")
    padded = digits + "00000101000000"[len(digits):]
    return datetime.strptime(padded, "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)


def date_to_yyyymmdd(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")
