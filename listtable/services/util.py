import datetime as dt
import locale
import math
import unicodedata
from typing import Any, Mapping, Optional, Union

Number = Union[int, float]


def utc_timestamp() -> str:
    """Return ``HH:MM:SS.mmm`` for the current UTC time."""
    now = dt.datetime.now(dt.timezone.utc)
    return f"{now.strftime('%H:%M:%S')}.{now.microsecond // 1000:03d}"


def to_optional_number(value: Any) -> Optional[Number]:
    """Parse ``value`` into a finite int or float, or ``None``.

    Integral floats come back as ``int``. Booleans are not numbers here.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        parsed: float = float(value)
    else:
        candidate = str(value).strip()
        if not candidate:
            return None
        try:
            parsed = float(candidate)
        except ValueError:
            return None
    if not math.isfinite(parsed):
        return None
    if parsed.is_integer():
        return int(parsed)
    return parsed


def to_optional_int(value: Any) -> Optional[int]:
    parsed = to_optional_number(value)
    if parsed is None:
        return None
    return int(parsed)


def to_positive_int(value: Any) -> Optional[int]:
    parsed = to_optional_int(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def sanitize_count(value: Any) -> int:
    parsed = to_optional_int(value)
    if parsed is None:
        return 0
    return max(0, parsed)


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if not normalized:
            return False
        return normalized in {"1", "true", "yes", "on"}
    return False


def round_half_up(value: float, digits: int = 1) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def first_text(source: Any, *keys: str) -> str:
    """Return the first non-empty string stored under ``keys`` in ``source``."""
    if not isinstance(source, Mapping):
        return ""
    for key in keys:
        candidate = source.get(key)
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return ""


def get_field(record: Any, key: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(key)
    return getattr(record, key, None)


def title_sort_key(value: Any) -> str:
    text = unicodedata.normalize("NFKD", str(value or ""))
    stripped = "".join(ch for ch in text if not unicodedata.combining(ch))
    return locale.strxfrm(stripped.casefold())


def compare_text(left: Any, right: Any) -> int:
    left_key = title_sort_key(left)
    right_key = title_sort_key(right)
    if left_key == right_key:
        return 0
    return -1 if left_key < right_key else 1
