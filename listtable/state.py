"""View state and persisted table preferences owned by the controller."""
from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Mapping, Optional

from .rows import Row
from .services.util import to_optional_number, utc_timestamp
from .storage import PreferenceStore

logger = logging.getLogger(__name__)

COLUMN_VISIBILITY_STORAGE_KEY = "my-list-table-view:column-visibility"
COVER_SIZE_STORAGE_KEY = "my-list-table-view:cover-size"
LEGACY_SHOW_FORMAT_STORAGE_KEY = "my-list-table-view:show-format-column"

COVER_SIZE_MIN = 28
COVER_SIZE_MAX = 92
DEFAULT_COVER_SIZE = 42
MAX_DEBUG_LOGS = 120

COLUMN_KEYS = (
    "cover",
    "title",
    "watched",
    "total",
    "score",
    "status",
    "progress",
    "unwatched",
    "format",
)

DEFAULT_COLUMN_VISIBILITY: Dict[str, bool] = {key: True for key in COLUMN_KEYS}


def clamp_cover_size(value: Any) -> Optional[int]:
    """Round and clamp ``value`` into the cover size range, ``None`` if not a number."""
    parsed = to_optional_number(value)
    if parsed is None:
        return None
    # round() is half-to-even; sizes round half up.
    rounded = math.floor(parsed + 0.5)
    return max(COVER_SIZE_MIN, min(COVER_SIZE_MAX, rounded))


@dataclass
class Preferences:
    column_visibility: Dict[str, bool] = field(
        default_factory=lambda: dict(DEFAULT_COLUMN_VISIBILITY)
    )
    cover_size: int = DEFAULT_COVER_SIZE


def load_preferences(store: PreferenceStore) -> Preferences:
    """Seed preferences from ``store``, migrating the legacy format toggle once."""
    stored_visibility = store.get(COLUMN_VISIBILITY_STORAGE_KEY)
    if not isinstance(stored_visibility, Mapping):
        stored_visibility = {}

    visibility = dict(DEFAULT_COLUMN_VISIBILITY)
    for key, visible in stored_visibility.items():
        if key in visibility and isinstance(visible, bool):
            visibility[key] = visible

    legacy_show_format = store.get(LEGACY_SHOW_FORMAT_STORAGE_KEY)
    if isinstance(legacy_show_format, bool) and "format" not in stored_visibility:
        visibility["format"] = legacy_show_format
        try:
            store.set(COLUMN_VISIBILITY_STORAGE_KEY, visibility)
        except Exception as exc:
            logger.warning("Could not persist migrated column visibility: %s", exc)

    cover_size = clamp_cover_size(store.get(COVER_SIZE_STORAGE_KEY))
    return Preferences(
        column_visibility=visibility,
        cover_size=DEFAULT_COVER_SIZE if cover_size is None else cover_size,
    )


@dataclass
class ViewState:
    """Everything the presentation surface can observe."""

    rows: List[Row] = field(default_factory=list)
    loading: bool = True
    enrichment_loading: bool = False
    error: str = ""
    debug_logs: Deque[str] = field(default_factory=lambda: deque(maxlen=MAX_DEBUG_LOGS))
    preferences: Preferences = field(default_factory=Preferences)

    def append_log(self, message: str) -> str:
        line = f"[{utc_timestamp()}] {message}"
        self.debug_logs.append(line)
        return line

    def rows_payload(self) -> List[Dict[str, Any]]:
        return [row.to_payload() for row in self.rows]
