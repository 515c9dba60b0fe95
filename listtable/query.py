"""Filtering, sorting and virtualization of the table rows.

Everything here is a pure function of the row set and the view parameters,
so a presentation surface can re-run it on every scroll or keystroke.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .rows import STATUS_LABELS, STATUS_ORDER, ListStatus, Row, count_by_status
from .services.util import compare_text, to_optional_number

VIRTUALIZE_AFTER_ROWS = 120
OVERSCAN_ROWS = 10
ROW_HEIGHT = 62
ROW_HEIGHT_WITH_EPISODES = 84
DEFAULT_VIEWPORT_HEIGHT = 700

SORT_KEYS = ("title", "watched", "total", "score", "progress", "unwatched", "format")
SORT_ASC = "asc"
SORT_DESC = "desc"


@dataclass(frozen=True)
class RowFilters:
    status: ListStatus = ListStatus.CURRENT
    query_text: Optional[str] = None
    format: Optional[str] = None
    min_score: Optional[float] = None
    max_score: Optional[float] = None
    min_episodes: Optional[float] = None
    max_episodes: Optional[float] = None


@dataclass(frozen=True)
class ViewQuery:
    filters: RowFilters = field(default_factory=RowFilters)
    sort_key: str = "title"
    sort_dir: str = SORT_ASC
    scroll_top: float = 0
    viewport_height: float = DEFAULT_VIEWPORT_HEIGHT


@dataclass(frozen=True)
class VirtualWindow:
    start: int
    end: int
    top_spacer: float
    bottom_spacer: float
    row_height: int
    virtualized: bool
    scroll_top: float

    @property
    def total_height(self) -> float:
        return self.top_spacer + self.bottom_spacer + (self.end - self.start) * self.row_height


@dataclass
class QueryResult:
    rows: List[Row]
    total: int
    window: VirtualWindow
    sort_key: str
    sort_dir: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "items": [row.to_payload() for row in self.rows],
            "total": self.total,
            "start": self.window.start,
            "end": self.window.end,
            "topSpacer": self.window.top_spacer,
            "bottomSpacer": self.window.bottom_spacer,
            "rowHeight": self.window.row_height,
            "virtualized": self.window.virtualized,
            "scrollTop": self.window.scroll_top,
            "sortKey": self.sort_key,
            "sortDir": self.sort_dir,
        }


def build_filters(
    *,
    status: Any = None,
    q: Optional[str] = None,
    format: Optional[str] = None,
    min_score: Any = None,
    max_score: Any = None,
    min_episodes: Any = None,
    max_episodes: Any = None,
) -> RowFilters:
    """Build :class:`RowFilters` from loosely typed input; bad bounds are dropped."""
    try:
        parsed_status = ListStatus(str(status).strip().upper()) if status else ListStatus.CURRENT
    except ValueError:
        parsed_status = ListStatus.CURRENT
    query_text = q.strip() if isinstance(q, str) and q.strip() else None
    return RowFilters(
        status=parsed_status,
        query_text=query_text,
        format=format if isinstance(format, str) and format else None,
        min_score=to_optional_number(min_score),
        max_score=to_optional_number(max_score),
        min_episodes=to_optional_number(min_episodes),
        max_episodes=to_optional_number(max_episodes),
    )


def _in_range(value: Optional[float], low: Optional[float], high: Optional[float]) -> bool:
    if low is None and high is None:
        return True
    if value is None:
        return False
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def matches(row: Row, filters: RowFilters) -> bool:
    if row.status != filters.status:
        return False
    if filters.query_text and filters.query_text.lower() not in (row.title or "").lower():
        return False
    if filters.format and (row.format or "") != filters.format:
        return False
    if not _in_range(row.score, filters.min_score, filters.max_score):
        return False
    if not _in_range(row.total_episodes, filters.min_episodes, filters.max_episodes):
        return False
    return True


def filter_rows(rows: List[Row], filters: RowFilters) -> List[Row]:
    return [row for row in rows if matches(row, filters)]


def progress_ratio(row: Row) -> Optional[float]:
    if row.total_episodes:
        return row.progress / row.total_episodes
    return None


def _compare_nullable(left: Optional[float], right: Optional[float], direction: int) -> int:
    # unknown values go last in either direction
    if left is None and right is None:
        return 0
    if left is None:
        return 1
    if right is None:
        return -1
    if left == right:
        return 0
    return direction if left > right else -direction


_NUMERIC_SORTS: Dict[str, Callable[[Row], Optional[float]]] = {
    "watched": lambda row: row.progress,
    "total": lambda row: row.total_episodes,
    "score": lambda row: row.score,
    "unwatched": lambda row: row.downloaded_unwatched,
}


def effective_sort(status: ListStatus, sort_key: str, sort_dir: str) -> Tuple[str, str]:
    """Validate a sort request; episode-status sorting only exists on ``CURRENT``."""
    if sort_key not in SORT_KEYS:
        return "title", SORT_ASC
    if sort_key == "unwatched" and status != ListStatus.CURRENT:
        return "title", SORT_ASC
    return sort_key, SORT_DESC if sort_dir == SORT_DESC else SORT_ASC


def toggle_sort(sort_key: str, sort_dir: str, requested: str) -> Tuple[str, str]:
    if requested == sort_key:
        return sort_key, SORT_DESC if sort_dir == SORT_ASC else SORT_ASC
    return requested, SORT_ASC


def sort_rows(rows: List[Row], sort_key: str, sort_dir: str) -> List[Row]:
    direction = -1 if sort_dir == SORT_DESC else 1

    def compare(left: Row, right: Row) -> int:
        result = 0
        if sort_key == "title":
            result = compare_text(left.title, right.title) * direction
        elif sort_key == "format":
            result = compare_text(left.format, right.format) * direction
        elif sort_key == "progress":
            result = _compare_nullable(progress_ratio(left), progress_ratio(right), direction)
            if result == 0:
                result = _compare_nullable(left.progress, right.progress, direction)
        elif sort_key in _NUMERIC_SORTS:
            value = _NUMERIC_SORTS[sort_key]
            result = _compare_nullable(value(left), value(right), direction)
        if result == 0:
            result = compare_text(left.title, right.title) * direction
        return result

    return sorted(rows, key=cmp_to_key(compare))


def shows_episode_column(column_visibility: Mapping[str, bool], status: ListStatus) -> bool:
    return bool(column_visibility.get("unwatched")) and status == ListStatus.CURRENT


def row_height_for(column_visibility: Mapping[str, bool], status: ListStatus) -> int:
    if shows_episode_column(column_visibility, status):
        return ROW_HEIGHT_WITH_EPISODES
    return ROW_HEIGHT


def virtual_window(
    count: int, row_height: int, scroll_top: float, viewport_height: float
) -> VirtualWindow:
    """Compute which rows to materialize for the given scroll position."""
    if count <= VIRTUALIZE_AFTER_ROWS:
        return VirtualWindow(0, count, 0, 0, row_height, False, max(0.0, scroll_top))

    max_scroll_top = max(0.0, count * row_height - viewport_height)
    scroll = min(max(0.0, scroll_top), max_scroll_top)
    start = max(0, math.floor(scroll / row_height) - OVERSCAN_ROWS)
    start = min(start, max(0, count - 1))
    visible = max(1, math.ceil(max(0.0, viewport_height) / row_height) + OVERSCAN_ROWS * 2)
    end = min(count, start + visible)
    return VirtualWindow(
        start=start,
        end=end,
        top_spacer=start * row_height,
        bottom_spacer=max(0, count - end) * row_height,
        row_height=row_height,
        virtualized=True,
        scroll_top=scroll,
    )


def run_query(
    rows: List[Row], query: ViewQuery, column_visibility: Mapping[str, bool]
) -> QueryResult:
    status = query.filters.status
    sort_key, sort_dir = effective_sort(status, query.sort_key, query.sort_dir)
    ordered = sort_rows(filter_rows(rows, query.filters), sort_key, sort_dir)
    window = virtual_window(
        len(ordered),
        row_height_for(column_visibility, status),
        query.scroll_top,
        query.viewport_height,
    )
    return QueryResult(
        rows=ordered[window.start:window.end],
        total=len(ordered),
        window=window,
        sort_key=sort_key,
        sort_dir=sort_dir,
    )


def status_counts(rows: List[Row]) -> Dict[str, int]:
    return {status.value: count for status, count in count_by_status(rows).items()}


def status_tabs(rows: List[Row]) -> List[Dict[str, Any]]:
    counts = count_by_status(rows)
    return [
        {"status": status.value, "label": STATUS_LABELS[status], "count": counts[status]}
        for status in STATUS_ORDER
    ]


def format_options(rows: List[Row]) -> List[str]:
    return sorted({str(row.format) for row in rows if row.format})


def format_score(value: Optional[float]) -> str:
    if value is None or value == 0:
        return "-"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.1f}"


def _percent(part: float, whole: float) -> int:
    return max(0, min(100, math.floor(part / whole * 100 + 0.5)))


def progress_context(row: Row) -> Dict[str, Any]:
    """Watched and released share of the series, for the progress bar."""
    watched = row.progress or 0
    total = row.total_episodes if row.total_episodes and row.total_episodes > 0 else None
    latest_raw = row.latest_episode if row.latest_episode is not None and row.latest_episode >= 0 else None
    if latest_raw is None:
        latest = total
    elif total is None:
        latest = latest_raw
    else:
        latest = min(latest_raw, total)

    denominator = total or (latest if latest and latest > 0 else max(watched, 1))
    watched_clamped = min(max(0, watched), denominator)
    released_clamped = (
        watched_clamped if latest is None else min(max(0, latest), denominator)
    )

    summary = f"Watched {watched}"
    if latest is not None:
        summary += f" • Latest {latest}"
    if total is not None:
        summary += f" • Total {total}"

    return {
        "totalIsNull": total is None,
        "watchedPercent": _percent(watched_clamped, denominator),
        "releasedPercent": _percent(released_clamped, denominator),
        "summary": summary,
    }
