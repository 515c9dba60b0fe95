import pytest

from listtable import query
from listtable.rows import ListStatus, Row
from listtable.state import DEFAULT_COLUMN_VISIBILITY


def _row(index, title=None, **fields):
    fields.setdefault("status", ListStatus.CURRENT)
    return Row(entry_id=index, media_id=index, title=title or f"Title {index:04d}", **fields)


def _visibility(**overrides):
    visibility = dict(DEFAULT_COLUMN_VISIBILITY)
    visibility.update(overrides)
    return visibility


def test_filter_by_status_text_and_format():
    rows = [
        _row(1, "Mushishi", format="TV"),
        _row(2, "Mushishi Zoku Shou", format="TV", status=ListStatus.COMPLETED),
        _row(3, "Mushishi Special", format="SPECIAL"),
        _row(4, "Haibane Renmei", format="TV"),
    ]
    filters = query.build_filters(status="current", q="  mUsHi ", format="TV")
    assert [row.entry_id for row in query.filter_rows(rows, filters)] == [1]

    completed = query.build_filters(status="COMPLETED")
    assert [row.entry_id for row in query.filter_rows(rows, completed)] == [2]


def test_range_filters_exclude_unknown_values_only_when_bound_set():
    rows = [
        _row(1, score=8.5, total_episodes=12),
        _row(2, score=None, total_episodes=None),
        _row(3, score=6.0, total_episodes=26),
    ]
    unbounded = query.build_filters()
    assert len(query.filter_rows(rows, unbounded)) == 3

    by_score = query.build_filters(min_score="7", max_score="8.5")
    assert [row.entry_id for row in query.filter_rows(rows, by_score)] == [1]

    by_episodes = query.build_filters(max_episodes=26, min_episodes="12")
    assert [row.entry_id for row in query.filter_rows(rows, by_episodes)] == [1, 3]


def test_build_filters_drops_garbage_bounds_and_status():
    filters = query.build_filters(status="watching", q="", min_score="high", max_episodes="")
    assert filters.status == ListStatus.CURRENT
    assert filters.query_text is None
    assert filters.min_score is None
    assert filters.max_episodes is None


def test_unknown_numbers_sort_last_in_both_directions():
    rows = [
        _row(1, "A", score=None),
        _row(2, "B", score=7.0),
        _row(3, "C", score=9.0),
        _row(4, "D", score=7.0),
    ]
    ascending = query.sort_rows(rows, "score", "asc")
    assert [row.entry_id for row in ascending] == [2, 4, 3, 1]
    descending = query.sort_rows(rows, "score", "desc")
    assert [row.entry_id for row in descending] == [3, 4, 2, 1]


def test_title_sort_is_case_insensitive_and_stable():
    rows = [_row(1, "beta"), _row(2, "Alpha"), _row(3, "alpha"), _row(4, "Gamma")]
    ordered = query.sort_rows(rows, "title", "asc")
    assert [row.entry_id for row in ordered] == [2, 3, 1, 4]


def test_progress_sort_uses_ratio_then_raw_progress():
    rows = [
        _row(1, "A", progress=6, total_episodes=12),
        _row(2, "B", progress=1, total_episodes=2),
        _row(3, "C", progress=3, total_episodes=None),
        _row(4, "D", progress=12, total_episodes=12),
    ]
    ordered = query.sort_rows(rows, "progress", "asc")
    assert [row.entry_id for row in ordered] == [2, 1, 4, 3]


def test_unwatched_sort_only_on_current_tab():
    assert query.effective_sort(ListStatus.CURRENT, "unwatched", "desc") == ("unwatched", "desc")
    assert query.effective_sort(ListStatus.PAUSED, "unwatched", "desc") == ("title", "asc")
    assert query.effective_sort(ListStatus.PAUSED, "bogus", "desc") == ("title", "asc")
    assert query.effective_sort(ListStatus.PAUSED, "format", "sideways") == ("format", "asc")


def test_toggle_sort():
    assert query.toggle_sort("title", "asc", "title") == ("title", "desc")
    assert query.toggle_sort("title", "desc", "title") == ("title", "asc")
    assert query.toggle_sort("title", "desc", "score") == ("score", "asc")


def test_virtual_window_reference_scenario():
    row_height = query.ROW_HEIGHT_WITH_EPISODES
    window = query.virtual_window(500, row_height, 200 * row_height, 10 * row_height)
    visible = 10
    assert window.virtualized is True
    assert window.start == 200 - query.OVERSCAN_ROWS
    assert window.end == 200 + visible + query.OVERSCAN_ROWS
    assert window.top_spacer == window.start * row_height
    assert window.total_height == 500 * row_height


def test_virtual_window_clamps_to_bounds():
    row_height = query.ROW_HEIGHT
    top = query.virtual_window(500, row_height, 0, 10 * row_height)
    assert (top.start, top.end) == (0, 30)
    assert top.total_height == 500 * row_height

    beyond = query.virtual_window(500, row_height, 10_000 * row_height, 10 * row_height)
    assert beyond.scroll_top == 490 * row_height
    assert beyond.end == 500
    assert beyond.bottom_spacer == 0
    assert beyond.total_height == 500 * row_height


def test_small_result_sets_are_not_virtualized():
    window = query.virtual_window(query.VIRTUALIZE_AFTER_ROWS, 62, 5000, 700)
    assert window.virtualized is False
    assert (window.start, window.end) == (0, query.VIRTUALIZE_AFTER_ROWS)
    assert window.top_spacer == window.bottom_spacer == 0


def test_row_height_depends_on_episode_column():
    assert query.row_height_for(_visibility(), ListStatus.CURRENT) == query.ROW_HEIGHT_WITH_EPISODES
    assert query.row_height_for(_visibility(unwatched=False), ListStatus.CURRENT) == query.ROW_HEIGHT
    assert query.row_height_for(_visibility(), ListStatus.COMPLETED) == query.ROW_HEIGHT


def test_run_query_materializes_only_the_window():
    rows = [_row(index) for index in range(500)]
    rows.append(_row(9999, status=ListStatus.PLANNING))
    row_height = query.ROW_HEIGHT_WITH_EPISODES
    result = query.run_query(
        rows,
        query.ViewQuery(scroll_top=200 * row_height, viewport_height=10 * row_height),
        _visibility(),
    )
    assert result.total == 500
    assert len(result.rows) == 30
    assert result.rows[0].entry_id == 190
    assert result.rows[-1].entry_id == 219
    payload = result.to_payload()
    assert payload["topSpacer"] + payload["bottomSpacer"] + len(payload["items"]) * payload["rowHeight"] == 500 * row_height


def test_run_query_resets_unsupported_sort():
    rows = [_row(1, "b", status=ListStatus.DROPPED), _row(2, "a", status=ListStatus.DROPPED)]
    result = query.run_query(
        rows,
        query.ViewQuery(filters=query.build_filters(status="DROPPED"), sort_key="unwatched", sort_dir="desc"),
        _visibility(),
    )
    assert (result.sort_key, result.sort_dir) == ("title", "asc")
    assert [row.title for row in result.rows] == ["a", "b"]


def test_status_counts_tabs_and_format_options():
    rows = [
        _row(1, format="TV"),
        _row(2, format="MOVIE", status=ListStatus.PLANNING),
        _row(3, format="TV", status=ListStatus.PLANNING),
    ]
    assert query.status_counts(rows) == {
        "CURRENT": 1,
        "COMPLETED": 0,
        "PAUSED": 0,
        "DROPPED": 0,
        "PLANNING": 2,
    }
    tabs = query.status_tabs(rows)
    assert tabs[0] == {"status": "CURRENT", "label": "Currently Watching", "count": 1}
    assert tabs[-1]["label"] == "Plan to Watch"
    assert query.format_options(rows) == ["MOVIE", "TV"]


@pytest.mark.parametrize("value, expected", [(None, "-"), (0, "-"), (8.0, "8"), (7, "7"), (8.5, "8.5")])
def test_format_score(value, expected):
    assert query.format_score(value) == expected


def test_progress_context():
    airing = query.progress_context(_row(1, progress=3, total_episodes=12, latest_episode=6))
    assert airing == {
        "totalIsNull": False,
        "watchedPercent": 25,
        "releasedPercent": 50,
        "summary": "Watched 3 • Latest 6 • Total 12",
    }

    open_ended = query.progress_context(_row(2, progress=4, latest_episode=8))
    assert open_ended["totalIsNull"] is True
    assert open_ended["watchedPercent"] == 50
    assert open_ended["releasedPercent"] == 100
    assert open_ended["summary"] == "Watched 4 • Latest 8"

    unknown = query.progress_context(_row(3, progress=0))
    assert unknown["watchedPercent"] == 0
    assert unknown["summary"] == "Watched 0"
