import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Iterable, List, Mapping, Optional, Protocol, Set

from ..rows import EpisodeState, EpisodeStatus, ListStatus, Row
from .util import get_field, to_optional_number

logger = logging.getLogger(__name__)

MAX_RENDERED_EPISODES = 80

ErrorCallback = Callable[[Row, Exception], None]


class LocalLibraryClient(Protocol):
    async def get_anime_entry(self, media_id: Any) -> Any:
        ...


def _episode_records(entry: Any) -> Iterable[Any]:
    if entry is None:
        return []
    if isinstance(entry, Mapping):
        episodes = entry.get("episodes")
    elif isinstance(entry, (list, tuple)):
        episodes = entry
    else:
        episodes = getattr(entry, "episodes", None)
    if isinstance(episodes, (list, tuple)):
        return episodes
    return []


def downloaded_episode_numbers(entry: Any) -> Set[Any]:
    """Distinct positive episode numbers of the locally downloaded files."""
    numbers: Set[Any] = set()
    for episode in _episode_records(entry):
        if not episode or not get_field(episode, "isDownloaded"):
            continue
        number = to_optional_number(
            get_field(episode, "progressNumber") or get_field(episode, "episodeNumber")
        )
        if number is not None and number > 0:
            numbers.add(number)
    return numbers


def is_enrichable(row: Row) -> bool:
    return row.status == ListStatus.CURRENT and row.released_unwatched is not None


def enrich_row(row: Row, entry: Any) -> Row:
    """Merge the local file listing ``entry`` into ``row``."""
    downloaded = downloaded_episode_numbers(entry)
    watched_until = max(0, row.progress)
    latest_known = row.latest_episode
    highest_downloaded = int(max(downloaded)) if downloaded else 0
    max_episode = max(watched_until, latest_known or 0, highest_downloaded)

    # Counted from the distinct set; the host may report the same episode twice.
    if latest_known is not None:
        downloaded_unwatched = sum(
            1 for number in downloaded if watched_until < number <= latest_known
        )
    else:
        downloaded_unwatched = 0
    needed_to_download = max(0, (row.released_unwatched or 0) - downloaded_unwatched)

    if max_episode > MAX_RENDERED_EPISODES:
        start_episode = max_episode - MAX_RENDERED_EPISODES + 1
    else:
        start_episode = 1
    hidden_count = start_episode - 1

    statuses: List[EpisodeStatus] = []
    for number in range(start_episode, max_episode + 1):
        if number <= watched_until:
            statuses.append(EpisodeStatus(number, EpisodeState.WATCHED))
        elif number in downloaded:
            statuses.append(EpisodeStatus(number, EpisodeState.DOWNLOADED))
        elif latest_known is not None and number <= latest_known:
            statuses.append(EpisodeStatus(number, EpisodeState.MISSING))

    return replace(
        row,
        downloaded_unwatched=downloaded_unwatched,
        needed_to_download=needed_to_download,
        episode_statuses=statuses,
        hidden_episode_status_count=hidden_count,
    )


class EpisodeEnricher:
    """Looks up local files for watching rows and merges episode states."""

    def __init__(
        self, local_library: LocalLibraryClient, *, on_error: Optional[ErrorCallback] = None
    ) -> None:
        self.local_library = local_library
        self.on_error = on_error

    async def _enrich_one(self, row: Row) -> Row:
        if not is_enrichable(row):
            return row
        try:
            entry = await self.local_library.get_anime_entry(row.media_id)
            return enrich_row(row, entry)
        except Exception as exc:
            logger.warning("Local lookup failed for %s (%s): %s", row.title, row.media_id, exc)
            if self.on_error is not None:
                self.on_error(row, exc)
            return row

    async def enrich_rows(self, rows: List[Row]) -> List[Row]:
        return list(await asyncio.gather(*(self._enrich_one(row) for row in rows)))
