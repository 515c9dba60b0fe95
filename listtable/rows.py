"""Per-title view model shared by the loader, enricher and query engine."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ListStatus(str, Enum):
    """Canonical watch-list categories."""

    CURRENT = "CURRENT"
    COMPLETED = "COMPLETED"
    PAUSED = "PAUSED"
    DROPPED = "DROPPED"
    PLANNING = "PLANNING"


STATUS_ORDER = [
    ListStatus.CURRENT,
    ListStatus.COMPLETED,
    ListStatus.PAUSED,
    ListStatus.DROPPED,
    ListStatus.PLANNING,
]

STATUS_LABELS = {
    ListStatus.CURRENT: "Currently Watching",
    ListStatus.COMPLETED: "Completed",
    ListStatus.PAUSED: "On Hold",
    ListStatus.DROPPED: "Dropped",
    ListStatus.PLANNING: "Plan to Watch",
}


class EpisodeState(str, Enum):
    WATCHED = "watched"
    DOWNLOADED = "downloaded"
    MISSING = "missing"


@dataclass(frozen=True)
class EpisodeStatus:
    episode: int
    state: EpisodeState

    def to_payload(self) -> Dict[str, Any]:
        return {"episode": self.episode, "state": self.state.value}


@dataclass
class Row:
    """One remote list entry, optionally enriched with local episode data."""

    entry_id: Any
    media_id: Any
    title: str
    status: ListStatus
    cover_image: str = ""
    progress: int = 0
    total_episodes: Optional[int] = None
    latest_episode: Optional[int] = None
    released_unwatched: Optional[int] = None
    downloaded_unwatched: Optional[int] = None
    needed_to_download: Optional[int] = None
    episode_statuses: Optional[List[EpisodeStatus]] = None
    hidden_episode_status_count: int = 0
    score: Optional[Union[int, float]] = None
    format: str = "-"
    site_url: str = ""

    @property
    def has_download_context(self) -> bool:
        return (
            self.released_unwatched is not None
            and self.downloaded_unwatched is not None
            and self.needed_to_download is not None
            and self.episode_statuses is not None
        )

    def to_payload(self) -> Dict[str, Any]:
        statuses = None
        if self.episode_statuses is not None:
            statuses = [item.to_payload() for item in self.episode_statuses]
        return {
            "entryId": self.entry_id,
            "mediaId": self.media_id,
            "title": self.title,
            "coverImage": self.cover_image,
            "progress": self.progress,
            "latestEpisode": self.latest_episode,
            "totalEpisodes": self.total_episodes,
            "releasedUnwatched": self.released_unwatched,
            "downloadedUnwatched": self.downloaded_unwatched,
            "neededToDownload": self.needed_to_download,
            "episodeStatuses": statuses,
            "hiddenEpisodeStatusCount": self.hidden_episode_status_count,
            "score": self.score,
            "status": self.status.value,
            "format": self.format,
            "siteUrl": self.site_url,
        }


def count_by_status(rows: List[Row]) -> Dict[ListStatus, int]:
    counts = {status: 0 for status in STATUS_ORDER}
    for row in rows:
        counts[row.status] = counts.get(row.status, 0) + 1
    return counts
