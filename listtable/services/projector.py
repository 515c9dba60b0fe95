from typing import Any, Mapping, Optional

from ..rows import ListStatus, Row
from .util import (
    first_text,
    round_half_up,
    sanitize_count,
    to_optional_int,
    to_optional_number,
    to_positive_int,
)

_DIRECT_STATUSES = {
    "COMPLETED": ListStatus.COMPLETED,
    "PAUSED": ListStatus.PAUSED,
    "DROPPED": ListStatus.DROPPED,
    "PLANNING": ListStatus.PLANNING,
}

TITLE_PREFERENCE = ("userPreferred", "romaji", "english", "native")
COVER_PREFERENCE = ("large", "medium", "extraLarge")
SITE_URL_TEMPLATE = "https://anilist.co/anime/{media_id}"


def normalize_status(value: Any) -> Optional[ListStatus]:
    """Map an upstream list status token onto a canonical category.

    Upstream tokens are not trusted to match exactly, so they are trimmed and
    uppercased first. Unrecognised non-empty tokens become ``CURRENT`` so the
    entry stays visible; blank or missing tokens return ``None``.
    """
    if not isinstance(value, str):
        return None
    token = value.strip().upper()
    if not token:
        return None
    if token in {"CURRENT", "REPEATING"}:
        return ListStatus.CURRENT
    return _DIRECT_STATUSES.get(token, ListStatus.CURRENT)


def normalize_score(value: Any) -> Optional[float]:
    """Return the score on a 0-10 scale with one decimal, or ``None``."""
    parsed = to_optional_number(value)
    if parsed is None or parsed <= 0:
        return None
    normalized = parsed / 10 if parsed > 10 else parsed
    return round_half_up(normalized, 1)


def build_title(media: Mapping[str, Any]) -> str:
    title = first_text(media.get("title"), *TITLE_PREFERENCE)
    if title:
        return title
    media_id = media.get("id")
    return f"Anime #{media_id if media_id is not None else '?'}"


def compute_latest_episode(
    total_episodes: Optional[int], next_airing: Optional[int]
) -> Optional[int]:
    latest: Optional[int] = None
    if next_airing is not None:
        latest = max(0, next_airing - 1)
    elif total_episodes is not None:
        latest = total_episodes
    if latest is not None and total_episodes is not None:
        latest = min(latest, total_episodes)
    return latest


def compute_released_unwatched(latest_episode: Optional[int], progress: int) -> Optional[int]:
    if latest_episode is None:
        return None
    return max(0, latest_episode - progress)


def project_entry(entry: Any, fallback_status: Any = None) -> Optional[Row]:
    """Build a :class:`Row` from one raw list entry, or ``None`` if unusable."""
    if not isinstance(entry, Mapping):
        return None
    media = entry.get("media")
    if not isinstance(media, Mapping):
        return None

    status = normalize_status(entry.get("status")) or normalize_status(fallback_status)
    if status is None:
        return None

    media_id = media.get("id")
    total_episodes = to_positive_int(media.get("episodes"))
    next_airing = media.get("nextAiringEpisode")
    next_airing_episode = (
        to_optional_int(next_airing.get("episode")) if isinstance(next_airing, Mapping) else None
    )
    latest_episode = compute_latest_episode(total_episodes, next_airing_episode)
    progress = sanitize_count(entry.get("progress"))

    media_format = media.get("format")
    site_url = media.get("siteUrl")
    return Row(
        entry_id=entry.get("id"),
        media_id=media_id,
        title=build_title(media),
        status=status,
        cover_image=first_text(media.get("coverImage"), *COVER_PREFERENCE),
        progress=progress,
        total_episodes=total_episodes,
        latest_episode=latest_episode,
        released_unwatched=compute_released_unwatched(latest_episode, progress),
        score=normalize_score(entry.get("score")),
        format=str(media_format) if media_format else "-",
        site_url=str(site_url) if site_url else SITE_URL_TEMPLATE.format(media_id=media_id),
    )
