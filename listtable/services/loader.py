from typing import Any, Iterable, List, Mapping, Protocol

from ..rows import Row
from .projector import project_entry
from .util import title_sort_key


class LibraryClient(Protocol):
    async def get_anime_collection(self) -> Any:
        ...


def _as_list(value: Any) -> Iterable[Any]:
    if isinstance(value, (list, tuple)):
        return value
    return []


def collect_rows(collection: Any) -> List[Row]:
    """Project every entry of a ``MediaListCollection`` tree into rows."""
    list_collection = (
        collection.get("MediaListCollection") if isinstance(collection, Mapping) else None
    )
    lists = list_collection.get("lists") if isinstance(list_collection, Mapping) else None

    rows: List[Row] = []
    for media_list in _as_list(lists):
        if not isinstance(media_list, Mapping):
            continue
        fallback_status = media_list.get("status")
        for entry in _as_list(media_list.get("entries")):
            row = project_entry(entry, fallback_status)
            if row is None:
                continue
            rows.append(row)

    rows.sort(key=lambda row: title_sort_key(row.title))
    return rows


async def load_rows(library: LibraryClient) -> List[Row]:
    collection = await library.get_anime_collection()
    return collect_rows(collection)
