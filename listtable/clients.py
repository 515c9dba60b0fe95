"""HTTP adapters for the remote list service and the local library server."""
from __future__ import annotations

import asyncio
import os
from typing import Any, Dict, Optional

import requests

ANILIST_API_URL = os.getenv("ANILIST_API_URL", "https://graphql.anilist.co")
ANILIST_TOKEN = os.getenv("ANILIST_TOKEN")
ANILIST_USER = os.getenv("ANILIST_USER")
LIBRARY_API_URL = os.getenv("LIBRARY_API_URL", "http://127.0.0.1:43211")
REQUEST_TIMEOUT = 15

USER_AGENT = "listtable/1.0"

ANIME_COLLECTION_QUERY = """
query ($userName: String) {
  MediaListCollection(userName: $userName, type: ANIME) {
    lists {
      name
      status
      entries {
        id
        status
        progress
        score(format: POINT_100)
        media {
          id
          title { userPreferred romaji english native }
          coverImage { large medium extraLarge }
          episodes
          nextAiringEpisode { episode }
          format
          siteUrl
        }
      }
    }
  }
}
"""


class ClientError(RuntimeError):
    """Raised when a remote or local lookup cannot be completed."""


def _build_session(token: Optional[str] = None) -> requests.Session:
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        }
    )
    if token:
        session.headers["Authorization"] = f"Bearer {token}"
    return session


class AniListClient:
    """Fetches the user's anime list collection over GraphQL."""

    def __init__(
        self,
        user_name: Optional[str] = ANILIST_USER,
        *,
        token: Optional[str] = ANILIST_TOKEN,
        api_url: str = ANILIST_API_URL,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.user_name = user_name
        self.api_url = api_url
        self.session = session or _build_session(token)

    def fetch_collection(self) -> Dict[str, Any]:
        if not self.user_name:
            raise ClientError("ANILIST_USER is not configured")
        try:
            resp = self.session.post(
                self.api_url,
                json={"query": ANIME_COLLECTION_QUERY, "variables": {"userName": self.user_name}},
                timeout=REQUEST_TIMEOUT,
            )
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise ClientError(f"AniList request failed: {exc}") from exc

        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else {}
            message = first.get("message") if isinstance(first, dict) else None
            raise ClientError(message or "AniList returned an error")
        data = payload.get("data") if isinstance(payload, dict) else None
        return data if isinstance(data, dict) else {}

    async def get_anime_collection(self) -> Dict[str, Any]:
        return await asyncio.to_thread(self.fetch_collection)


class LocalLibraryClient:
    """Reads per-episode file data from the local media server."""

    def __init__(
        self,
        base_url: str = LIBRARY_API_URL,
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or _build_session()

    def fetch_entry(self, media_id: Any) -> Any:
        url = f"{self.base_url}/api/v1/library/anime-entry/{media_id}"
        try:
            resp = self.session.get(url, timeout=REQUEST_TIMEOUT)
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise ClientError(f"Library lookup failed for {media_id}: {exc}") from exc
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    async def get_anime_entry(self, media_id: Any) -> Any:
        return await asyncio.to_thread(self.fetch_entry, media_id)
