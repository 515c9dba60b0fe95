"""Reconciliation controller: owns the table state and serves the channel."""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from .rows import Row, count_by_status
from .services.channel import MessageChannel
from .services.enrich import EpisodeEnricher, LocalLibraryClient
from .services.loader import LibraryClient, load_rows
from .services.util import coerce_bool
from .state import (
    COLUMN_KEYS,
    COLUMN_VISIBILITY_STORAGE_KEY,
    COVER_SIZE_STORAGE_KEY,
    ViewState,
    clamp_cover_size,
    load_preferences,
)
from .storage import PreferenceStore

logger = logging.getLogger(__name__)

Navigator = Callable[[str, Dict[str, str]], None]


class Notifier(Protocol):
    def error(self, message: str) -> None:
        ...


class LogNotifier:
    """Notification sink that writes toasts to the application log."""

    def error(self, message: str) -> None:
        logger.error("toast:error %s", message)


def log_navigator(path: str, params: Dict[str, str]) -> None:
    logger.info("navigate %s %s", path, params)


def _describe_payload(payload: Any) -> str:
    try:
        return json.dumps(payload if payload is not None else {}, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(payload)


class ReconciliationController:
    """Loads the remote list, merges local episode data and broadcasts state.

    ``refresh`` and ``load_enriched_episodes`` share one run counter. Each
    call takes a new token and only commits while that token is still the
    latest, so a superseded run never touches the state.
    """

    def __init__(
        self,
        library: LibraryClient,
        local_library: LocalLibraryClient,
        store: PreferenceStore,
        *,
        channel: Optional[MessageChannel] = None,
        notifier: Optional[Notifier] = None,
        navigate: Optional[Navigator] = None,
    ) -> None:
        self.library = library
        self.store = store
        self.channel = channel or MessageChannel()
        self.notifier = notifier or LogNotifier()
        self.navigate = navigate or log_navigator
        self.enricher = EpisodeEnricher(local_library, on_error=self._on_enrich_error)
        self.state = ViewState(preferences=load_preferences(store))
        self._run_id = 0
        self._register_handlers()
        self.publish_all()

    # -- channel plumbing -------------------------------------------------

    def _register_handlers(self) -> None:
        self.channel.on("refresh", self._on_refresh)
        self.channel.on("load-enriched-episodes", self._on_load_enriched_episodes)
        self.channel.on("open-title", self.open_title)
        self.channel.on("set-column-visibility", self.set_column_visibility)
        self.channel.on("set-cover-size", self.set_cover_size)

    async def handle_event(self, name: str, payload: Any = None) -> None:
        await self.channel.dispatch(name, payload)

    def publish_all(self) -> None:
        self.channel.publish("rows", self.state.rows_payload())
        self.channel.publish("loading", self.state.loading)
        self.channel.publish("enrichment-loading", self.state.enrichment_loading)
        self.channel.publish("error", self.state.error)
        self.channel.publish("debug-logs", list(self.state.debug_logs))
        self.channel.publish(
            "column-visibility", dict(self.state.preferences.column_visibility)
        )
        self.channel.publish("cover-size", self.state.preferences.cover_size)

    def log(self, message: str) -> None:
        line = self.state.append_log(message)
        logger.info(line)
        self.channel.publish("debug-logs", list(self.state.debug_logs))

    def _set_rows(self, rows: List[Row]) -> None:
        self.state.rows = rows
        self.channel.publish("rows", self.state.rows_payload())

    def _set_loading(self, value: bool) -> None:
        self.state.loading = value
        self.channel.publish("loading", value)

    def _set_enrichment_loading(self, value: bool) -> None:
        self.state.enrichment_loading = value
        self.channel.publish("enrichment-loading", value)

    def _set_error(self, message: str) -> None:
        self.state.error = message
        self.channel.publish("error", message)

    def _persist(self, key: str, value: Any) -> None:
        try:
            self.store.set(key, value)
        except Exception as exc:
            logger.warning("Failed to persist %s: %s", key, exc)

    def _next_run(self) -> int:
        self._run_id += 1
        return self._run_id

    def _is_current(self, run_id: int) -> bool:
        return run_id == self._run_id

    # -- long-running operations ----------------------------------------

    async def refresh(self) -> None:
        run_id = self._next_run()
        self.log("refresh:start")
        self._set_loading(True)
        self._set_enrichment_loading(False)
        self._set_error("")

        try:
            rows = await load_rows(self.library)
            if self._is_current(run_id):
                self._set_rows(rows)
                counts = count_by_status(rows)
                summary = " ".join(
                    f"{status.value.lower()}={count}" for status, count in counts.items()
                )
                self.log(f"refresh:success rows={len(rows)} {summary}")
        except Exception as exc:
            if self._is_current(run_id):
                message = str(exc) or "Failed to fetch anime list"
                self._set_rows([])
                self._set_error(message)
                self.log(f"refresh:error {message}")
                self.notifier.error("Failed to load anime list")
        finally:
            if self._is_current(run_id):
                self._set_loading(False)
                self._set_enrichment_loading(False)
                self.log("refresh:end loading=false")

    async def load_enriched_episodes(self) -> None:
        run_id = self._next_run()
        self.log("enrich:start")
        self._set_enrichment_loading(True)
        self._set_error("")

        try:
            rows = await self.enricher.enrich_rows(list(self.state.rows))
            if self._is_current(run_id):
                self._set_rows(rows)
                enriched = sum(1 for row in rows if row.episode_statuses is not None)
                self.log(f"enrich:success rows={len(rows)} enriched={enriched}")
        except Exception as exc:
            if self._is_current(run_id):
                message = str(exc) or "Failed to enrich download status"
                self._set_error(message)
                self.log(f"enrich:error {message}")
                self.notifier.error("Failed to load download status")
        finally:
            if self._is_current(run_id):
                self._set_enrichment_loading(False)
                if self.state.loading:
                    # a refresh superseded by this run never reached its own cleanup
                    self._set_loading(False)
                    self.log("refresh:end loading=false superseded")

    def _on_enrich_error(self, row: Row, exc: Exception) -> None:
        self.log(f"enrich:row-error mediaId={row.media_id} title={row.title} message={exc}")

    # -- commands from the presentation surface -------------------------

    async def _on_refresh(self, payload: Any) -> None:
        self.log(f"channel:refresh payload={_describe_payload(payload)}")
        await self.refresh()

    async def _on_load_enriched_episodes(self, payload: Any) -> None:
        self.log(f"channel:load-enriched-episodes payload={_describe_payload(payload)}")
        await self.load_enriched_episodes()

    def open_title(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            return
        media_id = payload.get("mediaId")
        if not isinstance(media_id, int) or isinstance(media_id, bool):
            return
        self.log(f"channel:open-title mediaId={media_id}")
        self.navigate("/entry", {"id": str(media_id)})

    def set_column_visibility(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            return
        column = payload.get("column")
        if column not in COLUMN_KEYS or payload.get("visible") is None:
            return
        visible = coerce_bool(payload.get("visible"))
        visibility = dict(self.state.preferences.column_visibility)
        visibility[column] = visible
        self.state.preferences.column_visibility = visibility
        self.channel.publish("column-visibility", dict(visibility))
        self._persist(COLUMN_VISIBILITY_STORAGE_KEY, visibility)
        self.log(f"channel:set-column-visibility column={column} visible={str(visible).lower()}")

    def set_cover_size(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            return
        size = clamp_cover_size(payload.get("size"))
        if size is None:
            return
        self.state.preferences.cover_size = size
        self.channel.publish("cover-size", size)
        self._persist(COVER_SIZE_STORAGE_KEY, size)
        self.log(f"channel:set-cover-size size={size}")
