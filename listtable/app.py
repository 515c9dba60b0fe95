"""FastAPI application exposing the list table controller."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Set

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .clients import AniListClient, LocalLibraryClient
from .controller import ReconciliationController
from .db import init_db
from .query import (
    ViewQuery,
    build_filters,
    format_options,
    format_score,
    progress_context,
    run_query,
    status_counts,
    status_tabs,
    toggle_sort,
)
from .rows import STATUS_LABELS
from .services.channel import EVENTS
from .storage import SqlPreferenceStore

LONG_RUNNING_EVENTS = {"refresh", "load-enriched-episodes"}

init_db()

controller = ReconciliationController(
    AniListClient(),
    LocalLibraryClient(),
    SqlPreferenceStore(),
)

_background_tasks: Set[asyncio.Task] = set()


def _schedule(name: str, payload: Any) -> None:
    task = asyncio.create_task(controller.handle_event(name, payload))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _schedule("refresh", {"reason": "startup"})
    yield


app = FastAPI(title="My List Table", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/state")
def api_state() -> JSONResponse:
    return JSONResponse(controller.channel.snapshot())


@app.get("/api/stream")
def api_stream() -> StreamingResponse:
    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(
        controller.channel.subscribe(), media_type="text/event-stream", headers=headers
    )


@app.post("/api/events/{name}")
async def api_event(
    name: str, payload: Optional[Dict[str, Any]] = Body(default=None)
) -> JSONResponse:
    if name not in EVENTS:
        raise HTTPException(status_code=404, detail=f"Unknown event: {name}")
    if name in LONG_RUNNING_EVENTS:
        _schedule(name, payload)
    else:
        await controller.handle_event(name, payload)
    return JSONResponse({"accepted": True, "event": name})


@app.get("/api/rows")
def api_rows(
    status: Optional[str] = Query(default=None),
    q: Optional[str] = Query(default=None),
    format: Optional[str] = Query(default=None),
    min_score: Optional[str] = Query(default=None),
    max_score: Optional[str] = Query(default=None),
    min_episodes: Optional[str] = Query(default=None),
    max_episodes: Optional[str] = Query(default=None),
    sort: str = Query(default="title"),
    order: str = Query(default="asc"),
    toggle: Optional[str] = Query(default=None),
    scroll_top: float = Query(default=0, ge=0),
    viewport_height: float = Query(default=700, ge=0),
) -> JSONResponse:
    filters = build_filters(
        status=status,
        q=q,
        format=format,
        min_score=min_score,
        max_score=max_score,
        min_episodes=min_episodes,
        max_episodes=max_episodes,
    )
    sort_dir = order.lower()
    if toggle:
        sort, sort_dir = toggle_sort(sort, sort_dir, toggle)
    state = controller.state
    result = run_query(
        state.rows,
        ViewQuery(
            filters=filters,
            sort_key=sort,
            sort_dir=sort_dir,
            scroll_top=scroll_top,
            viewport_height=viewport_height,
        ),
        state.preferences.column_visibility,
    )
    payload = result.to_payload()
    for item, row in zip(payload["items"], result.rows):
        item["display"] = {
            "score": format_score(row.score),
            "statusLabel": STATUS_LABELS[row.status],
            "progress": progress_context(row),
        }
    payload.update(
        {
            "status": filters.status.value,
            "statusCounts": status_counts(state.rows),
            "statusTabs": status_tabs(state.rows),
            "formatOptions": format_options(state.rows),
            "loading": state.loading,
            "enrichmentLoading": state.enrichment_loading,
            "error": state.error,
        }
    )
    return JSONResponse(payload)
