"""Key/value preference stores backing the table settings."""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from .db import SessionLocal, get_session
from .models import Preference


class PreferenceStore(Protocol):
    def get(self, key: str) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class MemoryPreferenceStore:
    """Dictionary-backed store, used for headless runs and tests."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value


class SqlPreferenceStore:
    """Stores JSON-encoded preference values in the ``preferences`` table."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> Any:
        with get_session(self._session_factory) as session:
            record = session.get(Preference, key)
            raw = record.value if record else None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return None

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        with get_session(self._session_factory) as session:
            record = session.get(Preference, key)
            if record:
                record.value = encoded
                return
            session.add(Preference(key=key, value=encoded))
