import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from listtable import models
from listtable.db import Base
from listtable.state import (
    COLUMN_VISIBILITY_STORAGE_KEY,
    COVER_SIZE_STORAGE_KEY,
    DEFAULT_COVER_SIZE,
    LEGACY_SHOW_FORMAT_STORAGE_KEY,
    load_preferences,
)
from listtable.storage import MemoryPreferenceStore, SqlPreferenceStore


@pytest.fixture
def sql_store():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    yield SqlPreferenceStore(factory), factory
    engine.dispose()


def test_sql_store_round_trips_json_values(sql_store):
    store, factory = sql_store
    assert store.get(COVER_SIZE_STORAGE_KEY) is None

    store.set(COVER_SIZE_STORAGE_KEY, 64)
    store.set(COLUMN_VISIBILITY_STORAGE_KEY, {"cover": False})
    assert store.get(COVER_SIZE_STORAGE_KEY) == 64
    assert store.get(COLUMN_VISIBILITY_STORAGE_KEY) == {"cover": False}

    store.set(COVER_SIZE_STORAGE_KEY, 70)
    assert store.get(COVER_SIZE_STORAGE_KEY) == 70
    session = factory()
    try:
        assert session.query(models.Preference).count() == 2
    finally:
        session.close()


def test_sql_store_ignores_corrupt_values(sql_store):
    store, factory = sql_store
    session = factory()
    session.add(models.Preference(key=COVER_SIZE_STORAGE_KEY, value="{not json"))
    session.commit()
    session.close()
    assert store.get(COVER_SIZE_STORAGE_KEY) is None


def test_load_preferences_defaults_on_empty_store():
    prefs = load_preferences(MemoryPreferenceStore())
    assert prefs.cover_size == DEFAULT_COVER_SIZE
    assert all(prefs.column_visibility.values())


@pytest.mark.parametrize("stored, expected", [("abc", DEFAULT_COVER_SIZE), (12, 28), (57.6, 58), (None, DEFAULT_COVER_SIZE)])
def test_load_preferences_sanitizes_cover_size(stored, expected):
    prefs = load_preferences(MemoryPreferenceStore({COVER_SIZE_STORAGE_KEY: stored}))
    assert prefs.cover_size == expected


def test_legacy_format_flag_migrates_once(sql_store):
    store, _ = sql_store
    store.set(LEGACY_SHOW_FORMAT_STORAGE_KEY, False)

    first = load_preferences(store)
    assert first.column_visibility["format"] is False
    assert store.get(COLUMN_VISIBILITY_STORAGE_KEY)["format"] is False

    store.set(COLUMN_VISIBILITY_STORAGE_KEY, {**first.column_visibility, "format": True})
    second = load_preferences(store)
    assert second.column_visibility["format"] is True


def test_legacy_flag_ignored_when_map_has_format():
    store = MemoryPreferenceStore(
        {COLUMN_VISIBILITY_STORAGE_KEY: {"format": True}, LEGACY_SHOW_FORMAT_STORAGE_KEY: False}
    )
    assert load_preferences(store).column_visibility["format"] is True
