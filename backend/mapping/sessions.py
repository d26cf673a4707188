from __future__ import annotations

import logging

from pydantic import ValidationError

from mapping.settings import MapSettings, load_map_settings
from mapping.store import MapStore
from models import MapSession

logger = logging.getLogger(__name__)


def get_map_session(db, chat_id: str) -> MapSession | None:
    return db.query(MapSession).filter(MapSession.chat_id == chat_id).first()


def load_map_store(db, chat_id: str) -> MapStore:
    record = get_map_session(db, chat_id)
    if record is None:
        return MapStore()
    return MapStore.load(record.collection_json)


def save_map_store(db, chat_id: str, store: MapStore) -> MapSession:
    record = _get_or_create(db, chat_id)
    record.collection_json = store.dump()
    return record


def load_map_settings_for_chat(db, chat_id: str) -> MapSettings:
    record = get_map_session(db, chat_id)
    overrides = record.settings_json if record is not None else None
    if overrides is not None and not isinstance(overrides, dict):
        logger.warning("Ignoring malformed map settings for chat %s", chat_id)
        overrides = None
    try:
        return load_map_settings(overrides)
    except ValidationError as exc:
        logger.warning("Invalid map settings for chat %s: %s", chat_id, exc)
        return load_map_settings()


def save_map_settings(db, chat_id: str, settings: MapSettings) -> MapSession:
    record = _get_or_create(db, chat_id)
    record.settings_json = settings.model_dump(mode="json")
    return record


def _get_or_create(db, chat_id: str) -> MapSession:
    record = get_map_session(db, chat_id)
    if record is None:
        record = MapSession(chat_id=chat_id, collection_json={}, settings_json={})
        db.add(record)
    return record
