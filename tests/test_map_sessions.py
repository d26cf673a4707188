from llm.schemas import RoomDraft
from mapping.layout import solve_room_layout
from mapping.sessions import (
    get_map_session,
    load_map_settings_for_chat,
    load_map_store,
    save_map_settings,
    save_map_store,
)
from mapping.settings import ContextDepth, MapSettings
from mapping.store import MapStore
from models import MapSession


class DummyQuery:
    def __init__(self, records):
        self.records = records
        self.chat_id = None

    def filter(self, expr):
        assert expr.left.name == "chat_id"
        self.chat_id = expr.right.value
        return self

    def first(self):
        return self.records.get(self.chat_id)


class DummyDb:
    def __init__(self) -> None:
        self.records: dict[str, MapSession] = {}

    def query(self, model):
        assert model is MapSession
        return DummyQuery(self.records)

    def add(self, obj) -> None:
        self.records[obj.chat_id] = obj


def test_missing_session_loads_empty_store() -> None:
    db = DummyDb()
    assert get_map_session(db, "chat-1") is None
    store = load_map_store(db, "chat-1")
    assert store.maps == []
    assert db.records == {}


def test_save_and_reload_store() -> None:
    db = DummyDb()
    store = MapStore()
    manor = store.create_map("Manor")
    store.apply_layout(manor.id, solve_room_layout([RoomDraft(name="Entrance")]))
    store.set_character_location("Alice", manor.id, "room_0")

    record = save_map_store(db, "chat-1", store)
    assert db.records["chat-1"] is record
    assert record.collection_json["activeMapId"] == manor.id

    reloaded = load_map_store(db, "chat-1")
    assert reloaded.dump() == store.dump()
    assert load_map_store(db, "chat-2").maps == []


def test_settings_round_trip(monkeypatch) -> None:
    monkeypatch.delenv("MAP_CONTEXT_DEPTH", raising=False)
    db = DummyDb()
    assert load_map_settings_for_chat(db, "chat-1").location_context_depth is (
        ContextDepth.CURRENT_ONLY
    )

    save_map_settings(
        db,
        "chat-1",
        MapSettings(location_context_depth=ContextDepth.FULL_BUILDING, auto_track_locations=False),
    )
    assert db.records["chat-1"].settings_json["location_context_depth"] == "full_building"

    loaded = load_map_settings_for_chat(db, "chat-1")
    assert loaded.location_context_depth is ContextDepth.FULL_BUILDING
    assert loaded.auto_track_locations is False


def test_store_and_settings_share_one_row() -> None:
    db = DummyDb()
    save_map_settings(db, "chat-1", MapSettings(inject_location_context=False))
    save_map_store(db, "chat-1", MapStore())
    assert len(db.records) == 1
    assert db.records["chat-1"].settings_json["inject_location_context"] is False


def test_malformed_settings_fall_back_to_defaults(monkeypatch) -> None:
    for name in ("MAP_CONTEXT_DEPTH", "MAP_INJECT_CONTEXT", "MAP_AUTO_TRACK_LOCATIONS"):
        monkeypatch.delenv(name, raising=False)
    db = DummyDb()
    db.add(MapSession(chat_id="chat-1", collection_json={}, settings_json=["bad"]))
    assert load_map_settings_for_chat(db, "chat-1") == MapSettings()

    db.records["chat-1"].settings_json = {"inject_location_context": "sometimes"}
    assert load_map_settings_for_chat(db, "chat-1").inject_location_context is True
