import json

import pytest

from llm.schemas import RoomDraft
from mapping.layout import solve_room_layout
from mapping.store import MapStore, export_filename


def _store_with_manor() -> tuple[MapStore, str]:
    store = MapStore()
    manor = store.create_map("Manor", "location", "Old house on the hill")
    store.apply_layout(
        manor.id,
        solve_room_layout(
            [
                RoomDraft(name="Entrance", size="3x3", exits=["Hall"]),
                RoomDraft(name="Hall", size="4x4", exits=["Entrance", "Kitchen"]),
                RoomDraft(name="Kitchen", size="3x3", exits=["Hall"]),
            ]
        ),
    )
    return store, manor.id


def test_create_map_becomes_active_and_empty() -> None:
    store = MapStore()
    created = store.create_map("  Docks ", "regional", "Harbor district")
    assert created.id.startswith("map_")
    assert created.name == "Docks"
    assert created.type == "regional"
    assert created.layout is None
    assert created.rooms == []
    assert store.active_map_id == created.id
    assert store.get_active_map() is created


def test_create_map_ids_are_unique_and_type_defaults() -> None:
    store = MapStore()
    first = store.create_map("A", "castle")
    second = store.create_map("B")
    assert first.id != second.id
    assert first.type == "location"
    assert store.active_map_id == second.id


def test_select_map() -> None:
    store, manor_id = _store_with_manor()
    assert store.select_map(None) is True
    assert store.active_map_id is None
    assert store.select_map("map_missing") is False
    assert store.active_map_id is None
    assert store.select_map(manor_id) is True
    assert store.active_map_id == manor_id


def test_delete_map_purges_character_locations() -> None:
    store, manor_id = _store_with_manor()
    tavern = store.create_map("Tavern")
    store.apply_layout(tavern.id, solve_room_layout([RoomDraft(name="Bar")]))
    assert store.set_character_location("Alice", manor_id, "room_0")
    assert store.set_character_location("Bob", tavern.id, "room_0")
    store.select_map(manor_id)

    assert store.delete_map(manor_id) is True
    assert store.get_map(manor_id) is None
    assert store.active_map_id is None
    assert "Alice" not in store.character_locations
    assert store.character_locations["Bob"].map_id == tavern.id


def test_delete_unknown_map_changes_nothing() -> None:
    store, manor_id = _store_with_manor()
    before = store.dump()
    assert store.delete_map("map_missing") is False
    assert store.dump() == before


def test_set_character_location_requires_existing_room() -> None:
    store, manor_id = _store_with_manor()
    assert store.set_character_location("Alice", "map_missing", "room_0") is False
    assert store.set_character_location("Alice", manor_id, "room_99") is False
    assert store.character_locations == {}
    assert store.set_character_location("Alice", manor_id, "room_1") is True
    map_record, room = store.resolve_character_location("Alice")
    assert map_record.id == manor_id
    assert room.name == "Hall"


def test_dangling_location_resolves_to_none() -> None:
    store, manor_id = _store_with_manor()
    store.set_character_location("Alice", manor_id, "room_2")
    store.apply_layout(manor_id, solve_room_layout([RoomDraft(name="Ruins")]))
    assert store.resolve_character_location("Alice") is None
    assert store.resolve_character_location("Nobody") is None


def test_characters_in_room() -> None:
    store, manor_id = _store_with_manor()
    store.set_character_location("Alice", manor_id, "room_1")
    store.set_character_location("Bob", manor_id, "room_1")
    store.set_character_location("Cara", manor_id, "room_0")
    assert store.characters_in_room(manor_id, "room_1") == ["Alice", "Bob"]
    assert store.characters_in_room(manor_id, "room_1", exclude="Alice") == ["Bob"]
    assert store.characters_in_room(manor_id, "room_9") == []


def test_clear_character_location() -> None:
    store, manor_id = _store_with_manor()
    store.set_character_location("Alice", manor_id, "room_1")
    assert store.clear_character_location("Alice") is True
    assert store.clear_character_location("Alice") is False


def test_place_character_at_entrance_matches_location_name() -> None:
    store, manor_id = _store_with_manor()
    room = store.place_character_at_entrance("Alice", "the manor")
    assert room.name == "Entrance"
    assert store.character_locations["Alice"].map_id == manor_id
    assert store.place_character_at_entrance("Alice", "Manor") is None
    assert store.place_character_at_entrance("Bob", "Lighthouse") is None


def test_export_import_round_trip() -> None:
    store, manor_id = _store_with_manor()
    original = store.get_map(manor_id)
    snapshot = store.export_map(manor_id)
    assert snapshot.version == 1

    imported = store.import_map(snapshot)
    assert imported is not None
    assert imported.id != manor_id
    assert store.active_map_id == imported.id
    assert len(store.maps) == 2
    assert imported.name == original.name
    assert imported.type == original.type
    assert imported.layout == original.layout
    assert imported.rooms == original.rooms


def test_import_from_exported_json_text() -> None:
    store, manor_id = _store_with_manor()
    text = store.export_map(manor_id).to_json()
    payload = json.loads(text)
    assert set(payload) == {"version", "exportedAt", "map"}
    assert payload["map"]["layout"]["gridSize"] == {"rows": 8, "cols": 8}

    other = MapStore()
    imported = other.import_map(text)
    assert imported.name == "Manor"
    assert [room.name for room in imported.rooms] == ["Entrance", "Hall", "Kitchen"]


@pytest.mark.parametrize(
    "snapshot",
    [
        {},
        {"map": {}},
        {"map": {"rooms": []}},
        {"map": {"name": "Keep", "type": "castle"}},
        {"map": {"name": "Keep", "rooms": [{"name": "no id"}]}},
        "not json at all",
        ["map"],
    ],
)
def test_import_rejects_invalid_snapshots(snapshot) -> None:
    store, _ = _store_with_manor()
    before = store.dump()
    assert store.import_map(snapshot) is None
    assert store.dump() == before


def test_import_sanitizes_hand_edited_maps() -> None:
    store = MapStore()
    imported = store.import_map(
        {
            "version": 1,
            "map": {
                "name": "Edited",
                "layout": {
                    "gridSize": {"rows": 7, "cols": 7},
                    "corridors": [{"row": 1, "col": 1}, {"row": 3, "col": 2}, {"row": 9, "col": 9}],
                },
                "rooms": [
                    {"id": "a", "name": "One", "position": {"row": 1, "col": 1}},
                    {"id": "a", "name": "Two", "position": {"row": 12, "col": 0}},
                ],
            },
        }
    )
    assert [room.id for room in imported.rooms] == ["a", "room_1"]
    assert imported.rooms[1].position is None
    assert [(cell.row, cell.col) for cell in imported.layout.corridors] == [(3, 2)]


def test_dump_and_load_round_trip() -> None:
    store, manor_id = _store_with_manor()
    store.set_character_location("Alice", manor_id, "room_1")
    data = store.dump()
    assert data["activeMapId"] == manor_id
    assert data["characterLocations"] == {"Alice": {"mapId": manor_id, "roomId": "room_1"}}

    restored = MapStore.load(json.loads(json.dumps(data)))
    assert restored.dump() == data


@pytest.mark.parametrize("data", [None, "", {"maps": "broken"}, []])
def test_load_tolerates_bad_data(data) -> None:
    store = MapStore.load(data)
    assert store.maps == []
    assert store.active_map_id is None
    assert store.character_locations == {}


def test_load_drops_dangling_active_map() -> None:
    store = MapStore.load({"maps": [], "activeMapId": "map_gone"})
    assert store.active_map_id is None


def test_export_filename() -> None:
    store = MapStore()
    created = store.create_map("Old Mill (East)")
    assert export_filename(created) == "rpg-map-old-mill--east-.json"


def test_place_character_prefers_entrance_room() -> None:
    store = MapStore()
    inn = store.create_map("Inn")
    store.apply_layout(
        inn.id,
        solve_room_layout(
            [
                RoomDraft(name="Kitchen", exits=["Main Entrance"]),
                RoomDraft(name="Main Entrance", exits=["Kitchen"]),
            ]
        ),
    )
    room = store.place_character_at_entrance("Alice", "Inn")
    assert room.name == "Main Entrance"
    assert store.character_locations["Alice"].room_id == "room_1"

    tavern = store.create_map("Tavern")
    store.apply_layout(tavern.id, solve_room_layout([RoomDraft(name="Bar"), RoomDraft(name="Cellar")]))
    assert store.place_character_at_entrance("Bob", "Tavern").name == "Bar"
