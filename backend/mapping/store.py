from __future__ import annotations

import json
import logging
import re
import uuid
from typing import Any

from pydantic import ValidationError

from llm.schemas import (
    CharacterLocation,
    Furniture,
    Map,
    MapCollection,
    MapExport,
    Room,
    SolvedLayout,
    utc_now,
)
from mapping.layout import find_start_index

logger = logging.getLogger(__name__)

MAP_TYPES = {"regional", "location"}
FILENAME_SAFE_PATTERN = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def new_map_id() -> str:
    return f"map_{uuid.uuid4().hex}"


def export_filename(map_record: Map) -> str:
    slug = FILENAME_SAFE_PATTERN.sub("-", map_record.name).lower()
    return f"rpg-map-{slug}.json"


class MapStore:
    """All maps of one chat plus the room each tracked actor is in.

    Every mutation is synchronous. Operations given an unknown id return
    ``False`` or ``None`` and leave the collection untouched.
    """

    def __init__(self, collection: MapCollection | None = None) -> None:
        self.collection = collection or MapCollection()

    @classmethod
    def load(cls, data: Any) -> MapStore:
        if isinstance(data, MapCollection):
            return cls(data.model_copy(deep=True))
        if not isinstance(data, dict):
            return cls()
        try:
            collection = MapCollection.model_validate(data)
        except ValidationError as exc:
            logger.warning("Discarding invalid map collection: %s", exc.error_count())
            return cls()
        store = cls(collection)
        store._drop_dangling_active_map()
        return store

    def dump(self) -> dict:
        return self.collection.to_wire()

    @property
    def maps(self) -> list[Map]:
        return self.collection.maps

    @property
    def active_map_id(self) -> str | None:
        return self.collection.active_map_id

    @property
    def character_locations(self) -> dict[str, CharacterLocation]:
        return self.collection.character_locations

    def get_map(self, map_id: str | None) -> Map | None:
        if not map_id:
            return None
        for map_record in self.collection.maps:
            if map_record.id == map_id:
                return map_record
        return None

    def get_active_map(self) -> Map | None:
        return self.get_map(self.collection.active_map_id)

    def find_room(self, map_id: str | None, room_id: str | None) -> Room | None:
        map_record = self.get_map(map_id)
        if map_record is None or not room_id:
            return None
        for room in map_record.rooms:
            if room.id == room_id:
                return room
        return None

    def create_map(self, name: str, map_type: str = "location", description: str = "") -> Map:
        map_record = Map(
            id=new_map_id(),
            name=name.strip() or "Untitled Map",
            type=map_type if map_type in MAP_TYPES else "location",
            description=(description or "").strip(),
        )
        self.collection.maps.append(map_record)
        self.collection.active_map_id = map_record.id
        logger.info("Created map %s (%s)", map_record.id, map_record.name)
        return map_record

    def select_map(self, map_id: str | None) -> bool:
        if map_id is None:
            self.collection.active_map_id = None
            return True
        if self.get_map(map_id) is None:
            return False
        self.collection.active_map_id = map_id
        return True

    def delete_map(self, map_id: str) -> bool:
        map_record = self.get_map(map_id)
        if map_record is None:
            return False
        self.collection.maps = [item for item in self.collection.maps if item.id != map_id]
        self.collection.character_locations = {
            name: location
            for name, location in self.collection.character_locations.items()
            if location.map_id != map_id
        }
        if self.collection.active_map_id == map_id:
            self.collection.active_map_id = None
        logger.info("Deleted map %s (%s)", map_id, map_record.name)
        return True

    def apply_layout(self, map_id: str, solved: SolvedLayout) -> Map | None:
        map_record = self.get_map(map_id)
        if map_record is None:
            return None
        map_record.layout = solved.layout.model_copy(deep=True)
        map_record.rooms = [room.model_copy(deep=True) for room in solved.rooms]
        map_record.updated_at = utc_now()
        return map_record

    def set_room_furniture(self, map_id: str, room_id: str, furniture: list[Furniture]) -> bool:
        room = self.find_room(map_id, room_id)
        if room is None:
            return False
        room.furniture = [item.model_copy() for item in furniture]
        self.get_map(map_id).updated_at = utc_now()
        return True

    def set_character_location(self, name: str, map_id: str, room_id: str) -> bool:
        if not name or self.find_room(map_id, room_id) is None:
            return False
        self.collection.character_locations[name] = CharacterLocation(
            map_id=map_id, room_id=room_id
        )
        return True

    def clear_character_location(self, name: str) -> bool:
        return self.collection.character_locations.pop(name, None) is not None

    def resolve_character_location(self, name: str) -> tuple[Map, Room] | None:
        location = self.collection.character_locations.get(name)
        if location is None:
            return None
        room = self.find_room(location.map_id, location.room_id)
        if room is None:
            return None
        return self.get_map(location.map_id), room

    def characters_in_room(
        self, map_id: str, room_id: str, *, exclude: str | None = None
    ) -> list[str]:
        if self.find_room(map_id, room_id) is None:
            return []
        return [
            name
            for name, location in self.collection.character_locations.items()
            if name != exclude and location.map_id == map_id and location.room_id == room_id
        ]

    def find_map_by_location_name(self, location_name: str) -> Map | None:
        wanted = (location_name or "").strip().lower()
        if not wanted:
            return None
        for map_record in self.collection.maps:
            candidate = map_record.name.lower()
            if wanted in candidate or candidate in wanted:
                return map_record
        return None

    def place_character_at_entrance(self, name: str, location_name: str) -> Room | None:
        """Put an untracked actor into the entrance of the map named like their location.

        The entrance is the first room named like one (entrance, entry, front),
        else the first room.
        """
        if name in self.collection.character_locations:
            return None
        map_record = self.find_map_by_location_name(location_name)
        if map_record is None or not map_record.rooms:
            return None
        room = map_record.rooms[find_start_index([room.name for room in map_record.rooms])]
        self.collection.character_locations[name] = CharacterLocation(
            map_id=map_record.id, room_id=room.id
        )
        return room

    def export_map(self, map_id: str) -> MapExport | None:
        map_record = self.get_map(map_id)
        if map_record is None:
            return None
        return MapExport(map=map_record.model_copy(deep=True))

    def import_map(self, snapshot: MapExport | dict | str) -> Map | None:
        snapshot_export = _coerce_snapshot(snapshot)
        if snapshot_export is None:
            return None
        now = utc_now()
        imported = snapshot_export.map.model_copy(
            update={"id": new_map_id(), "created_at": now, "updated_at": now},
            deep=True,
        )
        _sanitize_map(imported)
        self.collection.maps.append(imported)
        self.collection.active_map_id = imported.id
        logger.info("Imported map %s (%s)", imported.id, imported.name)
        return imported

    def _drop_dangling_active_map(self) -> None:
        if self.get_map(self.collection.active_map_id) is None:
            self.collection.active_map_id = None


def _coerce_snapshot(snapshot: MapExport | dict | str) -> MapExport | None:
    if isinstance(snapshot, MapExport):
        return snapshot
    if isinstance(snapshot, (str, bytes)):
        try:
            snapshot = json.loads(snapshot)
        except json.JSONDecodeError:
            logger.warning("Map import is not valid JSON.")
            return None
    if not isinstance(snapshot, dict):
        return None
    map_payload = snapshot.get("map")
    if not isinstance(map_payload, dict) or not map_payload.get("name"):
        logger.warning("Map import has no named map.")
        return None
    payload = dict(snapshot)
    payload["map"] = {"id": "pending", **map_payload}
    try:
        return MapExport.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Map import failed validation: %s", exc)
        return None


def _sanitize_map(map_record: Map) -> None:
    seen: set[str] = set()
    for index, room in enumerate(map_record.rooms):
        if room.id in seen or not room.id:
            room.id = _unused_room_id(seen, index)
        seen.add(room.id)

    layout = map_record.layout
    if layout is None:
        return
    occupied = set()
    for room in map_record.rooms:
        if room.position is not None and not layout.contains(room.position):
            room.position = None
        if room.position is not None:
            occupied.add((room.position.row, room.position.col))
    layout.corridors = [
        cell
        for cell in layout.corridors
        if layout.contains(cell) and (cell.row, cell.col) not in occupied
    ]


def _unused_room_id(taken: set[str], index: int) -> str:
    candidate = f"room_{index}"
    suffix = index
    while candidate in taken:
        suffix += 1
        candidate = f"room_{suffix}"
    return candidate
