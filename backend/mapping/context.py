from __future__ import annotations

from mapping.settings import ContextDepth, MapSettings
from mapping.store import MapStore


def build_location_context(
    store: MapStore,
    character_name: str,
    depth: ContextDepth | str = ContextDepth.CURRENT_ONLY,
) -> str:
    resolved = store.resolve_character_location(character_name)
    if resolved is None:
        return ""
    map_record, room = resolved
    depth = ContextDepth.coerce(depth)

    lines = [f"[Location: {map_record.name} - {room.name}]"]
    furniture = [item.name for item in room.furniture if item.name]
    if furniture:
        lines.append(f"Objects: {', '.join(furniture)}.")

    others = store.characters_in_room(map_record.id, room.id, exclude=character_name)
    if others:
        lines.append(f"Present: {', '.join(others)}.")

    if depth in (ContextDepth.ADJACENT_ROOMS, ContextDepth.FULL_BUILDING) and room.exits:
        exits = [f"{item.direction} to {item.destination}" for item in room.exits]
        lines.append(f"Exits: {', '.join(exits)}.")

    if depth is ContextDepth.FULL_BUILDING:
        other_rooms = [item.name for item in map_record.rooms if item.id != room.id]
        if other_rooms:
            lines.append(f"Other rooms: {', '.join(other_rooms)}.")

    return "\n".join(lines) + "\n"


def location_context_for_injection(
    store: MapStore, character_name: str, settings: MapSettings
) -> str:
    if not settings.inject_location_context:
        return ""
    return build_location_context(store, character_name, settings.location_context_depth)

