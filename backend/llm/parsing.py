from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from llm.schemas import DEFAULT_ROOM_SIZE, Furniture, MapDraft, RoomDraft

logger = logging.getLogger(__name__)

THINKING_PATTERNS = (
    re.compile(r"<think>.*?</think>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<thinking>.*?</thinking>", re.IGNORECASE | re.DOTALL),
)
CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
OBJECT_SPAN_PATTERN = re.compile(r"\{.*\}", re.DOTALL)
TRAILING_COMMA_PATTERN = re.compile(r",\s*([}\]])")
BARE_KEY_PATTERN = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:")
UNKNOWN_FURNITURE = "Unknown"


class ParseError(ValueError):
    pass


@dataclass
class LoadedPayload:
    data: dict[str, Any]
    repaired: bool = False


def normalize_response(text: str) -> str:
    """Strip reasoning blocks and prose, leaving the most likely JSON object.

    Each step works on the output of the previous one. Nothing here raises;
    text that is still not JSON is left for the parser to reject.
    """
    cleaned = text if isinstance(text, str) else str(text)
    for pattern in THINKING_PATTERNS:
        cleaned = pattern.sub("", cleaned)

    fence = CODE_FENCE_PATTERN.search(cleaned)
    if fence:
        cleaned = fence.group(1).strip()

    span = OBJECT_SPAN_PATTERN.search(cleaned)
    if span:
        cleaned = span.group(0)

    cleaned = cleaned.replace("'", '"')
    return TRAILING_COMMA_PATTERN.sub(r"\1", cleaned)


def repair_json(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        text = text[start : end + 1]
    return BARE_KEY_PATTERN.sub(r'\1"\2":', text)


def load_json_object(text: str) -> LoadedPayload:
    try:
        data = json.loads(text)
        repaired = False
    except json.JSONDecodeError:
        try:
            data = json.loads(repair_json(text))
        except json.JSONDecodeError as exc:
            raise ParseError(f"Response is not valid JSON: {exc.msg}") from exc
        repaired = True
    if not isinstance(data, dict):
        raise ParseError("Response JSON is not an object.")
    return LoadedPayload(data=data, repaired=repaired)


def load_map_payload(text: str) -> LoadedPayload:
    loaded = load_json_object(normalize_response(text))
    if not isinstance(loaded.data.get("rooms"), list):
        raise ParseError("Map JSON is missing a rooms array.")
    return loaded


def coerce_map_payload(payload: dict[str, Any]) -> MapDraft:
    rooms = payload.get("rooms") if isinstance(payload, dict) else None
    if not isinstance(rooms, list):
        rooms = []
    return MapDraft(rooms=[_coerce_room(entry, index) for index, entry in enumerate(rooms)])


def parse_map_json(text: str) -> MapDraft | None:
    try:
        loaded = load_map_payload(text)
    except ParseError as exc:
        logger.warning("Invalid map response: %s", exc)
        logger.debug("Raw map response: %r", text)
        return None
    if loaded.repaired:
        logger.info("Map response needed repair before parsing.")
    return coerce_map_payload(loaded.data)


def parse_furniture_json(text: str) -> list[Furniture] | None:
    try:
        loaded = load_json_object(normalize_response(text))
    except ParseError as exc:
        logger.warning("Invalid furniture response: %s", exc)
        return None
    items = loaded.data.get("furniture")
    if not isinstance(items, list):
        logger.warning("Furniture response has no furniture array.")
        return None
    return _coerce_furniture(items)


def _coerce_room(entry: Any, index: int) -> RoomDraft:
    if isinstance(entry, str):
        entry = {"name": entry}
    elif not isinstance(entry, dict):
        entry = {}

    name = entry.get("name")
    if name is None or (isinstance(name, str) and not name.strip()):
        name = f"Room {index + 1}"
    size = entry.get("size")
    exits = entry.get("exits")
    furniture = entry.get("furniture")
    return RoomDraft(
        name=str(name).strip(),
        size=str(size) if size else DEFAULT_ROOM_SIZE,
        exits=_coerce_exits(exits) if isinstance(exits, list) else [],
        furniture=_coerce_furniture(furniture) if isinstance(furniture, list) else [],
    )


def _coerce_exits(exits: list) -> list[str]:
    names = []
    for item in exits:
        if isinstance(item, dict):
            item = item.get("destination") or item.get("name")
        if item is None:
            continue
        names.append(str(item).strip())
    return [name for name in names if name]


def _coerce_furniture(items: list) -> list[Furniture]:
    furniture = []
    for item in items:
        if isinstance(item, dict):
            name = item.get("name")
            furniture.append(Furniture(name=str(name) if name else UNKNOWN_FURNITURE))
        elif item is not None:
            furniture.append(Furniture(name=str(item)))
    return furniture
