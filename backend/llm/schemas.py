from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SIZE_PATTERN = re.compile(r"(\d+)\s*x\s*(\d+)", re.IGNORECASE)
DEFAULT_ROOM_SIZE = "3x3"
FALLBACK_WIDTH = 2
FALLBACK_HEIGHT = 2
EXPORT_VERSION = 1

Direction = Literal["north", "south", "east", "west", "corridor"]
MapType = Literal["regional", "location"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """Snake_case in Python, camelCase in the persisted and exported JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class RoomSize(BaseModel):
    model_config = ConfigDict(extra="forbid")

    width: int = Field(ge=1)
    height: int = Field(ge=1)

    @property
    def area(self) -> int:
        return self.width * self.height

    @classmethod
    def parse(cls, size: str | None) -> RoomSize:
        match = SIZE_PATTERN.search(size) if isinstance(size, str) else None
        if match:
            width, height = int(match.group(1)), int(match.group(2))
            if width >= 1 and height >= 1:
                return cls(width=width, height=height)
        return cls(width=FALLBACK_WIDTH, height=FALLBACK_HEIGHT)


class GridCell(WireModel):
    row: int = Field(ge=0)
    col: int = Field(ge=0)


class GridSize(WireModel):
    rows: int = Field(ge=1)
    cols: int = Field(ge=1)


class MapLayout(WireModel):
    grid_size: GridSize
    corridors: list[GridCell] = Field(default_factory=list)

    def contains(self, cell: GridCell) -> bool:
        return cell.row < self.grid_size.rows and cell.col < self.grid_size.cols


class Exit(WireModel):
    direction: Direction = "corridor"
    destination: str


class Furniture(WireModel):
    name: str


class Room(WireModel):
    id: str
    name: str
    size: str = DEFAULT_ROOM_SIZE
    description: str = ""
    position: GridCell | None = None
    exits: list[Exit] = Field(default_factory=list)
    furniture: list[Furniture] = Field(default_factory=list)

    @property
    def dimensions(self) -> RoomSize:
        return RoomSize.parse(self.size)


class Map(WireModel):
    id: str
    name: str
    type: MapType = "location"
    description: str = ""
    layout: MapLayout | None = None
    rooms: list[Room] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class CharacterLocation(WireModel):
    map_id: str | None = None
    room_id: str | None = None


class MapCollection(WireModel):
    maps: list[Map] = Field(default_factory=list)
    active_map_id: str | None = None
    character_locations: dict[str, CharacterLocation] = Field(default_factory=dict)


class MapExport(WireModel):
    version: int = EXPORT_VERSION
    exported_at: datetime = Field(default_factory=utc_now)
    map: Map

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), indent=2, ensure_ascii=False)


class RoomDraft(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    size: str = DEFAULT_ROOM_SIZE
    exits: list[str] = Field(default_factory=list)
    furniture: list[Furniture] = Field(default_factory=list)


class MapDraft(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rooms: list[RoomDraft]


class SolvedLayout(WireModel):
    layout: MapLayout
    rooms: list[Room] = Field(default_factory=list)
