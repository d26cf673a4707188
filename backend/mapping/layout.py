"""Deterministic grid layout for generated rooms.

Rooms are hung off a single horizontal corridor through the middle of a
square grid, in breadth-first order from the entrance. Exit names are turned
into compass directions from the resulting positions.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable

from llm.schemas import (
    Exit,
    GridCell,
    GridSize,
    MapLayout,
    Room,
    RoomDraft,
    RoomSize,
    SolvedLayout,
)

MIN_GRID_DIMENSION = 7
EMPTY_GRID_DIMENSION = 5
AREA_FACTOR = 1.5
SLOT_OFFSET = 2
START_ROOM_MARKERS = ("entrance", "entry", "front")


@dataclass
class _PlacementNode:
    index: int
    draft: RoomDraft
    size: RoomSize
    position: GridCell | None = None
    neighbors: list[int] = field(default_factory=list)

    @property
    def placed(self) -> bool:
        return self.position is not None


def parse_room_size(size: str | None) -> RoomSize:
    return RoomSize.parse(size)


def grid_dimension_for(sizes: Iterable[RoomSize]) -> int:
    total_area = sum(size.area for size in sizes)
    return max(MIN_GRID_DIMENSION, math.ceil(math.sqrt(total_area * AREA_FACTOR)))


def corridor_cells(dimension: int) -> list[GridCell]:
    corridor_row = dimension // 2
    return [GridCell(row=corridor_row, col=col) for col in range(1, dimension - 1)]


def placement_slots(dimension: int) -> list[GridCell]:
    corridor_row = dimension // 2
    slots: list[GridCell] = []
    for col in range(1, dimension - 2, 2):
        slots.append(GridCell(row=corridor_row - SLOT_OFFSET, col=col))
        slots.append(GridCell(row=corridor_row + SLOT_OFFSET, col=col))
    return slots


def build_name_index(names: Iterable[str]) -> dict[str, int]:
    index: dict[str, int] = {}
    for position, name in enumerate(names):
        index.setdefault(name.lower(), position)
    return index


def find_start_index(names: list[str]) -> int:
    for index, name in enumerate(names):
        lowered = name.lower()
        if any(marker in lowered for marker in START_ROOM_MARKERS):
            return index
    return 0


def exit_direction(origin: GridCell | None, target: GridCell | None) -> str:
    if origin is None or target is None:
        return "corridor"
    row_diff = target.row - origin.row
    col_diff = target.col - origin.col
    if abs(row_diff) > abs(col_diff):
        return "south" if row_diff > 0 else "north"
    if col_diff != 0:
        return "east" if col_diff > 0 else "west"
    return "corridor"


def solve_room_layout(rooms: list[RoomDraft]) -> SolvedLayout:
    if not rooms:
        return SolvedLayout(
            layout=MapLayout(
                grid_size=GridSize(rows=EMPTY_GRID_DIMENSION, cols=EMPTY_GRID_DIMENSION),
                corridors=[],
            ),
            rooms=[],
        )

    name_index = build_name_index(room.name for room in rooms)
    nodes = [
        _PlacementNode(index=index, draft=room, size=parse_room_size(room.size))
        for index, room in enumerate(rooms)
    ]
    for node in nodes:
        node.neighbors = [
            name_index[name.lower()] for name in node.draft.exits if name.lower() in name_index
        ]

    dimension = grid_dimension_for(node.size for node in nodes)
    slots = placement_slots(dimension)
    next_slot = _place_breadth_first(nodes, slots, find_start_index([r.name for r in rooms]))

    for node in nodes:
        if node.placed:
            continue
        if next_slot < len(slots):
            node.position = slots[next_slot]
            next_slot += 1
        else:
            # Slots exhausted: park on the top row. Cells may overlap.
            node.position = GridCell(row=0, col=next_slot % dimension)

    return SolvedLayout(
        layout=MapLayout(
            grid_size=GridSize(rows=dimension, cols=dimension),
            corridors=corridor_cells(dimension),
        ),
        rooms=[_finalize_room(node, nodes, name_index) for node in nodes],
    )


def _place_breadth_first(
    nodes: list[_PlacementNode], slots: list[GridCell], start_index: int
) -> int:
    queue = deque([start_index])
    visited: set[int] = set()
    next_slot = 0
    while queue and next_slot < len(slots):
        index = queue.popleft()
        if index in visited:
            continue
        visited.add(index)
        node = nodes[index]
        if node.placed:
            continue
        node.position = slots[next_slot]
        next_slot += 1
        for neighbor in node.neighbors:
            if neighbor not in visited:
                queue.append(neighbor)
    return next_slot


def _finalize_room(
    node: _PlacementNode, nodes: list[_PlacementNode], name_index: dict[str, int]
) -> Room:
    exits = []
    for destination in node.draft.exits:
        target_index = name_index.get(destination.lower())
        target = nodes[target_index].position if target_index is not None else None
        exits.append(
            Exit(direction=exit_direction(node.position, target), destination=destination)
        )
    return Room(
        id=f"room_{node.index}",
        name=node.draft.name,
        size=node.draft.size,
        position=node.position,
        exits=exits,
        furniture=[item.model_copy() for item in node.draft.furniture],
    )
