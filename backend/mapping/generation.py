from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal

from llm.parsing import parse_furniture_json, parse_map_json
from llm.prompts import build_furniture_prompt, build_map_prompt
from llm.schemas import Furniture, Map, Room, SolvedLayout
from mapping.layout import solve_room_layout
from mapping.settings import MapSettings
from mapping.store import MapStore

logger = logging.getLogger(__name__)

GenerateFn = Callable[[str], Awaitable[str]]
OutcomeStatus = Literal["ok", "rejected", "not_found", "empty_response", "invalid", "error"]


@dataclass
class GenerationGate:
    is_generating: bool = False


@dataclass
class GenerationOutcome:
    status: OutcomeStatus
    message: str
    map: Map | None = None
    room: Room | None = None
    layout: SolvedLayout | None = None
    furniture: list[Furniture] | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def apply_map_draft(store: MapStore, outcome: GenerationOutcome) -> GenerationOutcome:
    """Write a drafted layout into ``store``.

    ``store`` may be a fresher copy than the one the draft was built from; the
    map is looked up again by id.
    """
    if not outcome.ok or outcome.layout is None:
        return outcome
    updated = store.apply_layout(outcome.map.id, outcome.layout)
    if updated is None:
        return GenerationOutcome("not_found", "Map was deleted during generation")
    logger.info("Generated map %s with %d rooms", updated.id, len(updated.rooms))
    return GenerationOutcome("ok", f'Map "{updated.name}" generated successfully!', map=updated)


def apply_furniture_draft(store: MapStore, outcome: GenerationOutcome) -> GenerationOutcome:
    if not outcome.ok or outcome.furniture is None:
        return outcome
    map_id, room_id = outcome.map.id, outcome.room.id
    if not store.set_room_furniture(map_id, room_id, outcome.furniture):
        return GenerationOutcome("not_found", "Room was removed during generation")
    return GenerationOutcome(
        "ok",
        "Furniture regenerated!",
        map=store.get_map(map_id),
        room=store.find_room(map_id, room_id),
    )


class MapGenerator:
    """Runs one generator call per request and merges the result into a store.

    A second request while one is in flight is rejected, not queued. The
    ``draft_*`` methods stop short of writing, so callers holding a store that
    can go stale across the await apply the draft to a reloaded one.
    """

    def __init__(
        self,
        store: MapStore,
        generate: GenerateFn,
        *,
        settings: MapSettings | None = None,
        gate: GenerationGate | None = None,
    ) -> None:
        self.store = store
        self._generate = generate
        self.settings = settings or MapSettings()
        self.gate = gate or GenerationGate()

    @property
    def is_generating(self) -> bool:
        return self.gate.is_generating

    async def draft_map(
        self, map_id: str | None = None, extra_instructions: str = ""
    ) -> GenerationOutcome:
        map_record = self.store.get_map(map_id) if map_id else self.store.get_active_map()
        if map_record is None:
            return GenerationOutcome("not_found", "No map selected")
        prompt = build_map_prompt(
            map_record.name,
            map_record.description,
            extra_instructions.strip(),
            map_record.type,
            self.settings,
        )

        response = await self._call_generator(prompt)
        if isinstance(response, GenerationOutcome):
            return response

        draft = parse_map_json(response)
        if draft is None:
            return GenerationOutcome("invalid", "Invalid map data returned. Try regenerating.")
        return GenerationOutcome(
            "ok", "Layout drafted", map=map_record, layout=solve_room_layout(draft.rooms)
        )

    async def generate_map(
        self, map_id: str | None = None, extra_instructions: str = ""
    ) -> GenerationOutcome:
        outcome = await self.draft_map(map_id, extra_instructions)
        return apply_map_draft(self.store, outcome)

    async def create_and_generate(
        self,
        name: str,
        map_type: str = "location",
        description: str = "",
        extra_instructions: str = "",
    ) -> GenerationOutcome:
        if self.gate.is_generating:
            return self._rejected()
        map_record = self.store.create_map(name, map_type, description)
        outcome = await self.generate_map(map_record.id, extra_instructions)
        if outcome.map is None:
            outcome.map = map_record
        return outcome

    async def draft_furniture(self, map_id: str, room_id: str) -> GenerationOutcome:
        room = self.store.find_room(map_id, room_id)
        if room is None:
            return GenerationOutcome("not_found", "No room selected")

        response = await self._call_generator(build_furniture_prompt(room.name, self.settings))
        if isinstance(response, GenerationOutcome):
            return response

        furniture = parse_furniture_json(response)
        if not furniture:
            return GenerationOutcome("invalid", "Invalid furniture data")
        return GenerationOutcome(
            "ok",
            "Furniture drafted",
            map=self.store.get_map(map_id),
            room=room,
            furniture=furniture,
        )

    async def regenerate_furniture(self, map_id: str, room_id: str) -> GenerationOutcome:
        outcome = await self.draft_furniture(map_id, room_id)
        return apply_furniture_draft(self.store, outcome)

    async def _call_generator(self, prompt: str) -> str | GenerationOutcome:
        if self.gate.is_generating:
            return self._rejected()
        self.gate.is_generating = True
        try:
            response = await self._generate(prompt)
        except Exception as exc:
            logger.exception("Generator call failed")
            return GenerationOutcome("error", f"Failed to generate: {exc}")
        finally:
            self.gate.is_generating = False
        if not response or not str(response).strip():
            return GenerationOutcome("empty_response", "No response from AI")
        return str(response)

    def _rejected(self) -> GenerationOutcome:
        logger.warning("Generation already in progress; request discarded")
        return GenerationOutcome("rejected", "Generation already in progress")
