import logging
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Response
from pydantic import BaseModel

from app.logging_config import setup_logging
from db import SessionLocal, check_db_connection
from llm.client import OllamaClient
from mapping.context import build_location_context, location_context_for_injection
from mapping.generation import (
    GenerationGate,
    GenerationOutcome,
    MapGenerator,
    apply_furniture_draft,
    apply_map_draft,
)
from mapping.sessions import (
    load_map_settings_for_chat,
    load_map_store,
    save_map_settings,
    save_map_store,
)
from mapping.settings import ContextDepth, MapSettings
from mapping.store import export_filename

setup_logging()
logger = logging.getLogger(__name__)

OUTCOME_STATUS_CODES = {
    "not_found": 404,
    "rejected": 409,
    "invalid": 422,
    "empty_response": 502,
    "error": 502,
}

app = FastAPI(
    title="mapsmith API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)
app.state.generation_gates = {}


def _gate_for(chat_id: str) -> GenerationGate:
    gates: dict[str, GenerationGate] = app.state.generation_gates
    return gates.setdefault(chat_id, GenerationGate())


def _is_generating(chat_id: str) -> bool:
    gate = app.state.generation_gates.get(chat_id)
    return gate is not None and gate.is_generating


def _release_gate(chat_id: str) -> None:
    if not _is_generating(chat_id):
        app.state.generation_gates.pop(chat_id, None)


def _generator_for(chat_id: str, store, settings: MapSettings) -> MapGenerator:
    client = OllamaClient()
    return MapGenerator(store, client.agenerate, settings=settings, gate=_gate_for(chat_id))


def _outcome_payload(outcome: GenerationOutcome) -> dict:
    if not outcome.ok:
        raise HTTPException(
            status_code=OUTCOME_STATUS_CODES.get(outcome.status, 500),
            detail=outcome.message,
        )
    return {
        "message": outcome.message,
        "map": outcome.map.to_wire() if outcome.map else None,
        "room": outcome.room.to_wire() if outcome.room else None,
    }


@app.get("/health")
def health() -> dict:
    try:
        check_db_connection()
    except Exception as exc:
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    return {"status": "ok"}


class MapCreate(BaseModel):
    name: str
    type: str = "location"
    description: str = ""
    generate: bool = False
    extra_instructions: str = ""


class MapSelect(BaseModel):
    map_id: str | None = None


class MapGenerateRequest(BaseModel):
    extra_instructions: str = ""


class CharacterLocationUpdate(BaseModel):
    map_id: str
    room_id: str


class LocationDetectRequest(BaseModel):
    location_name: str


@app.get("/chats/{chat_id}/maps")
def list_maps(chat_id: str) -> dict:
    with SessionLocal() as db:
        return load_map_store(db, chat_id).dump()


@app.post("/chats/{chat_id}/maps")
async def create_map(chat_id: str, data: MapCreate) -> dict:
    name = data.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Please enter a map name")
    if data.generate and _is_generating(chat_id):
        raise HTTPException(status_code=409, detail="Generation already in progress")
    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        map_record = store.create_map(name, data.type, data.description)
        save_map_store(db, chat_id, store)
        db.commit()
        if not data.generate:
            return {
                "status": "ok",
                "message": f'Map "{map_record.name}" created',
                "map": map_record.to_wire(),
                "active_map_id": store.active_map_id,
            }
        generator = _generator_for(chat_id, store, load_map_settings_for_chat(db, chat_id))

    try:
        outcome = await generator.draft_map(map_record.id, data.extra_instructions)
    finally:
        _release_gate(chat_id)

    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        outcome = apply_map_draft(store, outcome)
        if outcome.status == "rejected":
            raise HTTPException(status_code=409, detail=outcome.message)
        save_map_store(db, chat_id, store)
        db.commit()
        current = store.get_map(map_record.id)
        return {
            "status": outcome.status,
            "message": outcome.message,
            "map": current.to_wire() if current else None,
            "active_map_id": store.active_map_id,
        }


@app.post("/chats/{chat_id}/maps/select")
def select_map(chat_id: str, data: MapSelect) -> dict:
    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        if not store.select_map(data.map_id):
            raise HTTPException(status_code=404, detail="Map not found")
        save_map_store(db, chat_id, store)
        db.commit()
        return {"active_map_id": store.active_map_id}


@app.delete("/chats/{chat_id}/maps/{map_id}")
def delete_map(chat_id: str, map_id: str) -> dict:
    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        if not store.delete_map(map_id):
            raise HTTPException(status_code=404, detail="Map not found")
        save_map_store(db, chat_id, store)
        db.commit()
        return {
            "deleted": map_id,
            "active_map_id": store.active_map_id,
            "character_locations": store.dump()["characterLocations"],
        }


@app.post("/chats/{chat_id}/maps/{map_id}/generate")
async def generate_map(chat_id: str, map_id: str, data: MapGenerateRequest) -> dict:
    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        generator = _generator_for(chat_id, store, load_map_settings_for_chat(db, chat_id))

    try:
        outcome = await generator.draft_map(map_id, data.extra_instructions)
    finally:
        _release_gate(chat_id)

    # Reload: other requests may have committed while the generator ran.
    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        payload = _outcome_payload(apply_map_draft(store, outcome))
        save_map_store(db, chat_id, store)
        db.commit()
        return payload


@app.post("/chats/{chat_id}/maps/{map_id}/rooms/{room_id}/furniture")
async def regenerate_furniture(chat_id: str, map_id: str, room_id: str) -> dict:
    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        generator = _generator_for(chat_id, store, load_map_settings_for_chat(db, chat_id))

    try:
        outcome = await generator.draft_furniture(map_id, room_id)
    finally:
        _release_gate(chat_id)

    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        payload = _outcome_payload(apply_furniture_draft(store, outcome))
        save_map_store(db, chat_id, store)
        db.commit()
        return payload


@app.get("/chats/{chat_id}/maps/{map_id}/export")
def export_map(chat_id: str, map_id: str) -> Response:
    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        snapshot = store.export_map(map_id)
        if snapshot is None:
            raise HTTPException(status_code=404, detail="Map not found")
        return Response(
            content=snapshot.to_json(),
            media_type="application/json",
            headers={
                "Content-Disposition": f'attachment; filename="{export_filename(snapshot.map)}"'
            },
        )


@app.post("/chats/{chat_id}/maps/import")
def import_map(chat_id: str, payload: dict[str, Any] = Body(...)) -> dict:
    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        imported = store.import_map(payload)
        if imported is None:
            raise HTTPException(status_code=400, detail="Invalid map file format")
        save_map_store(db, chat_id, store)
        db.commit()
        return {
            "message": f'Map "{imported.name}" imported successfully',
            "map": imported.to_wire(),
            "active_map_id": store.active_map_id,
        }


@app.put("/chats/{chat_id}/locations/{character_name}")
def set_character_location(
    chat_id: str, character_name: str, data: CharacterLocationUpdate
) -> dict:
    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        if not store.set_character_location(character_name, data.map_id, data.room_id):
            raise HTTPException(status_code=404, detail="Room not found")
        room = store.find_room(data.map_id, data.room_id)
        save_map_store(db, chat_id, store)
        db.commit()
        return {
            "message": f"{character_name} moved to {room.name}",
            "character_locations": store.dump()["characterLocations"],
        }


@app.delete("/chats/{chat_id}/locations/{character_name}")
def clear_character_location(chat_id: str, character_name: str) -> dict:
    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        if not store.clear_character_location(character_name):
            raise HTTPException(status_code=404, detail="Character is not on a map")
        save_map_store(db, chat_id, store)
        db.commit()
        return {"character_locations": store.dump()["characterLocations"]}


@app.post("/chats/{chat_id}/locations/{character_name}/detect")
def detect_character_location(
    chat_id: str, character_name: str, data: LocationDetectRequest
) -> dict:
    with SessionLocal() as db:
        settings = load_map_settings_for_chat(db, chat_id)
        if not settings.auto_track_locations:
            return {"placed": False, "room": None}
        store = load_map_store(db, chat_id)
        room = store.place_character_at_entrance(character_name, data.location_name)
        if room is None:
            return {"placed": False, "room": None}
        save_map_store(db, chat_id, store)
        db.commit()
        logger.info("Detected %s at %s", character_name, data.location_name)
        return {"placed": True, "room": room.to_wire()}


@app.get("/chats/{chat_id}/context/{character_name}")
def location_context(chat_id: str, character_name: str, depth: str | None = None) -> dict:
    with SessionLocal() as db:
        store = load_map_store(db, chat_id)
        if depth is not None:
            return {"context": build_location_context(store, character_name, ContextDepth.coerce(depth))}
        settings = load_map_settings_for_chat(db, chat_id)
        return {"context": location_context_for_injection(store, character_name, settings)}


@app.get("/chats/{chat_id}/settings")
def get_settings(chat_id: str) -> dict:
    with SessionLocal() as db:
        return load_map_settings_for_chat(db, chat_id).model_dump(mode="json")


@app.put("/chats/{chat_id}/settings")
def update_settings(chat_id: str, data: MapSettings) -> dict:
    with SessionLocal() as db:
        save_map_settings(db, chat_id, data)
        db.commit()
        return data.model_dump(mode="json")
