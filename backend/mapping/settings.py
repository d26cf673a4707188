from __future__ import annotations

import os
from enum import Enum

from pydantic import BaseModel, ConfigDict

TRUE_VALUES = {"1", "true", "yes", "on"}


class ContextDepth(str, Enum):
    CURRENT_ONLY = "current_only"
    ADJACENT_ROOMS = "adjacent_rooms"
    FULL_BUILDING = "full_building"

    @classmethod
    def coerce(cls, value: str | ContextDepth | None) -> ContextDepth:
        if isinstance(value, cls):
            return value
        cleaned = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
        for depth in cls:
            if depth.value == cleaned:
                return depth
        return cls.CURRENT_ONLY


class MapSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    custom_regional_map_prompt: str = ""
    custom_location_map_prompt: str = ""
    custom_furniture_prompt: str = ""
    inject_location_context: bool = True
    auto_track_locations: bool = True
    location_context_depth: ContextDepth = ContextDepth.CURRENT_ONLY


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in TRUE_VALUES


def load_map_settings(overrides: dict | None = None) -> MapSettings:
    base = {
        "inject_location_context": _env_flag("MAP_INJECT_CONTEXT", True),
        "auto_track_locations": _env_flag("MAP_AUTO_TRACK_LOCATIONS", True),
        "location_context_depth": ContextDepth.coerce(os.getenv("MAP_CONTEXT_DEPTH")),
    }
    if isinstance(overrides, dict):
        for key, value in overrides.items():
            if key == "location_context_depth":
                value = ContextDepth.coerce(value)
            base[key] = value
    return MapSettings.model_validate(base)
