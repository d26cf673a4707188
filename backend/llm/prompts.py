from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mapping.settings import MapSettings

DEFAULT_REGIONAL_MAP_PROMPT = """Generate locations for: {{locationName}}
{{#if description}}({{description}}){{/if}}
{{#if extraInstructions}}{{extraInstructions}}{{/if}}

Output ONLY this JSON format:
{"rooms":[{"name":"Place Name","size":"4x4","exits":["Connected Place"],"furniture":["object1","object2"]}]}

- 5-8 locations for the setting
- size: "WxH" meters (e.g. "4x6")
- exits: connected location names
- furniture: 2-4 object names
- All exit names must match a room name"""

DEFAULT_LOCATION_MAP_PROMPT = """Generate rooms for: {{locationName}}
{{#if description}}({{description}}){{/if}}
{{#if extraInstructions}}{{extraInstructions}}{{/if}}

Output ONLY this JSON format:
{"rooms":[{"name":"Room Name","size":"3x4","exits":["Connected Room"],"furniture":["item1","item2"]}]}

- Include "Entrance" room
- 4-8 rooms, logical connections
- size: "WxH" meters (e.g. "3x4")
- exits: connected room names
- furniture: 3-5 object names
- All exit names must match a room name"""

DEFAULT_FURNITURE_PROMPT = """List objects in: {{roomName}}

Output ONLY: {"furniture":["item1","item2","item3"]}

4-8 appropriate items for the setting."""

CONDITIONAL_PATTERN = re.compile(r"\{\{#if (\w+)\}\}(.*?)\{\{/if\}\}", re.DOTALL)
PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")


def render_template(template: str, values: dict[str, str | None]) -> str:
    """Fill ``{{name}}`` placeholders and ``{{#if name}}...{{/if}}`` blocks.

    A block is kept when its value is non-empty and dropped otherwise.
    Unknown placeholders render as empty strings.
    """

    def _conditional(match: re.Match) -> str:
        return match.group(2) if values.get(match.group(1)) else ""

    def _placeholder(match: re.Match) -> str:
        return values.get(match.group(1)) or ""

    rendered = CONDITIONAL_PATTERN.sub(_conditional, template)
    return PLACEHOLDER_PATTERN.sub(_placeholder, rendered)


def build_map_prompt(
    location_name: str,
    description: str = "",
    extra_instructions: str = "",
    map_type: str = "location",
    settings: MapSettings | None = None,
) -> str:
    if map_type == "regional":
        custom = settings.custom_regional_map_prompt if settings else ""
        template = custom or DEFAULT_REGIONAL_MAP_PROMPT
    else:
        custom = settings.custom_location_map_prompt if settings else ""
        template = custom or DEFAULT_LOCATION_MAP_PROMPT
    return render_template(
        template,
        {
            "locationName": location_name,
            "description": description,
            "extraInstructions": extra_instructions,
        },
    )


def build_furniture_prompt(room_name: str, settings: MapSettings | None = None) -> str:
    template = (settings.custom_furniture_prompt if settings else "") or DEFAULT_FURNITURE_PROMPT
    return render_template(template, {"roomName": room_name})
