from llm.prompts import (
    DEFAULT_FURNITURE_PROMPT,
    build_furniture_prompt,
    build_map_prompt,
    render_template,
)
from mapping.settings import MapSettings


def test_conditional_blocks_follow_presence() -> None:
    template = "A{{#if x}} [{{x}}]{{/if}}{{#if y}} ({{y}}){{/if}}!"
    assert render_template(template, {"x": "one", "y": ""}) == "A [one]!"
    assert render_template(template, {"x": None}) == "A!"


def test_unknown_placeholders_render_empty() -> None:
    assert render_template("Hi {{name}}{{missing}}", {"name": "Ana"}) == "Hi Ana"


def test_location_prompt_without_optional_fields() -> None:
    prompt = build_map_prompt("Manor")
    lines = prompt.splitlines()
    assert lines[0] == "Generate rooms for: Manor"
    assert lines[1] == ""
    assert lines[2] == ""
    assert 'Include "Entrance" room' in prompt
    assert '{"rooms":[{"name":"Room Name"' in prompt


def test_location_prompt_with_description_and_instructions() -> None:
    prompt = build_map_prompt("Manor", "haunted", "add a crypt", "location")
    assert "(haunted)" in prompt
    assert "add a crypt" in prompt
    assert "{{" not in prompt


def test_regional_prompt() -> None:
    prompt = build_map_prompt("Old Town", map_type="regional")
    assert prompt.startswith("Generate locations for: Old Town")
    assert "5-8 locations" in prompt


def test_custom_templates_override_defaults() -> None:
    settings = MapSettings(
        custom_location_map_prompt="Rooms of {{locationName}}{{#if description}}: {{description}}{{/if}}",
        custom_furniture_prompt="Stuff in {{roomName}}",
    )
    assert build_map_prompt("Inn", "cozy", settings=settings) == "Rooms of Inn: cozy"
    assert build_furniture_prompt("Cellar", settings) == "Stuff in Cellar"


def test_default_furniture_prompt() -> None:
    prompt = build_furniture_prompt("Cellar")
    assert prompt == DEFAULT_FURNITURE_PROMPT.replace("{{roomName}}", "Cellar")
