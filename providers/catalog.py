# providers/catalog.py
"""Prompts, JSON shape hints and response schemas for every generation call.

Google models receive a ``responseSchema``; OpenAI-compatible models only get
JSON mode, so the expected shape is described inside the prompt instead.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from config import settings
from models import GameSetupOptions, LoreType, StatDefinition, WorldStep
from prompt_renderer import render_prompt

DEFAULT_PLAYER_STATS: tuple[str, ...] = ("Strength", "Agility", "Intellect", "Spirit")

WORLD_STEP_TEMPLATES: dict[WorldStep, str] = {
    WorldStep.SEEDING: "world_seeding.j2",
    WorldStep.PLAYER_STATS: "world_player_stats.j2",
    WorldStep.FACTIONS: "world_factions.j2",
    WorldStep.HISTORY: "world_history.j2",
    WorldStep.COMPANIONS: "world_companions.j2",
    WorldStep.QUESTS: "world_quests.j2",
}

_LORE_TYPES = [member.value for member in LoreType]
_LORE_TYPE_HINT = " | ".join(f"'{value}'" for value in _LORE_TYPES)

_LORE_ITEMS_SCHEMA: dict[str, Any] = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "title": {"type": "STRING"},
            "description": {"type": "STRING"},
            "type": {"type": "STRING", "enum": _LORE_TYPES},
        },
        "required": ["title", "description", "type"],
    },
}

_LORE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {"lore": _LORE_ITEMS_SCHEMA},
    "required": ["lore"],
}

WORLD_STEP_SCHEMAS: dict[WorldStep, dict[str, Any]] = {
    WorldStep.SEEDING: _LORE_SCHEMA,
    WorldStep.PLAYER_STATS: {
        "type": "OBJECT",
        "properties": {
            "playerStatsSchema": {
                "type": "ARRAY",
                "description": "Core player attributes for this world.",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "name": {"type": "STRING"},
                        "description": {"type": "STRING"},
                    },
                    "required": ["name", "description"],
                },
            }
        },
        "required": ["playerStatsSchema"],
    },
    WorldStep.FACTIONS: _LORE_SCHEMA,
    WorldStep.HISTORY: _LORE_SCHEMA,
    WorldStep.COMPANIONS: {
        "type": "OBJECT",
        "properties": {
            "companions": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "id": {"type": "STRING"},
                        "name": {"type": "STRING"},
                        "title": {"type": "STRING"},
                        "affinity": {"type": "INTEGER"},
                        "backstory": {"type": "STRING"},
                        "imagePrompt": {
                            "type": "STRING",
                            "description": "Detailed prompt for a cinematic anime-style portrait.",
                        },
                    },
                    "required": [
                        "id",
                        "name",
                        "title",
                        "affinity",
                        "backstory",
                        "imagePrompt",
                    ],
                },
            },
            "lore": _LORE_ITEMS_SCHEMA,
        },
        "required": ["companions", "lore"],
    },
    WorldStep.QUESTS: {
        "type": "OBJECT",
        "properties": {
            "mainQuests": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "title": {"type": "STRING"},
                        "description": {"type": "STRING"},
                    },
                    "required": ["title", "description"],
                },
            }
        },
        "required": ["mainQuests"],
    },
}

_LORE_SHAPE = (
    '{\n  "lore": [ { "title": "string", "description": "string", '
    f'"type": "{_LORE_TYPE_HINT}" }} ]\n}}'
)

WORLD_STEP_SHAPE_HINTS: dict[WorldStep, str] = {
    WorldStep.SEEDING: _LORE_SHAPE,
    WorldStep.PLAYER_STATS: (
        '{\n  "playerStatsSchema": [ { "name": "string", "description": "string" } ]\n}'
    ),
    WorldStep.FACTIONS: _LORE_SHAPE,
    WorldStep.HISTORY: _LORE_SHAPE,
    WorldStep.COMPANIONS: (
        '{\n  "companions": [ { "id": "string", "name": "string", "title": "string", '
        '"affinity": "number", "backstory": "string", "imagePrompt": "string" } ],\n'
        '  "lore": [ { "title": "string", "description": "string", '
        f'"type": "{_LORE_TYPE_HINT}" }} ]\n}}'
    ),
    WorldStep.QUESTS: (
        '{\n  "mainQuests": [ { "title": "string", "description": "string" } ]\n}'
    ),
}

NARRATIVE_SHAPE_HINT = (
    "{\n"
    '  "narrativeBlock": { "id": "string", "type": "\'story\' | \'action\' | \'system\'", '
    '"text": "string", "imagePrompt": "string | undefined" },\n'
    '  "choices": [ { "text": "string", "prompt": "string" } ],\n'
    '  "gameStateUpdate": { /* optional updates to player, companions or world */ }\n'
    "}"
)


def _stat_names(stats_schema: Iterable[StatDefinition | dict[str, Any]] | None) -> list[str]:
    names: list[str] = []
    for stat in stats_schema or []:
        name = stat.name if isinstance(stat, StatDefinition) else stat.get("name")
        if name:
            names.append(name)
    return names or list(DEFAULT_PLAYER_STATS)


def narrative_response_schema(
    stats_schema: Iterable[StatDefinition | dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Schema of one narrative turn, with stats typed from the world's stat schema."""
    stats_properties = {name: {"type": "INTEGER"} for name in _stat_names(stats_schema)}
    return {
        "type": "OBJECT",
        "properties": {
            "narrativeBlock": {
                "type": "OBJECT",
                "properties": {
                    "id": {"type": "STRING"},
                    "type": {"type": "STRING"},
                    "text": {"type": "STRING"},
                    "imagePrompt": {"type": "STRING"},
                },
                "required": ["id", "type", "text"],
            },
            "choices": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "text": {"type": "STRING"},
                        "prompt": {"type": "STRING"},
                    },
                    "required": ["text", "prompt"],
                },
            },
            "gameStateUpdate": {
                "type": "OBJECT",
                "properties": {
                    "player": {
                        "type": "OBJECT",
                        "properties": {
                            "name": {"type": "STRING"},
                            "level": {"type": "INTEGER"},
                            "stats": {"type": "OBJECT", "properties": stats_properties},
                            "inventory": {
                                "type": "ARRAY",
                                "items": {
                                    "type": "OBJECT",
                                    "properties": {
                                        "id": {"type": "STRING"},
                                        "name": {"type": "STRING"},
                                        "description": {"type": "STRING"},
                                        "type": {"type": "STRING"},
                                    },
                                },
                            },
                        },
                    },
                    "companions": {
                        "type": "ARRAY",
                        "items": {
                            "type": "OBJECT",
                            "properties": {
                                "id": {"type": "STRING"},
                                "name": {"type": "STRING"},
                                "title": {"type": "STRING"},
                                "affinity": {"type": "INTEGER"},
                                "backstory": {"type": "STRING"},
                            },
                            "required": ["id"],
                        },
                    },
                    "world": {
                        "type": "OBJECT",
                        "properties": {
                            "location": {"type": "STRING"},
                            "time": {"type": "STRING"},
                        },
                    },
                },
            },
        },
        "required": ["narrativeBlock", "choices", "gameStateUpdate"],
    }


class PromptCatalog:
    """Renders the prompt text for each call; ``shape_hints`` embeds the JSON shape."""

    def __init__(self, shape_hints: bool = False) -> None:
        self.shape_hints = shape_hints

    def world_step_prompt(
        self,
        step: WorldStep,
        setup: GameSetupOptions,
        context: dict[str, Any] | None = None,
    ) -> str:
        return render_prompt(
            WORLD_STEP_TEMPLATES[step],
            {
                "setup": setup,
                "context": context or {},
                "shape_hint": WORLD_STEP_SHAPE_HINTS[step] if self.shape_hints else "",
            },
        )

    def world_step_schema(self, step: WorldStep) -> dict[str, Any]:
        return WORLD_STEP_SCHEMAS[step]

    def narrator_instructions(self, setup: GameSetupOptions) -> str:
        return render_prompt(
            "narrator_system.j2",
            {
                "setup": setup,
                "text_field": settings.NARRATIVE_TEXT_FIELD,
                "shape_hint": NARRATIVE_SHAPE_HINT if self.shape_hints else "",
            },
        )

    def narrative_turn(self, player_input: str, state: dict[str, Any]) -> str:
        return render_prompt(
            "narrative_step.j2", {"player_input": player_input, "state": state}
        )
