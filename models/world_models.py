# models/world_models.py
"""World documents produced by the world generation pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LoreType(str, Enum):
    POWER = "Power"
    LOCATION = "Location"
    ORGANIZATION = "Organization"
    HISTORY = "History"
    LEGEND = "Legend"


_LORE_TYPE_ALIASES: dict[str, LoreType] = {
    "力量": LoreType.POWER,
    "能力": LoreType.POWER,
    "地点": LoreType.LOCATION,
    "组织": LoreType.ORGANIZATION,
    "势力": LoreType.ORGANIZATION,
    "历史": LoreType.HISTORY,
    "传说": LoreType.LEGEND,
}

FACTION_LORE_TYPES = frozenset({LoreType.ORGANIZATION, LoreType.LOCATION})
HISTORY_LORE_TYPES = frozenset({LoreType.HISTORY, LoreType.LEGEND})


class WorldModel(BaseModel):
    """Base for world entities; tolerant of extra keys models invent."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class WorldLoreItem(WorldModel):
    title: str
    description: str = ""
    type: str = LoreType.LEGEND.value

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> str:
        if isinstance(value, LoreType):
            return value.value
        text = str(value or "").strip()
        if text in _LORE_TYPE_ALIASES:
            return _LORE_TYPE_ALIASES[text].value
        for member in LoreType:
            if text.lower() == member.value.lower():
                return member.value
        return text

    @property
    def lore_type(self) -> LoreType | None:
        try:
            return LoreType(self.type)
        except ValueError:
            return None


class MainQuest(WorldModel):
    title: str
    description: str = ""
    status: str = "active"


class Companion(WorldModel):
    id: str
    name: str = ""
    title: str = ""
    affinity: int = Field(50, ge=0, le=100)
    backstory: str = ""
    image_url: str | None = Field(None, alias="imageUrl")
    image_prompt: str | None = Field(None, alias="imagePrompt")

    @field_validator("affinity", mode="before")
    @classmethod
    def clamp_affinity(cls, value: Any) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError):
            return 50
        return max(0, min(100, number))


class StatDefinition(WorldModel):
    name: str
    description: str = ""


class WorldDocument(WorldModel):
    """Lore, quests, companions and the stat schema of one world."""

    lore: list[WorldLoreItem] = Field(default_factory=list)
    main_quests: list[MainQuest] = Field(default_factory=list, alias="mainQuests")
    companions: list[Companion] = Field(default_factory=list)
    player_stats_schema: list[StatDefinition] = Field(
        default_factory=list, alias="playerStatsSchema"
    )

    def has_lore_of(self, types: frozenset[LoreType]) -> bool:
        return any(item.lore_type in types for item in self.lore)

    def is_complete(self) -> bool:
        return bool(
            self.lore
            and self.player_stats_schema
            and self.has_lore_of(FACTION_LORE_TYPES)
            and self.has_lore_of(HISTORY_LORE_TYPES)
            and self.companions
            and self.main_quests
        )


class GameSetupOptions(BaseModel):
    """Player choices that seed world generation."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    model_id: str = Field("", alias="modelId")
    image_model_id: str = Field("", alias="imageModelId")
    is_image_generation_enabled: bool = Field(True, alias="isImageGenerationEnabled")
    genre: str = "random"
    era: str = "random"
    gender: str = "random"
    romance: str = "random"


class WorldStep(str, Enum):
    """One generation call of the world pipeline."""

    SEEDING = "seeding"
    PLAYER_STATS = "player_stats"
    FACTIONS = "factions"
    HISTORY = "history"
    COMPANIONS = "companions"
    QUESTS = "quests"
