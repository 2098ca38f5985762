# models/narrative_models.py
"""Narrative turn structures returned by streaming generation."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class NarrativeBlock(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = ""
    type: str = "story"
    text: str = ""
    image_prompt: str | None = Field(None, alias="imagePrompt")
    image_url: str | None = Field(None, alias="imageUrl")


class PlayerChoice(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: str
    prompt: str = ""


class StepResponse(BaseModel):
    """One narrative turn: the story block, next choices and the state patch."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    narrative_block: NarrativeBlock = Field(..., alias="narrativeBlock")
    choices: list[PlayerChoice] = Field(default_factory=list)
    game_state_update: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices(
            "gameStateUpdate", "stateUpdate", "game_state_update"
        ),
        serialization_alias="gameStateUpdate",
    )


class AvailableModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    display_name: str = Field("", alias="displayName")
