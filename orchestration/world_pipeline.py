# orchestration/world_pipeline.py
"""Multi-step world generation.

A world is built by six dependent generation calls grouped into five stages:

    Seeding -> Branching (stats and factions, concurrently) -> Historicizing
            -> Personifying -> Questing -> Done

Every call sees the world produced so far. ``generate`` runs every step;
``complete`` only runs the steps whose output is missing from a partial world,
in the same order, and merges new lore without duplicating titles.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from core.errors import PipelineAborted, PoolEmpty
from models import (
    FACTION_LORE_TYPES,
    HISTORY_LORE_TYPES,
    Companion,
    GameSetupOptions,
    MainQuest,
    StatDefinition,
    WorldDocument,
    WorldLoreItem,
    WorldStep,
)
from utils import invoke_callback

logger = structlog.get_logger(__name__)

StepRunner = Callable[
    [WorldStep, GameSetupOptions, dict[str, Any]], Awaitable[dict[str, Any]]
]
ProgressCallback = Callable[[str], Any]


class PipelineStage(str, Enum):
    SEEDING = "seeding"
    BRANCHING = "branching"
    HISTORICIZING = "historicizing"
    PERSONIFYING = "personifying"
    QUESTING = "questing"
    DONE = "done"
    FAILED = "failed"


STAGE_MESSAGES: dict[PipelineStage, str] = {
    PipelineStage.SEEDING: "Parsing the world matrix...",
    PipelineStage.BRANCHING: "Surveying the spread of peoples...",
    PipelineStage.HISTORICIZING: "Touching the scars of history...",
    PipelineStage.PERSONIFYING: "Divining fated bonds...",
    PipelineStage.QUESTING: "Anchoring the branches of time...",
    PipelineStage.DONE: "World anchored.",
}


def merge_lore_by_title(
    existing: list[WorldLoreItem], new_items: Iterable[WorldLoreItem]
) -> list[WorldLoreItem]:
    """Return ``existing`` followed by the new items whose titles are not yet present."""
    merged = list(existing)
    seen = {item.title for item in merged}
    for item in new_items:
        if item.title in seen:
            continue
        seen.add(item.title)
        merged.append(item)
    return merged


def _step_is_missing(world: WorldDocument, step: WorldStep) -> bool:
    if step is WorldStep.SEEDING:
        return not world.lore
    if step is WorldStep.PLAYER_STATS:
        return not world.player_stats_schema
    if step is WorldStep.FACTIONS:
        return not world.has_lore_of(FACTION_LORE_TYPES)
    if step is WorldStep.HISTORY:
        return not world.has_lore_of(HISTORY_LORE_TYPES)
    if step is WorldStep.COMPANIONS:
        return not world.companions
    return not world.main_quests


def _items(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    return value if isinstance(value, list) else []


def _validated(
    model: type[BaseModel], data: dict[str, Any], key: str, step: WorldStep
) -> list[Any]:
    valid = []
    for item in _items(data, key):
        try:
            valid.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning(
                "Skipping invalid world item.",
                step=step.value,
                key=key,
                error=str(exc),
            )
    return valid


class WorldGenerationPipeline:
    """Drive world generation through a ``step_runner`` supplied by a provider."""

    def __init__(self, step_runner: StepRunner) -> None:
        self._run_step = step_runner
        self.stage = PipelineStage.SEEDING

    async def generate(
        self, setup: GameSetupOptions, on_progress: ProgressCallback | None = None
    ) -> WorldDocument:
        """Build a complete world from the setup options alone."""
        return await self._run(WorldDocument(), setup, on_progress, fill_gaps_only=False)

    async def complete(
        self,
        partial: WorldDocument | dict[str, Any],
        setup: GameSetupOptions,
        on_progress: ProgressCallback | None = None,
    ) -> WorldDocument:
        """Fill in whatever ``partial`` is missing. ``partial`` itself is left untouched."""
        if isinstance(partial, WorldDocument):
            world = partial.model_copy(deep=True)
        else:
            world = WorldDocument.model_validate(partial)
        return await self._run(world, setup, on_progress, fill_gaps_only=True)

    @staticmethod
    def _context(world: WorldDocument) -> dict[str, Any]:
        dumped = world.model_dump(mode="json", by_alias=True, exclude_none=True)
        return {key: value for key, value in dumped.items() if value}

    async def _enter(
        self, stage: PipelineStage, on_progress: ProgressCallback | None
    ) -> None:
        self.stage = stage
        logger.info("World pipeline stage started.", stage=stage.value)
        await invoke_callback(on_progress, STAGE_MESSAGES[stage])

    async def _call(
        self, step: WorldStep, setup: GameSetupOptions, context: dict[str, Any]
    ) -> dict[str, Any]:
        data = await self._run_step(step, setup, context)
        logger.debug("World step finished.", step=step.value, keys=sorted(data))
        return data

    async def _call_all(
        self,
        steps: list[WorldStep],
        setup: GameSetupOptions,
        context: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Run ``steps`` concurrently; a failure cancels and joins the rest."""
        tasks = [
            asyncio.create_task(self._call(step, setup, context)) for step in steps
        ]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run(
        self,
        world: WorldDocument,
        setup: GameSetupOptions,
        on_progress: ProgressCallback | None,
        fill_gaps_only: bool,
    ) -> WorldDocument:
        def needed(step: WorldStep) -> bool:
            return not fill_gaps_only or _step_is_missing(world, step)

        try:
            if needed(WorldStep.SEEDING):
                await self._enter(PipelineStage.SEEDING, on_progress)
                data = await self._call(WorldStep.SEEDING, setup, self._context(world))
                world.lore = merge_lore_by_title(
                    world.lore,
                    _validated(WorldLoreItem, data, "lore", WorldStep.SEEDING),
                )

            branch_steps = [
                step
                for step in (WorldStep.PLAYER_STATS, WorldStep.FACTIONS)
                if needed(step)
            ]
            if branch_steps:
                await self._enter(PipelineStage.BRANCHING, on_progress)
                context = self._context(world)
                results = await self._call_all(branch_steps, setup, context)
                for step, data in zip(branch_steps, results):
                    if step is WorldStep.PLAYER_STATS:
                        world.player_stats_schema = _validated(
                            StatDefinition, data, "playerStatsSchema", step
                        )
                    else:
                        world.lore = merge_lore_by_title(
                            world.lore,
                            _validated(WorldLoreItem, data, "lore", step),
                        )

            if needed(WorldStep.HISTORY):
                await self._enter(PipelineStage.HISTORICIZING, on_progress)
                data = await self._call(WorldStep.HISTORY, setup, self._context(world))
                world.lore = merge_lore_by_title(
                    world.lore,
                    _validated(WorldLoreItem, data, "lore", WorldStep.HISTORY),
                )

            if needed(WorldStep.COMPANIONS):
                await self._enter(PipelineStage.PERSONIFYING, on_progress)
                data = await self._call(
                    WorldStep.COMPANIONS, setup, self._context(world)
                )
                world.lore = merge_lore_by_title(
                    world.lore,
                    _validated(WorldLoreItem, data, "lore", WorldStep.COMPANIONS),
                )
                world.companions = _validated(
                    Companion, data, "companions", WorldStep.COMPANIONS
                )

            if needed(WorldStep.QUESTS):
                await self._enter(PipelineStage.QUESTING, on_progress)
                data = await self._call(WorldStep.QUESTS, setup, self._context(world))
                world.main_quests = _validated(
                    MainQuest, data, "mainQuests", WorldStep.QUESTS
                )
        except PoolEmpty:
            self.stage = PipelineStage.FAILED
            raise
        except Exception as exc:
            failed_stage = self.stage
            self.stage = PipelineStage.FAILED
            logger.error(
                "World anchoring failed.",
                stage=failed_stage.value,
                model_id=setup.model_id,
                error=str(exc),
                exc_info=True,
            )
            raise PipelineAborted(failed_stage.value, exc) from exc

        await self._enter(PipelineStage.DONE, on_progress)
        return world
