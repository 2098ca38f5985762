# providers/rotating.py
"""Round-robin rotation over the members of a credential pool."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from core.errors import PoolEmpty
from models import (
    AvailableModel,
    BackendConfig,
    BackendPoolConfig,
    GameSetupOptions,
    WorldDocument,
    WorldStep,
    is_backend_pool,
)
from orchestration.world_pipeline import ProgressCallback, WorldGenerationPipeline
from storage.backend_repository import BackendRepository
from utils.logging import bind_backend_context

from .base import ProviderAdapter, StreamingCallbacks

if TYPE_CHECKING:  # pragma: no cover - for type hints only
    from .factory import ServiceFactory

logger = structlog.get_logger(__name__)


class RotatingPoolService:
    """Offers the adapter capabilities, picking the next pool member for every call.

    Membership is re-read from the repository on each selection, so removed
    credentials drop out immediately and the cursor wraps over whatever remains.
    A world generation run therefore may use a different credential per step.
    """

    def __init__(
        self,
        pool: BackendPoolConfig,
        repository: BackendRepository,
        factory: ServiceFactory,
    ) -> None:
        if not is_backend_pool(pool):
            raise TypeError("RotatingPoolService requires a BackendPoolConfig.")
        self.pool = pool
        self.repository = repository
        self.factory = factory
        self._cursor = 0

    async def _eligible_members(self) -> list[BackendConfig]:
        configs = await self.repository.get_all()
        by_id = {config.id: config for config in configs}
        stored_pool = by_id.get(self.pool.id)
        if stored_pool is not None and is_backend_pool(stored_pool):
            self.pool = stored_pool

        members: list[BackendConfig] = []
        for backend_id in self.pool.backend_ids:
            config = by_id.get(backend_id)
            if config is None:
                continue
            if is_backend_pool(config):
                logger.warning(
                    "Skipping nested pool inside credential pool.",
                    pool_id=self.pool.id,
                    member_id=backend_id,
                )
                continue
            if (
                config.provider != self.pool.provider
                or config.generation_kind != self.pool.generation_kind
            ):
                logger.warning(
                    "Skipping pool member with mismatched provider or generation kind.",
                    pool_id=self.pool.id,
                    member_id=backend_id,
                    member_provider=config.provider.value,
                    member_kind=config.generation_kind.value,
                )
                continue
            members.append(config)
        return members

    def _member_context(self, adapter: ProviderAdapter):
        return bind_backend_context(pool_id=self.pool.id, backend_id=adapter.config.id)

    async def select_next(self) -> ProviderAdapter:
        """Return the adapter for the next member in rotation order."""
        members = await self._eligible_members()
        if not members:
            raise PoolEmpty(self.pool.id, self.pool.display_name)
        # No await between reading and advancing the cursor.
        index = self._cursor % len(members)
        self._cursor = (index + 1) % len(members)
        config = members[index]
        logger.debug(
            "Selected pool member.",
            pool_id=self.pool.id,
            member_id=config.id,
            position=index,
            pool_size=len(members),
        )
        return self.factory.create(config)

    async def generate_step(
        self,
        player_input: str,
        current_state: dict[str, Any],
        callbacks: StreamingCallbacks,
    ) -> None:
        adapter = await self.select_next()
        with self._member_context(adapter):
            await adapter.generate_step(player_input, current_state, callbacks)

    async def run_world_step(
        self, step: WorldStep, setup: GameSetupOptions, context: dict[str, Any]
    ) -> dict[str, Any]:
        adapter = await self.select_next()
        with self._member_context(adapter):
            return await adapter.run_world_step(step, setup, context)

    async def generate_world(
        self, setup: GameSetupOptions, on_progress: ProgressCallback | None = None
    ) -> WorldDocument:
        return await WorldGenerationPipeline(self.run_world_step).generate(
            setup, on_progress
        )

    async def complete_world(
        self,
        partial: WorldDocument | dict[str, Any],
        setup: GameSetupOptions,
        on_progress: ProgressCallback | None = None,
    ) -> WorldDocument:
        return await WorldGenerationPipeline(self.run_world_step).complete(
            partial, setup, on_progress
        )

    async def generate_image(self, prompt: str, aspect_ratio: str = "1:1") -> str | None:
        adapter = await self.select_next()
        with self._member_context(adapter):
            return await adapter.generate_image(prompt, aspect_ratio)

    async def list_available_models(self) -> list[AvailableModel]:
        adapter = await self.select_next()
        with self._member_context(adapter):
            return await adapter.list_available_models()
