# providers/base.py
"""Common behaviour of provider adapters.

An adapter binds one :class:`BackendConfig` to a provider transport and
offers the generation capabilities used by the game: streaming narrative
turns, world generation and completion, image generation and model
discovery. Subclasses only describe how each request looks on the wire.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any, ClassVar

import structlog
from async_lru import alru_cache

from config import settings
from core.errors import (
    ArcloomError,
    AuthError,
    EndpointError,
    RepairFailure,
    TransportError,
)
from core.transport import HttpTransport, ProviderRequestError
from models import (
    AvailableModel,
    BackendConfig,
    BackendProvider,
    GameSetupOptions,
    StepResponse,
    WorldDocument,
    WorldStep,
)
from orchestration.world_pipeline import ProgressCallback, WorldGenerationPipeline
from parsing import extract_field_state, repair_json
from utils import invoke_callback

from .catalog import PromptCatalog

logger = structlog.get_logger(__name__)


@dataclass
class StreamingCallbacks:
    """Receivers for one streamed narrative turn.

    ``on_chunk`` gets the narrative text reconstructed so far. Exactly one of
    ``on_complete`` or ``on_error`` is called when the turn ends.
    """

    on_chunk: Callable[[str], Any]
    on_complete: Callable[[StepResponse], Any]
    on_error: Callable[[ArcloomError], Any]


def strip_runtime_fields(state: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``state`` without the ``imageUrl`` data URLs providers do not need."""
    cleaned = dict(state)
    for key in ("narrativeLog", "companions"):
        entries = state.get(key)
        if isinstance(entries, list):
            cleaned[key] = [
                {k: v for k, v in entry.items() if k != "imageUrl"}
                if isinstance(entry, dict)
                else entry
                for entry in entries
            ]
    return cleaned


class ProviderAdapter:
    """Base adapter; subclasses set ``provider`` and implement the wire calls."""

    provider: ClassVar[BackendProvider]

    def __init__(
        self,
        config: BackendConfig,
        transport: HttpTransport | None = None,
        catalog: PromptCatalog | None = None,
    ) -> None:
        if config.provider != self.provider:
            raise EndpointError(
                f"Adapter for '{self.provider.value}' cannot use a '{config.provider.value}' credential."
            )
        self.config = config
        self.transport = transport or self._build_transport(config)
        self.catalog = catalog or PromptCatalog()
        self._cached_models = alru_cache(maxsize=settings.MODEL_LIST_CACHE_SIZE)(
            self._list_models_uncached
        )

    # --- hooks for subclasses -------------------------------------------------

    def _build_transport(self, config: BackendConfig) -> HttpTransport:
        raise NotImplementedError

    def _stream_step(
        self, player_input: str, state: dict[str, Any], setup: GameSetupOptions
    ) -> AsyncIterator[str]:
        raise NotImplementedError

    async def _world_step_text(
        self, step: WorldStep, setup: GameSetupOptions, context: dict[str, Any]
    ) -> str:
        raise NotImplementedError

    async def _image_data_url(self, prompt: str, aspect_ratio: str) -> str | None:
        raise NotImplementedError

    async def _fetch_models(self) -> list[AvailableModel]:
        raise NotImplementedError

    def _is_auth_failure(self, exc: ProviderRequestError) -> bool:
        return exc.status_code in (401, 403)

    # --- shared behaviour -----------------------------------------------------

    @property
    def model_id(self) -> str:
        if not self.config.model_id:
            raise EndpointError(
                f"Backend '{self.config.display_name or self.config.id}' has no model id."
            )
        return self.config.model_id

    def update_config(self, config: BackendConfig) -> None:
        """Adopt a new model id or endpoint for the same credential."""
        self.config = config

    async def aclose(self) -> None:
        await self.transport.aclose()

    def translate_error(self, exc: Exception) -> ArcloomError:
        """Map any failure onto the user-facing error taxonomy."""
        if isinstance(exc, RepairFailure):
            return TransportError(exc.detail)
        if isinstance(exc, ArcloomError):
            return exc
        if isinstance(exc, ProviderRequestError):
            detail = f"{self.provider.value} HTTP {exc.status_code}: {exc.body[:200]}"
            if self._is_auth_failure(exc):
                return AuthError(detail)
            if exc.status_code == 404:
                return EndpointError(detail)
            return TransportError(detail)
        return TransportError(f"{type(exc).__name__}: {exc}")

    def _parse_mapping(self, raw_text: str) -> dict[str, Any]:
        parsed = repair_json(raw_text)
        if not isinstance(parsed, dict):
            raise RepairFailure(
                raw_text[: settings.REPAIR_PREVIEW_CHARS],
                ValueError(f"expected a JSON object, got {type(parsed).__name__}"),
                settings.REPAIR_SAFE_MODE,
            )
        return parsed

    async def generate_step(
        self,
        player_input: str,
        current_state: dict[str, Any],
        callbacks: StreamingCallbacks,
    ) -> None:
        """Stream the next narrative turn into ``callbacks``."""
        buffer = ""
        narrative = ""
        narrative_closed = False
        try:
            setup = GameSetupOptions.model_validate(current_state.get("setup") or {})
            state = strip_runtime_fields(current_state)
            async for fragment in self._stream_step(player_input, state, setup):
                buffer += fragment
                if not narrative_closed:
                    narrative, narrative_closed = extract_field_state(buffer)
                await invoke_callback(callbacks.on_chunk, narrative)
            response = StepResponse.model_validate(self._parse_mapping(buffer))
        except Exception as exc:
            error = self.translate_error(exc)
            logger.error(
                "Narrator fell into chaos.",
                provider=self.provider.value,
                model_id=self.config.model_id,
                error=error.describe(detailed=True),
                received_chars=len(buffer),
            )
            await invoke_callback(callbacks.on_error, error)
            return
        await invoke_callback(callbacks.on_complete, response)

    async def run_world_step(
        self, step: WorldStep, setup: GameSetupOptions, context: dict[str, Any]
    ) -> dict[str, Any]:
        """Run one world pipeline step and return its repaired JSON object."""
        try:
            raw_text = await self._world_step_text(step, setup, context)
            if not raw_text.strip():
                raise TransportError(f"Empty response for world step '{step.value}'.")
            return self._parse_mapping(raw_text)
        except Exception as exc:
            error = self.translate_error(exc)
            if error is exc:
                raise
            raise error from exc

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
        """Return a ``data:`` URL for the generated image, or ``None`` on failure."""
        if not self.config.model_id:
            logger.error(
                "Image generation backend has no model id.", backend_id=self.config.id
            )
            return None
        try:
            return await self._image_data_url(prompt, aspect_ratio)
        except Exception as exc:
            logger.error(
                "Error generating image.",
                provider=self.provider.value,
                model_id=self.config.model_id,
                error=self.translate_error(exc).describe(detailed=True),
            )
            return None

    async def list_available_models(self) -> list[AvailableModel]:
        """Models usable for this backend's generation kind, cached per adapter."""
        return await self._cached_models()

    def clear_model_cache(self) -> None:
        self._cached_models.cache_clear()

    async def _list_models_uncached(self) -> list[AvailableModel]:
        try:
            return await self._fetch_models()
        except Exception as exc:
            error = self.translate_error(exc)
            logger.error(
                "Failed to fetch available models.",
                provider=self.provider.value,
                error=error.describe(detailed=True),
            )
            if error is exc:
                raise
            raise error from exc
