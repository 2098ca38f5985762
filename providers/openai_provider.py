# providers/openai_provider.py
"""Adapter for OpenAI and OpenAI-compatible endpoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import structlog

from config import settings
from core.errors import TransportError
from core.transport import HttpTransport, OpenAITransport
from models import (
    AvailableModel,
    BackendConfig,
    BackendProvider,
    GameSetupOptions,
    GenerationKind,
    WorldStep,
)

from .base import ProviderAdapter
from .catalog import PromptCatalog

logger = structlog.get_logger(__name__)

JSON_RESPONSE_FORMAT = {"type": "json_object"}


def _image_size(aspect_ratio: str) -> str:
    return "1792x1024" if aspect_ratio == "16:9" else "1024x1024"


class OpenAIAdapter(ProviderAdapter):
    """Chat completions in JSON mode; the response shape is spelled out in the prompt."""

    provider = BackendProvider.OPENAI

    def __init__(
        self,
        config: BackendConfig,
        transport: HttpTransport | None = None,
        catalog: PromptCatalog | None = None,
    ) -> None:
        super().__init__(config, transport, catalog or PromptCatalog(shape_hints=True))
        self._retired_transports: list[HttpTransport] = []

    def _build_transport(self, config: BackendConfig) -> HttpTransport:
        return OpenAITransport(config.secret, config.endpoint)

    def update_config(self, config: BackendConfig) -> None:
        endpoint_changed = config.endpoint != self.config.endpoint
        super().update_config(config)
        if endpoint_changed:
            logger.info(
                "OpenAI endpoint changed; rebuilding transport.",
                backend_id=config.id,
                endpoint=config.endpoint or settings.OPENAI_API_BASE,
            )
            # In-flight requests may still hold the old transport.
            self._retired_transports.append(self.transport)
            self.transport = self._build_transport(config)
            self.clear_model_cache()

    async def aclose(self) -> None:
        for transport in self._retired_transports:
            await transport.aclose()
        self._retired_transports.clear()
        await super().aclose()

    async def _stream_step(
        self, player_input: str, state: dict[str, Any], setup: GameSetupOptions
    ) -> AsyncIterator[str]:
        payload = {
            "model": self.model_id,
            "messages": [
                {"role": "system", "content": self.catalog.narrator_instructions(setup)},
                {
                    "role": "user",
                    "content": self.catalog.narrative_turn(player_input, state),
                },
            ],
            "stream": True,
            "temperature": settings.TEMPERATURE_NARRATIVE,
            "response_format": JSON_RESPONSE_FORMAT,
        }
        async for fragment in self.transport.stream_request("chat/completions", payload):
            yield fragment

    async def _world_step_text(
        self, step: WorldStep, setup: GameSetupOptions, context: dict[str, Any]
    ) -> str:
        payload = {
            "model": self.model_id,
            "messages": [
                {
                    "role": "system",
                    "content": self.catalog.world_step_prompt(step, setup, context),
                }
            ],
            "temperature": settings.TEMPERATURE_WORLD_GENERATION,
            "response_format": JSON_RESPONSE_FORMAT,
        }
        data = await self.transport.send_request("chat/completions", payload)
        choices = data.get("choices") or []
        content = (choices[0].get("message") or {}).get("content") if choices else None
        if not content:
            raise TransportError(
                f"OpenAI response for step '{step.value}' had no message content."
            )
        return content

    async def _image_data_url(self, prompt: str, aspect_ratio: str) -> str | None:
        payload = {
            "model": self.model_id,
            "prompt": f"{settings.IMAGE_STYLE_PREFIX}{prompt}",
            "n": 1,
            "size": _image_size(aspect_ratio),
            "response_format": "b64_json",
        }
        data = await self.transport.send_request("images/generations", payload)
        images = data.get("data") or []
        b64_json = images[0].get("b64_json") if images else None
        if not b64_json:
            logger.warning("OpenAI image response carried no image data.")
            return None
        return f"data:image/png;base64,{b64_json}"

    async def _fetch_models(self) -> list[AvailableModel]:
        data = await self.transport.send_request("models")
        entries = next(
            (
                candidate
                for candidate in (data.get("data"), data.get("models"))
                if isinstance(candidate, list) and candidate
            ),
            [],
        )
        model_ids = [
            str(entry.get("id") or entry.get("name"))
            for entry in entries
            if isinstance(entry, dict) and (entry.get("id") or entry.get("name"))
        ]
        if self.config.generation_kind is GenerationKind.IMAGE:
            selected = [
                model_id
                for model_id in model_ids
                if any(k in model_id for k in settings.OPENAI_IMAGE_MODEL_KEYWORDS)
            ]
        else:
            selected = [
                model_id
                for model_id in model_ids
                if any(k in model_id for k in settings.OPENAI_TEXT_MODEL_KEYWORDS)
                and not any(k in model_id for k in settings.OPENAI_NON_TEXT_MODEL_KEYWORDS)
            ]
        if not selected:
            raise TransportError("The endpoint listed no usable models.")
        # Descending so newer versions come first.
        selected.sort(reverse=True)
        return [AvailableModel(id=model_id, display_name=model_id) for model_id in selected]
