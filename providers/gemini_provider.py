# providers/gemini_provider.py
"""Adapter for the Google Generative Language API."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import structlog

from config import settings
from core.errors import TransportError
from core.transport import GeminiTransport, HttpTransport, ProviderRequestError
from models import (
    AvailableModel,
    BackendConfig,
    BackendProvider,
    GameSetupOptions,
    GenerationKind,
    WorldStep,
)

from .base import ProviderAdapter
from .catalog import narrative_response_schema

logger = structlog.get_logger(__name__)


def model_path(model_id: str) -> str:
    """``models/<id>`` regardless of whether ``model_id`` carries the prefix."""
    return f"models/{model_id.removeprefix('models/')}"


def _response_text(data: dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts)


class GeminiAdapter(ProviderAdapter):
    """Gemini content generation with ``responseSchema`` constrained JSON."""

    provider = BackendProvider.GOOGLE

    def _build_transport(self, config: BackendConfig) -> HttpTransport:
        return GeminiTransport(config.secret, config.endpoint)

    def _is_auth_failure(self, exc: ProviderRequestError) -> bool:
        return super()._is_auth_failure(exc) or "API_KEY_INVALID" in exc.body

    async def _stream_step(
        self, player_input: str, state: dict[str, Any], setup: GameSetupOptions
    ) -> AsyncIterator[str]:
        world = state.get("world") or {}
        payload = {
            "systemInstruction": {
                "parts": [{"text": self.catalog.narrator_instructions(setup)}]
            },
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": self.catalog.narrative_turn(player_input, state)}
                    ],
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": narrative_response_schema(
                    world.get("playerStatsSchema")
                ),
                "temperature": settings.TEMPERATURE_NARRATIVE,
            },
        }
        path = f"{model_path(self.model_id)}:streamGenerateContent?alt=sse"
        async for fragment in self.transport.stream_request(path, payload):
            yield fragment

    async def _world_step_text(
        self, step: WorldStep, setup: GameSetupOptions, context: dict[str, Any]
    ) -> str:
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": self.catalog.world_step_prompt(step, setup, context)}
                    ],
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": self.catalog.world_step_schema(step),
                "temperature": settings.TEMPERATURE_WORLD_GENERATION,
            },
        }
        data = await self.transport.send_request(
            f"{model_path(self.model_id)}:generateContent", payload
        )
        text = _response_text(data)
        if not text:
            raise TransportError(
                f"Gemini response for step '{step.value}' had no candidates."
            )
        return text

    async def _image_data_url(self, prompt: str, aspect_ratio: str) -> str | None:
        payload = {
            "instances": [{"prompt": prompt}],
            "parameters": {
                "sampleCount": 1,
                "aspectRatio": aspect_ratio,
                "outputMimeType": "image/jpeg",
            },
        }
        data = await self.transport.send_request(
            f"{model_path(self.model_id)}:predict", payload
        )
        predictions = data.get("predictions") or []
        image_bytes = predictions[0].get("bytesBase64Encoded") if predictions else None
        if not image_bytes:
            logger.warning("Gemini image response carried no image data.")
            return None
        return f"data:image/jpeg;base64,{image_bytes}"

    async def _fetch_models(self) -> list[AvailableModel]:
        data = await self.transport.send_request("models?pageSize=100")
        action = (
            "predict"
            if self.config.generation_kind is GenerationKind.IMAGE
            else "generateContent"
        )
        models = [
            AvailableModel(
                id=entry["name"], display_name=entry.get("displayName") or entry["name"]
            )
            for entry in data.get("models") or []
            if entry.get("name") and action in (entry.get("supportedGenerationMethods") or [])
        ]
        models.sort(key=lambda model: model.display_name)
        return models
