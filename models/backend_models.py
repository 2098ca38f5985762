# models/backend_models.py
"""Credential configurations and pools for generation backends."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class BackendProvider(str, Enum):
    GOOGLE = "google"
    OPENAI = "openai"


class GenerationKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"


class _BackendBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1)
    display_name: str = Field("", alias="name")
    provider: BackendProvider
    generation_kind: GenerationKind = Field(
        GenerationKind.TEXT, alias="generationType"
    )


class BackendConfig(_BackendBase):
    """A single credential: one secret for one provider."""

    config_type: Literal["single"] = Field("single", alias="configType")
    secret: str = Field(..., alias="apiKey")
    endpoint: str | None = None
    model_id: str | None = Field(None, alias="modelId")

    def __repr__(self) -> str:
        # Keep the secret out of logs and tracebacks.
        return (
            f"BackendConfig(id={self.id!r}, provider={self.provider.value!r}, "
            f"generation_kind={self.generation_kind.value!r}, model_id={self.model_id!r})"
        )


class BackendPoolConfig(_BackendBase):
    """An ordered set of credential ids rotated round-robin."""

    config_type: Literal["pool"] = Field("pool", alias="configType")
    backend_ids: list[str] = Field(default_factory=list, alias="backendIds")


AnyBackendConfig = Annotated[
    BackendConfig | BackendPoolConfig, Field(discriminator="config_type")
]

_any_backend_adapter: TypeAdapter[BackendConfig | BackendPoolConfig] = TypeAdapter(
    AnyBackendConfig
)
_backend_list_adapter: TypeAdapter[list[BackendConfig | BackendPoolConfig]] = (
    TypeAdapter(list[AnyBackendConfig])
)


def is_backend_pool(config: BackendConfig | BackendPoolConfig) -> bool:
    return config.config_type == "pool"


def parse_backend_config(data: dict) -> BackendConfig | BackendPoolConfig:
    """Validate one stored configuration, dispatching on ``configType``."""
    if isinstance(data, dict) and "configType" not in data and "config_type" not in data:
        # Entries written before pools existed carry no type tag.
        data = {**data, "configType": "single"}
    return _any_backend_adapter.validate_python(data)


def parse_backend_list(data: list[dict]) -> list[BackendConfig | BackendPoolConfig]:
    return [parse_backend_config(item) for item in data]


def dump_backend_list(configs: list[BackendConfig | BackendPoolConfig]) -> bytes:
    return _backend_list_adapter.dump_json(configs, by_alias=True, indent=2)
