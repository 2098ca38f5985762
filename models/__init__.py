"""Central package for Arcloom data models."""

from .backend_models import (
    AnyBackendConfig,
    BackendConfig,
    BackendPoolConfig,
    BackendProvider,
    GenerationKind,
    dump_backend_list,
    is_backend_pool,
    parse_backend_config,
    parse_backend_list,
)
from .narrative_models import (
    AvailableModel,
    NarrativeBlock,
    PlayerChoice,
    StepResponse,
)
from .world_models import (
    FACTION_LORE_TYPES,
    HISTORY_LORE_TYPES,
    Companion,
    GameSetupOptions,
    LoreType,
    MainQuest,
    StatDefinition,
    WorldDocument,
    WorldLoreItem,
    WorldStep,
)

__all__ = [
    "AnyBackendConfig",
    "BackendConfig",
    "BackendPoolConfig",
    "BackendProvider",
    "GenerationKind",
    "dump_backend_list",
    "is_backend_pool",
    "parse_backend_config",
    "parse_backend_list",
    "AvailableModel",
    "NarrativeBlock",
    "PlayerChoice",
    "StepResponse",
    "FACTION_LORE_TYPES",
    "HISTORY_LORE_TYPES",
    "Companion",
    "GameSetupOptions",
    "LoreType",
    "MainQuest",
    "StatDefinition",
    "WorldDocument",
    "WorldLoreItem",
    "WorldStep",
]
