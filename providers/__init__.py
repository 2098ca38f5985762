"""Provider adapters, the service factory and pooled credential rotation."""

from .base import ProviderAdapter, StreamingCallbacks, strip_runtime_fields
from .catalog import PromptCatalog, narrative_response_schema
from .factory import ADAPTER_REGISTRY, ServiceCache, ServiceFactory
from .gemini_provider import GeminiAdapter
from .openai_provider import OpenAIAdapter
from .rotating import RotatingPoolService

__all__ = [
    "ADAPTER_REGISTRY",
    "GeminiAdapter",
    "OpenAIAdapter",
    "PromptCatalog",
    "ProviderAdapter",
    "RotatingPoolService",
    "ServiceCache",
    "ServiceFactory",
    "StreamingCallbacks",
    "narrative_response_schema",
    "strip_runtime_fields",
]
