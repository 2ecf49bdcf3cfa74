from .base import (
    GenerateCommand,
    GenerationResult,
    ImageCommand,
    ImageResult,
    ProviderAdapter,
    UpstreamError,
)
from .gemini import GeminiAdapter
from .openai_compat import deepseek_adapter, openai_adapter
from .registry import get_adapter, register_adapter, registered_adapters
from .stability import StabilityAdapter

register_adapter(GeminiAdapter())
register_adapter(openai_adapter())
register_adapter(deepseek_adapter())
register_adapter(StabilityAdapter())

__all__ = [
    "GenerateCommand",
    "GenerationResult",
    "ImageCommand",
    "ImageResult",
    "ProviderAdapter",
    "UpstreamError",
    "get_adapter",
    "register_adapter",
    "registered_adapters",
]
