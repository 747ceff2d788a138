"""
Generation backend adapters for Market Brief.

Provides a uniform call interface over each text-generation provider.
"""

from .base import (
    AdapterRole,
    BackendAdapter,
    DegradationState,
    GenerationRequest,
    GenerationResult,
)
from .factory import AdapterSet, build_adapters
from .gemini_client import GeminiAdapter
from .openai_client import OpenAIAdapter

__all__ = [
    "AdapterRole",
    "AdapterSet",
    "BackendAdapter",
    "DegradationState",
    "GeminiAdapter",
    "GenerationRequest",
    "GenerationResult",
    "OpenAIAdapter",
    "build_adapters",
]
