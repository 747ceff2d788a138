"""
Adapter construction from configuration.
"""

from dataclasses import dataclass
from typing import List

from ..config.loader import AppConfig
from .base import AdapterRole, BackendAdapter
from .gemini_client import GeminiAdapter
from .openai_client import OpenAIAdapter


@dataclass(frozen=True)
class AdapterSet:
    """Adapters in priority order plus the designated free fallback."""
    prioritized: List[BackendAdapter]
    fallback: BackendAdapter


def build_adapters(config: AppConfig) -> AdapterSet:
    """Construct every adapter once, at process start.

    Gemini is both the secondary paid backend and the fallback, so the
    free-tier switch lands on the same object the selector may return.
    """
    primary = OpenAIAdapter(config.openai, role=AdapterRole.PRIMARY_PAID)
    secondary = GeminiAdapter(config.gemini, role=AdapterRole.SECONDARY_PAID)
    return AdapterSet(prioritized=[primary, secondary], fallback=secondary)
