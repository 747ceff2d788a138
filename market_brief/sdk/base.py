"""
Backend adapter contract.

The selector, the chunk/merge protocol and the orchestrator only talk to
this interface; they never import a provider SDK directly.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from ..core.token_counter import TokenUsage


class AdapterRole(Enum):
    """Position of an adapter in the selection order."""
    PRIMARY_PAID = 1
    SECONDARY_PAID = 2
    FREE_FALLBACK = 3


class DegradationState(Enum):
    """Billing mode of an adapter. Only ever moves PAID -> FORCED_FREE."""
    PAID = "paid"
    FREE = "free"  # configured free from the start
    FORCED_FREE = "forced_free"


@dataclass(frozen=True)
class GenerationRequest:
    """Prompt text for one generation. Never empty."""
    text: str

    def __post_init__(self):
        if not self.text or not self.text.strip():
            raise ValueError("text is required and cannot be empty")


@dataclass(frozen=True)
class GenerationResult:
    """Output of one generation call, or of a merged chunked generation."""
    content: str
    usage: TokenUsage
    provider_id: str
    model_id: str
    is_free_tier: bool = False


class BackendAdapter(ABC):
    """Uniform wrapper around one generation backend.

    Constructed once at process start. The only runtime mutation is the
    one-way switch to free tier through force_free_tier().
    """

    def __init__(self, role: AdapterRole, free_tier: bool = False):
        self.role = role
        self._state = DegradationState.FREE if free_tier else DegradationState.PAID
        self._state_lock = threading.Lock()

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Provider identifier, matching the ledger's pricing keys."""

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Model currently used for calls."""

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Whether the adapter holds usable credentials."""

    @abstractmethod
    def call(self, prompt_text: str) -> GenerationResult:
        """Send one prompt and return content plus usage.

        Raises:
            BackendCallError: On any provider failure
            ConfigurationError: If the adapter has no usable credentials
        """

    @property
    def degradation_state(self) -> DegradationState:
        return self._state

    @property
    def free_tier(self) -> bool:
        return self._state is not DegradationState.PAID

    def force_free_tier(self) -> bool:
        """Switch this adapter to free tier for the rest of the process.

        Idempotent: returns True only on the call that flipped the state.
        """
        with self._state_lock:
            if self._state is not DegradationState.PAID:
                return False
            self._state = DegradationState.FORCED_FREE
            return True

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(provider={self.provider_id!r}, model={self.model_id!r}, "
            f"role={self.role.name}, state={self._state.name})"
        )
