"""
OpenAI backend adapter.

Sends one prompt through chat completions and reports usage. Ledger
recording is left to the orchestrator so chunked calls are recorded once.
"""

import logging
from typing import Optional

import openai
from openai import OpenAI

from ..config.loader import ProviderConfig
from ..core.errors import BackendCallError, ConfigurationError
from ..core.token_counter import TokenUsage
from .base import AdapterRole, BackendAdapter, GenerationResult

logger = logging.getLogger(__name__)

_DISABLED_KEYS = {"", "disabled"}
# Service-account keys cannot call chat completions
_UNSUPPORTED_KEY_PREFIX = "sk-svcac"


def is_usable_openai_key(api_key: Optional[str]) -> bool:
    """Whether an OpenAI key can be used for chat completions."""
    if not api_key or api_key in _DISABLED_KEYS:
        return False
    return not api_key.startswith(_UNSUPPORTED_KEY_PREFIX)


class OpenAIAdapter(BackendAdapter):
    """Primary paid adapter over the OpenAI SDK."""

    def __init__(self, config: ProviderConfig, role: AdapterRole = AdapterRole.PRIMARY_PAID):
        """Initialize the adapter.

        Args:
            config: Provider credentials and call settings
            role: Selection role, primary by default

        Raises:
            ValueError: If model is missing/empty
        """
        if not config.model or not config.model.strip():
            raise ValueError("model is required and cannot be empty")
        super().__init__(role=role)
        self._config = config
        self._enabled = is_usable_openai_key(config.api_key)
        self.client = (
            OpenAI(api_key=config.api_key, timeout=config.timeout_seconds)
            if self._enabled else None
        )

    @property
    def provider_id(self) -> str:
        return "openai"

    @property
    def model_id(self) -> str:
        return self._config.model

    @property
    def enabled(self) -> bool:
        return self._enabled

    def call(self, prompt_text: str) -> GenerationResult:
        if not self._enabled:
            raise ConfigurationError("OpenAI API key is disabled")
        if not prompt_text:
            raise ValueError("prompt_text is required and cannot be empty")

        logger.info("Calling OpenAI (%s)", self.model_id)
        try:
            response = self.client.chat.completions.create(
                model=self.model_id,
                messages=[{"role": "user", "content": prompt_text}],
                max_tokens=self._config.max_output_tokens,
                temperature=self._config.temperature,
            )
        except openai.APIStatusError as e:
            raise BackendCallError(
                f"OpenAI API Error: {e.message}",
                provider_id=self.provider_id,
                status_code=e.status_code,
                error_code=getattr(e, "code", None),
            ) from e
        except openai.APITimeoutError as e:
            raise BackendCallError(
                f"OpenAI API Error: request timeout: {e}",
                provider_id=self.provider_id,
                error_code="ETIMEDOUT",
            ) from e
        except openai.OpenAIError as e:
            raise BackendCallError(
                f"OpenAI API Error: {e}", provider_id=self.provider_id
            ) from e

        usage = response.usage
        if not usage:
            raise BackendCallError(
                "OpenAI response missing usage information", provider_id=self.provider_id
            )
        if not response.choices:
            raise BackendCallError(
                "OpenAI response contained no choices", provider_id=self.provider_id
            )

        logger.info(
            "OpenAI responded (input: %d, output: %d)",
            usage.prompt_tokens, usage.completion_tokens,
        )
        return GenerationResult(
            content=response.choices[0].message.content or "",
            usage=TokenUsage(
                input_tokens=usage.prompt_tokens,
                output_tokens=usage.completion_tokens,
            ),
            provider_id=self.provider_id,
            model_id=self.model_id,
            is_free_tier=self.free_tier,
        )
