"""
Gemini backend adapter.

Serves both as the secondary paid backend and as the designated free
fallback: once in free tier it uses the provider's free model, or an
offline placeholder when no real key is configured.
"""

import logging
from typing import Dict, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from ..config.loader import ProviderConfig
from ..core.errors import BackendCallError, ConfigurationError
from ..core.token_counter import TokenUsage, estimate_tokens
from .base import AdapterRole, BackendAdapter, GenerationResult

logger = logging.getLogger(__name__)

FREE_KEY = "free"

EMPTY_RESPONSE_TEXT = (
    "The AI service could not produce content right now. Please try again later."
)

OFFLINE_REPORT_TEXT = """\
Market brief (offline mode)

No generation backend is available within the current budget, so this
report contains no live analysis. Headlines and prices gathered for
this run are unchanged; configure a provider key or raise the monthly
limit to receive a full analysis.
"""


class GeminiAdapter(BackendAdapter):
    """Secondary paid adapter over google-generativeai, and free fallback."""

    def __init__(self, config: ProviderConfig, role: AdapterRole = AdapterRole.SECONDARY_PAID):
        if not config.model or not config.model.strip():
            raise ValueError("model is required and cannot be empty")
        api_key = config.api_key or ""
        super().__init__(role=role, free_tier=(api_key == FREE_KEY))
        self._config = config
        self._enabled = bool(api_key) and api_key != FREE_KEY
        self._models: Dict[str, "genai.GenerativeModel"] = {}
        if self._enabled:
            genai.configure(api_key=api_key)

    @property
    def provider_id(self) -> str:
        return "gemini"

    @property
    def model_id(self) -> str:
        if self.free_tier and self._config.free_model:
            return self._config.free_model
        return self._config.model

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def offline(self) -> bool:
        """Free tier without a key: answers locally, without network."""
        return self.free_tier and not self._enabled

    def call(self, prompt_text: str) -> GenerationResult:
        if not prompt_text:
            raise ValueError("prompt_text is required and cannot be empty")
        if self.offline:
            return self._offline_result(prompt_text)
        if not self._enabled:
            raise ConfigurationError("Gemini API key is not configured")

        model_name = self.model_id
        logger.info("Calling Gemini (%s)", model_name)
        try:
            response = self._model(model_name).generate_content(
                prompt_text,
                request_options={"timeout": self._config.timeout_seconds},
            )
        except google_exceptions.DeadlineExceeded as e:
            raise BackendCallError(
                f"Gemini API Error: request timeout: {e.message}",
                provider_id=self.provider_id,
                status_code=e.code,
                error_code="ETIMEDOUT",
            ) from e
        except google_exceptions.GoogleAPICallError as e:
            raise BackendCallError(
                f"Gemini API Error: {e.message}",
                provider_id=self.provider_id,
                status_code=e.code,
            ) from e
        except google_exceptions.GoogleAPIError as e:
            raise BackendCallError(
                f"Gemini API Error: {e}", provider_id=self.provider_id
            ) from e

        content = self._extract_text(response)
        if content is None:
            return self._result(EMPTY_RESPONSE_TEXT, TokenUsage(0, 0), model_name)

        usage = self._usage(response, prompt_text, content)
        logger.info(
            "Gemini responded (input: %d, output: %d)",
            usage.input_tokens, usage.output_tokens,
        )
        return self._result(content, usage, model_name)

    def _model(self, name: str) -> "genai.GenerativeModel":
        if name not in self._models:
            self._models[name] = genai.GenerativeModel(
                model_name=name,
                generation_config=genai.GenerationConfig(
                    max_output_tokens=self._config.max_output_tokens,
                    temperature=self._config.temperature,
                    candidate_count=1,
                ),
            )
        return self._models[name]

    def _extract_text(self, response) -> Optional[str]:
        """Return candidate text, None for an empty answer.

        Raises BackendCallError for blocked content and truncated answers,
        which would fail the same way on retry.
        """
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            feedback = getattr(response, "prompt_feedback", None)
            block_reason = getattr(feedback, "block_reason", None)
            if block_reason:
                raise BackendCallError(
                    f"Gemini blocked content: {_enum_name(block_reason)}",
                    provider_id=self.provider_id,
                )
            logger.warning("Gemini returned no candidates")
            return None

        candidate = candidates[0]
        parts = getattr(getattr(candidate, "content", None), "parts", None) or []
        text = getattr(parts[0], "text", "") if parts else ""
        if text and text.strip():
            return text

        finish_reason = _enum_name(getattr(candidate, "finish_reason", None))
        logger.warning("Gemini returned empty content (finish reason: %s)", finish_reason)
        if finish_reason == "SAFETY":
            raise BackendCallError(
                "Content blocked by Gemini safety filters", provider_id=self.provider_id
            )
        if finish_reason == "MAX_TOKENS":
            raise BackendCallError(
                "Response truncated due to max tokens limit", provider_id=self.provider_id
            )
        return None

    def _usage(self, response, prompt_text: str, content: str) -> TokenUsage:
        metadata = getattr(response, "usage_metadata", None)
        input_tokens = getattr(metadata, "prompt_token_count", None)
        output_tokens = getattr(metadata, "candidates_token_count", None)
        if isinstance(input_tokens, int) and isinstance(output_tokens, int):
            return TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens)
        # Counts are not always reported; fall back to an estimate
        return TokenUsage(
            input_tokens=estimate_tokens(prompt_text),
            output_tokens=estimate_tokens(content),
        )

    def _offline_result(self, prompt_text: str) -> GenerationResult:
        logger.info("Gemini free tier without key, answering offline")
        content = OFFLINE_REPORT_TEXT.strip()
        usage = TokenUsage(
            input_tokens=estimate_tokens(prompt_text),
            output_tokens=estimate_tokens(content),
        )
        return self._result(content, usage, self.model_id)

    def _result(self, content: str, usage: TokenUsage, model_name: str) -> GenerationResult:
        return GenerationResult(
            content=content,
            usage=usage,
            provider_id=self.provider_id,
            model_id=model_name,
            is_free_tier=self.free_tier,
        )


def _enum_name(value) -> str:
    if value is None:
        return ""
    return getattr(value, "name", str(value))
