"""
Chunked generation.

Splits an oversized prompt on line boundaries, calls the backend once per
segment in order, and merges the ordered results into one result.
"""

import logging
import time
from typing import Callable, List, Sequence

from ..config.loader import ChunkingConfig
from ..sdk.base import BackendAdapter, GenerationRequest, GenerationResult
from .errors import MergeError
from .token_counter import ZERO_USAGE

logger = logging.getLogger(__name__)

SEGMENT_SEPARATOR = "\n\n"


def split_prompt(text: str, chunk_size: int) -> List[str]:
    """Greedily pack non-empty lines into segments of at most chunk_size.

    A single line longer than chunk_size becomes its own segment; lines
    are never dropped or split.

    Args:
        text: Prompt text
        chunk_size: Character budget per segment

    Returns:
        Ordered list of segments, at least one
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")

    lines = [line for line in text.splitlines() if line.strip()]
    segments: List[str] = []
    current = ""

    for line in lines:
        candidate = f"{current}\n{line}" if current else line
        if current and len(candidate) > chunk_size:
            segments.append(current)
            current = line
        else:
            current = candidate

    if current:
        segments.append(current)

    return segments or [text]


def merge_results(results: Sequence[GenerationResult]) -> GenerationResult:
    """Concatenate ordered segment results and sum their usage.

    Provider and model come from the first segment.
    """
    if not results:
        raise ValueError("results is required and cannot be empty")

    usage = ZERO_USAGE
    for result in results:
        usage = usage + result.usage

    first = results[0]
    return GenerationResult(
        content=SEGMENT_SEPARATOR.join(r.content for r in results),
        usage=usage,
        provider_id=first.provider_id,
        model_id=first.model_id,
        is_free_tier=all(r.is_free_tier for r in results),
    )


class ChunkedGenerator:
    """Runs a prompt through one adapter, chunking when it is too long.

    Segments are sent sequentially to respect provider rate limits and
    keep merge order. Any segment failure fails the whole generation.
    """

    def __init__(
        self,
        config: ChunkingConfig = ChunkingConfig(),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config
        self._sleep = sleep

    def generate(self, adapter: BackendAdapter, text: str) -> GenerationResult:
        """Generate a result for text, chunking above the threshold.

        Raises:
            ValueError: If text is empty
            MergeError: If any segment of a chunked generation fails
            BackendCallError: If a single, unchunked call fails
        """
        text = GenerationRequest(text).text

        if len(text) <= self._config.threshold:
            return adapter.call(text)

        segments = split_prompt(text, self._config.chunk_size)
        logger.info("Prompt too long (%d chars), splitting into %d segments", len(text), len(segments))

        results: List[GenerationResult] = []
        for index, segment in enumerate(segments):
            logger.info("Processing segment %d/%d", index + 1, len(segments))
            try:
                results.append(adapter.call(segment))
            except Exception as e:
                raise MergeError(
                    f"Segment {index + 1}/{len(segments)} failed: {e}",
                    segment_index=index,
                    segment_count=len(segments),
                ) from e

            if index < len(segments) - 1:
                self._sleep(self._config.inter_call_delay)

        return merge_results(results)
