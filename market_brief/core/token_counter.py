"""
Token counting and usage tracking.

Holds exact usage reported by a backend, plus the rough estimate used
when a backend does not report counts.
"""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class TokenUsage:
    """Token usage of one generation call.

    total_tokens is derived, so total == input + output always holds.
    """
    input_tokens: int
    output_tokens: int

    def __post_init__(self):
        """Validate token counts are non-negative."""
        if self.input_tokens < 0:
            raise ValueError("input_tokens must be >= 0")
        if self.output_tokens < 0:
            raise ValueError("output_tokens must be >= 0")

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


ZERO_USAGE = TokenUsage(input_tokens=0, output_tokens=0)


def estimate_tokens(text: str) -> int:
    """Estimate tokens as one per four characters, rounded up."""
    return math.ceil(len(text) / 4)
