"""
Ordered fallback strategies.

A cascade of interchangeable ways to produce a value, tried in order
with early exit on the first success.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Generic, List, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StrategiesExhausted(Exception):
    """Raised when every strategy in a chain failed."""

    def __init__(self, message: str, errors: List[Tuple[str, Exception]]):
        super().__init__(message)
        self.errors = errors


@dataclass(frozen=True)
class Strategy(Generic[T]):
    """One named way of producing a value."""
    name: str
    run: Callable[[], T]


class StrategyChain(Generic[T]):
    """Tries strategies in order and returns the first success."""

    def __init__(self, strategies: Sequence[Strategy[T]]):
        if not strategies:
            raise ValueError("strategies is required and cannot be empty")
        self._strategies = list(strategies)

    @property
    def names(self) -> List[str]:
        return [s.name for s in self._strategies]

    def run(self) -> Tuple[str, T]:
        """Run strategies in order.

        Returns:
            Name of the winning strategy and its value

        Raises:
            StrategiesExhausted: If every strategy raised
        """
        errors: List[Tuple[str, Exception]] = []
        for strategy in self._strategies:
            try:
                return strategy.name, strategy.run()
            except Exception as e:
                logger.debug("Strategy %s failed: %s", strategy.name, e)
                errors.append((strategy.name, e))

        tried = ", ".join(self.names)
        raise StrategiesExhausted(f"All strategies failed ({tried})", errors)
