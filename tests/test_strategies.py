"""
Unit tests for ordered fallback strategies.
"""

import pytest

from market_brief.core.strategies import StrategiesExhausted, Strategy, StrategyChain


def _fail(message: str):
    def run():
        raise RuntimeError(message)
    return run


class TestStrategyChain:
    """Test cascade ordering and early exit."""

    def test_first_success_wins(self):
        calls = []

        def second():
            calls.append("second")
            return 2

        chain = StrategyChain([
            Strategy("first", _fail("down")),
            Strategy("second", second),
            Strategy("third", lambda: calls.append("third") or 3),
        ])

        assert chain.run() == ("second", 2)
        assert calls == ["second"]

    def test_exhausted_collects_errors(self):
        chain = StrategyChain([Strategy("a", _fail("one")), Strategy("b", _fail("two"))])

        with pytest.raises(StrategiesExhausted, match=r"All strategies failed \(a, b\)") as exc_info:
            chain.run()

        assert [name for name, _ in exc_info.value.errors] == ["a", "b"]
        assert str(exc_info.value.errors[1][1]) == "two"

    def test_empty_chain_rejected(self):
        with pytest.raises(ValueError):
            StrategyChain([])

    def test_names(self):
        chain = StrategyChain([Strategy("crypto", lambda: 1), Strategy("stock", lambda: 2)])
        assert chain.names == ["crypto", "stock"]
