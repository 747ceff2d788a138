"""
End-to-end tests for the market brief pipeline.

All collaborators are in memory; no network or sleeping.
"""

import os
import tempfile
from datetime import date
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest

from fakes import FakeAdapter, FakeLedger

from market_brief.config.loader import AppConfig, LedgerConfig, ProviderConfig, RecoveryConfig
from market_brief.core.chunking import ChunkedGenerator
from market_brief.core.errors import MergeError
from market_brief.core.orchestrator import (
    MAX_HEADLINES,
    OFFLINE_NOTICE,
    Orchestrator,
    build_prompt,
)
from market_brief.core.recovery import RecoveryEngine
from market_brief.core.selector import BudgetGatedSelector
from market_brief.sdk.base import AdapterRole
from market_brief.sources.news import NewsItem


def _item(n: int, source: str = "wsj_markets") -> NewsItem:
    return NewsItem(
        title=f"Headline {n}",
        description="",
        link=f"https://news.test/{n}",
        published_at="",
        source=source,
    )


class TestBuildPrompt:
    """Test prompt composition."""

    def test_includes_date_headlines_and_assets(self):
        prompt = build_prompt("AAPL 10 shares\nBTC 0.5", [_item(1), _item(2)], date(2024, 3, 15))

        assert prompt.startswith("Today: March 15, 2024")
        assert "- Headline 1 - https://news.test/1" in prompt
        assert "AAPL 10 shares\nBTC 0.5" in prompt
        assert OFFLINE_NOTICE not in prompt

    def test_headlines_are_capped(self):
        prompt = build_prompt("AAPL", [_item(n) for n in range(20)], date(2024, 3, 15))

        assert prompt.count("https://news.test/") == MAX_HEADLINES

    def test_fallback_items_replaced_by_offline_notice(self):
        placeholder = NewsItem("Recovery", "", "#fallback", "", "Auto Recovery System", is_fallback=True)

        prompt = build_prompt("AAPL", [placeholder], date(2024, 3, 15))

        assert OFFLINE_NOTICE in prompt
        assert "#fallback" not in prompt


class TestOrchestrator:
    """Test one orchestrated run."""

    def setup_method(self):
        """Set up in-memory collaborators."""
        self.primary = FakeAdapter("openai", model="gpt-4", role=AdapterRole.PRIMARY_PAID)
        self.secondary = FakeAdapter("gemini", model="gemini-2.5-pro", role=AdapterRole.SECONDARY_PAID)
        self.ledger = FakeLedger()
        self.fetcher = Mock(side_effect=lambda source: [_item(1, source)])
        self.recovery = RecoveryEngine(
            self.fetcher,
            RecoveryConfig(),
            sleep=lambda seconds: None,
            jitter=lambda low, high: 0.0,
        )

    def _orchestrator(self, chunking_sleep=None) -> Orchestrator:
        selector = BudgetGatedSelector([self.primary, self.secondary], self.secondary, self.ledger)
        return Orchestrator(
            selector=selector,
            generator=ChunkedGenerator(sleep=chunking_sleep or (lambda seconds: None)),
            ledger=self.ledger,
            recovery=self.recovery,
            feeds=["wsj_markets", "bbc_business"],
            monthly_cost_limit=Decimal("100"),
            today=lambda: date(2024, 3, 15),
        )

    def test_paid_run_records_usage(self):
        report = self._orchestrator().run("AAPL 10 shares")

        assert report.result.provider_id == "openai"
        assert "available" in report.selection_reason
        assert report.news_is_fallback is False
        assert [i.source for i in report.news] == ["wsj_markets", "bbc_business"]
        assert report.prompt_chars == len(self.primary.prompts[0])
        assert "https://news.test/1" in self.primary.prompts[0]
        usage = report.result.usage
        assert self.ledger.recorded == [
            ("openai", "gpt-4", usage.input_tokens, usage.output_tokens, Decimal("35"))
        ]

    def test_news_failure_uses_fallback_payload(self):
        self.fetcher.side_effect = ValueError("Invalid feed XML")

        report = self._orchestrator().run("AAPL 10 shares")

        assert report.news_is_fallback is True
        assert all(item.is_fallback for item in report.news)
        assert OFFLINE_NOTICE in self.primary.prompts[0]

    def test_saturated_feed_is_skipped(self):
        for _ in range(5):
            self.recovery.tracker.record("wsj_markets")

        report = self._orchestrator().run("AAPL")

        self.fetcher.assert_called_once_with("bbc_business")
        assert [i.source for i in report.news] == ["bbc_business"]

    def test_without_recovery_engine_news_is_fallback(self):
        orchestrator = self._orchestrator()
        orchestrator.recovery = None

        report = orchestrator.run("AAPL")

        assert report.news_is_fallback is True

    def test_over_budget_run_is_free_and_unrecorded(self):
        self.ledger.over_budget = True

        report = self._orchestrator().run("AAPL")

        assert report.result.provider_id == "gemini"
        assert report.result.is_free_tier is True
        assert "over budget" in report.selection_reason
        assert self.ledger.recorded == []
        assert self.primary.prompts == []

    def test_explicit_limit_overrides_default(self):
        ledger = Mock(wraps=self.ledger)
        orchestrator = self._orchestrator()
        orchestrator.selector = BudgetGatedSelector([self.primary, self.secondary], self.secondary, ledger)

        orchestrator.run("AAPL", monthly_cost_limit=Decimal("5"))

        ledger.check_budget.assert_called_once_with(Decimal("5"))

    def test_long_input_is_chunked_and_recorded_once(self):
        delays = []
        asset_text = "\n".join(f"ASSET{i:04d} " + "x" * 90 for i in range(100))

        report = self._orchestrator(chunking_sleep=delays.append).run(asset_text)

        assert len(self.primary.prompts) >= 3
        assert len(delays) == len(self.primary.prompts) - 1
        assert len(self.ledger.recorded) == 1
        assert self.ledger.recorded[0][2] == report.result.usage.input_tokens
        assert report.result.content.count("\n\n") == len(self.primary.prompts) - 1

    def test_merge_error_propagates(self):
        self.primary = FakeAdapter("openai", role=AdapterRole.PRIMARY_PAID, fail_on=1)
        asset_text = "\n".join("y" * 100 for _ in range(100))

        with pytest.raises(MergeError):
            self._orchestrator().run(asset_text)
        assert self.ledger.recorded == []

    def test_empty_assets_rejected(self):
        with pytest.raises(ValueError, match="asset_text is required"):
            self._orchestrator().run("  ")

    def test_cost_summary_delegates(self):
        self.ledger.cost_summary = Mock(return_value="summary")

        assert self._orchestrator().cost_summary() == "summary"


class TestFromConfig:
    """Test default wiring."""

    def setup_method(self):
        """Set up temp ledger location."""
        self.temp_dir = tempfile.mkdtemp()
        self.config = AppConfig(
            openai=ProviderConfig(api_key="disabled", model="gpt-4"),
            gemini=ProviderConfig(api_key="free", model="gemini-2.5-flash"),
            ledger=LedgerConfig(db_path=os.path.join(self.temp_dir, "ledger.db")),
        )

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    @patch('market_brief.sdk.gemini_client.genai')
    @patch('market_brief.sdk.openai_client.OpenAI')
    def test_wiring_with_news(self, mock_openai_class, mock_genai):
        orchestrator = Orchestrator.from_config(self.config)

        assert orchestrator.recovery is not None
        assert orchestrator.feeds == list(self.config.recovery.feeds)
        assert orchestrator.selector.fallback.provider_id == "gemini"
        assert orchestrator.monthly_cost_limit == Decimal("100")
        assert os.path.exists(self.config.ledger.db_path)

    @patch('market_brief.sdk.gemini_client.genai')
    @patch('market_brief.sdk.openai_client.OpenAI')
    def test_offline_run_without_news(self, mock_openai_class, mock_genai):
        """Free Gemini without a key answers offline and records nothing."""
        orchestrator = Orchestrator.from_config(self.config, include_news=False)

        report = orchestrator.run("AAPL 10 shares")

        assert orchestrator.recovery is None
        assert report.news_is_fallback is True
        assert report.result.is_free_tier is True
        assert "offline mode" in report.result.content
        assert orchestrator.cost_summary().month_sessions == 0
        mock_openai_class.assert_not_called()
