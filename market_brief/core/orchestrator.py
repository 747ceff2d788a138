"""
Market brief generation pipeline.

Ties the recovery engine, the selector, chunked generation and the cost
ledger into one run.

Run Order:
1. Gather headlines from every unsaturated feed
2. Select an adapter under the monthly budget
3. Build the prompt
4. Generate, chunking oversized prompts
5. Record usage for paid generations
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from ..config.loader import AppConfig
from ..sdk.base import GenerationResult
from ..sdk.factory import build_adapters
from ..sources.news import NewsItem, fetch_raw
from ..storage.models import CostSummary
from ..storage.repository import CostLedger
from .chunking import ChunkedGenerator
from .prices import CachedResolver
from .recovery import RecoveryEngine, fallback_payload, is_fallback_payload
from .selector import BudgetGatedSelector

logger = logging.getLogger(__name__)

MAX_HEADLINES = 8
OFFLINE_NOTICE = "Live news is unavailable; base the analysis on general market knowledge."
INSTRUCTIONS = """Please reply with a short summary in this format:
- Key news (2-3 items) with links
- Impact on the holdings: risk 1-10, profit opportunity 1-10
- Recommendation"""


@dataclass(frozen=True)
class AnalysisReport:
    """Outcome of one orchestrated run."""
    result: GenerationResult
    selection_reason: str
    news: Tuple[NewsItem, ...]
    news_is_fallback: bool
    prompt_chars: int


def build_prompt(
    asset_text: str,
    news: Sequence[NewsItem],
    today: Optional[date] = None,
) -> str:
    """Compose the analysis prompt.

    Live headlines are listed with their links; placeholder items are
    replaced by an offline notice.
    """
    today = today or date.today()
    live = [item for item in news if not item.is_fallback][:MAX_HEADLINES]
    if live:
        headlines = "\n".join(f"- {item.title} - {item.link}" for item in live)
        news_context = f"Latest news:\n{headlines}"
    else:
        news_context = OFFLINE_NOTICE

    return (
        f"Today: {today.strftime('%B %d, %Y')}\n\n"
        f"{news_context}\n\n"
        f"Holdings:\n{asset_text.strip()}\n\n"
        f"{INSTRUCTIONS}"
    )


class Orchestrator:
    """Runs one market brief end to end."""

    def __init__(
        self,
        selector: BudgetGatedSelector,
        generator: ChunkedGenerator,
        ledger: CostLedger,
        recovery: Optional[RecoveryEngine] = None,
        feeds: Sequence[str] = (),
        monthly_cost_limit: Decimal = Decimal("100"),
        today: Callable[[], date] = date.today,
    ):
        self.selector = selector
        self.generator = generator
        self.ledger = ledger
        self.recovery = recovery
        self.feeds = list(feeds)
        self.monthly_cost_limit = monthly_cost_limit
        self._today = today

    @classmethod
    def from_config(cls, config: AppConfig, include_news: bool = True) -> "Orchestrator":
        """Wire the default collaborators from configuration."""
        resolver = CachedResolver(config.prices, home_currency=config.budget.home_currency)
        ledger = CostLedger(
            db_path=config.ledger.db_path,
            rate_provider=resolver.usd_rate,
            fallback_rate=config.prices.fallback_usd_rate,
        )
        adapters = build_adapters(config)
        selector = BudgetGatedSelector(
            adapters.prioritized,
            adapters.fallback,
            ledger,
            fail_open=config.budget.ledger_fail_open,
        )

        recovery = None
        feeds: Mapping[str, str] = config.recovery.feeds if include_news else {}
        if feeds:
            timeout = config.recovery.fetch_timeout
            recovery = RecoveryEngine(
                lambda source: fetch_raw(source, feeds[source], timeout=timeout),
                config.recovery,
            )

        return cls(
            selector=selector,
            generator=ChunkedGenerator(config.chunking),
            ledger=ledger,
            recovery=recovery,
            feeds=list(feeds),
            monthly_cost_limit=config.budget.monthly_limit,
        )

    def gather_news(self) -> List[NewsItem]:
        """Collect live headlines, or the fallback payload when none survive."""
        items: List[NewsItem] = []
        if self.recovery is not None:
            for source in self.feeds:
                if self.recovery.is_saturated(source):
                    logger.warning("Skipping saturated source %s", source)
                    continue
                items.extend(item for item in self.recovery.fetch(source) if not item.is_fallback)

        if not items:
            logger.warning("No live news available, using fallback payload")
            return list(fallback_payload())
        return items

    def run(self, asset_text: str, monthly_cost_limit: Optional[Decimal] = None) -> AnalysisReport:
        """Generate one brief for asset_text.

        Raises:
            ValueError: If asset_text is empty
            MergeError: If a chunked generation fails part way
            BackendCallError: If a single generation call fails
        """
        if not asset_text or not asset_text.strip():
            raise ValueError("asset_text is required and cannot be empty")

        limit = monthly_cost_limit if monthly_cost_limit is not None else self.monthly_cost_limit
        news = self.gather_news()

        selection = self.selector.select(limit)
        adapter = selection.adapter
        logger.info("Using %s (%s)", adapter.provider_id, selection.reason)

        prompt = build_prompt(asset_text, news, self._today())
        logger.info("Prompt built (%d chars)", len(prompt))

        result = self.generator.generate(adapter, prompt)

        if not adapter.free_tier:
            rate = self.ledger.exchange_rate()
            self.ledger.record_usage(
                result.provider_id,
                result.model_id,
                result.usage.input_tokens,
                result.usage.output_tokens,
                rate,
            )

        logger.info("Analysis complete")
        return AnalysisReport(
            result=result,
            selection_reason=selection.reason,
            news=tuple(news),
            news_is_fallback=is_fallback_payload(news),
            prompt_chars=len(prompt),
        )

    def cost_summary(self) -> CostSummary:
        return self.ledger.cost_summary()
