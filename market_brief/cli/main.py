"""
CLI interface for Market Brief.

Provides command-line access to the ledger, price lookups and report
generation.
"""

import logging
import os
import sqlite3
import sys
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from market_brief.config.loader import AppConfig, load_config
from market_brief.core.errors import MarketBriefError
from market_brief.core.orchestrator import Orchestrator
from market_brief.core.prices import CachedResolver
from market_brief.storage.models import CostSummary
from market_brief.storage.repository import CostLedger, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

LOG_LEVEL_ENV = "MARKET_BRIEF_LOG_LEVEL"

# Failures a command reports and exits on instead of raising
COMMAND_ERRORS = (MarketBriefError, OSError, sqlite3.Error)

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to YAML configuration file")


def _configure_logging(level: str) -> None:
    """Route all library logging through a rich handler on stderr."""
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if isinstance(handler, RichHandler):
            root_logger.removeHandler(handler)
    root_logger.addHandler(
        RichHandler(console=Console(stderr=True), show_path=False, markup=False)
    )
    root_logger.setLevel(level.upper())


def _load(config_path: Optional[str]) -> AppConfig:
    try:
        return load_config(config_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    log_level: str = typer.Option(
        os.environ.get(LOG_LEVEL_ENV, "INFO"),
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    ),
):
    """Market Brief CLI."""
    _configure_logging(log_level)
    if ctx.invoked_subcommand is None:
        console.print("Market Brief - Use --help to see available commands")


@app.command()
def init(config_path: Optional[str] = CONFIG_OPTION):
    """Initialize the cost ledger database."""
    config = _load(config_path)
    try:
        initialize_schema(config.ledger.db_path)
        console.print(f"[green]✓[/] Ledger initialized at {config.ledger.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def budget(config_path: Optional[str] = CONFIG_OPTION):
    """Show this month's spend against the budget."""
    config = _load(config_path)
    try:
        ledger = CostLedger(config.ledger.db_path, fallback_rate=config.prices.fallback_usd_rate)
        status = ledger.check_budget(config.budget.monthly_limit)
        summary = ledger.cost_summary()
    except COMMAND_ERRORS as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    currency = config.budget.home_currency
    table = Table(title="Monthly Budget")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Spent", f"{status.spent_this_month:,.2f} {currency}")
    table.add_row("Limit", f"{status.limit:,.2f} {currency}")
    table.add_row("Remaining", f"{status.remaining:,.2f} {currency}")
    table.add_row("Sessions", str(summary.month_sessions))
    table.add_row("Tokens", f"{summary.month_tokens:,}")
    console.print(table)

    if status.over_budget:
        console.print("[bold yellow]Over budget:[/] generation will use the free tier")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def price(
    symbol: str = typer.Argument(..., help="Ticker, coin or currency code"),
    asset_type: str = typer.Option(
        "", "--type", "-t", help="stock, currency, crypto or gold; auto-detected when omitted"
    ),
    config_path: Optional[str] = CONFIG_OPTION,
):
    """Resolve the current price of one asset."""
    config = _load(config_path)
    resolver = CachedResolver(config.prices, home_currency=config.budget.home_currency)
    quote = resolver.resolve(symbol, asset_type)

    if not quote.available:
        console.print(f"[red]Price unavailable for {symbol}:[/] {quote.error}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[bold]{quote.symbol}[/] ({quote.asset_type})")
    console.print(f"Price: {resolver.format_price(quote.price, quote.currency)}")
    console.print(f"In {resolver.home_currency}: {resolver.format_price(quote.price_in_home, resolver.home_currency)}")
    console.print(f"[dim]Source: {quote.source}[/]")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def rates(
    currencies: Optional[List[str]] = typer.Argument(None, help="Currencies to show (default: all)"),
    config_path: Optional[str] = CONFIG_OPTION,
):
    """Show exchange rates per USD."""
    config = _load(config_path)
    resolver = CachedResolver(config.prices, home_currency=config.budget.home_currency)
    table_rates = resolver.get_exchange_rates()

    wanted = [c.upper() for c in currencies] if currencies else sorted(table_rates)
    table = Table(title="Exchange Rates (per 1 USD)")
    table.add_column("Currency")
    table.add_column("Rate", justify="right")
    for currency in wanted:
        rate = table_rates.get(currency)
        table.add_row(currency, f"{rate:,.4f}" if rate is not None else "N/A")
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def report(
    assets: Optional[List[str]] = typer.Argument(None, help="Holdings, one per argument"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read holdings from a text file"),
    config_path: Optional[str] = CONFIG_OPTION,
    no_news: bool = typer.Option(False, "--no-news", help="Skip news feeds"),
):
    """
    Generate a market brief for a list of holdings.

    Holdings come from the arguments and/or --file, one per line. The
    backend is chosen under the monthly budget; paid runs are recorded in
    the ledger.
    """
    lines = list(assets or [])
    if file is not None:
        try:
            lines.append(file.read_text(encoding="utf-8"))
        except OSError as e:
            console.print(f"[red]Cannot read {file}:[/] {e}")
            sys.exit(EXIT_CODE_FAIL)

    asset_text = "\n".join(line for line in lines if line.strip())
    if not asset_text:
        console.print("[red]Error:[/] no holdings given")
        sys.exit(EXIT_CODE_FAIL)

    config = _load(config_path)
    try:
        orchestrator = Orchestrator.from_config(config, include_news=not no_news)
        result = orchestrator.run(asset_text)
        summary = orchestrator.cost_summary()
    except COMMAND_ERRORS as e:
        console.print(f"[red]Error generating report:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]Market Brief[/bold] [dim]({result.selection_reason})[/]")
    console.print("-" * 40)
    if result.news_is_fallback:
        console.print("[yellow]News feeds unavailable, analysis ran without live headlines[/]")
    console.print(result.result.content, markup=False)
    _display_cost_summary(summary, config.budget.home_currency)
    sys.exit(EXIT_CODE_PASS)


def _display_cost_summary(summary: CostSummary, currency: str) -> None:
    """Display last session and month totals."""
    console.print("\n[bold]Cost Summary[/bold]")
    console.print("-" * 40)
    last = summary.last_session
    if last is not None:
        console.print(f"Last session: {last.total_tokens:,} tokens, ${last.cost_usd:.4f} ({last.cost_home:,.2f} {currency})")
        console.print(f"Model: {last.provider}/{last.model}")
    console.print(
        f"This month: {summary.month_tokens:,} tokens, ${summary.month_cost_usd:.4f} "
        f"({summary.month_cost_home:,.2f} {currency}) over {summary.month_sessions} sessions"
    )


if __name__ == "__main__":
    app()
