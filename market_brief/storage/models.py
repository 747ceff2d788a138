"""
Data models for the cost ledger.

Defines ledger entries and the read-only views derived from them.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one billed generation.

    Append-only entries that form an auditable ledger of spend.
    Once written, these records must never be modified.
    """
    timestamp: datetime
    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost_usd: Decimal
    cost_home: Decimal
    exchange_rate: Decimal


@dataclass(frozen=True)
class BudgetStatus:
    """Month-to-date spend against a ceiling, in the home currency."""
    over_budget: bool
    spent_this_month: Decimal
    limit: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.limit - self.spent_this_month


@dataclass(frozen=True)
class CostSummary:
    """Last billed session plus month totals."""
    last_session: Optional[UsageRecord]
    month_tokens: int
    month_cost_usd: Decimal
    month_cost_home: Decimal
    month_sessions: int
