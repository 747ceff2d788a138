"""
Persistent cost ledger for Market Brief.
"""

from .models import BudgetStatus, CostSummary, UsageRecord
from .repository import CostLedger, initialize_schema

__all__ = ["BudgetStatus", "CostLedger", "CostSummary", "UsageRecord", "initialize_schema"]
