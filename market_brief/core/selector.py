"""
Budget-gated backend selection.

Selection Order:
1. Over budget - Use a free-tier adapter, forcing the fallback free if needed
2. Enabled adapters - First enabled adapter in priority order
3. Nothing enabled - Force the fallback free

A ledger outage counts as "not over budget" unless the selector is built
with fail_open=False, in which case it counts as over budget. Any other
failure degrades to the forced-free branch, so selection never raises.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol, Sequence

from ..sdk.base import BackendAdapter, DegradationState
from ..storage.models import BudgetStatus

logger = logging.getLogger(__name__)

REASON_OVER_BUDGET_FREE = "over budget - using free tier"
REASON_OVER_BUDGET_FORCED = "over budget - forced free mode"
REASON_AVAILABLE = "available"
REASON_NO_ENABLED = "no enabled adapter - forced free mode"
REASON_ERROR = "selection error - forced free mode"
REASON_DEGRADED = "degraded earlier - free mode for the rest of the process"


class BudgetLedger(Protocol):
    """The part of the cost ledger the selector reads."""

    def check_budget(self, limit: Decimal) -> BudgetStatus: ...

    def is_free_tier(self, provider: str, model: str) -> bool: ...


@dataclass(frozen=True)
class Selection:
    """Chosen adapter and why it was chosen."""
    adapter: BackendAdapter
    reason: str


class BudgetGatedSelector:
    """Chooses the generation adapter under a monthly spending ceiling.

    Degradation is one-way: once the fallback is forced into free tier it
    is returned for every later selection in the process.
    """

    def __init__(
        self,
        adapters: Sequence[BackendAdapter],
        fallback: BackendAdapter,
        ledger: Optional[BudgetLedger],
        fail_open: bool = True,
    ):
        self._adapters = sorted(adapters, key=lambda a: a.role.value)
        self._fallback = fallback
        self._ledger = ledger
        self._fail_open = fail_open

    @property
    def fallback(self) -> BackendAdapter:
        return self._fallback

    def select(self, monthly_cost_limit: Decimal) -> Selection:
        """Pick an adapter for the next generation. Never raises."""
        try:
            if self._fallback.degradation_state is DegradationState.FORCED_FREE:
                return Selection(self._fallback, REASON_DEGRADED)

            if self._is_over_budget(monthly_cost_limit):
                return self._select_over_budget()

            for adapter in self._adapters:
                if adapter.enabled:
                    return Selection(adapter, f"{adapter.provider_id} {REASON_AVAILABLE}")

            logger.info("No enabled adapter, switching to free mode")
            return Selection(self._force_free(), REASON_NO_ENABLED)

        except Exception as e:
            logger.error("Adapter selection failed, switching to free mode: %s", e)
            return Selection(self._force_free(), REASON_ERROR)

    def _is_over_budget(self, monthly_cost_limit: Decimal) -> bool:
        # Ledger outage policy: fail-open (budget.ledger_fail_open, default true)
        # keeps the paid adapters; fail-safe treats the outage as over budget
        if self._ledger is None:
            return False
        try:
            status = self._ledger.check_budget(monthly_cost_limit)
        except Exception as e:
            if self._fail_open:
                logger.warning("Budget query failed, assuming within budget: %s", e)
                return False
            logger.warning("Budget query failed, assuming over budget: %s", e)
            return True
        return status.over_budget

    def _select_over_budget(self) -> Selection:
        logger.warning("Over budget, switching to free tier")
        for adapter in [*self._adapters, self._fallback]:
            if adapter.free_tier:
                return Selection(adapter, REASON_OVER_BUDGET_FREE)
        if self._ledger_says_free(self._fallback):
            self._fallback.force_free_tier()
            return Selection(self._fallback, REASON_OVER_BUDGET_FREE)
        return Selection(self._force_free(), REASON_OVER_BUDGET_FORCED)

    def _ledger_says_free(self, adapter: BackendAdapter) -> bool:
        if self._ledger is None or not adapter.enabled:
            return False
        try:
            return self._ledger.is_free_tier(adapter.provider_id, adapter.model_id)
        except Exception as e:
            logger.warning("Free-tier lookup failed for %s: %s", adapter.provider_id, e)
            return False

    def _force_free(self) -> BackendAdapter:
        if self._fallback.force_free_tier():
            logger.warning("%s forced into free tier for this process", self._fallback.provider_id)
        return self._fallback
