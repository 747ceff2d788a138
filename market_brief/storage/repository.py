"""
Cost ledger backed by SQLite.

Records billed generations and answers the budget questions the selector
and the orchestrator ask.
"""

import logging
import sqlite3
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional

from ..core.errors import BudgetQueryError
from ..core.pricing import PRICING_TABLE, calculate_cost
from ..core.token_counter import TokenUsage
from .db import DEFAULT_DB_PATH, get_connection
from .models import BudgetStatus, CostSummary, UsageRecord

logger = logging.getLogger(__name__)

DEFAULT_USD_RATE = Decimal("35")

_COLUMNS = (
    "timestamp, provider, model, input_tokens, output_tokens, "
    "total_tokens, cost_usd, cost_home, exchange_rate"
)


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the usage_event table if it doesn't exist.

    This creates an append-only ledger. No UPDATE or DELETE operations
    should ever be performed on this table. Money columns are stored as
    decimal strings to keep exact values.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS usage_event (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                provider TEXT NOT NULL,
                model TEXT NOT NULL,
                input_tokens INTEGER NOT NULL,
                output_tokens INTEGER NOT NULL,
                total_tokens INTEGER NOT NULL,
                cost_usd TEXT NOT NULL,
                cost_home TEXT NOT NULL,
                exchange_rate TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


def insert_usage_record(record: UsageRecord, db_path: str = DEFAULT_DB_PATH) -> None:
    """Append a single usage record to the ledger.

    Args:
        record: The usage record to store
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute(
            f"INSERT INTO usage_event ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.timestamp.isoformat(),
                record.provider,
                record.model,
                record.input_tokens,
                record.output_tokens,
                record.total_tokens,
                str(record.cost_usd),
                str(record.cost_home),
                str(record.exchange_rate),
            ),
        )
        conn.commit()
    finally:
        conn.close()


def fetch_usage_records(
    since: Optional[datetime] = None,
    limit: int = 1000,
    db_path: str = DEFAULT_DB_PATH,
) -> List[UsageRecord]:
    """Fetch usage records, newest first.

    Args:
        since: Only records at or after this timestamp
        limit: Maximum number of records to return
        db_path: Path to SQLite database file

    Returns:
        List of usage records ordered by timestamp (newest first)
    """
    conn = get_connection(db_path)
    try:
        query = f"SELECT {_COLUMNS} FROM usage_event"
        params: list = []
        if since is not None:
            query += " WHERE timestamp >= ?"
            params.append(since.isoformat())
        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        cursor = conn.execute(query, params)
        return [_row_to_record(row) for row in cursor.fetchall()]
    finally:
        conn.close()


def _row_to_record(row) -> UsageRecord:
    return UsageRecord(
        timestamp=datetime.fromisoformat(row["timestamp"]),
        provider=row["provider"],
        model=row["model"],
        input_tokens=row["input_tokens"],
        output_tokens=row["output_tokens"],
        total_tokens=row["total_tokens"],
        cost_usd=Decimal(row["cost_usd"]),
        cost_home=Decimal(row["cost_home"]),
        exchange_rate=Decimal(row["exchange_rate"]),
    )


class CostLedger:
    """Monthly cost ledger in the home currency.

    Wraps the append-only usage_event table with the budget, free-tier
    and exchange-rate queries used during generation.
    """

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        rate_provider: Optional[Callable[[], Decimal]] = None,
        fallback_rate: Decimal = DEFAULT_USD_RATE,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the ledger and make sure its table exists.

        Args:
            db_path: Path to SQLite database file
            rate_provider: Returns the current USD -> home rate
            fallback_rate: Rate used when the provider is missing or fails
            clock: Current time, injectable for tests
        """
        self.db_path = db_path
        self._rate_provider = rate_provider
        self._fallback_rate = fallback_rate
        self._clock = clock
        initialize_schema(db_path)

    def record_usage(
        self,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        fx_rate: Decimal,
    ) -> UsageRecord:
        """Price one generation and append it to the ledger.

        Models without a price are recorded at zero cost so token counts
        still reach the monthly totals.
        """
        usage = TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens)
        try:
            cost_usd = calculate_cost(provider, model, usage)
        except ValueError:
            logger.warning("No pricing for %s:%s, recording zero cost", provider, model)
            cost_usd = Decimal("0")

        rate = Decimal(str(fx_rate))
        record = UsageRecord(
            timestamp=self._clock(),
            provider=provider,
            model=model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_tokens=usage.total_tokens,
            cost_usd=cost_usd,
            cost_home=(cost_usd * rate).quantize(Decimal("0.000001")),
            exchange_rate=rate,
        )
        insert_usage_record(record, self.db_path)
        logger.info(
            "Recorded usage: %d tokens, $%s (%s home)",
            record.total_tokens, record.cost_usd, record.cost_home,
        )
        return record

    def month_records(self) -> List[UsageRecord]:
        start = self._month_start()
        return fetch_usage_records(since=start, limit=1_000_000, db_path=self.db_path)

    def check_budget(self, limit: Decimal) -> BudgetStatus:
        """Compare month-to-date spend with the ceiling.

        Raises:
            BudgetQueryError: If the ledger cannot be read
        """
        limit = Decimal(str(limit))
        try:
            spent = sum((r.cost_home for r in self.month_records()), Decimal("0"))
        except (sqlite3.Error, InvalidOperation, ValueError) as e:
            raise BudgetQueryError(f"Cannot read monthly spend: {e}") from e

        status = BudgetStatus(over_budget=spent >= limit, spent_this_month=spent, limit=limit)
        if status.over_budget:
            logger.warning("Monthly budget exceeded: spent %s of %s", spent, limit)
        return status

    def is_free_tier(self, provider: str, model: str) -> bool:
        return PRICING_TABLE.is_free_tier(provider, model)

    def exchange_rate(self) -> Decimal:
        """Current USD -> home rate, never failing."""
        if self._rate_provider is None:
            return self._fallback_rate
        try:
            rate = Decimal(str(self._rate_provider()))
        except Exception as e:
            logger.warning("Exchange rate unavailable, using %s: %s", self._fallback_rate, e)
            return self._fallback_rate
        if not rate.is_finite() or rate <= 0:
            logger.warning("Exchange rate %s unusable, using %s", rate, self._fallback_rate)
            return self._fallback_rate
        return rate

    def cost_summary(self) -> CostSummary:
        records = self.month_records()
        return CostSummary(
            last_session=records[0] if records else None,
            month_tokens=sum(r.total_tokens for r in records),
            month_cost_usd=sum((r.cost_usd for r in records), Decimal("0")),
            month_cost_home=sum((r.cost_home for r in records), Decimal("0")),
            month_sessions=len(records),
        )

    def _month_start(self) -> datetime:
        now = self._clock()
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
