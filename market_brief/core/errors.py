"""
Error taxonomy.

Every boundary (generation backend, ledger, feed, price source) may fail.
These exceptions carry enough context for the caller to decide whether
a degraded option exists.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """Classified kind of a transient source failure."""
    RATE_LIMIT = "rate_limit"
    TRANSPORT_SECURITY = "transport_security"
    TIMEOUT = "timeout"
    NETWORK = "network"
    GENERIC = "generic"


class MarketBriefError(Exception):
    """Base class for all Market Brief errors."""


class ConfigurationError(MarketBriefError):
    """Raised when an adapter is used without usable credentials.

    Fatal to that adapter only, never to the process.
    """


class BudgetQueryError(MarketBriefError):
    """Raised when the cost ledger cannot report the monthly spend."""


class BackendCallError(MarketBriefError):
    """Raised when a generation backend call fails.

    Carries the optional HTTP status and error code so failures can be
    classified the same way feed failures are.
    """

    def __init__(
        self,
        message: str,
        provider_id: str = "",
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.provider_id = provider_id
        self.status_code = status_code
        self.error_code = error_code


class TransientSourceError(MarketBriefError):
    """A classified feed failure. Never propagated past the recovery engine."""

    def __init__(self, message: str, category: ErrorCategory, source: str = ""):
        super().__init__(message)
        self.category = category
        self.source = source


class MergeError(MarketBriefError):
    """Raised when any segment of a chunked generation fails."""

    def __init__(self, message: str, segment_index: int, segment_count: int):
        super().__init__(message)
        self.segment_index = segment_index
        self.segment_count = segment_count


class PriceResolutionError(MarketBriefError):
    """Raised by a price source; converted to NOT_AVAILABLE by the resolver."""

    def __init__(self, message: str, source: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class ConversionError(MarketBriefError):
    """Raised when a currency cannot be converted for lack of a rate."""
