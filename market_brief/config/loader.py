"""
Configuration management and loading.

Handles application settings from YAML and environment variables.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

DEFAULT_CONFIG_ENV = "MARKET_BRIEF_CONFIG"

DEFAULT_FEEDS = {
    "wsj_markets": "https://feeds.a.dj.com/rss/RSSMarketsMain.xml",
    "cnbc_finance": "https://www.cnbc.com/id/100003114/device/rss/rss.html",
    "bbc_business": "https://feeds.bbci.co.uk/news/business/rss.xml",
    "yahoo_finance": "https://feeds.finance.yahoo.com/rss/2.0/headline",
}


@dataclass(frozen=True)
class BudgetConfig:
    """Monthly spending ceiling in the home currency."""
    monthly_limit: Decimal = Decimal("100")
    home_currency: str = "THB"
    ledger_fail_open: bool = True

    def __post_init__(self):
        """Validate budget values."""
        if self.monthly_limit <= 0:
            raise ValueError("monthly_limit must be > 0")
        if len(self.home_currency) != 3:
            raise ValueError("home_currency must be a 3-letter code")


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and call settings for one generation provider."""
    api_key: Optional[str] = None
    model: str = ""
    free_model: Optional[str] = None
    timeout_seconds: float = 120.0
    max_output_tokens: int = 4000
    temperature: float = 0.7

    def __post_init__(self):
        """Validate provider values."""
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.max_output_tokens <= 0:
            raise ValueError("max_output_tokens must be > 0")


@dataclass(frozen=True)
class ChunkingConfig:
    """Limits for splitting oversized prompts."""
    threshold: int = 4000
    chunk_size: int = 3000
    inter_call_delay: float = 1.0

    def __post_init__(self):
        """Validate chunking values."""
        if self.threshold <= 0:
            raise ValueError("threshold must be > 0")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        if self.inter_call_delay < 0:
            raise ValueError("inter_call_delay must be >= 0")


@dataclass(frozen=True)
class RecoveryConfig:
    """Backoff and sliding-window settings for volatile feeds."""
    window_seconds: float = 3600.0
    max_errors: int = 5
    rate_limit_delays: Tuple[float, ...] = (1.0, 3.0, 5.0, 10.0)
    timeout_delay: float = 2.0
    network_delay: float = 3.0
    jitter: Tuple[float, float] = (0.5, 1.5)
    fetch_timeout: float = 15.0
    feeds: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_FEEDS))

    def __post_init__(self):
        """Validate recovery values."""
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if self.max_errors <= 0:
            raise ValueError("max_errors must be > 0")
        if not self.rate_limit_delays:
            raise ValueError("rate_limit_delays must not be empty")
        if any(d < 0 for d in self.rate_limit_delays):
            raise ValueError("rate_limit_delays must be >= 0")
        low, high = self.jitter
        if low < 0 or high < low:
            raise ValueError("jitter must be [low, high] with 0 <= low <= high")


@dataclass(frozen=True)
class PriceConfig:
    """Price lookup and exchange-rate cache settings."""
    ttl_seconds: float = 3600.0
    fetch_timeout: float = 10.0
    forex_timeout: float = 15.0
    fallback_usd_rate: Decimal = Decimal("35")

    def __post_init__(self):
        """Validate price values."""
        if self.ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if self.fallback_usd_rate <= 0:
            raise ValueError("fallback_usd_rate must be > 0")


@dataclass(frozen=True)
class LedgerConfig:
    """Location of the SQLite cost ledger."""
    db_path: str = "market_brief.db"


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    openai: ProviderConfig = field(
        default_factory=lambda: ProviderConfig(model="gpt-3.5-turbo")
    )
    gemini: ProviderConfig = field(
        default_factory=lambda: ProviderConfig(
            model="gemini-2.5-flash", free_model="gemini-flash-latest"
        )
    )
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    prices: PriceConfig = field(default_factory=PriceConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load and validate application configuration from a YAML file.

    Strict validation ensures no silent misconfiguration: unknown keys
    are rejected rather than ignored.

    Args:
        path: Path to YAML configuration file. Falls back to the
            MARKET_BRIEF_CONFIG environment variable; with neither,
            defaults plus environment credentials are returned.

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    path = path or os.environ.get(DEFAULT_CONFIG_ENV)
    if not path:
        return _from_raw({})

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    return _from_raw(raw_config)


def _from_raw(raw_config: Dict[str, Any]) -> AppConfig:
    allowed_top_keys = {'budget', 'providers', 'chunking', 'recovery', 'prices', 'ledger'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    budget_data = _section(raw_config, 'budget', {'monthly_limit', 'home_currency', 'ledger_fail_open'})
    budget = BudgetConfig(
        monthly_limit=_decimal(budget_data, "monthly_limit", 100, "budget"),
        home_currency=str(budget_data.get('home_currency', 'THB')).upper(),
        ledger_fail_open=_flag(budget_data, "ledger_fail_open", True, "budget"),
    )

    providers_data = _section(raw_config, 'providers', {'openai', 'gemini'})
    openai = _parse_provider(
        providers_data.get('openai') or {}, "providers.openai",
        default_model="gpt-3.5-turbo", env_key="OPENAI_API_KEY", env_model="OPENAI_MODEL",
    )
    gemini = _parse_provider(
        providers_data.get('gemini') or {}, "providers.gemini",
        default_model="gemini-2.5-flash", env_key="GEMINI_API_KEY", env_model="GEMINI_MODEL",
        default_free_model="gemini-flash-latest",
    )

    chunking_data = _section(raw_config, 'chunking', {'threshold', 'chunk_size', 'inter_call_delay'})
    chunking = ChunkingConfig(
        threshold=_integer(chunking_data, "threshold", 4000, "chunking"),
        chunk_size=_integer(chunking_data, "chunk_size", 3000, "chunking"),
        inter_call_delay=_number(chunking_data, "inter_call_delay", 1.0, "chunking"),
    )

    recovery_data = _section(raw_config, 'recovery', {
        'window_seconds', 'max_errors', 'rate_limit_delays', 'timeout_delay',
        'network_delay', 'jitter', 'fetch_timeout', 'feeds',
    })
    feeds = recovery_data.get('feeds', DEFAULT_FEEDS)
    if not isinstance(feeds, dict):
        raise ValueError("'recovery.feeds' must be a dictionary of name: url")
    jitter = _number_list(recovery_data, "jitter", [0.5, 1.5], "recovery")
    if len(jitter) != 2:
        raise ValueError("'recovery.jitter' must be a [low, high] pair")
    recovery = RecoveryConfig(
        window_seconds=_number(recovery_data, "window_seconds", 3600, "recovery"),
        max_errors=_integer(recovery_data, "max_errors", 5, "recovery"),
        rate_limit_delays=_number_list(recovery_data, "rate_limit_delays", [1, 3, 5, 10], "recovery"),
        timeout_delay=_number(recovery_data, "timeout_delay", 2, "recovery"),
        network_delay=_number(recovery_data, "network_delay", 3, "recovery"),
        jitter=(jitter[0], jitter[1]),
        fetch_timeout=_number(recovery_data, "fetch_timeout", 15, "recovery"),
        feeds={str(k): str(v) for k, v in feeds.items()},
    )

    prices_data = _section(raw_config, 'prices', {
        'ttl_seconds', 'fetch_timeout', 'forex_timeout', 'fallback_usd_rate',
    })
    prices = PriceConfig(
        ttl_seconds=_number(prices_data, "ttl_seconds", 3600, "prices"),
        fetch_timeout=_number(prices_data, "fetch_timeout", 10, "prices"),
        forex_timeout=_number(prices_data, "forex_timeout", 15, "prices"),
        fallback_usd_rate=_decimal(prices_data, "fallback_usd_rate", 35, "prices"),
    )

    ledger_data = _section(raw_config, 'ledger', {'db_path'})
    ledger = LedgerConfig(db_path=str(ledger_data.get('db_path', 'market_brief.db')))

    return AppConfig(
        budget=budget,
        openai=openai,
        gemini=gemini,
        chunking=chunking,
        recovery=recovery,
        prices=prices,
        ledger=ledger,
    )


def _is_number(value: Any) -> bool:
    # bool is an int subclass; `true` is never a valid number here
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _number(data: Dict[str, Any], key: str, default: float, path: str) -> float:
    value = data.get(key, default)
    if not _is_number(value):
        raise ValueError(f"'{key}' in {path} must be a number")
    return float(value)


def _integer(data: Dict[str, Any], key: str, default: int, path: str) -> int:
    value = data.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"'{key}' in {path} must be an integer")
    return value


def _decimal(data: Dict[str, Any], key: str, default: int, path: str) -> Decimal:
    value = data.get(key, default)
    if not _is_number(value):
        raise ValueError(f"'{key}' in {path} must be a number")
    return Decimal(str(value))


def _flag(data: Dict[str, Any], key: str, default: bool, path: str) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' in {path} must be true or false")
    return value


def _number_list(data: Dict[str, Any], key: str, default: list, path: str) -> Tuple[float, ...]:
    value = data.get(key, default)
    if not isinstance(value, (list, tuple)) or not all(_is_number(v) for v in value):
        raise ValueError(f"'{key}' in {path} must be a list of numbers")
    return tuple(float(v) for v in value)


def _section(raw_config: Dict[str, Any], name: str, allowed_keys: set) -> Dict[str, Any]:
    """Return a validated top-level section, empty when absent."""
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown {name} keys: {unknown_keys}")
    return data


def _parse_provider(
    data: Dict[str, Any],
    path: str,
    default_model: str,
    env_key: str,
    env_model: str,
    default_free_model: Optional[str] = None,
) -> ProviderConfig:
    """Parse and validate one provider block.

    The API key and model fall back to the provider's environment
    variables when the block does not set them.
    """
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    allowed_keys = {
        'api_key', 'model', 'free_model', 'timeout_seconds', 'max_output_tokens', 'temperature',
    }
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    api_key = _resolve_env(data.get('api_key')) if 'api_key' in data else os.environ.get(env_key)
    model = data.get('model') or os.environ.get(env_model) or default_model

    return ProviderConfig(
        api_key=api_key or None,
        model=str(model),
        free_model=data.get('free_model', default_free_model),
        timeout_seconds=_number(data, "timeout_seconds", 120, path),
        max_output_tokens=_integer(data, "max_output_tokens", 4000, path),
        temperature=_number(data, "temperature", 0.7, path),
    )


def _resolve_env(value: Optional[str]) -> Optional[str]:
    """Expand ${VAR_NAME} from the environment."""
    if not value or not str(value).startswith("${"):
        return value
    var_name = str(value).strip("${}").strip()
    return os.environ.get(var_name)
