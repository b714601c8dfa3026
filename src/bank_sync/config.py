"""Configuration loading and validation for bank sync."""

from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Optional

import yaml

from bank_sync.models.category import DEFAULT_CATEGORY, CategoryRule
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)

# Packaged category table used when no categories.yaml is configured
DEFAULT_CATEGORIES_RESOURCE = "categories.yaml"


class ConfigError(Exception):
    """Exception raised for configuration and local state errors."""

    pass


@dataclass
class ProviderConfig:
    """Configuration for the Open Banking aggregator.

    Attributes:
        base_url: Aggregator API base URL.
        redirect_url: Redirect URL sent with each requisition.
        user_language: Language of the institution's consent pages.
        default_country: ISO-2 country used when listing institutions.
        timeout_seconds: Per-request timeout.
        retry_attempts: Attempts for transport errors, 429 and 5xx responses.
        retry_delay: Initial delay between retries (exponential backoff).
        token_expiry_margin_seconds: Treat tokens as expired this long before expiry.
    """

    base_url: str = "https://bankaccountdata.gocardless.com/api/v2"
    redirect_url: str = "https://financeflow.app/bank-callback"
    user_language: str = "IT"
    default_country: str = "IT"
    timeout_seconds: float = 30.0
    retry_attempts: int = 3
    retry_delay: float = 1.0
    token_expiry_margin_seconds: int = 3600

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ProviderConfig":
        """Create from dictionary."""
        defaults = cls()
        config = cls(
            base_url=str(data.get("base_url", defaults.base_url)).rstrip("/"),
            redirect_url=str(data.get("redirect_url", defaults.redirect_url)),
            user_language=str(data.get("user_language", defaults.user_language)),
            default_country=str(data.get("default_country", defaults.default_country)).upper(),
            timeout_seconds=float(data.get("timeout_seconds", defaults.timeout_seconds)),  # type: ignore[arg-type]
            retry_attempts=int(data.get("retry_attempts", defaults.retry_attempts)),  # type: ignore[arg-type]
            retry_delay=float(data.get("retry_delay", defaults.retry_delay)),  # type: ignore[arg-type]
            token_expiry_margin_seconds=int(
                data.get("token_expiry_margin_seconds", defaults.token_expiry_margin_seconds)  # type: ignore[arg-type]
            ),
        )
        if config.retry_attempts < 1:
            raise ConfigError(f"provider.retry_attempts must be at least 1, got {config.retry_attempts}")
        if config.token_expiry_margin_seconds < 0:
            raise ConfigError("provider.token_expiry_margin_seconds must not be negative")
        return config


@dataclass
class SyncConfig:
    """Configuration for transaction sync.

    Attributes:
        history_days: Days of history requested when no date range is given.
        match_ledger_account_by_name: Resolve the ledger account by institution name.
    """

    history_days: int = 90
    match_ledger_account_by_name: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "SyncConfig":
        """Create from dictionary."""
        history_days = int(data.get("history_days", 90))  # type: ignore[arg-type]
        if history_days <= 0:
            raise ConfigError(f"sync.history_days must be positive, got {history_days}")
        return cls(
            history_days=history_days,
            match_ledger_account_by_name=bool(data.get("match_ledger_account_by_name", True)),
        )


@dataclass
class LoggingConfig:
    """Configuration for logging.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Path to log file.
    """

    level: str = "INFO"
    file: str = "bank_sync.log"

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "LoggingConfig":
        """Create from dictionary."""
        return cls(
            level=str(data.get("level", "INFO")),
            file=str(data.get("file", "bank_sync.log")),
        )


@dataclass
class Config:
    """Main configuration container.

    Attributes:
        provider: Aggregator connection settings.
        sync: Transaction sync settings.
        logging: Logging configuration.
        category_rules: Ordered category keyword rules (first match wins).
        default_category: Category assigned when no rule matches.
    """

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    category_rules: list[CategoryRule] = field(default_factory=list)
    default_category: str = DEFAULT_CATEGORY


def load_yaml_file(path: Path) -> dict[str, object]:
    """Load a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ConfigError: If file is invalid YAML or not a mapping.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        try:
            content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(content).__name__}")
    return content


def _section(data: dict[str, object], name: str) -> dict[str, object]:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(section).__name__}")
    return section


def load_settings(path: Path) -> tuple[ProviderConfig, SyncConfig, LoggingConfig]:
    """Load settings from settings.yaml.

    Args:
        path: Path to settings.yaml.

    Returns:
        Tuple of (ProviderConfig, SyncConfig, LoggingConfig).
    """
    data = load_yaml_file(path)

    try:
        provider = ProviderConfig.from_dict(_section(data, "provider"))
        sync = SyncConfig.from_dict(_section(data, "sync"))
        logging_config = LoggingConfig.from_dict(_section(data, "logging"))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {path}: {e}") from e

    return provider, sync, logging_config


def parse_categories(data: dict[str, object], source: str) -> tuple[list[CategoryRule], str]:
    """Parse a category table mapping.

    Args:
        data: Mapping with ``categories`` and optional ``default_category``.
        source: Where the data came from, for error messages.

    Returns:
        Tuple of (ordered rules, default category).
    """
    default_category = str(data.get("default_category") or DEFAULT_CATEGORY)

    rules: list[CategoryRule] = []
    cat_list = data.get("categories")
    if cat_list is None:
        return rules, default_category
    if not isinstance(cat_list, list):
        raise ConfigError(f"'categories' must be a list in {source}, got {type(cat_list).__name__}")

    seen: set[str] = set()
    for cat_data in cat_list:
        if not isinstance(cat_data, dict) or "name" not in cat_data:
            raise ConfigError(f"Each category in {source} needs a 'name': {cat_data!r}")
        rule = CategoryRule.from_dict(cat_data)
        if rule.category in seen:
            logger.warning(f"Category '{rule.category}' listed twice in {source}; later entry never wins")
        seen.add(rule.category)
        rules.append(rule)

    # File order is evaluation order (first match wins), so no sorting here
    return rules, default_category


def load_categories(path: Path) -> tuple[list[CategoryRule], str]:
    """Load the category table from categories.yaml.

    Args:
        path: Path to categories.yaml.

    Returns:
        Tuple of (ordered rules, default category).
    """
    return parse_categories(load_yaml_file(path), str(path))


def load_default_categories() -> tuple[list[CategoryRule], str]:
    """Load the category table shipped with the package."""
    text = (
        resources.files("bank_sync.data")
        .joinpath(DEFAULT_CATEGORIES_RESOURCE)
        .read_text(encoding="utf-8")
    )
    data = yaml.safe_load(text) or {}
    return parse_categories(data, f"bank_sync/data/{DEFAULT_CATEGORIES_RESOURCE}")


def load_config(
    settings_path: Optional[Path] = None,
    categories_path: Optional[Path] = None,
    config_dir: Optional[Path] = None,
) -> Config:
    """Load complete configuration from all config files.

    Args:
        settings_path: Path to settings.yaml (or None to use default).
        categories_path: Path to categories.yaml (or None to use default).
        config_dir: Base config directory (default: ./config).

    Returns:
        Complete Config object.

    Raises:
        ConfigError: If a config file is malformed.
    """
    if config_dir is None:
        config_dir = Path("config")

    if settings_path is None:
        settings_path = config_dir / "settings.yaml"
    if categories_path is None:
        categories_path = config_dir / "categories.yaml"

    config = Config()

    # Settings are optional - use defaults if missing
    if settings_path.exists():
        config.provider, config.sync, config.logging = load_settings(settings_path)
        logger.info(f"Loaded settings from {settings_path}")
    else:
        logger.warning(f"Settings file not found: {settings_path}, using defaults")

    if categories_path.exists():
        config.category_rules, config.default_category = load_categories(categories_path)
        logger.info(f"Loaded {len(config.category_rules)} categories from {categories_path}")
    else:
        config.category_rules, config.default_category = load_default_categories()
        logger.info(
            f"Categories file not found: {categories_path}, "
            f"using {len(config.category_rules)} packaged categories"
        )

    return config
