"""
Configuration management using YAML files and dataclasses.

This module defines all configuration dataclasses and provides loading
from YAML files with defaults. Configuration sections:
- FetchConfig: Feed/page HTTP fetching settings
- ScrapeConfig: Readability fallback settings
- ScheduleConfig: Refresh cadence per plan tier and worker pool size
- CreditConfig: AI credit limits and thresholds
- ProviderConfig: Generative-AI upstream settings
- StorageConfig: Repository backend settings
- CacheConfig: Refresh side-channel cache settings
- LoggingConfig: Logging behavior
- LangfuseConfig: Langfuse tracing settings
- AppConfig: Root configuration container
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import os
from typing import Any

import yaml


@dataclass
class FetchConfig:
    """Configuration for fetching feed sources.

    Attributes:
        timeout_seconds: Per-request timeout applied to every source GET
        user_agent: Identifying User-Agent header string
        trust_env: Whether to respect system proxy settings
        max_redirects: Maximum redirects followed per request
    """

    timeout_seconds: float = 30.0
    user_agent: str = "feed-hub/0.1 (+RSS reader)"
    trust_env: bool = True
    max_redirects: int = 10


@dataclass
class ScrapeConfig:
    """Configuration for the website scraping fallback.

    Attributes:
        enabled: Whether to fall back to scraping when a feed fails to parse
        min_text_chars: Minimum plain-text length for a main-content block
        excerpt_chars: Length of the excerpt synthesized when none is found
    """

    enabled: bool = True
    min_text_chars: int = 1
    excerpt_chars: int = 300


@dataclass
class ScheduleConfig:
    """Configuration for refresh scheduling.

    Attributes:
        free_interval_minutes: Minimum age before a free-tier feed is due
        paid_interval_minutes: Minimum age before a pro/power feed is due
        max_workers: Size of the worker pool used for a refresh pass
    """

    free_interval_minutes: int = 360
    paid_interval_minutes: int = 60
    max_workers: int = 4


@dataclass
class CreditConfig:
    """Configuration for the AI credit ledger.

    Attributes:
        free_limit: Advertised monthly credits for the free plan
        paid_limit: Advertised monthly credits for pro and power plans
        hard_ceiling: Usage at which consumption is refused for every plan
        warning_threshold: Usage count whose first occurrence emits a warning
    """

    free_limit: int = 5
    paid_limit: int = 150
    hard_ceiling: int = 180
    warning_threshold: int = 151


@dataclass
class ProviderConfig:
    """Configuration for the generative-AI upstream.

    Attributes:
        name: Provider name ("azure_openai" or "openai_compatible")
        endpoint: Base URL of the upstream API
        deployment: Azure deployment name
        api_version: Azure API version query parameter
        model: Model identifier sent to OpenAI-compatible endpoints
        api_key: Optional inline API key (overrides env var)
        api_key_env: Environment variable name containing the API key
        timeout_seconds: Request timeout for upstream calls
        temperature: Sampling temperature used for every request
        trust_env: Whether to respect system proxy settings for API requests
    """

    name: str = "azure_openai"
    endpoint: str = ""
    deployment: str = "gpt-4o"
    api_version: str = "2024-02-15-preview"
    model: str = "gpt-4o"
    api_key: str | None = None
    api_key_env: str = "AZURE_OPENAI_KEY"
    timeout_seconds: float = 30.0
    temperature: float = 0.7
    trust_env: bool = True


@dataclass
class StorageConfig:
    """Configuration for the repository backend.

    Attributes:
        backend: "sqlite" for a database file, "memory" for a process-local store
        path: SQLite database path
    """

    backend: str = "sqlite"
    path: str = "feed_hub.db"


@dataclass
class CacheConfig:
    """Configuration for the refresh side-channel cache.

    Attributes:
        backend: "memory", "jsonl", or "none"
        path: JSONL index path when backend is "jsonl"
        ttl_seconds: How long a refresh record is kept by the memory backend
    """

    backend: str = "memory"
    path: str = "cache/refresh_index.jsonl"
    ttl_seconds: int = 3600


@dataclass
class LoggingConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        console: Whether to log to console
        file: Whether to log to file
        format: Log file format ("jsonl" or "plain")
        directory: Directory for log files
        filename: Name of the main log file
        llm_log_enabled: Whether to enable separate upstream interaction logging
        llm_log_redaction: Redaction mode for LLM logs ("none", "redact_content", "redact_urls")
        llm_log_file: Name of the LLM log file
    """

    level: str = "INFO"
    console: bool = True
    file: bool = False
    format: str = "jsonl"
    directory: str = "logs"
    filename: str = "feed_hub.jsonl"
    llm_log_enabled: bool = False
    llm_log_redaction: str = "redact_urls"
    llm_log_file: str = "llm.jsonl"


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse tracing.

    Attributes:
        enabled: Whether to enable Langfuse tracing
        public_key: Langfuse public key (optional)
        secret_key: Langfuse secret key (optional)
        host: Langfuse host URL (optional)
        environment: Langfuse environment label (optional)
        max_text_chars: Maximum characters for prompt/response payloads
        redaction: Redaction mode for span payloads ("none", "redact_content", "redact_urls")
    """

    enabled: bool = False
    public_key: str | None = None
    secret_key: str | None = None
    host: str | None = None
    environment: str | None = None
    max_text_chars: int = 20000
    redaction: str = "redact_urls"


@dataclass
class AppConfig:
    """Root configuration container aggregating all config sections."""

    fetch: FetchConfig = field(default_factory=FetchConfig)
    scrape: ScrapeConfig = field(default_factory=ScrapeConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    credits: CreditConfig = field(default_factory=CreditConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    langfuse: LangfuseConfig = field(default_factory=LangfuseConfig)


def load_config(path: str | None) -> AppConfig:
    """Load configuration from a YAML file with defaults."""
    if not path:
        return AppConfig()

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    return _merge_config(AppConfig(), raw)


def _merge_config(base: AppConfig, raw: dict[str, Any]) -> AppConfig:
    """Merge raw YAML config into base AppConfig.

    Unknown top-level sections are ignored; section values are merged key
    by key so partial sections keep their defaults.
    """
    data = asdict(base)
    for key, value in raw.items():
        if key not in data:
            continue
        if isinstance(value, dict) and isinstance(data[key], dict):
            data[key].update(value)
        else:
            data[key] = value
    return _fromdict(data)


def _fromdict(data: dict[str, Any]) -> AppConfig:
    """Reconstruct AppConfig from nested dictionary."""
    return AppConfig(
        fetch=FetchConfig(**data["fetch"]),
        scrape=ScrapeConfig(**data["scrape"]),
        schedule=ScheduleConfig(**data["schedule"]),
        credits=CreditConfig(**data["credits"]),
        provider=ProviderConfig(**data["provider"]),
        storage=StorageConfig(**data["storage"]),
        cache=CacheConfig(**data["cache"]),
        logging=LoggingConfig(**data["logging"]),
        langfuse=LangfuseConfig(**data.get("langfuse", {})),
    )


def get_api_key(cfg: ProviderConfig) -> str | None:
    """Get API key from inline config or environment variable."""
    if cfg.api_key:
        return cfg.api_key
    return os.getenv(cfg.api_key_env)
