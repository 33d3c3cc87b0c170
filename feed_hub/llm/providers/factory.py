"""Provider factory and registry for swappable AI upstreams."""

from __future__ import annotations

import logging

import httpx

from ...config import LoggingConfig, ProviderConfig, get_api_key
from .azure_openai import AzureOpenAIProvider
from .base import EnrichmentProvider
from .openai_compatible import OpenAICompatibleProvider


ProviderBuilder = type[OpenAICompatibleProvider]

_PROVIDER_REGISTRY: dict[str, ProviderBuilder] = {
    "azure": AzureOpenAIProvider,
    "azure_openai": AzureOpenAIProvider,
    "openai": OpenAICompatibleProvider,
    "openai_compatible": OpenAICompatibleProvider,
    "openai-compatible": OpenAICompatibleProvider,
}


def available_providers() -> list[str]:
    """Return the set of registered provider names."""
    return sorted(_PROVIDER_REGISTRY.keys())


def create_provider(
    provider_cfg: ProviderConfig,
    log_cfg: LoggingConfig | None = None,
    llm_logger: logging.Logger | None = None,
    client: httpx.Client | None = None,
) -> EnrichmentProvider:
    """Build a provider instance from runtime config."""
    name = provider_cfg.name.lower().strip()
    builder = _PROVIDER_REGISTRY.get(name)
    if builder is None:
        supported = ", ".join(available_providers())
        raise ValueError(f"Unsupported provider: {provider_cfg.name}. Supported: {supported}")
    redaction = log_cfg.llm_log_redaction if log_cfg is not None else "redact_urls"
    return builder(
        provider_cfg,
        get_api_key(provider_cfg),
        llm_logger=llm_logger,
        redaction=redaction,
        client=client,
    )
