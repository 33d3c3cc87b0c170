from .azure_openai import AzureOpenAIProvider
from .base import EnrichmentProvider
from .factory import available_providers, create_provider
from .openai_compatible import OpenAICompatibleProvider

__all__ = [
    "EnrichmentProvider",
    "AzureOpenAIProvider",
    "OpenAICompatibleProvider",
    "available_providers",
    "create_provider",
]
