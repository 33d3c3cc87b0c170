"""AI enrichment and observability."""

from .gateway import EnrichmentGateway
from .providers.base import EnrichmentProvider
from .providers.factory import available_providers, create_provider
from .tracing import flush, record_span_error, set_span_output, setup_langfuse, start_span

__all__ = [
    "EnrichmentGateway",
    "EnrichmentProvider",
    "create_provider",
    "available_providers",
    "setup_langfuse",
    "flush",
    "start_span",
    "set_span_output",
    "record_span_error",
]
