"""Abstract interface for generative-AI upstreams."""

from __future__ import annotations

from abc import ABC, abstractmethod


class EnrichmentProvider(ABC):
    """Provider interface for chat-style completion requests."""

    @abstractmethod
    def complete(
        self,
        system: str,
        user: str,
        max_tokens: int,
        temperature: float | None = None,
    ) -> str:
        """Return the generated text for a system + user message pair.

        Raises:
            UpstreamError: On transport failure or an unusable response
            UpstreamTimeout: When the upstream does not answer in time
        """
        raise NotImplementedError

    @abstractmethod
    def health_check(self) -> bool:
        """Return True if the upstream answers a lightweight request."""
        raise NotImplementedError
