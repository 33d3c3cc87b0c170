"""OpenAI-compatible chat completions provider."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ...config import ProviderConfig
from ...core.errors import UpstreamError, UpstreamTimeout
from ...logging_utils import log_event, redact_text, truncate_text
from ..tracing import record_span_error, set_span_output, start_span
from .base import EnrichmentProvider


class OpenAICompatibleProvider(EnrichmentProvider):
    """Provider for endpoints speaking the ``/chat/completions`` protocol.

    Requests carry a bearer token; replies are read from
    ``choices[0].message.content``.
    """

    provider_name = "openai_compatible"

    def __init__(
        self,
        cfg: ProviderConfig,
        api_key: str | None,
        llm_logger: logging.Logger | None = None,
        redaction: str = "redact_urls",
        client: httpx.Client | None = None,
    ):
        if not api_key:
            raise ValueError(f"Missing API key (set {cfg.api_key_env} or provider.api_key)")
        if not cfg.endpoint:
            raise ValueError("Missing provider endpoint")
        self.cfg = cfg
        self.api_key = api_key
        self.llm_logger = llm_logger
        self.redaction = redaction
        self._client = client

    def complete(
        self,
        system: str,
        user: str,
        max_tokens: int,
        temperature: float | None = None,
    ) -> str:
        payload = self._build_payload(system, user, max_tokens, temperature)
        with start_span(
            f"{self.provider_name}.complete",
            kind="llm",
            input_value=user,
            attributes={"llm.model": self._model_label(), "llm.max_tokens": max_tokens},
        ) as span:
            try:
                data = self._post(self._completions_url(), payload)
            except (UpstreamError, ValueError) as exc:
                record_span_error(span, exc)
                self._log_llm_response("error", user, str(exc))
                if isinstance(exc, UpstreamError):
                    raise
                raise UpstreamError(f"Upstream returned invalid JSON: {exc}") from exc

            content = _extract_text(data)
            if content is None:
                error = UpstreamError("Upstream response has no choices[0].message.content")
                record_span_error(span, error)
                self._log_llm_response("malformed", user, str(data)[:500])
                raise error
            set_span_output(span, content)
            self._log_llm_response("ok", user, content)
            return content

    def health_check(self) -> bool:
        try:
            resp = self._send("GET", self._models_url(), timeout=5.0)
        except httpx.HTTPError:
            return False
        return resp.status_code == 200

    def _build_payload(
        self, system: str, user: str, max_tokens: int, temperature: float | None
    ) -> dict[str, Any]:
        return {
            "model": self.cfg.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": max_tokens,
            "temperature": self.cfg.temperature if temperature is None else temperature,
        }

    def _completions_url(self) -> str:
        return f"{self.cfg.endpoint.rstrip('/')}/chat/completions"

    def _models_url(self) -> str:
        return f"{self.cfg.endpoint.rstrip('/')}/models"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _params(self) -> dict[str, str]:
        return {}

    def _model_label(self) -> str:
        return self.cfg.model

    def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = self._send("POST", url, json=payload)
            resp.raise_for_status()
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"Upstream timed out after {self.cfg.timeout_seconds}s") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Failed to process AI request: {type(exc).__name__}: {exc}") from exc
        return resp.json()

    def _send(self, method: str, url: str, timeout: float | None = None, **kwargs: Any) -> httpx.Response:
        timeout = timeout if timeout is not None else self.cfg.timeout_seconds
        if self._client is not None:
            return self._client.request(
                method, url, headers=self._headers(), params=self._params(), timeout=timeout, **kwargs
            )
        with httpx.Client(timeout=timeout, trust_env=self.cfg.trust_env) as client:
            return client.request(method, url, headers=self._headers(), params=self._params(), **kwargs)

    def _log_llm_response(self, status: str, prompt: str, content: str) -> None:
        if self.llm_logger is None:
            return
        log_event(
            self.llm_logger,
            "LLM response",
            event="llm_response",
            status=status,
            provider=self.provider_name,
            model=self._model_label(),
            raw_prompt=truncate_text(redact_text(prompt, self.redaction)),
            raw_response=truncate_text(redact_text(content, self.redaction)),
        )


def _extract_text(data: dict[str, Any]) -> str | None:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    if content is None:
        return ""
    return str(content)
