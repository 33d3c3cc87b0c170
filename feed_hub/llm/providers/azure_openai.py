"""Azure OpenAI chat completions provider."""

from __future__ import annotations

from .openai_compatible import OpenAICompatibleProvider


class AzureOpenAIProvider(OpenAICompatibleProvider):
    """Provider for an Azure OpenAI deployment.

    Differs from the generic provider only in addressing: the deployment is
    part of the URL, the API version is a query parameter, and the key goes
    in an ``api-key`` header.
    """

    provider_name = "azure_openai"

    def _build_payload(self, system, user, max_tokens, temperature):
        payload = super()._build_payload(system, user, max_tokens, temperature)
        # The deployment already pins the model.
        payload.pop("model", None)
        return payload

    def _completions_url(self) -> str:
        base = self.cfg.endpoint.rstrip("/")
        return f"{base}/openai/deployments/{self.cfg.deployment}/chat/completions"

    def _models_url(self) -> str:
        return f"{self.cfg.endpoint.rstrip('/')}/openai/models"

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "api-key": self.api_key}

    def _params(self) -> dict[str, str]:
        return {"api-version": self.cfg.api_version}

    def _model_label(self) -> str:
        return self.cfg.deployment
