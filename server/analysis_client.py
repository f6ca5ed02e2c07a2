from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .analysis_errors import (
    ConfigurationError,
    EmptyResponseError,
    UpstreamError,
    bounded_prefix,
)
from .analysis_prompts import AnalysisMessages
from .model_catalog import ModelConfig
from .settings import AnalysisSettings

logger = logging.getLogger(__name__)


@dataclass
class RawReply:
    text: str
    model_used: str
    request_metadata: dict[str, Any]


class OpenRouterAnalysisClient:
    """Single-attempt chat-completions call against an OpenAI-compatible gateway."""

    route_id = "openrouter"
    label = "OpenRouter"

    def __init__(
        self,
        settings: AnalysisSettings,
        *,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings
        self.http_client = http_client

    @property
    def configured(self) -> bool:
        return self.settings.configured

    def availability(self) -> dict[str, Any]:
        return {
            "id": self.route_id,
            "label": self.label,
            "configured": self.configured,
            "default_model": self.settings.default_model,
        }

    def ensure_configured(self) -> str:
        api_key = self.settings.api_key.strip()
        if not api_key:
            raise ConfigurationError(
                "OpenRouter API key not configured",
                details="Set OPENROUTER_API_KEY in the server environment.",
            )
        return api_key

    def call(self, config: ModelConfig, messages: AnalysisMessages) -> RawReply:
        api_key = self.ensure_configured()

        request_payload: dict[str, Any] = {
            "model": config.canonical_id,
            "messages": messages.to_chat_messages(),
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
        }
        url = _build_chat_completions_url(self.settings.base_url)
        response = self._post_json(
            url=url,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "HTTP-Referer": self.settings.app_url,
                "X-Title": self.settings.app_title,
            },
            request_payload=request_payload,
        )
        if response.status_code >= 400:
            logger.error("OpenRouter request failed with status %s", response.status_code)
            raise UpstreamError(
                "Failed to analyze image",
                upstream_status=response.status_code,
                raw_body=response.text,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(
                "Failed to analyze image",
                upstream_status=response.status_code,
                raw_body=f"Provider response was not valid JSON: {bounded_prefix(response.text)}",
            ) from exc

        text = _extract_reply_text(payload)
        if not text.strip():
            raise EmptyResponseError("No response from AI")

        return RawReply(
            text=text,
            model_used=config.canonical_id,
            request_metadata={
                "provider": self.route_id,
                "endpoint": url,
                "model": config.canonical_id,
                "status_code": response.status_code,
            },
        )

    def _post_json(
        self,
        *,
        url: str,
        headers: dict[str, str],
        request_payload: dict[str, Any],
    ) -> httpx.Response:
        normalized_headers = dict(headers)
        normalized_headers.setdefault("User-Agent", "DRS-AI/1.0")
        try:
            if self.http_client is not None:
                return self.http_client.post(
                    url,
                    headers=normalized_headers,
                    json=request_payload,
                    timeout=self.settings.timeout_seconds,
                )
            return httpx.post(
                url,
                headers=normalized_headers,
                json=request_payload,
                timeout=self.settings.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamError(
                "Failed to analyze image",
                raw_body=f"Provider did not respond within {self.settings.timeout_seconds:g} seconds.",
                suggestion="Retry the analysis or choose a faster model.",
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(
                "Failed to analyze image",
                raw_body=f"HTTP request failed: {exc}",
            ) from exc


def _build_chat_completions_url(base_url: str) -> str:
    normalized = base_url.strip().rstrip("/")
    if normalized.endswith("/chat/completions"):
        return normalized
    return f"{normalized}/chat/completions"


def _extract_reply_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise EmptyResponseError(
            "No response from AI",
            details=f"Unexpected provider payload: {bounded_prefix(json.dumps(payload))}",
        )
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise EmptyResponseError("No response from AI", details="Provider response does not contain choices.")
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        raise EmptyResponseError("No response from AI", details="Provider response is missing a message.")

    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        chunks: list[str] = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
                chunks.append(item["text"])
        return "\n".join(chunks)
    return ""
