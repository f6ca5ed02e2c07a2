from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .analysis_errors import UnknownModelError
from .settings import DEFAULT_MODEL_ID

logger = logging.getLogger(__name__)

DEFAULT_INPUT_TOKENS = 2000
DEFAULT_OUTPUT_TOKENS = 1500


@dataclass(frozen=True)
class ModelConfig:
    alias: str
    canonical_id: str
    display_name: str
    provider: str
    description: str
    context_window: int
    supports_vision: bool
    cost_per_million_input_tokens: float
    cost_per_million_output_tokens: float
    release_label: str | None = None
    is_new: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "alias": self.alias,
            "id": self.canonical_id,
            "name": self.display_name,
            "provider": self.provider,
            "description": self.description,
            "contextWindow": self.context_window,
            "supportsVision": self.supports_vision,
            "costPer1MInputTokens": self.cost_per_million_input_tokens,
            "costPer1MOutputTokens": self.cost_per_million_output_tokens,
            "isNew": self.is_new,
        }
        if self.release_label:
            payload["released"] = self.release_label
        return payload


def _model(
    alias: str,
    canonical_id: str,
    display_name: str,
    provider: str,
    description: str,
    context_window: int,
    supports_vision: bool,
    input_cost: float,
    output_cost: float,
    *,
    released: str | None = None,
    is_new: bool = False,
) -> ModelConfig:
    return ModelConfig(
        alias=alias,
        canonical_id=canonical_id,
        display_name=display_name,
        provider=provider,
        description=description,
        context_window=context_window,
        supports_vision=supports_vision,
        cost_per_million_input_tokens=input_cost,
        cost_per_million_output_tokens=output_cost,
        release_label=released,
        is_new=is_new,
    )


# Prices are USD per 1M tokens as listed by OpenRouter.
CATALOG_ENTRIES: tuple[ModelConfig, ...] = (
    # Anthropic
    _model(
        "claude-haiku-4.5", "anthropic/claude-haiku-4.5", "Claude Haiku 4.5", "Anthropic",
        "Near-frontier intelligence at a fraction of the cost", 200000, True, 1.0, 5.0,
        released="January 2025", is_new=True,
    ),
    _model(
        "claude-3.5-sonnet", "anthropic/claude-3.5-sonnet", "Claude 3.5 Sonnet", "Anthropic",
        "Most intelligent model, excellent for medical analysis", 200000, True, 3.0, 15.0,
    ),
    _model(
        "claude-3.5-haiku", "anthropic/claude-3.5-haiku", "Claude 3.5 Haiku", "Anthropic",
        "Fast and affordable", 200000, True, 0.8, 4.0,
    ),
    _model(
        "claude-3-opus", "anthropic/claude-3-opus", "Claude 3 Opus", "Anthropic",
        "Powerful model with strong reasoning", 200000, True, 15.0, 75.0,
    ),
    _model(
        "claude-3-sonnet", "anthropic/claude-3-sonnet", "Claude 3 Sonnet", "Anthropic",
        "Balanced performance and cost", 200000, True, 3.0, 15.0,
    ),
    _model(
        "claude-3-haiku", "anthropic/claude-3-haiku", "Claude 3 Haiku", "Anthropic",
        "Fast and affordable", 200000, True, 0.25, 1.25,
    ),
    # OpenAI
    _model(
        "gpt-5-image-mini", "openai/gpt-5-image-mini", "GPT-5 Image Mini", "OpenAI",
        "GPT-5 Mini with image generation, low latency", 400000, True, 2.5, 2.0,
        released="January 2025", is_new=True,
    ),
    _model(
        "gpt-5-image", "openai/gpt-5-image", "GPT-5 Image", "OpenAI",
        "Most advanced GPT with image generation", 400000, True, 10.0, 10.0,
        released="January 2025", is_new=True,
    ),
    _model(
        "gpt-4o", "openai/gpt-4o", "GPT-4o", "OpenAI",
        "Multimodal flagship model", 128000, True, 2.5, 10.0,
    ),
    _model(
        "gpt-4-turbo", "openai/gpt-4-turbo", "GPT-4 Turbo", "OpenAI",
        "Vision-capable GPT-4", 128000, True, 10.0, 30.0,
    ),
    _model(
        "gpt-4o-mini", "openai/gpt-4o-mini", "GPT-4o Mini", "OpenAI",
        "Affordable and fast", 128000, True, 0.15, 0.6,
    ),
    # Google
    _model(
        "gemini-2.5-flash", "google/gemini-2.5-flash", "Gemini 2.5 Flash", "Google",
        "Workhorse thinking model with extended reasoning", 1000000, True, 0.075, 0.3,
        released="January 2025", is_new=True,
    ),
    _model(
        "gemini-2.5-pro", "google/gemini-2.5-pro", "Gemini 2.5 Pro", "Google",
        "Advanced model with thinking capabilities", 2000000, True, 1.25, 5.0,
        released="January 2025", is_new=True,
    ),
    _model(
        "gemini-pro-1.5", "google/gemini-pro-1.5", "Gemini 1.5 Pro", "Google",
        "Large context window, vision support", 2000000, True, 1.25, 5.0,
    ),
    _model(
        "gemini-flash-1.5", "google/gemini-flash-1.5", "Gemini 1.5 Flash", "Google",
        "Fast and cost-effective", 1000000, True, 0.075, 0.3,
    ),
    _model(
        "gemini-2.0-flash", "google/gemini-2.0-flash", "Gemini 2.0 Flash", "Google",
        "Production-ready Gen 2 model", 1000000, True, 0.075, 0.3,
    ),
    # Qwen
    _model(
        "qwen3-vl-8b-instruct", "qwen/qwen3-vl-8b-instruct", "Qwen3 VL 8B Instruct", "Qwen",
        "Multimodal vision-language model, 256K context", 262000, True, 0.18, 0.69,
        released="January 2025", is_new=True,
    ),
    _model(
        "qwen3-vl-8b-thinking", "qwen/qwen3-vl-8b-thinking", "Qwen3 VL 8B Thinking", "Qwen",
        "Reasoning-optimized multimodal model", 256000, True, 0.18, 2.10,
        released="January 2025", is_new=True,
    ),
    # Mistral
    _model(
        "mistral-large", "mistralai/mistral-large", "Mistral Large", "Mistral",
        "European model with vision", 128000, True, 3.0, 9.0,
    ),
    # Text-only
    _model(
        "llama-3.1-405b", "meta-llama/llama-3.1-405b-instruct", "Llama 3.1 405B", "Meta",
        "Largest open-source model (no vision)", 128000, False, 2.7, 2.7,
    ),
    _model(
        "perplexity-online", "perplexity/llama-3.1-sonar-large-128k-online", "Perplexity Online", "Perplexity",
        "Has access to real-time web data (no vision)", 127072, False, 1.0, 1.0,
    ),
)

RECOMMENDED_ALIASES: dict[str, tuple[str, ...]] = {
    "production": ("claude-3.5-sonnet", "gpt-4o", "gemini-pro-1.5"),
    "budget": ("gemini-flash-1.5", "gemini-2.0-flash", "gpt-4o-mini"),
    "development": ("claude-haiku-4.5", "claude-3.5-haiku", "qwen3-vl-8b-instruct"),
}


def build_catalog(entries: Iterable[ModelConfig]) -> Mapping[str, ModelConfig]:
    """Index entries by alias, rejecting duplicate aliases/ids and negative prices."""
    by_alias: dict[str, ModelConfig] = {}
    seen_ids: set[str] = set()
    for entry in entries:
        if entry.alias in by_alias:
            raise ValueError(f"Duplicate model alias '{entry.alias}' in catalog.")
        if entry.canonical_id in seen_ids:
            raise ValueError(f"Duplicate canonical model id '{entry.canonical_id}' in catalog.")
        if entry.cost_per_million_input_tokens < 0 or entry.cost_per_million_output_tokens < 0:
            raise ValueError(f"Model '{entry.alias}' has negative pricing.")
        by_alias[entry.alias] = entry
        seen_ids.add(entry.canonical_id)
    return MappingProxyType(by_alias)


MODEL_CATALOG: Mapping[str, ModelConfig] = build_catalog(CATALOG_ENTRIES)


class ModelRegistry:
    """
    Read-only lookup over the model catalog.

    Misses never fail the caller: the registry logs a warning and hands back
    the fallback configuration, unless ``strict=True`` is requested.
    """

    def __init__(
        self,
        catalog: Mapping[str, ModelConfig] | None = None,
        *,
        default_model: str | None = None,
        fallback_model: str = DEFAULT_MODEL_ID,
    ) -> None:
        self.catalog = catalog if catalog is not None else MODEL_CATALOG
        self._by_canonical_id = MappingProxyType(
            {config.canonical_id: config for config in self.catalog.values()}
        )
        fallback = self._lookup(fallback_model)
        if fallback is None:
            raise ValueError(f"Fallback model '{fallback_model}' is not in the catalog.")
        self.fallback = fallback
        self.default_model = (default_model or "").strip() or fallback_model

    def _lookup(self, model_id_or_alias: str) -> ModelConfig | None:
        config = self.catalog.get(model_id_or_alias)
        if config is not None:
            return config
        return self._by_canonical_id.get(model_id_or_alias)

    def resolve(self, model_id_or_alias: str | None = None, *, strict: bool = False) -> ModelConfig:
        requested = (model_id_or_alias or "").strip() or self.default_model
        config = self._lookup(requested)
        if config is not None:
            return config
        if strict:
            raise UnknownModelError(
                f"Model {requested} is not available.",
                suggestion=f"Try: {format_suggestions(suggest_vision_alternatives(self))}",
            )
        logger.warning("Model %s not found in catalog, using default %s", requested, self.fallback.canonical_id)
        return self.fallback

    def list_models(self) -> list[ModelConfig]:
        return list(self.catalog.values())

    def list_vision_models(self) -> list[ModelConfig]:
        return [config for config in self.catalog.values() if supports_vision(config)]

    def list_new_models(self) -> list[ModelConfig]:
        return [config for config in self.catalog.values() if config.is_new]

    def recommended_models(self) -> dict[str, list[ModelConfig]]:
        tiers: dict[str, list[ModelConfig]] = {}
        for tier, aliases in RECOMMENDED_ALIASES.items():
            tiers[tier] = [self.catalog[alias] for alias in aliases if alias in self.catalog]
        return tiers

    def estimate_cost_for(
        self,
        model_id_or_alias: str | None,
        input_tokens: int = DEFAULT_INPUT_TOKENS,
        output_tokens: int = DEFAULT_OUTPUT_TOKENS,
    ) -> float:
        return estimate_cost(self.resolve(model_id_or_alias), input_tokens, output_tokens)


def supports_vision(config: ModelConfig) -> bool:
    return bool(config.supports_vision)


def estimate_cost(
    config: ModelConfig,
    input_tokens: int = DEFAULT_INPUT_TOKENS,
    output_tokens: int = DEFAULT_OUTPUT_TOKENS,
) -> float:
    input_cost = (input_tokens / 1_000_000) * config.cost_per_million_input_tokens
    output_cost = (output_tokens / 1_000_000) * config.cost_per_million_output_tokens
    return input_cost + output_cost


def suggest_vision_alternatives(registry: ModelRegistry, limit: int = 3) -> list[str]:
    production = registry.recommended_models().get("production", [])
    candidates = [config.canonical_id for config in production if supports_vision(config)]
    return candidates[:limit]


def format_suggestions(model_ids: list[str]) -> str:
    if not model_ids:
        return ""
    if len(model_ids) == 1:
        return model_ids[0]
    return f"{', '.join(model_ids[:-1])}, or {model_ids[-1]}"
