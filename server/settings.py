from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL_ID = "anthropic/claude-3.5-sonnet"
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 4000


@dataclass(frozen=True)
class AnalysisSettings:
    api_key: str = ""
    default_model: str = DEFAULT_MODEL_ID
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    app_url: str = "https://drsai.app"
    app_title: str = "DRS AI Dental Analysis"
    log_level: str = "INFO"
    verbose_logging: bool = False

    @property
    def configured(self) -> bool:
        return bool(self.api_key.strip())

    @classmethod
    def from_env(cls) -> "AnalysisSettings":
        return cls(
            api_key=os.getenv("OPENROUTER_API_KEY", "").strip(),
            default_model=os.getenv("OPENROUTER_MODEL", "").strip() or DEFAULT_MODEL_ID,
            base_url=os.getenv("OPENROUTER_BASE_URL", "").strip().rstrip("/") or DEFAULT_BASE_URL,
            timeout_seconds=_parse_positive_float(
                os.getenv("ANALYSIS_REQUEST_TIMEOUT_SECONDS"),
                fallback=DEFAULT_TIMEOUT_SECONDS,
            ),
            temperature=_parse_float(os.getenv("ANALYSIS_TEMPERATURE"), fallback=DEFAULT_TEMPERATURE),
            max_tokens=_parse_positive_int(os.getenv("ANALYSIS_MAX_TOKENS"), fallback=DEFAULT_MAX_TOKENS),
            app_url=os.getenv("OPENROUTER_APP_URL", "https://drsai.app"),
            app_title=os.getenv("OPENROUTER_APP_TITLE", "DRS AI Dental Analysis"),
            log_level=(os.getenv("ANALYSIS_LOG_LEVEL") or "INFO").strip().upper(),
            verbose_logging=_parse_bool_env(os.getenv("ANALYSIS_VERBOSE_LOGGING"), default=False),
        )


def _parse_float(raw_value: str | None, *, fallback: float) -> float:
    if raw_value is None:
        return fallback
    try:
        return float(raw_value)
    except ValueError:
        return fallback


def _parse_positive_float(raw_value: str | None, *, fallback: float) -> float:
    parsed = _parse_float(raw_value, fallback=fallback)
    if parsed <= 0:
        return fallback
    return parsed


def _parse_positive_int(raw_value: str | None, *, fallback: int) -> int:
    if raw_value is None:
        return fallback
    try:
        parsed = int(raw_value)
    except ValueError:
        return fallback
    if parsed <= 0:
        return fallback
    return parsed


def _parse_bool_env(raw_value: str | None, *, default: bool) -> bool:
    if raw_value is None:
        return default
    value = raw_value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default
