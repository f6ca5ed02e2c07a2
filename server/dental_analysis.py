from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import uuid4

from .analysis_client import OpenRouterAnalysisClient, RawReply
from .analysis_errors import (
    MalformedResponseError,
    NonVisionModel,
    SchemaValidationError,
    ValidationError,
    bounded_prefix,
)
from .analysis_prompts import AnalysisMessages, build_analysis_messages, normalize_media_type
from .diagnosis_parsing import extract_json, validate_diagnosis
from .diagnosis_schema import AnalysisEnvelope, ModelUsed
from .model_catalog import (
    ModelConfig,
    ModelRegistry,
    estimate_cost,
    format_suggestions,
    suggest_vision_alternatives,
    supports_vision,
)
from .settings import AnalysisSettings

logger = logging.getLogger(__name__)


class AnalysisClient(Protocol):
    def call(self, config: ModelConfig, messages: AnalysisMessages) -> RawReply: ...

    def ensure_configured(self) -> str: ...

    def availability(self) -> dict[str, Any]: ...


@dataclass
class AnalysisRequest:
    image_bytes: bytes
    image_mime_type: str
    patient_initial_diagnosis: str
    file_name: str = "upload"
    requested_model: str | None = None


def resolve_upload_media_type(content_type: str | None, file_name: str | None) -> str:
    normalized = normalize_media_type(content_type)
    if normalized:
        return normalized
    guessed_type, _ = mimetypes.guess_type(file_name or "")
    if isinstance(guessed_type, str) and guessed_type.startswith("image/"):
        return guessed_type
    return ""


class DentalAnalysisService:
    def __init__(
        self,
        *,
        settings: AnalysisSettings,
        registry: ModelRegistry | None = None,
        client: AnalysisClient | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry or ModelRegistry(default_model=settings.default_model)
        self.client = client or OpenRouterAnalysisClient(settings)

    def analyze(self, request: AnalysisRequest) -> AnalysisEnvelope:
        request_id = uuid4().hex[:8]
        logger.info("[%s] New analysis request (model=%s)", request_id, request.requested_model or "default")
        if self.settings.verbose_logging:
            logger.info(
                "[%s] Upload %s (%s, %.2f KB), diagnosis length %s",
                request_id,
                request.file_name,
                request.image_mime_type,
                len(request.image_bytes) / 1024,
                len(request.patient_initial_diagnosis or ""),
            )

        if not request.image_bytes or not (request.patient_initial_diagnosis or "").strip():
            logger.error("[%s] Missing required fields", request_id)
            raise ValidationError(
                "Missing required fields",
                details="Both 'file' and 'initialDiagnosis' are required.",
            )

        messages = build_analysis_messages(
            image_bytes=request.image_bytes,
            media_type=request.image_mime_type,
            initial_diagnosis=request.patient_initial_diagnosis,
        )

        model_config = self.registry.resolve(request.requested_model)
        if not supports_vision(model_config):
            logger.error("[%s] Model %s does not support vision", request_id, model_config.display_name)
            raise NonVisionModel(
                f"Model {model_config.display_name} does not support vision. Please use a vision-capable model.",
                details=f"Requested model: {model_config.canonical_id}",
                suggestion=f"Try: {format_suggestions(suggest_vision_alternatives(self.registry))}",
            )

        self.client.ensure_configured()
        logger.info(
            "[%s] Using model %s (%s), estimated cost $%.4f",
            request_id,
            model_config.display_name,
            model_config.canonical_id,
            estimate_cost(model_config),
        )

        reply = self.client.call(model_config, messages)
        if self.settings.verbose_logging:
            logger.info(
                "[%s] Reply received, content length %s, request %s",
                request_id,
                len(reply.text),
                reply.request_metadata,
            )

        try:
            parsed = extract_json(reply.text)
            diagnosis = validate_diagnosis(parsed, raw_text=reply.text)
        except (MalformedResponseError, SchemaValidationError):
            logger.error(
                "[%s] Unusable AI response. Raw content (first 500 chars): %s",
                request_id,
                bounded_prefix(reply.text),
            )
            raise

        logger.info(
            "[%s] Parsed diagnosis with %s teeth and %s findings",
            request_id,
            len(diagnosis.teeth_chart),
            len(diagnosis.findings),
        )

        envelope = AnalysisEnvelope(
            id=_new_analysis_id(),
            diagnosis=diagnosis,
            initial_diagnosis=request.patient_initial_diagnosis,
            file_name=request.file_name,
            file_data_uri=messages.image_data_uri,
            timestamp=_now_iso(),
            model_used=ModelUsed(
                id=model_config.canonical_id,
                name=model_config.display_name,
                provider=model_config.provider,
            ),
        )
        logger.info("[%s] Analysis complete, result id %s", request_id, envelope.id)
        return envelope

    def describe_models(self, *, vision_only: bool = False) -> dict[str, Any]:
        configs = self.registry.list_vision_models() if vision_only else self.registry.list_models()
        default_config = self.registry.resolve(None)
        return {
            "models": [_model_summary(config) for config in configs],
            "defaultModel": _model_summary(default_config),
            "provider": self.client.availability(),
        }

    def describe_recommended_models(self) -> dict[str, list[dict[str, Any]]]:
        return {
            tier: [_model_summary(config) for config in configs]
            for tier, configs in self.registry.recommended_models().items()
        }


def _model_summary(config: ModelConfig) -> dict[str, Any]:
    summary = config.to_dict()
    summary["estimatedCostPerAnalysis"] = round(estimate_cost(config), 6)
    return summary


def _new_analysis_id() -> str:
    utc_now = datetime.now(timezone.utc)
    return f"{utc_now.strftime('%Y%m%d%H%M%S')}_{uuid4().hex[:12]}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
