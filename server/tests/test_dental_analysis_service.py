from __future__ import annotations

import base64
import json
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from server.analysis_client import RawReply  # noqa: E402
from server.analysis_errors import (  # noqa: E402
    ConfigurationError,
    MalformedResponseError,
    NonVisionModel,
    SchemaValidationError,
    UnsupportedMediaType,
    ValidationError,
)
from server.dental_analysis import (  # noqa: E402
    AnalysisRequest,
    DentalAnalysisService,
    resolve_upload_media_type,
)
from server.settings import AnalysisSettings  # noqa: E402


def _diagnosis_payload() -> dict:
    return {
        "overallAssessment": "Generally healthy dentition with one carious lesion.",
        "confidenceScore": 88,
        "findings": [
            {"category": "Caries", "description": "Lesion on tooth 3", "severity": "mild", "confidence": 70}
        ],
        "comparisonWithInitialDiagnosis": {"correct": ["Cavity"], "incorrect": [], "additional": []},
        "teethChart": [
            {"toothNumber": number, "condition": "Healthy", "severity": "none", "notes": ""}
            for number in range(1, 33)
        ],
        "recommendations": ["Restore tooth 3"],
        "urgency": "routine",
    }


class _FakeClient:
    def __init__(
        self,
        *,
        reply_text: str = "",
        configured: bool = True,
        request_metadata: dict | None = None,
    ) -> None:
        self.reply_text = reply_text
        self.request_metadata = request_metadata or {}
        self.configured = configured
        self.calls: list[dict[str, object]] = []

    def availability(self):
        return {"id": "fake", "label": "Fake", "configured": self.configured, "default_model": "x"}

    def ensure_configured(self) -> str:
        if not self.configured:
            raise ConfigurationError("OpenRouter API key not configured")
        return "sk-fake"

    def call(self, config, messages) -> RawReply:
        self.calls.append({"model": config.canonical_id, "messages": messages})
        return RawReply(
            text=self.reply_text,
            model_used=config.canonical_id,
            request_metadata=self.request_metadata,
        )


def _service(client: _FakeClient, **settings_overrides) -> DentalAnalysisService:
    settings = AnalysisSettings(api_key="sk-fake", **settings_overrides)
    return DentalAnalysisService(settings=settings, client=client)


def _request(**overrides) -> AnalysisRequest:
    values = {
        "image_bytes": b"fake-png-bytes",
        "image_mime_type": "image/png",
        "patient_initial_diagnosis": "I think I have a cavity",
        "file_name": "scan.png",
        "requested_model": None,
    }
    values.update(overrides)
    return AnalysisRequest(**values)


def test_analyze_builds_envelope_from_fenced_reply():
    client = _FakeClient(reply_text="Here you go:\n```json\n" + json.dumps(_diagnosis_payload()) + "\n```")
    service = _service(client)

    envelope = service.analyze(_request(requested_model="gpt-4o"))

    assert client.calls[0]["model"] == "openai/gpt-4o"
    assert len(envelope.diagnosis.teeth_chart) == 32
    assert envelope.model_used.id == "openai/gpt-4o"
    assert envelope.model_used.provider == "OpenAI"
    assert envelope.file_name == "scan.png"
    assert envelope.initial_diagnosis == "I think I have a cavity"
    assert envelope.file_data_uri == "data:image/png;base64," + base64.b64encode(b"fake-png-bytes").decode("ascii")
    assert envelope.timestamp.endswith("Z")

    payload = envelope.to_response()
    assert payload["fileData"] == payload["fileDataUri"]
    assert len(payload["diagnosis"]["teethChart"]) == 32
    assert payload["modelUsed"] == {"id": "openai/gpt-4o", "name": "GPT-4o", "provider": "OpenAI"}


def test_analysis_ids_are_unique_per_request():
    client = _FakeClient(reply_text=json.dumps(_diagnosis_payload()))
    service = _service(client)

    ids = {service.analyze(_request()).id for _ in range(20)}

    assert len(ids) == 20


def test_default_model_comes_from_settings():
    client = _FakeClient(reply_text=json.dumps(_diagnosis_payload()))
    service = _service(client, default_model="gemini-flash-1.5")

    envelope = service.analyze(_request())

    assert envelope.model_used.id == "google/gemini-flash-1.5"


def test_unknown_model_falls_back_to_default_configuration():
    client = _FakeClient(reply_text=json.dumps(_diagnosis_payload()))
    service = _service(client)

    envelope = service.analyze(_request(requested_model="acme/mystery-model"))

    assert envelope.model_used.id == "anthropic/claude-3.5-sonnet"


@pytest.mark.parametrize(
    "overrides",
    [
        {"image_bytes": b""},
        {"patient_initial_diagnosis": ""},
        {"patient_initial_diagnosis": "   "},
    ],
)
def test_missing_inputs_raise_validation_error(overrides):
    client = _FakeClient()

    with pytest.raises(ValidationError) as exc_info:
        _service(client).analyze(_request(**overrides))

    assert exc_info.value.message == "Missing required fields"
    assert client.calls == []


def test_pdf_upload_is_rejected_before_calling_provider():
    client = _FakeClient()

    with pytest.raises(UnsupportedMediaType):
        _service(client).analyze(_request(image_mime_type="application/pdf"))

    assert client.calls == []


def test_non_vision_model_is_rejected_with_suggestion():
    client = _FakeClient()

    with pytest.raises(NonVisionModel) as exc_info:
        _service(client).analyze(_request(requested_model="llama-3.1-405b"))

    assert "Llama 3.1 405B" in exc_info.value.message
    assert "anthropic/claude-3.5-sonnet" in exc_info.value.suggestion
    assert client.calls == []


def test_missing_credential_is_configuration_error():
    client = _FakeClient(configured=False)

    with pytest.raises(ConfigurationError):
        _service(client).analyze(_request())

    assert client.calls == []


def test_prose_only_reply_is_malformed():
    client = _FakeClient(reply_text="I'm sorry, I can't help with that image.")

    with pytest.raises(MalformedResponseError) as exc_info:
        _service(client).analyze(_request())

    assert exc_info.value.raw_prefix.startswith("I'm sorry")


def test_reply_missing_teeth_chart_is_schema_error():
    payload = _diagnosis_payload()
    payload.pop("teethChart")
    client = _FakeClient(reply_text=json.dumps(payload))

    with pytest.raises(SchemaValidationError) as exc_info:
        _service(client).analyze(_request())

    assert exc_info.value.missing_fields == ["teethChart"]


def test_describe_models_includes_cost_estimates():
    service = _service(_FakeClient())

    vision_payload = service.describe_models(vision_only=True)
    all_payload = service.describe_models()

    assert all(model["supportsVision"] for model in vision_payload["models"])
    assert len(all_payload["models"]) > len(vision_payload["models"])
    assert vision_payload["defaultModel"]["id"] == "anthropic/claude-3.5-sonnet"
    assert vision_payload["defaultModel"]["estimatedCostPerAnalysis"] == pytest.approx(0.0285)


def test_describe_recommended_models_lists_tiers():
    payload = _service(_FakeClient()).describe_recommended_models()

    assert [model["id"] for model in payload["production"]] == [
        "anthropic/claude-3.5-sonnet",
        "openai/gpt-4o",
        "google/gemini-pro-1.5",
    ]


def test_resolve_upload_media_type_guesses_from_filename_only_for_images():
    assert resolve_upload_media_type("image/PNG; charset=binary", "scan.png") == "image/png"
    assert resolve_upload_media_type(None, "scan.jpg") == "image/jpeg"
    assert resolve_upload_media_type("", "notes.pdf") == ""


def test_verbose_logging_reports_request_metadata(caplog):
    client = _FakeClient(
        reply_text=json.dumps(_diagnosis_payload()),
        request_metadata={"provider": "openrouter", "status_code": 200},
    )
    service = _service(client, verbose_logging=True)

    with caplog.at_level("INFO", logger="server.dental_analysis"):
        service.analyze(_request())

    assert "Reply received" in caplog.text
    assert "'provider': 'openrouter'" in caplog.text
    assert "'status_code': 200" in caplog.text


def test_quiet_logging_omits_request_metadata(caplog):
    client = _FakeClient(
        reply_text=json.dumps(_diagnosis_payload()),
        request_metadata={"provider": "openrouter"},
    )
    service = _service(client)

    with caplog.at_level("INFO", logger="server.dental_analysis"):
        service.analyze(_request())

    assert "Reply received" not in caplog.text
    assert "openrouter" not in caplog.text
