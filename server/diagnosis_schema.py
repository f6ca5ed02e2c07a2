from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TEETH_COUNT = 32

Severity = Literal["none", "mild", "moderate", "severe"]
Urgency = Literal["routine", "soon", "urgent", "emergency"]


def _normalize_label(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class _WireModel(BaseModel):
    # camelCase on the wire, snake_case in Python.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Finding(_WireModel):
    category: str = ""
    description: str = ""
    severity: Severity
    confidence: float = Field(ge=0, le=100)

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, value: Any) -> Any:
        return _normalize_label(value)

    @field_validator("category", "description", mode="before")
    @classmethod
    def null_text_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ToothDiagnosis(_WireModel):
    tooth_number: int = Field(ge=1, le=TEETH_COUNT)
    condition: str = ""
    severity: Severity
    notes: str = ""

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, value: Any) -> Any:
        return _normalize_label(value)

    @field_validator("condition", "notes", mode="before")
    @classmethod
    def null_text_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ComparisonResult(_WireModel):
    correct: list[str] = Field(default_factory=list)
    incorrect: list[str] = Field(default_factory=list)
    additional: list[str] = Field(default_factory=list)

    @field_validator("correct", "incorrect", "additional", mode="before")
    @classmethod
    def null_list_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class DiagnosisResult(_WireModel):
    overall_assessment: str
    confidence_score: float | None = Field(default=None, ge=0, le=100)
    findings: list[Finding]
    comparison_with_initial_diagnosis: ComparisonResult = Field(default_factory=ComparisonResult)
    teeth_chart: list[ToothDiagnosis]
    recommendations: list[str] = Field(default_factory=list)
    urgency: Urgency | None = None

    @field_validator("urgency", mode="before")
    @classmethod
    def normalize_urgency(cls, value: Any) -> Any:
        return _normalize_label(value)

    @field_validator("recommendations", mode="before")
    @classmethod
    def null_list_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("comparison_with_initial_diagnosis", mode="before")
    @classmethod
    def null_comparison_to_empty(cls, value: Any) -> Any:
        return ComparisonResult() if value is None else value


class ModelUsed(_WireModel):
    id: str
    name: str
    provider: str


class AnalysisEnvelope(_WireModel):
    id: str
    diagnosis: DiagnosisResult
    initial_diagnosis: str
    file_name: str
    file_data_uri: str
    timestamp: str
    model_used: ModelUsed

    def to_response(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json", by_alias=True)
        # Clients of the original service read the image back from ``fileData``.
        payload["fileData"] = self.file_data_uri
        return payload
