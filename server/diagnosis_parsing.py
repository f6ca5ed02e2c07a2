"""Turning a free-form model reply into a validated :class:`DiagnosisResult`.

``extract_json`` tolerates prose and code fences around the object; it is a
pure function so recorded replies can be replayed against it in tests.
``validate_diagnosis`` first applies the required-field gate and then the
typed schema (enumerations, tooth numbering, confidence ranges).
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from .analysis_errors import MalformedResponseError, SchemaValidationError
from .diagnosis_schema import TEETH_COUNT, DiagnosisResult

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("overallAssessment", "teethChart", "findings")
SEQUENCE_FIELDS = ("teethChart", "findings")

_OPENING_FENCE = re.compile(r"^\s*```[\w+-]*[ \t]*\r?\n?")
_CLOSING_FENCE = re.compile(r"\r?\n?```\s*$")


def strip_code_fences(text: str) -> str:
    # Only fences wrapping the whole reply; fences inside prose are left to the brace-span fallback.
    return _CLOSING_FENCE.sub("", _OPENING_FENCE.sub("", text, count=1), count=1)


def extract_json(raw_text: str | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(raw_text, Mapping):
        return dict(raw_text)
    if not isinstance(raw_text, str):
        raise MalformedResponseError("Invalid AI response format", raw_text="", details="Reply was not text.")

    candidate = strip_code_fences(raw_text).strip()
    if not (candidate.startswith("{") and candidate.endswith("}")):
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start == -1 or end <= start:
            raise MalformedResponseError(
                "Invalid AI response format",
                raw_text=raw_text,
                details="No JSON object found in model reply.",
            )
        candidate = candidate[start : end + 1]

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(
            "Invalid AI response format",
            raw_text=raw_text,
            details=f"Could not parse JSON: {exc.msg} (line {exc.lineno}, column {exc.colno})",
        ) from exc

    if not isinstance(payload, dict):
        raise MalformedResponseError(
            "Invalid AI response format",
            raw_text=raw_text,
            details="Model reply JSON is not an object.",
        )
    return payload


def find_missing_fields(parsed: Mapping[str, Any]) -> list[str]:
    missing: list[str] = []
    for field_name in REQUIRED_FIELDS:
        value = parsed.get(field_name)
        if value is None:
            missing.append(field_name)
        elif field_name == "overallAssessment" and isinstance(value, str) and not value.strip():
            missing.append(field_name)
    return missing


def validate_diagnosis(parsed: Any, *, raw_text: str | None = None) -> DiagnosisResult:
    if not isinstance(parsed, Mapping):
        raise SchemaValidationError(
            "Missing required fields in AI response",
            missing_fields=list(REQUIRED_FIELDS),
            raw_text=raw_text,
        )

    missing = find_missing_fields(parsed)
    if missing:
        raise SchemaValidationError(
            "Missing required fields in AI response",
            missing_fields=missing,
            raw_text=raw_text,
        )

    not_sequences = [name for name in SEQUENCE_FIELDS if not isinstance(parsed.get(name), list)]
    if not_sequences:
        raise SchemaValidationError(
            "Invalid AI response format",
            invalid_fields=not_sequences,
            raw_text=raw_text,
        )

    try:
        diagnosis = DiagnosisResult.model_validate(dict(parsed))
    except PydanticValidationError as exc:
        invalid_fields = sorted({_format_location(error["loc"]) for error in exc.errors()})
        raise SchemaValidationError(
            "AI response failed diagnosis schema validation",
            invalid_fields=invalid_fields,
            raw_text=raw_text,
        ) from exc

    _log_teeth_chart_anomalies(diagnosis)
    return diagnosis


def parse_diagnosis(raw_text: str) -> DiagnosisResult:
    return validate_diagnosis(extract_json(raw_text), raw_text=raw_text)


def _format_location(location: tuple[Any, ...]) -> str:
    parts: list[str] = []
    for item in location:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        elif parts:
            parts.append(f".{item}")
        else:
            parts.append(str(item))
    return "".join(parts)


def _log_teeth_chart_anomalies(diagnosis: DiagnosisResult) -> None:
    numbers = [tooth.tooth_number for tooth in diagnosis.teeth_chart]
    if len(numbers) != TEETH_COUNT:
        logger.warning("Teeth chart has %s entries, expected %s", len(numbers), TEETH_COUNT)
    duplicates = sorted({number for number in numbers if numbers.count(number) > 1})
    if duplicates:
        logger.warning("Teeth chart repeats tooth numbers %s", duplicates)
