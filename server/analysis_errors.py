"""Failure taxonomy for the analysis pipeline.

Every error raised between the upload boundary and the envelope carries a
stable ``error_kind`` and HTTP status on its class, so the boundary only
needs :func:`classify_error` and :func:`error_response_body`.
"""
from __future__ import annotations

from typing import Any

RAW_PREFIX_LIMIT = 500


class AnalysisError(RuntimeError):
    error_kind = "AnalysisError"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        details: str | None = None,
        suggestion: str | None = None,
        raw_response: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.suggestion = suggestion
        self.raw_response = raw_response


class ValidationError(AnalysisError):
    error_kind = "ValidationError"
    status_code = 400


class UnsupportedMediaType(AnalysisError):
    error_kind = "UnsupportedMediaType"
    status_code = 400


class NonVisionModel(AnalysisError):
    error_kind = "NonVisionModel"
    status_code = 400


class UnknownModelError(AnalysisError):
    error_kind = "UnknownModelError"
    status_code = 400


class ConfigurationError(AnalysisError):
    error_kind = "ConfigurationError"
    status_code = 500


class UpstreamError(AnalysisError):
    error_kind = "UpstreamError"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        upstream_status: int | None = None,
        raw_body: str = "",
        suggestion: str | None = None,
    ) -> None:
        super().__init__(message, details=raw_body or None, suggestion=suggestion)
        self.upstream_status = upstream_status
        self.raw_body = raw_body


class EmptyResponseError(AnalysisError):
    error_kind = "EmptyResponseError"
    status_code = 500


class MalformedResponseError(AnalysisError):
    error_kind = "MalformedResponseError"
    status_code = 500

    def __init__(self, message: str, *, raw_text: str, details: str | None = None) -> None:
        raw_prefix = bounded_prefix(raw_text)
        super().__init__(message, details=details, raw_response=raw_prefix)
        self.raw_prefix = raw_prefix


class SchemaValidationError(AnalysisError):
    error_kind = "SchemaValidationError"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        missing_fields: list[str] | None = None,
        invalid_fields: list[str] | None = None,
        raw_text: str | None = None,
    ) -> None:
        self.missing_fields = list(missing_fields or [])
        self.invalid_fields = list(invalid_fields or [])
        parts: list[str] = []
        if self.missing_fields:
            parts.append(f"Missing fields: {', '.join(self.missing_fields)}")
        if self.invalid_fields:
            parts.append(f"Invalid fields: {', '.join(self.invalid_fields)}")
        super().__init__(
            message,
            details="; ".join(parts) or None,
            raw_response=bounded_prefix(raw_text) if raw_text is not None else None,
        )


class InternalError(AnalysisError):
    error_kind = "InternalError"
    status_code = 500


def bounded_prefix(text: str | None, limit: int = RAW_PREFIX_LIMIT) -> str:
    if not text:
        return ""
    return text[:limit]


def classify_error(exc: BaseException) -> tuple[str, int]:
    if isinstance(exc, AnalysisError):
        return exc.error_kind, exc.status_code
    return InternalError.error_kind, InternalError.status_code


def error_response_body(exc: BaseException) -> dict[str, Any]:
    if not isinstance(exc, AnalysisError):
        return {"error": "Internal server error", "details": str(exc) or exc.__class__.__name__}

    body: dict[str, Any] = {"error": exc.message}
    if exc.details:
        body["details"] = exc.details
    if exc.suggestion:
        body["suggestion"] = exc.suggestion
    if exc.raw_response:
        body["rawResponse"] = exc.raw_response
    return body
