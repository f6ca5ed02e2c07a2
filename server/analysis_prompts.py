from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any

from .analysis_errors import UnsupportedMediaType

ACCEPTED_IMAGE_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
        "image/gif",
    }
)

SYSTEM_PROMPT = """You are an expert dental AI assistant analyzing dental scans.
Provide a comprehensive dental diagnosis including:
1. Overall assessment
2. Confidence score (0-100)
3. Detailed findings with severity levels
4. Comparison with the patient's initial diagnosis (what they got right, wrong, and what you found additionally)
5. Individual tooth analysis for all 32 teeth (use Universal Numbering System: 1-32)
6. Recommendations
7. Urgency level

Return ONLY valid JSON matching this exact structure (no markdown, no code blocks):
{
  "overallAssessment": "string",
  "confidenceScore": number,
  "findings": [
    {
      "category": "string",
      "description": "string",
      "severity": "none" | "mild" | "moderate" | "severe",
      "confidence": number
    }
  ],
  "comparisonWithInitialDiagnosis": {
    "correct": ["string"],
    "incorrect": ["string"],
    "additional": ["string"]
  },
  "teethChart": [
    {
      "toothNumber": number (1-32),
      "condition": "string (e.g., 'Healthy', 'Cavity', 'Missing', 'Crown', etc.)",
      "severity": "none" | "mild" | "moderate" | "severe",
      "notes": "string"
    }
  ],
  "recommendations": ["string"],
  "urgency": "routine" | "soon" | "urgent" | "emergency"
}

The teethChart array must contain exactly 32 entries, one per tooth number from 1 to 32."""


@dataclass(frozen=True)
class AnalysisMessages:
    system_prompt: str
    user_prompt: str
    image_data_uri: str

    def to_chat_messages(self) -> list[dict[str, Any]]:
        return [
            {
                "role": "system",
                "content": self.system_prompt,
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": self.user_prompt},
                    {"type": "image_url", "image_url": {"url": self.image_data_uri}},
                ],
            },
        ]


def normalize_media_type(raw_value: str | None) -> str:
    if not raw_value:
        return ""
    # Drop parameters such as "; charset=binary".
    return raw_value.split(";", 1)[0].strip().lower()


def ensure_supported_media_type(media_type: str | None) -> str:
    normalized = normalize_media_type(media_type)
    if not normalized.startswith("image/") or normalized not in ACCEPTED_IMAGE_TYPES:
        received = normalized or "unknown"
        raise UnsupportedMediaType(
            "Unsupported file type. Please upload an image file (JPG, PNG, WebP, or GIF)",
            details=(
                f"Received: {received}. PDFs are not supported by vision models. "
                "Please convert your PDF to images first."
            ),
            suggestion="Convert the scan to a JPG or PNG image and upload it again.",
        )
    return normalized


def build_image_data_uri(image_bytes: bytes, media_type: str) -> str:
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


def build_user_prompt(initial_diagnosis: str) -> str:
    return (
        f'Analyze this dental scan image. The patient\'s initial diagnosis is: "{initial_diagnosis}"\n\n'
        "Please provide a comprehensive dental analysis comparing your findings with their initial diagnosis."
    )


def build_analysis_messages(
    *,
    image_bytes: bytes,
    media_type: str,
    initial_diagnosis: str,
    system_prompt: str = SYSTEM_PROMPT,
) -> AnalysisMessages:
    normalized = ensure_supported_media_type(media_type)
    return AnalysisMessages(
        system_prompt=system_prompt,
        user_prompt=build_user_prompt(initial_diagnosis.strip()),
        image_data_uri=build_image_data_uri(image_bytes, normalized),
    )
