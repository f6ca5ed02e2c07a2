from __future__ import annotations

import logging

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .analysis_errors import AnalysisError, classify_error, error_response_body
from .dental_analysis import AnalysisRequest, DentalAnalysisService, resolve_upload_media_type
from .settings import AnalysisSettings

settings = AnalysisSettings.from_env()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

analysis_service = DentalAnalysisService(settings=settings)

app = FastAPI(title="DRS AI Dental Analysis Service", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(exc: BaseException) -> JSONResponse:
    error_kind, status_code = classify_error(exc)
    return JSONResponse(
        status_code=status_code,
        content=error_response_body(exc),
        headers={"X-Error-Kind": error_kind},
    )


@app.exception_handler(AnalysisError)
async def handle_analysis_error(request: Request, exc: AnalysisError):
    return _error_response(exc)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/models")
async def list_models(vision_only: bool = False):
    return analysis_service.describe_models(vision_only=vision_only)


@app.get("/api/models/recommended")
async def list_recommended_models():
    return analysis_service.describe_recommended_models()


@app.post("/api/analyze")
async def analyze_scan(
    file: UploadFile | None = File(None),
    initialDiagnosis: str | None = Form(None),
    model: str | None = Form(None),
):
    image_bytes = await file.read() if file is not None else b""
    request = AnalysisRequest(
        image_bytes=image_bytes,
        image_mime_type=resolve_upload_media_type(
            file.content_type if file is not None else None,
            file.filename if file is not None else None,
        ),
        patient_initial_diagnosis=initialDiagnosis or "",
        file_name=(file.filename if file is not None else None) or "upload",
        requested_model=(model or "").strip() or None,
    )
    try:
        envelope = await run_in_threadpool(analysis_service.analyze, request)
    except AnalysisError:
        raise
    except Exception as exc:
        logger.exception("Unexpected failure during analysis")
        return _error_response(exc)
    return envelope.to_response()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("server.main:app", host="0.0.0.0", port=8000, reload=True)
