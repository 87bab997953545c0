"""
Tiered Extraction Service - FastAPI Application

REST API for tiered PDF text extraction with vision fallback and
caller-driven full OCR.
"""

import logging
import time

from dotenv import load_dotenv
from fastapi import FastAPI, File, Header, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

load_dotenv()
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from tiered_extraction import (
    ExtractionError,
    ExtractionOrchestrator,
    ExtractionResult,
    FullOCRRunner,
    VisionFallbackCoordinator,
    VisionFallbackOptions,
    __version__,
)
from tiered_extraction.backends import GeminiVisionRecognizer, TesseractRecognizer
from tiered_extraction.usage import estimate_ocr_cost, estimate_vision_cost

from service.jobs import InMemoryJobStore, create_router

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Tiered Extraction Service",
    description="PDF text extraction with per-page quality scoring and vision fallback",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

_job_store = InMemoryJobStore()

# Lazily constructed; recognizers read their configuration from the environment
_gemini_recognizer: GeminiVisionRecognizer | None = None
_tesseract_recognizer: TesseractRecognizer | None = None
_orchestrator: ExtractionOrchestrator | None = None
_ocr_runner: FullOCRRunner | None = None


def _get_gemini() -> GeminiVisionRecognizer:
    global _gemini_recognizer
    if _gemini_recognizer is None:
        _gemini_recognizer = GeminiVisionRecognizer()
    return _gemini_recognizer


def _get_tesseract() -> TesseractRecognizer:
    global _tesseract_recognizer
    if _tesseract_recognizer is None:
        _tesseract_recognizer = TesseractRecognizer()
    return _tesseract_recognizer


def get_orchestrator() -> ExtractionOrchestrator:
    """Get or create the shared orchestrator (stateless across runs)."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ExtractionOrchestrator(
            coordinator=VisionFallbackCoordinator(recognizer=_get_gemini())
        )
    return _orchestrator


def get_ocr_runner() -> FullOCRRunner:
    """
    Get or create the full OCR runner.

    Uses Tesseract when installed, otherwise Gemini.
    """
    global _ocr_runner
    if _ocr_runner is None:
        tesseract = _get_tesseract()
        recognizer = tesseract if tesseract.is_available() else _get_gemini()
        _ocr_runner = FullOCRRunner(recognizer=recognizer)
    return _ocr_runner


# Register async jobs router
app.include_router(create_router(store=_job_store, get_runner_fn=get_ocr_runner))


# ============================================================================
# Pydantic Models
# ============================================================================


class PageResponse(BaseModel):
    """Per-page provenance in extraction response."""

    page_number: int
    source: str  # baseline, vision or failed
    char_count: int
    score: float
    classification: str
    issues: list[str] = []


class QualityReportResponse(BaseModel):
    """Document quality report."""

    overall_score: float
    recommended_method: str
    acceptable_pages: int
    degraded_pages: int
    unusable_pages: int
    total_chars: int
    summary: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str = __version__
    uptime_seconds: float
    backends: dict[str, bool] = {}


class ExtractionResponse(BaseModel):
    """Text extraction response."""

    success: bool
    file_name: str
    total_pages: int
    content: str
    word_count: int
    extraction_method: str
    vision_pages_used: list[int] = []
    needs_ocr: bool
    ocr_status: str
    processing_time_ms: float
    quality: QualityReportResponse
    pages: list[PageResponse] = []
    cancelled: bool = False


class VisionCheckRequest(BaseModel):
    """Vision availability request."""

    user_id: str = Field(alias="userId")
    page_count: int = Field(alias="pageCount", ge=0)
    user_tier: str = Field(default="free", alias="userTier")


class VisionCheckResponse(BaseModel):
    """Vision availability response."""

    allowed: bool
    reason: str | None = None
    estimated_cost_usd: float = 0.0


class ErrorResponse(BaseModel):
    """Error response."""

    success: bool = False
    error: str
    detail: str | None = None


# ============================================================================
# Global state
# ============================================================================

_start_time = time.time()


def _bearer_token(authorization: str | None) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


def _to_response(result: ExtractionResult) -> ExtractionResponse:
    report = result.quality_report
    vision_pages = set(result.vision_pages_used)
    scores = {s.index: s for s in report.page_scores}

    pages = []
    for page in result.page_texts:
        if page.index in vision_pages:
            source = "vision"
        elif page.extraction_failed:
            source = "failed"
        else:
            source = "baseline"
        score = scores[page.index]
        pages.append(
            PageResponse(
                page_number=page.index,
                source=source,
                char_count=len(page.text),
                score=round(score.score, 4),
                classification=score.classification.value,
                issues=list(score.issues),
            )
        )

    return ExtractionResponse(
        success=result.success,
        file_name=result.file_name,
        total_pages=result.total_pages,
        content=result.content,
        word_count=result.word_count,
        extraction_method=result.extraction_method.value,
        vision_pages_used=list(result.vision_pages_used),
        needs_ocr=result.needs_ocr,
        ocr_status=result.ocr_status.value,
        processing_time_ms=result.metadata.get("processing_time_ms", 0.0),
        quality=QualityReportResponse(
            overall_score=round(report.overall_score, 4),
            recommended_method=report.extraction_method.value,
            acceptable_pages=report.acceptable_pages,
            degraded_pages=report.degraded_pages,
            unusable_pages=report.unusable_pages,
            total_chars=report.total_chars,
            summary=result.metadata.get("quality_summary", ""),
        ),
        pages=pages,
        cancelled=bool(result.metadata.get("cancelled")),
    )


# ============================================================================
# Endpoints
# ============================================================================


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Health check endpoint for container orchestration."""
    backends = {
        "gemini": _get_gemini().is_available(),
        "tesseract": _get_tesseract().is_available(),
    }

    return HealthResponse(
        status="healthy",
        version=__version__,
        uptime_seconds=time.time() - _start_time,
        backends=backends,
    )


@app.get("/", tags=["System"])
async def root():
    """Root endpoint with API info."""
    return {
        "service": "tiered-extraction",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


@app.post(
    "/api/v1/extract",
    response_model=ExtractionResponse,
    responses={
        400: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    tags=["Extraction"],
)
async def extract_text(
    file: UploadFile = File(..., description="PDF file to extract text from"),
    vision: bool = Query(default=False, description="Escalate problematic pages to vision"),
    user_id: str | None = Query(default=None),
    user_tier: str | None = Query(default=None),
    document_id: str | None = Query(default=None),
    source_key: str | None = Query(default=None, description="Storage key of the original"),
    authorization: str | None = Header(default=None),
):
    """
    Extract text from a PDF file.

    Every page goes through the PDF text layer first. With **vision=true**,
    pages whose text scores below the acceptable threshold are re-read by the
    vision recognizer; this needs a bearer token, a document_id and a
    source_key. Scanned documents come back with **ocr_status=pending**; run
    full OCR through **POST /api/v1/ocr/async**.
    """
    if not file.filename or not file.filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are supported")

    content = await file.read()
    options = VisionFallbackOptions(
        enabled=vision,
        user_id=user_id,
        user_tier=user_tier,
        document_id=document_id,
        source_key=source_key,
        auth_token=_bearer_token(authorization),
    )

    try:
        result = await get_orchestrator().extract_with_fallback(
            content, options, file_name=file.filename
        )
    except ExtractionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.exception("Extraction failed for %s", file.filename)
        raise HTTPException(status_code=500, detail=f"Extraction failed: {str(e)}")

    return _to_response(result)


@app.post("/api/v1/vision-check", response_model=VisionCheckResponse, tags=["Extraction"])
async def vision_check(
    request: VisionCheckRequest,
    authorization: str | None = Header(default=None),
):
    """Check whether vision fallback may be used for a number of pages."""
    token = _bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    allowance = await get_orchestrator().can_use_vision_fallback(
        request.user_id,
        request.page_count,
        token,
        user_tier=request.user_tier,
    )
    return VisionCheckResponse(
        allowed=allowance.allowed,
        reason=allowance.reason,
        estimated_cost_usd=estimate_vision_cost(request.page_count),
    )


@app.get("/api/v1/ocr/estimate", tags=["Extraction"])
async def ocr_estimate(
    page_count: int = Query(..., ge=0),
    user_tier: str = Query(default="free"),
):
    """Credits and cost estimate for full OCR of a document."""
    return estimate_ocr_cost(page_count, user_tier)


# ============================================================================
# Error handlers
# ============================================================================


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom HTTP exception handler."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """General exception handler."""
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "detail": str(exc)},
    )
