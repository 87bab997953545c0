"""
Tiered Extraction
=================

Page-level tiered text extraction for PDF documents.

Features:
- Fast structural baseline extraction over every page (PyMuPDF)
- Per-page quality scoring and a document-level quality report
- Escalation of only the problematic pages to a vision recognizer (Gemini)
- Full-OCR recommendation for scanned documents, run as a separate job

Basic Usage:
    from tiered_extraction import extract_with_fallback

    result = await extract_with_fallback(pdf_bytes, file_name="paper.pdf")
    print(result.content)
    print(result.quality_report.overall_score)

Advanced Usage:
    from tiered_extraction import ExtractionOrchestrator, VisionFallbackCoordinator, VisionFallbackOptions
    from tiered_extraction.backends import GeminiVisionRecognizer

    orchestrator = ExtractionOrchestrator(
        coordinator=VisionFallbackCoordinator(GeminiVisionRecognizer(api_key="..."), max_pages=5)
    )
    options = VisionFallbackOptions(enabled=True, auth_token="...", document_id="d1", source_key="k1")
    result = await orchestrator.extract_with_fallback(pdf_bytes, options)
    print(result.extraction_method, result.vision_pages_used)
"""

__version__ = "0.1.0"
__author__ = "Unfuture"

from .errors import ExtractionError
from .gate import EscalationDecision, FallbackGate, needs_full_ocr, needs_vision_fallback, problematic_pages
from .models import (
    DocumentQualityReport,
    ExtractionMethod,
    ExtractionResult,
    GateThresholds,
    OCRStatus,
    OrchestratorConfig,
    PageClassification,
    PageQualityScore,
    PageText,
    QualityThresholds,
    RecommendedMethod,
    VisionAllowance,
    VisionFallbackOptions,
)
from .ocr import FullOCRRunner, OCRRunResult, OCRRunStatus
from .orchestrator import ExtractionOrchestrator, ExtractionStage, extract_with_fallback
from .quality import QualityAnalyzer, analyze, generate_quality_summary
from .textlayer import BaseTextLayer, PyMuPDFTextLayer
from .vision import VisionFallbackCoordinator

__all__ = [
    # Version
    "__version__",
    # Models
    "PageText",
    "PageClassification",
    "PageQualityScore",
    "DocumentQualityReport",
    "RecommendedMethod",
    "ExtractionMethod",
    "ExtractionResult",
    "OCRStatus",
    "VisionFallbackOptions",
    "VisionAllowance",
    "QualityThresholds",
    "GateThresholds",
    "OrchestratorConfig",
    "ExtractionError",
    # Quality
    "QualityAnalyzer",
    "analyze",
    "generate_quality_summary",
    # Gate
    "FallbackGate",
    "EscalationDecision",
    "problematic_pages",
    "needs_vision_fallback",
    "needs_full_ocr",
    # Extraction
    "BaseTextLayer",
    "PyMuPDFTextLayer",
    "VisionFallbackCoordinator",
    "ExtractionOrchestrator",
    "ExtractionStage",
    "extract_with_fallback",
    # Full OCR
    "FullOCRRunner",
    "OCRRunResult",
    "OCRRunStatus",
]
