"""
Data Models for Tiered Extraction
=================================

Shared data models for the extraction pipeline. Everything here lives for a
single extraction run; only the final ExtractionResult is handed back.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PageClassification(Enum):
    """Quality class of a single page's extracted text."""

    ACCEPTABLE = "acceptable"
    DEGRADED = "degraded"
    UNUSABLE = "unusable"


class RecommendedMethod(Enum):
    """Extraction method the quality report recommends."""

    PDF_BASELINE = "pdf_baseline"
    HYBRID = "hybrid"
    VISION_HEAVY = "vision_heavy"
    OCR_REQUIRED = "ocr_required"


class ExtractionMethod(Enum):
    """Extraction method actually used for the final text."""

    BASELINE = "baseline"  # Structural text layer only
    HYBRID = "hybrid"  # Baseline + vision patched at least one page


class OCRStatus(Enum):
    """Lifecycle of the separate, caller-driven full OCR process."""

    NOT_NEEDED = "not_needed"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    USER_DECLINED = "user_declined"


@dataclass(frozen=True)
class PageText:
    """Text of one physical page (1-indexed)."""

    index: int
    text: str
    extraction_failed: bool = False
    area: float | None = None  # Page area in square points, if known

    def __post_init__(self) -> None:
        if self.index < 1:
            raise ValueError(f"Page index must be >= 1, got {self.index}")

    @classmethod
    def failed(cls, index: int, area: float | None = None) -> "PageText":
        return cls(index=index, text="", extraction_failed=True, area=area)


@dataclass(frozen=True)
class QualitySignals:
    """Raw measurements a page score is derived from."""

    char_count: int = 0
    word_count: int = 0
    line_count: int = 0
    char_density: float = 0.0
    whitespace_ratio: float = 0.0
    garbled_ratio: float = 0.0
    special_char_ratio: float = 0.0
    single_char_word_ratio: float = 0.0


@dataclass(frozen=True)
class PageQualityScore:
    """Score and classification for one page."""

    index: int
    score: float
    classification: PageClassification
    signals: QualitySignals = field(default_factory=QualitySignals)
    issues: tuple[str, ...] = ()

    @property
    def is_problematic(self) -> bool:
        return self.classification != PageClassification.ACCEPTABLE


@dataclass(frozen=True)
class DocumentQualityReport:
    """Per-page scores plus the document-level aggregate."""

    total_pages: int
    page_scores: tuple[PageQualityScore, ...]
    overall_score: float
    extraction_method: RecommendedMethod
    acceptable_pages: int = 0
    degraded_pages: int = 0
    unusable_pages: int = 0
    total_chars: int = 0


@dataclass
class VisionFallbackOptions:
    """Caller options for the optional vision tier."""

    enabled: bool = False
    user_id: str | None = None
    user_tier: str | None = None
    document_id: str | None = None
    source_key: str | None = None
    auth_token: str | None = None

    @property
    def has_credentials(self) -> bool:
        """All identifiers the vision capability needs are present."""
        return bool(self.auth_token and self.document_id and self.source_key)


@dataclass(frozen=True)
class VisionAllowance:
    """Answer to "may this user spend the vision tier on this document"."""

    allowed: bool
    reason: str | None = None


@dataclass
class QualityThresholds:
    """Policy knobs for QualityAnalyzer."""

    acceptable_score: float = 0.6
    degraded_score: float = 0.3
    # Characters a dense page of body text holds per square point
    expected_density: float = 0.004
    # US Letter, used when page geometry is unknown
    default_page_area: float = 612.0 * 792.0
    baseline_acceptable_overall: float = 0.7


@dataclass
class GateThresholds:
    """Policy knobs for the full-OCR decision."""

    min_total_chars: int = 100
    expected_chars_per_page: int = 500
    min_density_ratio: float = 0.1
    overall_score_floor: float = 0.25


@dataclass
class OrchestratorConfig:
    """Configuration for ExtractionOrchestrator."""

    page_separator: str = "\n\n"
    # None defers to VISION_MAX_PAGES, VISION_MAX_CONCURRENCY, VISION_PAGE_TIMEOUT
    vision_max_pages: int | None = None
    vision_max_concurrency: int | None = None
    vision_page_timeout: float | None = None
    quality: QualityThresholds = field(default_factory=QualityThresholds)
    gate: GateThresholds = field(default_factory=GateThresholds)


@dataclass(frozen=True)
class ExtractionResult:
    """Terminal artifact of one extraction run."""

    success: bool
    file_name: str
    content: str
    page_texts: tuple[PageText, ...]
    baseline_page_texts: tuple[PageText, ...]
    total_pages: int
    quality_report: DocumentQualityReport
    extraction_method: ExtractionMethod
    needs_ocr: bool
    ocr_status: OCRStatus
    vision_pages_used: tuple[int, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def full_text(self) -> str:
        """Get concatenated text from all pages."""
        return self.content

    @property
    def word_count(self) -> int:
        return len(self.content.split())
