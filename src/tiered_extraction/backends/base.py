"""
Base Page Recognizer
====================

Abstract base class for image-based page recognizers (vision models, OCR).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import fitz  # PyMuPDF


class RecognitionMethod(Enum):
    """Method a recognizer used to produce text."""
    VISION = "vision"          # Multimodal LLM (Gemini)
    TESSERACT = "tesseract"    # Local Tesseract OCR


@dataclass
class RecognitionResult:
    """Result from recognizing a single page."""
    text: str
    page_number: int
    confidence: float = 1.0
    method: RecognitionMethod = RecognitionMethod.VISION
    word_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Calculate word count if not provided."""
        if self.word_count == 0 and self.text:
            self.word_count = len(self.text.split())


class BasePageRecognizer(ABC):
    """
    Abstract base class for page recognizers.

    All recognizers must implement:
    - recognize_page(): Recognize text of one page of a document
    - is_available(): Check if the recognizer is configured

    Recognizers are synchronous; the vision coordinator runs them in worker
    threads with its own concurrency bound and timeout.
    """

    def __init__(self, name: str = "BaseRecognizer"):
        """
        Initialize recognizer.

        Args:
            name: Human-readable name for the recognizer
        """
        self.name = name

    @abstractmethod
    def recognize_page(
        self,
        source: bytes,
        page_number: int,
        **kwargs: Any,
    ) -> RecognitionResult:
        """
        Recognize text on one page.

        Args:
            source: Raw document bytes
            page_number: Page to recognize (1-indexed)
            **kwargs: Recognizer-specific options

        Returns:
            RecognitionResult with recognized text and metadata
        """

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if this recognizer is available and configured.

        Returns:
            True if recognizer can be used, False otherwise
        """

    @staticmethod
    def page_count(source: bytes, filetype: str = "pdf") -> int:
        """Number of pages in a document."""
        doc = fitz.open(stream=source, filetype=filetype)
        try:
            return len(doc)
        finally:
            doc.close()

    @staticmethod
    def render_page(source: bytes, page_number: int, zoom: float = 2.0) -> fitz.Pixmap:
        """Render a page (1-indexed) of a PDF to a pixmap."""
        doc = fitz.open(stream=source, filetype="pdf")
        try:
            if not 1 <= page_number <= len(doc):
                raise ValueError(
                    f"Page {page_number} out of range (document has {len(doc)} pages)"
                )
            page = doc[page_number - 1]
            return page.get_pixmap(matrix=fitz.Matrix(zoom, zoom))
        finally:
            doc.close()

    def __repr__(self) -> str:
        available = "available" if self.is_available() else "unavailable"
        return f"{self.__class__.__name__}(name='{self.name}', {available})"
