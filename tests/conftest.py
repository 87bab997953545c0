"""
Test Configuration and Fixtures for tiered-extraction

This module provides shared fixtures, markers, and configuration for all tests.
"""

import io
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Generator

import pytest

from tiered_extraction.backends.base import (
    BasePageRecognizer,
    RecognitionMethod,
    RecognitionResult,
)
from tiered_extraction.models import PageText, VisionFallbackOptions
from tiered_extraction.textlayer import BaseTextLayer, TextLayerDocument


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, no external deps)")
    config.addinivalue_line("markers", "integration: Integration tests (real PDFs, may need Tesseract)")
    config.addinivalue_line("markers", "slow: Slow tests (skip with -m 'not slow')")
    config.addinivalue_line("markers", "api: API/service tests")


# =============================================================================
# Path Fixtures
# =============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory(prefix="tiered_extraction_test_") as tmpdir:
        yield Path(tmpdir)


# =============================================================================
# Text Helpers
# =============================================================================

_SENTENCES = [
    "The committee reviewed the quarterly figures and approved the revised budget.",
    "Measurements were taken twice daily over a period of several weeks.",
    "Results indicate a steady improvement across every monitored region.",
    "Further analysis will focus on the remaining sources of variance.",
    "Participants reported higher satisfaction with the updated procedure.",
    "The appendix lists every instrument together with its calibration date.",
]


def body_text(page_number: int = 1, sentences: int = 12) -> str:
    """Dense prose that scores as an acceptable page."""
    lines = []
    for i in range(sentences):
        lines.append(f"Section {page_number}.{i + 1}: {_SENTENCES[i % len(_SENTENCES)]}")
    return "\n".join(lines)


@pytest.fixture
def page_text():
    """Factory for dense, acceptable page text."""
    return body_text


@pytest.fixture
def clean_pages():
    """Factory for a list of acceptable PageText entries."""
    def _create(count: int = 5) -> list[PageText]:
        return [PageText(index=i, text=body_text(i)) for i in range(1, count + 1)]
    return _create


# =============================================================================
# Fake Text Layer
# =============================================================================

class FakeDocument(TextLayerDocument):
    """In-memory document; an Exception entry fails that page."""

    def __init__(self, pages: list[Any], page_count_error: Exception | None = None):
        self._pages = pages
        self._page_count_error = page_count_error
        self.closed = False

    @property
    def page_count(self) -> int:
        if self._page_count_error is not None:
            raise self._page_count_error
        return len(self._pages)

    def extract_page(self, page_number: int) -> str:
        entry = self._pages[page_number - 1]
        if isinstance(entry, Exception):
            raise entry
        return entry

    def close(self) -> None:
        self.closed = True


class FakeTextLayer(BaseTextLayer):
    """Text layer returning canned page texts regardless of input bytes."""

    def __init__(
        self,
        pages: list[Any],
        open_error: Exception | None = None,
        page_count_error: Exception | None = None,
    ):
        super().__init__(name="Fake")
        self.pages = pages
        self.open_error = open_error
        self.page_count_error = page_count_error
        self.documents: list[FakeDocument] = []

    def open(self, source: bytes) -> FakeDocument:
        if self.open_error is not None:
            raise self.open_error
        doc = FakeDocument(self.pages, self.page_count_error)
        self.documents.append(doc)
        return doc


@pytest.fixture
def fake_text_layer():
    """Factory for FakeTextLayer."""
    return FakeTextLayer


# =============================================================================
# Fake Recognizer
# =============================================================================

class FakeRecognizer(BasePageRecognizer):
    """
    Recognizer with canned per-page behavior.

    texts maps page number to returned text; errors maps page number to an
    exception to raise; delay sleeps before answering.
    """

    def __init__(
        self,
        texts: dict[int, str] | None = None,
        errors: dict[int, Exception] | None = None,
        available: bool = True,
        delay: float = 0.0,
        default_text: str | None = None,
    ):
        super().__init__(name="Fake")
        self.texts = texts or {}
        self.errors = errors or {}
        self.available = available
        self.delay = delay
        self.default_text = default_text
        self.calls: list[int] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        return self.available

    def recognize_page(self, source: bytes, page_number: int, **kwargs: Any) -> RecognitionResult:
        with self._lock:
            self.calls.append(page_number)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if page_number in self.errors:
                raise self.errors[page_number]
            text = self.texts.get(page_number, self.default_text)
            if text is None:
                text = body_text(page_number)
            return RecognitionResult(
                text=text,
                page_number=page_number,
                method=RecognitionMethod.VISION,
            )
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def fake_recognizer():
    """Factory for FakeRecognizer."""
    return FakeRecognizer


@pytest.fixture
def vision_options() -> VisionFallbackOptions:
    """Vision options carrying every required identifier."""
    return VisionFallbackOptions(
        enabled=True,
        user_id="user-1",
        user_tier="pro",
        document_id="doc-1",
        source_key="uploads/doc-1.pdf",
        auth_token="token-123",
    )


# =============================================================================
# Sample PDF Creation Fixtures
# =============================================================================

@pytest.fixture
def make_pdf_bytes():
    """
    Factory fixture building a PDF in memory.

    Each entry of pages is page text, None for a blank page, or "<image>"
    for an image-only page (simulates a scan).
    """
    def _create(pages: list[str | None]) -> bytes:
        try:
            import fitz
            from PIL import Image
        except ImportError:
            pytest.skip("PyMuPDF or Pillow not installed")

        doc = fitz.open()
        for entry in pages:
            page = doc.new_page()
            if entry is None:
                continue
            if entry == "<image>":
                img = Image.new("RGB", (400, 300), color="lightgray")
                img_bytes = io.BytesIO()
                img.save(img_bytes, format="PNG")
                page.insert_image(fitz.Rect(72, 72, 500, 400), stream=img_bytes.getvalue())
                continue
            page.insert_textbox(fitz.Rect(50, 50, 545, 792), entry, fontsize=10)
        data = doc.tobytes()
        doc.close()
        return data
    return _create


@pytest.fixture
def create_text_pdf(make_pdf_bytes):
    """Factory for a multi-page PDF with dense body text on every page."""
    def _create(pages: int = 3) -> bytes:
        return make_pdf_bytes([body_text(i) for i in range(1, pages + 1)])
    return _create


@pytest.fixture
def create_image_pdf(make_pdf_bytes):
    """Factory for a PDF with only images (simulates scanned)."""
    def _create(pages: int = 2) -> bytes:
        return make_pdf_bytes(["<image>"] * pages)
    return _create


# =============================================================================
# Environment Fixtures
# =============================================================================

@pytest.fixture
def tesseract_available() -> bool:
    """Check if Tesseract is available."""
    try:
        import pytesseract
        pytesseract.get_tesseract_version()
        return True
    except Exception:
        return False


@pytest.fixture
def skip_if_no_tesseract(tesseract_available):
    """Skip test if Tesseract is not available."""
    if not tesseract_available:
        pytest.skip("Tesseract not installed or not accessible")
