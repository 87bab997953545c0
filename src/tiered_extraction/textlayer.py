"""
Text Layer Extractors
=====================

Baseline (structural, non-visual) text extraction. The orchestrator receives
a BaseTextLayer by injection and only ever talks to this interface.

Usage:
    from tiered_extraction.textlayer import PyMuPDFTextLayer

    layer = PyMuPDFTextLayer()
    with layer.open(pdf_bytes) as doc:
        for page_number in range(1, doc.page_count + 1):
            print(doc.extract_page(page_number))
"""

import logging
from abc import ABC, abstractmethod

import fitz  # PyMuPDF

from tiered_extraction.layout import extract_structured_text

logger = logging.getLogger(__name__)


class TextLayerDocument(ABC):
    """An opened document whose pages can be extracted independently."""

    @property
    @abstractmethod
    def page_count(self) -> int:
        """Number of physical pages."""

    @abstractmethod
    def extract_page(self, page_number: int) -> str:
        """
        Extract text of one page.

        Args:
            page_number: Page number (1-indexed)

        Returns:
            Plain text for the page
        """

    def page_area(self, page_number: int) -> float | None:
        """Page area in square points, or None when geometry is unknown."""
        return None

    def close(self) -> None:
        pass

    def __enter__(self) -> "TextLayerDocument":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class BaseTextLayer(ABC):
    """
    Abstract base class for baseline text extractors.

    All text layers must implement:
    - open(): Parse document bytes and return a TextLayerDocument
    """

    def __init__(self, name: str = "BaseTextLayer"):
        self.name = name

    @abstractmethod
    def open(self, source: bytes) -> TextLayerDocument:
        """
        Open a document from raw bytes.

        Raises:
            Exception: If the document cannot be parsed at all
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


class PyMuPDFDocument(TextLayerDocument):
    """TextLayerDocument backed by a PyMuPDF document."""

    def __init__(self, doc: fitz.Document, structured: bool = True):
        self._doc = doc
        self.structured = structured

    @property
    def page_count(self) -> int:
        return len(self._doc)

    def extract_page(self, page_number: int) -> str:
        page = self._doc[page_number - 1]
        if self.structured:
            return extract_structured_text(page.get_text("words"))
        return page.get_text()

    def page_area(self, page_number: int) -> float | None:
        rect = self._doc[page_number - 1].rect
        area = rect.width * rect.height
        return area if area > 0 else None

    def close(self) -> None:
        self._doc.close()


class PyMuPDFTextLayer(BaseTextLayer):
    """
    Baseline extractor using PyMuPDF's text layer.

    Attributes:
        filetype: Format hint passed to PyMuPDF (default: "pdf")
        structured: Rebuild reading order from word boxes (default: True);
            when False, PyMuPDF's plain text output is used as-is
    """

    def __init__(self, filetype: str = "pdf", structured: bool = True):
        super().__init__(name="PyMuPDF")
        self.filetype = filetype
        self.structured = structured

    def open(self, source: bytes) -> PyMuPDFDocument:
        doc = fitz.open(stream=source, filetype=self.filetype)
        if doc.needs_pass:
            doc.close()
            raise ValueError("Document is password protected")

        logger.debug("Opened %s document: pages=%d bytes=%d", self.filetype, len(doc), len(source))
        return PyMuPDFDocument(doc, structured=self.structured)
