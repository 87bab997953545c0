"""
Tesseract OCR Recognizer
========================

Local OCR using Tesseract. Free and offline; used by the caller-driven
full-OCR process for scanned documents.
"""

import os
import time
from typing import Any

import pytesseract
from PIL import Image

from .base import BasePageRecognizer, RecognitionMethod, RecognitionResult


class TesseractRecognizer(BasePageRecognizer):
    """
    Page recognizer using a local Tesseract installation.

    Environment variables:
        TESSERACT_PATH: Path to tesseract binary (default: /usr/bin/tesseract)
        TESSERACT_LANG: Languages to use (default: eng)
    """

    def __init__(
        self,
        tesseract_path: str | None = None,
        lang: str | None = None,
        dpi: int = 300,
    ):
        """
        Initialize Tesseract recognizer.

        Args:
            tesseract_path: Path to tesseract binary
            lang: OCR languages (e.g., "eng+deu")
            dpi: DPI for page rendering
        """
        super().__init__(name="Tesseract")

        self.tesseract_path = tesseract_path or os.getenv(
            "TESSERACT_PATH", "/usr/bin/tesseract"
        )
        self.lang = lang or os.getenv("TESSERACT_LANG", "eng")
        self.dpi = dpi

        pytesseract.pytesseract.tesseract_cmd = self.tesseract_path

    def is_available(self) -> bool:
        """Check if Tesseract is installed and accessible."""
        try:
            pytesseract.get_tesseract_version()
            return True
        except (pytesseract.TesseractNotFoundError, OSError):
            return False

    def recognize_page(
        self,
        source: bytes,
        page_number: int,
        **kwargs: Any,
    ) -> RecognitionResult:
        """
        Recognize text of a PDF page using Tesseract.

        Args:
            source: Raw PDF bytes
            page_number: Page to recognize (1-indexed)
            **kwargs: Additional options (lang, config)

        Returns:
            RecognitionResult with recognized text
        """
        if not self.is_available():
            raise RuntimeError("Tesseract is not available")

        start_time = time.time()
        lang = kwargs.get("lang", self.lang)
        config = kwargs.get("config", "")

        pix = self.render_page(source, page_number, zoom=self.dpi / 72)
        image = Image.frombytes("RGB", [pix.width, pix.height], pix.samples)

        text = pytesseract.image_to_string(image, lang=lang, config=config)

        data = pytesseract.image_to_data(
            image, lang=lang, output_type=pytesseract.Output.DICT
        )
        confidences = [float(c) for c in data.get("conf", []) if float(c) >= 0]
        confidence = sum(confidences) / len(confidences) / 100 if confidences else 0.5

        processing_time = (time.time() - start_time) * 1000

        return RecognitionResult(
            text=text.strip(),
            page_number=page_number,
            confidence=confidence,
            method=RecognitionMethod.TESSERACT,
            metadata={
                "lang": lang,
                "dpi": self.dpi,
                "processing_time_ms": processing_time,
            },
        )

    def get_available_languages(self) -> list[str]:
        """Get list of installed Tesseract languages."""
        try:
            return pytesseract.get_languages()
        except (pytesseract.TesseractNotFoundError, OSError):
            return []
