"""
Page Recognizers
================

Image-based recognizers used to re-read pages the text layer could not
extract well.

Available Recognizers:
- GeminiVisionRecognizer: Multimodal LLM recognition via Google Gemini
- TesseractRecognizer: Local Tesseract OCR (offline, free)

Usage:
    from tiered_extraction.backends import GeminiVisionRecognizer

    gemini = GeminiVisionRecognizer(api_key="...")
    if gemini.is_available():
        result = gemini.recognize_page(pdf_bytes, page_number=3)
"""

from .base import BasePageRecognizer, RecognitionMethod, RecognitionResult
from .gemini import GeminiRetryableError, GeminiVisionRecognizer
from .tesseract import TesseractRecognizer

__all__ = [
    "BasePageRecognizer",
    "RecognitionMethod",
    "RecognitionResult",
    "GeminiRetryableError",
    "GeminiVisionRecognizer",
    "TesseractRecognizer",
]
