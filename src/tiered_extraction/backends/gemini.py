"""
Gemini Vision Recognizer
========================

Image-based page recognition using Google Gemini with native multimodal
support. Pages are rendered with PyMuPDF and sent as PIL Images.
"""

import logging
import os
import time
from io import BytesIO
from typing import Any

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .base import BasePageRecognizer, RecognitionMethod, RecognitionResult

logger = logging.getLogger(__name__)


class GeminiRetryableError(RuntimeError):
    """Raised for Gemini API errors that are worth retrying (429, RESOURCE_EXHAUSTED)."""


class GeminiVisionRecognizer(BasePageRecognizer):
    """
    Page recognizer using Google Gemini vision-capable models.

    Uses the google-genai SDK for native multimodal content generation.

    Environment variables:
        GEMINI_API_KEY: API key for Google Gemini
        GEMINI_VISION_MODEL: Model to use (default: gemini-2.5-flash)
    """

    DEFAULT_MODEL = "gemini-2.5-flash"

    VISION_PROMPT = """Extract all text from this PDF page image. Preserve the layout, paragraphs, and reading order (top-to-bottom, left-to-right).

For multi-column layouts, process left column first, then right column, separated by "---".

Return ONLY the extracted text without any commentary or explanations."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float = 0.1,
        timeout: int = 30,
        zoom: float = 2.0,
    ):
        """
        Initialize Gemini recognizer.

        Args:
            api_key: Gemini API key (or GEMINI_API_KEY env var)
            model: Model to use (or GEMINI_VISION_MODEL env var)
            temperature: Model temperature (low for faithful transcription)
            timeout: Request timeout in seconds
            zoom: Render scale for page images
        """
        super().__init__(name="Gemini")

        self.api_key = api_key if api_key is not None else os.getenv("GEMINI_API_KEY")
        self.model = model or os.getenv("GEMINI_VISION_MODEL", self.DEFAULT_MODEL)
        self.temperature = temperature
        self.timeout = timeout
        self.zoom = zoom
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazy-initialize the genai client."""
        if self._client is None:
            from google import genai

            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def is_available(self) -> bool:
        """Check if Gemini API is configured."""
        return bool(self.api_key)

    def recognize_page(
        self,
        source: bytes,
        page_number: int,
        **kwargs: Any,
    ) -> RecognitionResult:
        """
        Recognize text of a PDF page using Gemini.

        Args:
            source: Raw PDF bytes
            page_number: Page to recognize (1-indexed)
            **kwargs: Additional options (model, prompt)

        Returns:
            RecognitionResult with recognized text
        """
        if not self.is_available():
            raise RuntimeError("Gemini API key not configured")

        from google.genai import types
        from PIL import Image

        start_time = time.time()
        prompt = kwargs.get("prompt", self.VISION_PROMPT)
        model = kwargs.get("model") or self.model

        pix = self.render_page(source, page_number, zoom=self.zoom)
        image = Image.open(BytesIO(pix.tobytes("png")))

        response = self._call_api(model, image, prompt, types)

        text = (response.text or "").strip()
        usage = getattr(response, "usage_metadata", None)
        tokens_used = getattr(usage, "total_token_count", None) or 0
        processing_time = (time.time() - start_time) * 1000

        logger.info(
            "Gemini vision completed: model=%s, page=%d, words=%d, tokens=%d, time=%.0fms",
            model,
            page_number,
            len(text.split()),
            tokens_used,
            processing_time,
        )

        return RecognitionResult(
            text=text,
            page_number=page_number,
            confidence=0.92,
            method=RecognitionMethod.VISION,
            metadata={
                "model": model,
                "backend": "gemini",
                "tokens_used": tokens_used,
                "processing_time_ms": processing_time,
            },
        )

    @retry(
        retry=retry_if_exception_type(GeminiRetryableError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        before_sleep=lambda retry_state: logger.warning(
            "Gemini API rate limited, retrying in %.0fs (attempt %d/3)",
            retry_state.next_action.sleep,  # type: ignore[union-attr]
            retry_state.attempt_number,
        ),
        reraise=True,
    )
    def _call_api(self, model: str, image: Any, prompt: str, types: Any) -> Any:
        """Call Gemini API with retry logic for rate limits."""
        from google.genai import errors as genai_errors

        client = self._get_client()
        try:
            return client.models.generate_content(
                model=model,
                contents=[image, prompt],
                config=types.GenerateContentConfig(
                    temperature=self.temperature,
                    http_options=types.HttpOptions(timeout=self.timeout * 1000),
                ),
            )
        except genai_errors.ClientError as exc:
            if "429" in str(exc) or "RESOURCE_EXHAUSTED" in str(exc):
                raise GeminiRetryableError(str(exc)) from exc
            raise  # Non-retryable client error
