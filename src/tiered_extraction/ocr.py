"""
Full OCR Runner
===============

Caller-driven whole-document OCR for documents the baseline could not read
(scans, image-only PDFs). The orchestrator only flags such documents with
ocr_status=pending; this runner is what a job queue or the HTTP service
executes once the user has consented.

Usage:
    runner = FullOCRRunner()
    result = runner.run(pdf_bytes)
    if result.status == OCRRunStatus.COMPLETED:
        print(result.content)
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .backends.base import BasePageRecognizer
from .backends.tesseract import TesseractRecognizer
from .models import PageText

logger = logging.getLogger(__name__)

# Transient failures worth another attempt; anything else fails the page.
# Recognizers retry their own rate limits, so those are not retried again here.
RETRYABLE_ERRORS = (TimeoutError, ConnectionError)


class OCRRunStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class OCRRunResult:
    """Outcome of one full OCR run."""
    status: OCRRunStatus
    content: str = ""
    page_texts: tuple[PageText, ...] = ()
    failed_pages: tuple[int, ...] = ()
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        return len(self.page_texts)


class FullOCRRunner:
    """
    Recognizes every page of a document with one recognizer.

    Attributes:
        recognizer: Page recognizer (default: TesseractRecognizer)
        page_separator: Joins page texts into content
        max_attempts: Attempts per page for transient failures
    """

    def __init__(
        self,
        recognizer: BasePageRecognizer | None = None,
        page_separator: str = "\n\n",
        max_attempts: int = 3,
    ):
        self.recognizer = recognizer if recognizer is not None else TesseractRecognizer()
        self.page_separator = page_separator
        self.max_attempts = max_attempts

    def run(
        self,
        source: bytes,
        page_count: int | None = None,
        on_status: Callable[[OCRRunStatus], None] | None = None,
    ) -> OCRRunResult:
        """
        OCR all pages of a document.

        Args:
            source: Raw PDF bytes
            page_count: Page count if already known (skips opening the document)
            on_status: Called on every status transition

        Returns:
            OCRRunResult; status FAILED when no page yields text
        """
        def transition(status: OCRRunStatus) -> None:
            logger.info("OCR run status: %s, recognizer=%s", status.value, self.recognizer.name)
            if on_status is not None:
                on_status(status)

        transition(OCRRunStatus.PENDING)

        if not self.recognizer.is_available():
            transition(OCRRunStatus.FAILED)
            return OCRRunResult(
                status=OCRRunStatus.FAILED,
                error=f"{self.recognizer.name} recognizer not available",
            )

        if page_count is None:
            try:
                page_count = self.recognizer.page_count(source)
            except Exception as e:
                logger.exception("OCR run could not open document")
                transition(OCRRunStatus.FAILED)
                return OCRRunResult(status=OCRRunStatus.FAILED, error=f"Could not open document: {e}")

        start_time = time.time()
        transition(OCRRunStatus.PROCESSING)

        page_texts: list[PageText] = []
        failed: list[int] = []
        for page_number in range(1, page_count + 1):
            try:
                text = self._recognize_with_retry(source, page_number)
            except Exception as e:
                logger.warning("OCR failed for page %d: %s", page_number, e)
                page_texts.append(PageText.failed(page_number))
                failed.append(page_number)
                continue
            page_texts.append(PageText(index=page_number, text=text))

        processing_time = (time.time() - start_time) * 1000
        content = self.page_separator.join(p.text for p in page_texts if p.text)
        status = OCRRunStatus.COMPLETED if content.strip() else OCRRunStatus.FAILED

        logger.info(
            "OCR run finished: pages=%d, failed=%d, chars=%d, time=%.0fms",
            page_count,
            len(failed),
            len(content),
            processing_time,
        )
        transition(status)

        return OCRRunResult(
            status=status,
            content=content,
            page_texts=tuple(page_texts),
            failed_pages=tuple(failed),
            error=None if status == OCRRunStatus.COMPLETED else "No text recognized on any page",
            metadata={
                "recognizer": self.recognizer.name,
                "ocr_pages": page_count - len(failed),
                "processing_time_ms": processing_time,
            },
        )

    def _recognize_with_retry(self, source: bytes, page_number: int) -> str:
        @retry(
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            before_sleep=lambda retry_state: logger.warning(
                "OCR page %d failed, retrying in %.0fs (attempt %d/%d)",
                page_number,
                retry_state.next_action.sleep,  # type: ignore[union-attr]
                retry_state.attempt_number,
                self.max_attempts,
            ),
            reraise=True,
        )
        def recognize() -> str:
            return self.recognizer.recognize_page(source, page_number).text

        return recognize()
