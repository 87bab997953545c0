"""
Vision Fallback Coordinator
===========================

Re-recognizes a bounded set of problematic pages with an image-based
recognizer. Escalation is an optional enhancement: missing credentials, an
unconfigured recognizer, a failing page or a stuck page never raise, they
just leave pages out of the returned mapping.

Usage:
    coordinator = VisionFallbackCoordinator(GeminiVisionRecognizer())
    texts = await coordinator.reprocess([3, 7], pdf_bytes, options)
    # {3: "...", 7: "..."} minus any page that failed
"""

import asyncio
import functools
import logging
import os
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

from tiered_extraction.backends.base import BasePageRecognizer
from tiered_extraction.backends.gemini import GeminiVisionRecognizer
from tiered_extraction.models import VisionFallbackOptions

logger = logging.getLogger(__name__)


class VisionFallbackCoordinator:
    """
    Calls a page recognizer for a capped set of pages with bounded fan-out.

    Attributes:
        recognizer: Page recognizer (default: GeminiVisionRecognizer)
        max_pages: Most pages escalated per document (or VISION_MAX_PAGES)
        max_concurrency: Recognizer calls in flight, including ones still running
            past their timeout (or VISION_MAX_CONCURRENCY)
        page_timeout: Seconds allowed per page (or VISION_PAGE_TIMEOUT)
    """

    DEFAULT_MAX_PAGES = 10
    DEFAULT_MAX_CONCURRENCY = 3
    DEFAULT_PAGE_TIMEOUT = 30.0

    def __init__(
        self,
        recognizer: BasePageRecognizer | None = None,
        max_pages: int | None = None,
        max_concurrency: int | None = None,
        page_timeout: float | None = None,
    ):
        self.recognizer = recognizer if recognizer is not None else GeminiVisionRecognizer()
        self.max_pages = (
            max_pages
            if max_pages is not None
            else int(os.getenv("VISION_MAX_PAGES", self.DEFAULT_MAX_PAGES))
        )
        self.max_concurrency = max(
            1,
            max_concurrency
            if max_concurrency is not None
            else int(os.getenv("VISION_MAX_CONCURRENCY", self.DEFAULT_MAX_CONCURRENCY)),
        )
        self.page_timeout = (
            page_timeout
            if page_timeout is not None
            else float(os.getenv("VISION_PAGE_TIMEOUT", self.DEFAULT_PAGE_TIMEOUT))
        )

    def is_available(self, options: VisionFallbackOptions) -> bool:
        """True when both the caller's identifiers and the recognizer are usable."""
        return options.has_credentials and self.recognizer.is_available()

    def select_pages(self, page_numbers: Iterable[int]) -> list[int]:
        """Sorted, deduplicated, capped page list."""
        pages = sorted({p for p in page_numbers if p >= 1})
        if len(pages) > self.max_pages:
            logger.info(
                "Vision fallback capped: requested=%d, escalating=%d",
                len(pages),
                self.max_pages,
            )
            pages = pages[: self.max_pages]
        return pages

    async def reprocess(
        self,
        page_numbers: Iterable[int],
        source: bytes,
        options: VisionFallbackOptions,
    ) -> dict[int, str]:
        """
        Recognize the given pages.

        Args:
            page_numbers: Pages to escalate (1-indexed)
            source: Raw document bytes
            options: Caller options; auth_token, document_id and source_key
                are required

        Returns:
            Mapping of page number to recognized text; failed pages are absent
        """
        if not options.has_credentials:
            logger.warning(
                "Vision fallback skipped: missing required options "
                "(has_auth_token=%s, has_document_id=%s, has_source_key=%s)",
                bool(options.auth_token),
                bool(options.document_id),
                bool(options.source_key),
            )
            return {}

        if not self.recognizer.is_available():
            logger.warning("Vision fallback skipped: %s recognizer not configured", self.recognizer.name)
            return {}

        pages = self.select_pages(page_numbers)
        if not pages:
            return {}

        start_time = time.time()
        loop = asyncio.get_running_loop()
        executor = ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="vision")
        slots = asyncio.Semaphore(self.max_concurrency)

        def release(call: asyncio.Future) -> None:
            slots.release()
            if not call.cancelled():
                # Errors from calls that already timed out are not reported again
                call.exception()

        async def recognize(page_number: int) -> tuple[int, str | None]:
            # A slot is held until the worker thread returns, even past a timeout
            await slots.acquire()
            call = loop.run_in_executor(
                executor, functools.partial(self.recognizer.recognize_page, source, page_number)
            )
            call.add_done_callback(release)
            try:
                result = await asyncio.wait_for(asyncio.shield(call), timeout=self.page_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Vision (%s) timed out for page %d after %.2fs",
                    self.recognizer.name,
                    page_number,
                    self.page_timeout,
                )
                return page_number, None
            except Exception as e:
                logger.warning(
                    "Vision (%s) failed for page %d: %s",
                    self.recognizer.name,
                    page_number,
                    e,
                )
                return page_number, None

            text = result.text.strip() if result.text else ""
            if not text:
                logger.warning("Vision (%s) returned no text for page %d", self.recognizer.name, page_number)
                return page_number, None
            return page_number, text

        try:
            results = await asyncio.gather(*(recognize(p) for p in pages))
        finally:
            executor.shutdown(wait=False)
        recognized = {page: text for page, text in results if text}

        logger.info(
            "Vision fallback finished: document=%s, requested=%d, recognized=%d, time=%.0fms",
            options.document_id,
            len(pages),
            len(recognized),
            (time.time() - start_time) * 1000,
        )
        return recognized
