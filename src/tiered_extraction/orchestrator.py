"""
Extraction Orchestrator
=======================

End-to-end tiered extraction of one document:

    INIT -> BASELINE_EXTRACTION -> QUALITY_ASSESSMENT -> (VISION_FALLBACK)?
         -> OCR_DETERMINATION -> MERGE -> DONE            (FAILED on a fatal error)

The baseline text layer runs over every page; pages that fail are kept as
empty, failed entries. The quality report decides which pages get escalated
to the vision recognizer, and the final texts decide whether the caller
should be offered full OCR. Full OCR itself never runs here.

Usage:
    orchestrator = ExtractionOrchestrator()
    result = await orchestrator.extract_with_fallback(
        pdf_bytes,
        VisionFallbackOptions(enabled=True, auth_token="...", document_id="d1", source_key="k1"),
        file_name="paper.pdf",
    )
"""

import asyncio
import logging
import os
import time
from enum import Enum

import requests

from .errors import ExtractionError
from .gate import FallbackGate
from .models import (
    ExtractionMethod,
    ExtractionResult,
    OCRStatus,
    OrchestratorConfig,
    PageText,
    VisionAllowance,
    VisionFallbackOptions,
)
from .quality import QualityAnalyzer, generate_quality_summary
from .textlayer import BaseTextLayer, PyMuPDFTextLayer
from .usage import check_vision_limits
from .vision import VisionFallbackCoordinator

logger = logging.getLogger(__name__)


class ExtractionStage(str, Enum):
    INIT = "init"
    BASELINE_EXTRACTION = "baseline_extraction"
    QUALITY_ASSESSMENT = "quality_assessment"
    VISION_FALLBACK = "vision_fallback"
    OCR_DETERMINATION = "ocr_determination"
    MERGE = "merge"
    DONE = "done"
    FAILED = "failed"


class _StageClock:
    """Per-run stage timings in milliseconds."""

    def __init__(self, file_name: str):
        self.file_name = file_name
        self.start = time.perf_counter()
        self.timings: dict[str, float] = {}
        self.stage = ExtractionStage.INIT
        self._stage_start = self.start

    def enter(self, stage: ExtractionStage) -> None:
        now = time.perf_counter()
        if self.stage != ExtractionStage.INIT:
            self.timings[self.stage.value] = round((now - self._stage_start) * 1000, 2)
        logger.debug("Stage transition: file=%s, %s -> %s", self.file_name, self.stage.value, stage.value)
        self.stage = stage
        self._stage_start = now

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start) * 1000


class ExtractionOrchestrator:
    """
    Runs the baseline, quality, vision and OCR-determination stages.

    All collaborators are injected; defaults are the PyMuPDF text layer and
    a Gemini-backed vision coordinator.
    """

    def __init__(
        self,
        text_layer: BaseTextLayer | None = None,
        coordinator: VisionFallbackCoordinator | None = None,
        analyzer: QualityAnalyzer | None = None,
        gate: FallbackGate | None = None,
        config: OrchestratorConfig | None = None,
        vision_check_url: str | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            text_layer: Baseline extractor (default: PyMuPDFTextLayer)
            coordinator: Vision fallback coordinator (default: Gemini-backed)
            analyzer: Quality analyzer (default: thresholds from config)
            gate: Fallback gate (default: thresholds from config)
            config: Orchestrator configuration
            vision_check_url: Remote vision availability endpoint (or VISION_CHECK_URL)
        """
        self.config = config or OrchestratorConfig()
        self.text_layer = text_layer or PyMuPDFTextLayer()
        self.coordinator = coordinator or VisionFallbackCoordinator(
            max_pages=self.config.vision_max_pages,
            max_concurrency=self.config.vision_max_concurrency,
            page_timeout=self.config.vision_page_timeout,
        )
        self.analyzer = analyzer or QualityAnalyzer(self.config.quality)
        self.gate = gate or FallbackGate(self.config.gate)
        self.vision_check_url = vision_check_url or os.getenv("VISION_CHECK_URL")

    async def extract_with_fallback(
        self,
        source: bytes,
        options: VisionFallbackOptions | None = None,
        file_name: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ExtractionResult:
        """
        Extract text from a document, escalating problematic pages to vision.

        Args:
            source: Raw document bytes
            options: Vision fallback options (default: vision disabled)
            file_name: Name used in results, logs and errors
            cancel_event: When set, vision work is abandoned and a
                baseline-only result is returned

        Returns:
            ExtractionResult with per-page provenance

        Raises:
            ExtractionError: The document cannot be opened or has no pages
        """
        options = options or VisionFallbackOptions()
        file_name = file_name or "document.pdf"
        clock = _StageClock(file_name)

        logger.info(
            "Extraction started: file=%s, bytes=%d, vision_enabled=%s",
            file_name,
            len(source),
            options.enabled,
        )

        clock.enter(ExtractionStage.BASELINE_EXTRACTION)
        try:
            baseline = await asyncio.to_thread(self._extract_baseline, source, file_name)
        except ExtractionError:
            clock.enter(ExtractionStage.FAILED)
            logger.exception("Extraction failed: file=%s, bytes=%d", file_name, len(source))
            raise

        failed_pages = [p.index for p in baseline if p.extraction_failed]
        logger.info(
            "Baseline extraction complete: file=%s, pages=%d, failed=%d, chars=%d",
            file_name,
            len(baseline),
            len(failed_pages),
            sum(len(p.text) for p in baseline),
        )

        clock.enter(ExtractionStage.QUALITY_ASSESSMENT)
        baseline_report = self.analyzer.analyze(baseline)
        decision = self.gate.decide(baseline_report)
        logger.info(
            "Quality assessment: file=%s, overall=%.2f, method=%s, problematic=%d, decision=%s",
            file_name,
            baseline_report.overall_score,
            baseline_report.extraction_method.value,
            len(decision.problematic_pages),
            decision.reasoning or "none",
        )

        final_pages = list(baseline)
        vision_pages: list[int] = []
        cancelled = _is_set(cancel_event)

        if options.enabled and decision.needs_vision_fallback and not cancelled:
            clock.enter(ExtractionStage.VISION_FALLBACK)
            recognized, cancelled = await self._run_vision(
                decision.problematic_pages, source, options, cancel_event, file_name
            )
            allowed = set(decision.problematic_pages)
            for page_number in sorted(recognized):
                if page_number not in allowed:
                    logger.warning(
                        "Ignoring vision text for page %d: page was not flagged problematic",
                        page_number,
                    )
                    continue
                slot = page_number - 1
                final_pages[slot] = PageText(
                    index=page_number,
                    text=recognized[page_number],
                    area=baseline[slot].area,
                )
                vision_pages.append(page_number)
        elif options.enabled and decision.needs_vision_fallback:
            logger.info("Vision fallback skipped: file=%s, run cancelled", file_name)

        clock.enter(ExtractionStage.OCR_DETERMINATION)
        final_report = self.analyzer.analyze(final_pages) if vision_pages else baseline_report
        needs_ocr = self.gate.needs_full_ocr(final_report)
        ocr_status = OCRStatus.PENDING if needs_ocr else OCRStatus.NOT_NEEDED
        if needs_ocr:
            logger.info(
                "Full OCR recommended: file=%s, reasons=%s",
                file_name,
                "; ".join(self.gate.full_ocr_reasons(final_report)),
            )

        clock.enter(ExtractionStage.MERGE)
        content = self.config.page_separator.join(p.text for p in final_pages)
        method = ExtractionMethod.HYBRID if vision_pages else ExtractionMethod.BASELINE

        clock.enter(ExtractionStage.DONE)
        processing_time = clock.elapsed_ms

        logger.info(
            "Extraction complete: file=%s, pages=%d, method=%s, vision_pages=%d, "
            "needs_ocr=%s, chars=%d, cancelled=%s, time=%.0fms",
            file_name,
            len(final_pages),
            method.value,
            len(vision_pages),
            needs_ocr,
            len(content),
            cancelled,
            processing_time,
        )

        return ExtractionResult(
            success=True,
            file_name=file_name,
            content=content,
            page_texts=tuple(final_pages),
            baseline_page_texts=tuple(baseline),
            total_pages=len(final_pages),
            quality_report=final_report,
            extraction_method=method,
            needs_ocr=needs_ocr,
            ocr_status=ocr_status,
            vision_pages_used=tuple(vision_pages),
            metadata={
                "baseline_pages": len(baseline) - len(failed_pages),
                "failed_pages": failed_pages,
                "vision_pages": len(vision_pages),
                "ocr_pages": 0,
                "processing_time_ms": processing_time,
                "stage_timings_ms": dict(clock.timings),
                "quality_summary": generate_quality_summary(final_report),
                "baseline_quality_score": baseline_report.overall_score,
                "cancelled": cancelled,
            },
        )

    def _extract_baseline(self, source: bytes, file_name: str) -> list[PageText]:
        """Extract every page; a failing page becomes a failed entry."""
        try:
            document = self.text_layer.open(source)
        except Exception as exc:
            raise ExtractionError(
                "Could not open document",
                file_name=file_name,
                file_size=len(source),
                cause=exc,
            ) from exc

        with document:
            try:
                total_pages = document.page_count
            except Exception as exc:
                raise ExtractionError(
                    "Could not resolve document pages",
                    file_name=file_name,
                    file_size=len(source),
                    cause=exc,
                ) from exc

            if total_pages < 1:
                raise ExtractionError(
                    "Document has no pages",
                    file_name=file_name,
                    file_size=len(source),
                )

            pages: list[PageText] = []
            for page_number in range(1, total_pages + 1):
                area = _safe_area(document, page_number)
                try:
                    text = document.extract_page(page_number)
                except Exception as e:
                    logger.warning(
                        "Baseline extraction failed for page %d of %s: %s",
                        page_number,
                        file_name,
                        e,
                    )
                    pages.append(PageText.failed(page_number, area=area))
                    continue
                pages.append(PageText(index=page_number, text=text or "", area=area))

        return pages

    async def _run_vision(
        self,
        page_numbers: list[int],
        source: bytes,
        options: VisionFallbackOptions,
        cancel_event: asyncio.Event | None,
        file_name: str,
    ) -> tuple[dict[int, str], bool]:
        """Run the coordinator; returns (recognized texts, cancelled)."""
        vision_task = asyncio.ensure_future(self.coordinator.reprocess(page_numbers, source, options))
        try:
            if cancel_event is None:
                return await vision_task, False

            cancel_task = asyncio.ensure_future(cancel_event.wait())
            try:
                await asyncio.wait({vision_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                cancel_task.cancel()

            if cancel_event.is_set():
                vision_task.cancel()
                logger.info("Vision fallback cancelled: file=%s, pages=%d", file_name, len(page_numbers))
                return {}, True
            return vision_task.result(), False
        except asyncio.CancelledError:
            vision_task.cancel()
            raise
        except Exception as e:
            logger.warning(
                "Vision fallback failed, continuing with baseline text: file=%s, error=%s",
                file_name,
                e,
            )
            return {}, False

    async def can_use_vision_fallback(
        self,
        user_id: str,
        page_count: int,
        auth_token: str,
        user_tier: str = "free",
    ) -> VisionAllowance:
        """
        Ask whether vision fallback may be spent on page_count pages.

        With a remote check URL the decision is delegated to that service;
        otherwise the local tier policy and recognizer availability decide.
        """
        if self.vision_check_url:
            try:
                response = await asyncio.to_thread(
                    requests.post,
                    self.vision_check_url,
                    json={"userId": user_id, "pageCount": page_count},
                    headers={
                        "Content-Type": "application/json",
                        "Authorization": f"Bearer {auth_token}",
                    },
                    timeout=10,
                )
                if not response.ok:
                    logger.warning(
                        "Vision check rejected: user=%s, status=%d",
                        user_id,
                        response.status_code,
                    )
                    return VisionAllowance(allowed=False, reason="Unable to check vision availability")
                data = response.json()
            except (requests.RequestException, ValueError) as e:
                logger.warning("Vision check failed: user=%s, error=%s", user_id, e)
                return VisionAllowance(allowed=False, reason="Vision check failed")
            return VisionAllowance(allowed=bool(data.get("allowed")), reason=data.get("reason"))

        if not self.coordinator.recognizer.is_available():
            return VisionAllowance(allowed=False, reason="Vision recognizer not configured")
        return check_vision_limits(user_tier, page_count)


def _is_set(event: asyncio.Event | None) -> bool:
    return event is not None and event.is_set()


def _safe_area(document, page_number: int) -> float | None:
    try:
        return document.page_area(page_number)
    except Exception as e:
        logger.debug("Page area unavailable for page %d: %s", page_number, e)
        return None


async def extract_with_fallback(
    source: bytes,
    options: VisionFallbackOptions | None = None,
    file_name: str | None = None,
    cancel_event: asyncio.Event | None = None,
) -> ExtractionResult:
    """Quick helper that runs a default orchestrator."""
    return await ExtractionOrchestrator().extract_with_fallback(
        source, options, file_name=file_name, cancel_event=cancel_event
    )
