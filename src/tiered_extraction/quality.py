"""
Extraction Quality Analyzer
===========================

Scores the text the baseline extractor produced for each page and rolls the
page scores up into a document-level report.

Scoring starts every page at 1.0 and subtracts penalties. Each penalty
depends on exactly one signal and never shrinks as that signal gets worse,
so more garbled characters or a thinner text layer can only lower a score.

Garbled characters (replacement glyphs, control characters, private-use and
unassigned code points) are folded into one opaque mark before signals are
computed. The mark counts toward the garbled ratio and the special-character
ratio, occupies its word and line, and matches any character inside a
repeated run, but never counts as readable text for density. Replacing a
glyph with a garbled one, or inserting one, therefore moves every signal in
the worse direction or leaves it alone.

Usage:
    from tiered_extraction.quality import QualityAnalyzer

    report = QualityAnalyzer().analyze(page_texts)
    print(report.overall_score, report.extraction_method)
"""

import logging
import unicodedata
from collections.abc import Sequence

from tiered_extraction.models import (
    DocumentQualityReport,
    PageClassification,
    PageQualityScore,
    PageText,
    QualitySignals,
    QualityThresholds,
    RecommendedMethod,
)

logger = logging.getLogger(__name__)

_ALLOWED_PUNCTUATION = set(".,!?:;-()[]{}\"'/%&+#@*$€£–—…’‘“”")
# Runs of these are layout (leaders, rules), not extraction noise
_RUN_EXEMPT = set(".-_=*·")
_RUN_LENGTH = 11
_GARBLED_CATEGORIES = {"Co", "Cn", "Cs"}
_GARBLED_MARK = "\ufffd"


def _is_garbled(ch: str) -> bool:
    if ch == _GARBLED_MARK:
        return True
    if ch in "\n\r\t\f\v":
        return False
    category = unicodedata.category(ch)
    return category == "Cc" or category in _GARBLED_CATEGORIES


def _mask_garbled(text: str) -> str:
    return "".join(_GARBLED_MARK if _is_garbled(ch) else ch for ch in text)


def _readable_chars(masked: str) -> int:
    return sum(1 for ch in masked if not ch.isspace() and ch != _GARBLED_MARK)


def _is_single_char_word(word: str) -> bool:
    """One letter, or nothing readable at all once garbled marks are dropped."""
    core = word.replace(_GARBLED_MARK, "")
    return not core or (len(core) == 1 and core.isalpha())


def _has_repeated_run(masked: str) -> bool:
    """
    True when _RUN_LENGTH consecutive non-space characters repeat one glyph.

    Garbled marks match any glyph, so garbling part of a run keeps it a run.
    """
    run_char = None
    run_len = 0
    wild_tail = 0
    for ch in masked:
        if ch.isspace():
            run_char, run_len, wild_tail = None, 0, 0
            continue
        if ch == _GARBLED_MARK:
            run_len += 1
            wild_tail += 1
        elif run_char is None or ch == run_char:
            run_char = ch
            run_len += 1
            wild_tail = 0
        else:
            # Trailing marks can belong to the new glyph's run as well
            run_char = ch
            run_len = wild_tail + 1
            wild_tail = 0
        if wild_tail >= _RUN_LENGTH:
            return True
        if run_len >= _RUN_LENGTH and run_char not in _RUN_EXEMPT:
            return True
    return False


class QualityAnalyzer:
    """
    Scores per-page text quality and builds a DocumentQualityReport.

    The analyzer holds only its thresholds; analyze() is a pure function of
    its input, so calling it twice on the same pages yields equal reports.
    """

    def __init__(self, thresholds: QualityThresholds | None = None):
        self.thresholds = thresholds or QualityThresholds()

    def analyze(self, page_texts: Sequence[PageText]) -> DocumentQualityReport:
        """
        Score every page and aggregate.

        Args:
            page_texts: One PageText per physical page, in page order.
                Failed and empty entries are allowed.

        Returns:
            DocumentQualityReport covering every page
        """
        page_scores = tuple(self.score_page(page) for page in page_texts)

        acceptable = sum(
            1 for s in page_scores if s.classification == PageClassification.ACCEPTABLE
        )
        degraded = sum(
            1 for s in page_scores if s.classification == PageClassification.DEGRADED
        )
        unusable = sum(
            1 for s in page_scores if s.classification == PageClassification.UNUSABLE
        )

        overall_score = self._overall_score(page_scores)
        method = self._recommend_method(
            total_pages=len(page_scores),
            problematic=degraded + unusable,
            unusable=unusable,
            overall_score=overall_score,
        )

        logger.debug(
            "Quality analysis: pages=%d acceptable=%d degraded=%d unusable=%d overall=%.2f method=%s",
            len(page_scores),
            acceptable,
            degraded,
            unusable,
            overall_score,
            method.value,
        )

        return DocumentQualityReport(
            total_pages=len(page_scores),
            page_scores=page_scores,
            overall_score=overall_score,
            extraction_method=method,
            acceptable_pages=acceptable,
            degraded_pages=degraded,
            unusable_pages=unusable,
            total_chars=sum(len(p.text) for p in page_texts),
        )

    def score_page(self, page: PageText) -> PageQualityScore:
        """Compute signals, score and classification for a single page."""
        text = page.text or ""

        if page.extraction_failed:
            return self._unusable(page.index, len(text), "Baseline extraction failed")

        masked = _mask_garbled(text)
        garbled = masked.count(_GARBLED_MARK)
        if not masked.replace(_GARBLED_MARK, "").strip():
            issue = "Only garbled characters extracted" if garbled else "Empty page - no text extracted"
            return self._unusable(page.index, len(text), issue, garbled_ratio=1.0 if garbled else 0.0)

        signals = self._measure(page, text, masked, garbled)
        score, issues = self._score(signals, masked)

        return PageQualityScore(
            index=page.index,
            score=score,
            classification=self._classify(score),
            signals=signals,
            issues=tuple(issues),
        )

    def _measure(self, page: PageText, text: str, masked: str, garbled: int) -> QualitySignals:
        whitespace = sum(1 for ch in masked if ch.isspace())
        visible = _readable_chars(masked)
        special = garbled + sum(
            1
            for ch in masked
            if not ch.isspace()
            and ch != _GARBLED_MARK
            and not ch.isalnum()
            and ch not in _ALLOWED_PUNCTUATION
        )

        words = masked.split()
        single_char_words = sum(1 for w in words if _is_single_char_word(w))
        lines = [line for line in masked.split("\n") if line.strip()]

        area = page.area if page.area and page.area > 0 else self.thresholds.default_page_area

        return QualitySignals(
            char_count=len(text),
            word_count=len(words),
            line_count=len(lines),
            char_density=visible / area,
            whitespace_ratio=whitespace / (whitespace + visible),
            garbled_ratio=garbled / (garbled + visible),
            special_char_ratio=special / (garbled + visible),
            single_char_word_ratio=single_char_words / len(words) if words else 0.0,
        )

    def _score(self, signals: QualitySignals, masked: str) -> tuple[float, list[str]]:
        issues: list[str] = []
        score = 1.0

        # Thin text layer relative to what a page of body text holds
        density_ratio = signals.char_density / self.thresholds.expected_density
        if density_ratio < 0.25:
            score -= (0.25 - density_ratio) / 0.25 * 0.5
            issues.append(f"Low character density ({density_ratio:.2f} of expected)")

        if signals.garbled_ratio > 0:
            score -= min(0.6, signals.garbled_ratio * 3.0)
            issues.append(f"Garbled characters ({signals.garbled_ratio:.0%})")

        if signals.whitespace_ratio > 0.35:
            score -= min(0.3, signals.whitespace_ratio - 0.35)
            issues.append("Excessive whitespace")

        if signals.special_char_ratio > 0.3:
            score -= 0.3
            issues.append("High special character ratio (> 30%) - possible gibberish")
        elif signals.special_char_ratio > 0.2:
            score -= 0.15
            issues.append("Elevated special character ratio (> 20%)")

        if signals.word_count >= 10:
            if signals.single_char_word_ratio > 0.3:
                score -= 0.25
                issues.append("Too many single-character words (> 30%) - truncation detected")
            elif signals.single_char_word_ratio > 0.15:
                score -= 0.1
                issues.append("Many single-character words (> 15%)")

        if signals.line_count > 3:
            if _readable_chars(masked) / signals.line_count < 10:
                score -= 0.2
                issues.append("Very low text density per line")

        if _has_repeated_run(masked):
            score -= 0.2
            issues.append("Suspicious repeated character runs")

        return max(0.0, min(1.0, score)), issues

    def _classify(self, score: float) -> PageClassification:
        if score >= self.thresholds.acceptable_score:
            return PageClassification.ACCEPTABLE
        if score >= self.thresholds.degraded_score:
            return PageClassification.DEGRADED
        return PageClassification.UNUSABLE

    def _unusable(
        self, index: int, char_count: int, issue: str, garbled_ratio: float = 0.0
    ) -> PageQualityScore:
        return PageQualityScore(
            index=index,
            score=0.0,
            classification=PageClassification.UNUSABLE,
            signals=QualitySignals(char_count=char_count, garbled_ratio=garbled_ratio),
            issues=(issue,),
        )

    @staticmethod
    def _overall_score(page_scores: Sequence[PageQualityScore]) -> float:
        """
        Mean page score, discounted by the share of non-acceptable pages.

        The discount makes the proportion of bad pages matter: one unusable
        page out of 200 barely moves the score, one degraded page out of 5
        pulls it down noticeably.
        """
        if not page_scores:
            return 0.0
        mean = sum(s.score for s in page_scores) / len(page_scores)
        bad_share = sum(1 for s in page_scores if s.is_problematic) / len(page_scores)
        return mean * (1.0 - 0.5 * bad_share)

    def _recommend_method(
        self,
        total_pages: int,
        problematic: int,
        unusable: int,
        overall_score: float,
    ) -> RecommendedMethod:
        if total_pages == 0 or unusable > total_pages * 0.5:
            return RecommendedMethod.OCR_REQUIRED
        if problematic > total_pages * 0.25:
            return RecommendedMethod.VISION_HEAVY
        if problematic > 0 or overall_score < self.thresholds.baseline_acceptable_overall:
            return RecommendedMethod.HYBRID
        return RecommendedMethod.PDF_BASELINE


def analyze(page_texts: Sequence[PageText]) -> DocumentQualityReport:
    """Quick helper to analyze pages with default thresholds."""
    return QualityAnalyzer().analyze(page_texts)


def generate_quality_summary(report: DocumentQualityReport) -> str:
    """Human-readable multi-line summary of a quality report."""
    parts: list[str] = []

    if report.total_pages and report.acceptable_pages == report.total_pages:
        parts.append(f"All {report.total_pages} pages extracted successfully")
    else:
        if report.acceptable_pages:
            parts.append(f"{report.acceptable_pages} pages extracted successfully")
        if report.degraded_pages:
            parts.append(f"{report.degraded_pages} pages with reduced quality")
        if report.unusable_pages:
            parts.append(f"{report.unusable_pages} pages failed extraction")

    parts.append(f"Overall quality: {round(report.overall_score * 100)}/100")

    problematic = [s.index for s in report.page_scores if s.is_problematic]
    if problematic:
        if len(problematic) <= 10:
            parts.append(f"Problematic pages: {', '.join(str(p) for p in problematic)}")
        else:
            parts.append(f"Problematic pages: {len(problematic)}")

    return "\n".join(parts)
