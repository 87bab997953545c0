"""
Fallback Gate
=============

Pure decision functions that turn a DocumentQualityReport into escalation
decisions: which pages deserve image-based re-recognition, and whether the
whole document should be flagged for full OCR.

Decision Matrix:
    | Report                                   | vision | full OCR |
    |------------------------------------------|--------|----------|
    | all pages acceptable                     | no     | no       |
    | some pages degraded/unusable             | yes    | no       |
    | zero pages / ~no text / very thin text   | no     | yes      |
    | most pages unusable / score below floor  | no     | yes      |

The full-OCR check is independent of the vision check: a document can
still be flagged for operator-triggered OCR after vision patched what it
could, because the orchestrator re-runs this gate over the final text.
"""

from dataclasses import dataclass, field

from tiered_extraction.models import (
    DocumentQualityReport,
    GateThresholds,
    RecommendedMethod,
)


@dataclass
class EscalationDecision:
    """Combined output of the gate for one report."""

    problematic_pages: list[int]
    needs_vision_fallback: bool
    needs_full_ocr: bool
    reasons: list[str] = field(default_factory=list)

    @property
    def reasoning(self) -> str:
        return " | ".join(self.reasons) if self.reasons else "No escalation required"


class FallbackGate:
    """
    Translates quality reports into escalation decisions.

    Attributes:
        thresholds: GateThresholds with the full-OCR floors
    """

    def __init__(self, thresholds: GateThresholds | None = None):
        self.thresholds = thresholds or GateThresholds()

    def problematic_pages(self, report: DocumentQualityReport) -> list[int]:
        """Degraded or unusable pages, ascending and deduplicated."""
        return sorted({s.index for s in report.page_scores if s.is_problematic})

    def needs_vision_fallback(self, report: DocumentQualityReport) -> bool:
        """
        True when a few pages need patching.

        Vision fallback patches pages; it does not rescue scanned documents,
        so a report that already calls for full OCR never qualifies.
        """
        if not self.problematic_pages(report):
            return False
        return not self.needs_full_ocr(report)

    def needs_full_ocr(self, report: DocumentQualityReport) -> bool:
        """True when structural extraction fundamentally failed for the document."""
        return bool(self.full_ocr_reasons(report))

    def full_ocr_reasons(self, report: DocumentQualityReport) -> list[str]:
        """
        List every global signal that calls for full OCR.

        Signals are evaluated independently:
        - absolute text yield across the document
        - text yield per page relative to expected density
        - the analyzer's own recommendation and overall score
        """
        if report.total_pages == 0:
            return ["Document has no pages"]

        reasons: list[str] = []
        t = self.thresholds

        if report.total_chars < t.min_total_chars:
            reasons.append(f"Total text yield {report.total_chars} chars < {t.min_total_chars}")

        avg_per_page = report.total_chars / report.total_pages
        density = avg_per_page / t.expected_chars_per_page
        if density < t.min_density_ratio:
            reasons.append(f"Text density {density:.2f} < {t.min_density_ratio}")

        if report.extraction_method == RecommendedMethod.OCR_REQUIRED:
            reasons.append("Most pages unusable")

        if report.overall_score < t.overall_score_floor:
            reasons.append(
                f"Overall score {report.overall_score:.2f} < {t.overall_score_floor}"
            )

        return reasons

    def decide(self, report: DocumentQualityReport) -> EscalationDecision:
        """Evaluate all three decisions at once."""
        problematic = self.problematic_pages(report)
        ocr_reasons = self.full_ocr_reasons(report)
        needs_ocr = bool(ocr_reasons)
        needs_vision = bool(problematic) and not needs_ocr

        reasons = list(ocr_reasons)
        if needs_vision:
            if len(problematic) <= 5:
                reasons.append(f"Vision fallback: pages {problematic}")
            else:
                reasons.append(f"Vision fallback: {len(problematic)} pages")

        return EscalationDecision(
            problematic_pages=problematic,
            needs_vision_fallback=needs_vision,
            needs_full_ocr=needs_ocr,
            reasons=reasons,
        )


_default_gate = FallbackGate()


def problematic_pages(report: DocumentQualityReport) -> list[int]:
    return _default_gate.problematic_pages(report)


def needs_vision_fallback(report: DocumentQualityReport) -> bool:
    return _default_gate.needs_vision_fallback(report)


def needs_full_ocr(report: DocumentQualityReport) -> bool:
    return _default_gate.needs_full_ocr(report)
