"""
Tests for QualityAnalyzer
=========================

Unit tests for per-page scoring, classification and document aggregation.
"""

import pytest

from tiered_extraction.models import (
    PageClassification,
    PageText,
    QualityThresholds,
    RecommendedMethod,
)
from tiered_extraction.quality import QualityAnalyzer, analyze, generate_quality_summary


@pytest.fixture
def analyzer() -> QualityAnalyzer:
    return QualityAnalyzer()


def _garble(text: str, every: int) -> str:
    """Replace every Nth non-space character with U+FFFD."""
    out = []
    count = 0
    for ch in text:
        if not ch.isspace():
            count += 1
            if count % every == 0:
                out.append("\ufffd")
                continue
        out.append(ch)
    return "".join(out)


# =============================================================================
# TestPageScoring
# =============================================================================


@pytest.mark.unit
class TestPageScoring:
    """Test score_page() classification of single pages."""

    def test_dense_prose_is_acceptable(self, analyzer, page_text):
        """Clean body text scores high and is acceptable."""
        score = analyzer.score_page(PageText(index=1, text=page_text(1)))
        assert score.classification == PageClassification.ACCEPTABLE
        assert score.score == pytest.approx(1.0)
        assert score.issues == ()

    def test_empty_page_is_unusable(self, analyzer):
        """Empty text is unusable with a score of zero."""
        score = analyzer.score_page(PageText(index=3, text=""))
        assert score.classification == PageClassification.UNUSABLE
        assert score.score == 0.0
        assert "Empty page" in score.issues[0]

    def test_whitespace_only_page_is_unusable(self, analyzer):
        score = analyzer.score_page(PageText(index=1, text=" \n\n\t  "))
        assert score.classification == PageClassification.UNUSABLE

    def test_failed_page_is_unusable(self, analyzer):
        """A page whose extraction failed is unusable regardless of text."""
        score = analyzer.score_page(PageText.failed(2))
        assert score.classification == PageClassification.UNUSABLE
        assert score.issues == ("Baseline extraction failed",)

    def test_only_garbled_characters(self, analyzer):
        score = analyzer.score_page(PageText(index=1, text="\ufffd\ufffd\x01\x02"))
        assert score.classification == PageClassification.UNUSABLE
        assert score.signals.garbled_ratio == 1.0
        assert "garbled" in score.issues[0]

    def test_garbled_text_is_penalized(self, analyzer, page_text):
        """A heavily garbled page drops out of the acceptable class."""
        score = analyzer.score_page(PageText(index=1, text=_garble(page_text(1), every=5)))
        assert score.classification != PageClassification.ACCEPTABLE
        assert score.signals.garbled_ratio > 0.15

    def test_thin_text_is_penalized(self, analyzer):
        """A page with only a heading scores below a dense page."""
        score = analyzer.score_page(PageText(index=1, text="Chapter One"))
        assert score.score < 1.0
        assert any("density" in issue for issue in score.issues)

    def test_special_characters_are_penalized(self, analyzer, page_text):
        gibberish = "~^|<>`\\ " * 120
        score = analyzer.score_page(PageText(index=1, text=gibberish))
        assert score.signals.special_char_ratio > 0.3
        assert score.score < 0.75

    def test_single_character_words_are_penalized(self, analyzer):
        truncated = " ".join("T h e r e s u l t s w e r e g o o d".split() * 30)
        score = analyzer.score_page(PageText(index=1, text=truncated))
        assert score.signals.single_char_word_ratio > 0.3
        assert any("single-character" in issue for issue in score.issues)

    def test_repeated_runs_are_penalized(self, analyzer, page_text):
        text = page_text(1) + "\n" + "x" * 40
        score = analyzer.score_page(PageText(index=1, text=text))
        assert any("repeated" in issue for issue in score.issues)

    def test_leader_dots_are_not_repeated_runs(self, analyzer, page_text):
        """Table-of-contents leaders are not flagged."""
        text = page_text(1) + "\nIntroduction " + "." * 40 + " 3"
        score = analyzer.score_page(PageText(index=1, text=text))
        assert not any("repeated" in issue for issue in score.issues)

    def test_page_area_changes_density(self, analyzer, page_text):
        """The same text on a larger page is thinner."""
        text = page_text(1, sentences=4)
        small = analyzer.score_page(PageText(index=1, text=text, area=100_000.0))
        large = analyzer.score_page(PageText(index=1, text=text, area=2_000_000.0))
        assert small.signals.char_density > large.signals.char_density
        assert small.score >= large.score


# =============================================================================
# TestMonotonicity
# =============================================================================


@pytest.mark.unit
class TestMonotonicity:
    """More garbling or less text never increases a page score."""

    def test_increasing_garbled_ratio_never_increases_score(self, analyzer, page_text):
        base = page_text(1)
        scores = [
            analyzer.score_page(PageText(index=1, text=_garble(base, every))).score
            for every in (1000, 50, 20, 10, 5, 3, 2)
        ]
        assert scores == sorted(scores, reverse=True)

    def test_decreasing_density_never_increases_score(self, analyzer, page_text):
        scores = [
            analyzer.score_page(PageText(index=1, text=page_text(1, sentences=n))).score
            for n in (12, 8, 5, 3, 2, 1)
        ]
        assert scores == sorted(scores, reverse=True)

    def test_garbling_a_single_letter_word_never_raises_score(self, analyzer):
        """Losing a one-letter word to garbling keeps it counted as a word."""
        words = "extraordinary considerations regarding administrative documentation requirements"
        clean = analyzer.score_page(PageText(index=1, text="a b c d " + words))
        garbled = analyzer.score_page(PageText(index=1, text="a b c \ufffd " + words))

        assert garbled.signals.word_count == clean.signals.word_count == 10
        assert garbled.score <= clean.score

    def test_garbling_a_letter_inside_a_word_never_raises_score(self, analyzer):
        clean = analyzer.score_page(PageText(index=1, text="a b c dx " + "word " * 6))
        garbled = analyzer.score_page(PageText(index=1, text="a b c d\ufffd " + "word " * 6))
        assert garbled.score <= clean.score

    def test_garbling_a_special_character_never_raises_score(self, analyzer, page_text):
        text = page_text(1, sentences=3) + " ~~^^||<<>>"
        clean = analyzer.score_page(PageText(index=1, text=text))
        garbled = analyzer.score_page(PageText(index=1, text=text.replace("^", "\ufffd")))
        assert garbled.signals.special_char_ratio >= clean.signals.special_char_ratio
        assert garbled.score <= clean.score

    def test_garbling_part_of_a_repeated_run_keeps_it_flagged(self, analyzer, page_text):
        text = page_text(1) + "\n" + "x" * 20 + "\ufffd" + "x" * 19
        score = analyzer.score_page(PageText(index=1, text=text))
        assert any("repeated" in issue for issue in score.issues)

    def test_inserting_garbled_characters_never_raises_score(self, analyzer, page_text):
        base = page_text(1, sentences=4)
        previous = analyzer.score_page(PageText(index=1, text=base)).score
        for count in (1, 5, 20, 80):
            score = analyzer.score_page(PageText(index=1, text=base + " \ufffd" * count)).score
            assert score <= previous
            previous = score

    def test_failed_page_never_beats_any_text(self, analyzer):
        failed = analyzer.score_page(PageText.failed(1)).score
        some_text = analyzer.score_page(PageText(index=1, text="x")).score
        assert failed <= some_text


# =============================================================================
# TestDocumentReport
# =============================================================================


@pytest.mark.unit
class TestDocumentReport:
    """Test analyze() aggregation."""

    def test_report_covers_every_page(self, analyzer, clean_pages):
        pages = clean_pages(7)
        report = analyzer.analyze(pages)
        assert report.total_pages == 7
        assert [s.index for s in report.page_scores] == list(range(1, 8))
        assert report.acceptable_pages == 7

    def test_clean_document_recommends_baseline(self, analyzer, clean_pages):
        report = analyzer.analyze(clean_pages(10))
        assert report.extraction_method == RecommendedMethod.PDF_BASELINE
        assert report.overall_score == pytest.approx(1.0)

    def test_total_chars_sums_page_lengths(self, analyzer, clean_pages):
        pages = clean_pages(3)
        report = analyzer.analyze(pages)
        assert report.total_chars == sum(len(p.text) for p in pages)

    def test_empty_input(self, analyzer):
        report = analyzer.analyze([])
        assert report.total_pages == 0
        assert report.overall_score == 0.0
        assert report.extraction_method == RecommendedMethod.OCR_REQUIRED

    def test_tolerates_failed_entries(self, analyzer, page_text):
        pages = [PageText(index=1, text=page_text(1)), PageText.failed(2), PageText(index=3, text="")]
        report = analyzer.analyze(pages)
        assert report.unusable_pages == 2
        assert report.acceptable_pages == 1

    def test_one_problem_page_recommends_hybrid(self, analyzer, clean_pages):
        pages = clean_pages(5)
        pages[2] = PageText(index=3, text="")
        report = analyzer.analyze(pages)
        assert report.extraction_method == RecommendedMethod.HYBRID

    def test_many_problem_pages_recommends_vision_heavy(self, analyzer, clean_pages):
        pages = clean_pages(4)
        pages[0] = PageText(index=1, text="")
        pages[1] = PageText(index=2, text="")
        report = analyzer.analyze(pages)
        assert report.extraction_method == RecommendedMethod.VISION_HEAVY

    def test_mostly_unusable_recommends_ocr(self, analyzer, page_text):
        pages = [PageText(index=i, text="") for i in range(1, 5)]
        pages.append(PageText(index=5, text=page_text(5)))
        report = analyzer.analyze(pages)
        assert report.extraction_method == RecommendedMethod.OCR_REQUIRED

    def test_aggregate_is_sensitive_to_proportion(self, analyzer, page_text):
        """1 unusable page in 200 scores higher than 1 degraded page in 5."""
        large = [PageText(index=i, text=page_text(i)) for i in range(1, 201)]
        large[99] = PageText(index=100, text="")

        small = [PageText(index=i, text=page_text(i)) for i in range(1, 6)]
        small[2] = PageText(index=3, text=_garble(page_text(3), every=5))

        small_report = analyzer.analyze(small)
        assert small_report.degraded_pages + small_report.unusable_pages == 1
        assert analyzer.analyze(large).overall_score > small_report.overall_score

    def test_analyze_is_idempotent(self, analyzer, clean_pages):
        pages = clean_pages(4)
        pages[1] = PageText(index=2, text="Only a title")
        assert analyzer.analyze(pages) == analyzer.analyze(pages)

    def test_module_level_analyze(self, clean_pages):
        report = analyze(clean_pages(2))
        assert report.total_pages == 2

    def test_custom_thresholds(self, page_text):
        """A stricter acceptable threshold reclassifies borderline pages."""
        strict = QualityAnalyzer(QualityThresholds(acceptable_score=0.99))
        score = strict.score_page(PageText(index=1, text="Chapter One"))
        assert score.classification != PageClassification.ACCEPTABLE


# =============================================================================
# TestQualitySummary
# =============================================================================


@pytest.mark.unit
class TestQualitySummary:
    """Test generate_quality_summary()."""

    def test_all_pages_successful(self, analyzer, clean_pages):
        summary = generate_quality_summary(analyzer.analyze(clean_pages(3)))
        assert "All 3 pages extracted successfully" in summary
        assert "Overall quality: 100/100" in summary
        assert "Problematic pages" not in summary

    def test_lists_problematic_pages(self, analyzer, clean_pages):
        pages = clean_pages(5)
        pages[2] = PageText(index=3, text="")
        summary = generate_quality_summary(analyzer.analyze(pages))
        assert "4 pages extracted successfully" in summary
        assert "1 pages failed extraction" in summary
        assert "Problematic pages: 3" in summary

    def test_many_problematic_pages_are_counted(self, analyzer):
        pages = [PageText(index=i, text="") for i in range(1, 13)]
        summary = generate_quality_summary(analyzer.analyze(pages))
        assert "Problematic pages: 12" in summary
