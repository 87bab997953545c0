"""
Tests for the page recognizer base classes
==========================================

Unit tests for RecognitionResult and BasePageRecognizer.
"""

import pytest

from tiered_extraction.backends.base import (
    BasePageRecognizer,
    RecognitionMethod,
    RecognitionResult,
)

# =============================================================================
# TestRecognitionMethodEnum
# =============================================================================


@pytest.mark.unit
class TestRecognitionMethodEnum:
    """Test RecognitionMethod enum."""

    def test_recognition_method_values(self):
        assert RecognitionMethod.VISION.value == "vision"
        assert RecognitionMethod.TESSERACT.value == "tesseract"


# =============================================================================
# TestRecognitionResult
# =============================================================================


@pytest.mark.unit
class TestRecognitionResult:
    """Test RecognitionResult dataclass."""

    def test_creation_minimal(self):
        result = RecognitionResult(text="hello", page_number=2)
        assert result.text == "hello"
        assert result.page_number == 2
        assert result.confidence == 1.0
        assert result.method == RecognitionMethod.VISION
        assert result.metadata == {}

    def test_word_count_auto_calculated(self):
        result = RecognitionResult(text="one two three", page_number=1)
        assert result.word_count == 3

    def test_word_count_empty_text(self):
        result = RecognitionResult(text="", page_number=1)
        assert result.word_count == 0

    def test_word_count_preserves_explicit(self):
        result = RecognitionResult(text="one two three", page_number=1, word_count=10)
        assert result.word_count == 10


# =============================================================================
# TestBasePageRecognizer
# =============================================================================


class ConcreteRecognizer(BasePageRecognizer):
    """Minimal recognizer echoing the page number."""

    def __init__(self, available: bool = True):
        super().__init__(name="Concrete")
        self.available = available

    def recognize_page(self, source, page_number, **kwargs):
        return RecognitionResult(text=f"page {page_number}", page_number=page_number)

    def is_available(self):
        return self.available


@pytest.mark.unit
class TestBasePageRecognizer:
    """Test BasePageRecognizer shared behavior."""

    def test_name_stored(self):
        assert ConcreteRecognizer().name == "Concrete"

    def test_repr(self):
        assert repr(ConcreteRecognizer()) == "ConcreteRecognizer(name='Concrete', available)"
        assert "unavailable" in repr(ConcreteRecognizer(available=False))

    def test_page_count(self, create_text_pdf):
        assert BasePageRecognizer.page_count(create_text_pdf(pages=4)) == 4

    def test_render_page(self, create_text_pdf):
        pix = BasePageRecognizer.render_page(create_text_pdf(pages=1), 1, zoom=1.0)
        assert pix.width > 0
        assert pix.height > 0

    def test_render_page_zoom_scales(self, create_text_pdf):
        source = create_text_pdf(pages=1)
        small = BasePageRecognizer.render_page(source, 1, zoom=1.0)
        large = BasePageRecognizer.render_page(source, 1, zoom=2.0)
        assert large.width == pytest.approx(small.width * 2, abs=2)

    @pytest.mark.parametrize("page_number", [0, 3])
    def test_render_page_out_of_range(self, create_text_pdf, page_number):
        with pytest.raises(ValueError, match="out of range"):
            BasePageRecognizer.render_page(create_text_pdf(pages=2), page_number)


# =============================================================================
# TestRecognizerInheritance
# =============================================================================


@pytest.mark.unit
class TestRecognizerInheritance:
    """Test abstract method enforcement."""

    def test_abstract_methods_must_be_implemented(self):
        class IncompleteRecognizer(BasePageRecognizer):
            pass

        with pytest.raises(TypeError):
            IncompleteRecognizer()

    def test_partial_implementation_fails(self):
        class PartialRecognizer(BasePageRecognizer):
            def is_available(self):
                return True

        with pytest.raises(TypeError):
            PartialRecognizer()

    def test_recognizers_work_one_page_at_a_time(self):
        """Multi-page loops live in the callers that retry and collect per page."""
        assert BasePageRecognizer.__abstractmethods__ == {"recognize_page", "is_available"}
        assert not hasattr(BasePageRecognizer, "recognize_document")
