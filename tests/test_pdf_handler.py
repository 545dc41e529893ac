"""Tests for PDF handling and the Tesseract analysis backend."""

from unittest.mock import MagicMock, patch

import pytest
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError
from PIL import Image

from docmatch.analysis.analyzer import TesseractAnalyzer
from docmatch.analysis.pdf_handler import PDFHandler, is_pdf
from docmatch.utils.config import AnalyzerConfig
from docmatch.utils.exceptions import (
    ConfigurationError,
    MalformedDocument,
    TransientExternalFailure,
)


def _blank_page(width: int = 300, height: int = 200) -> Image.Image:
    return Image.new("RGB", (width, height), "white")


class TestIsPdf:
    def test_pdf_signature(self) -> None:
        assert is_pdf(b"%PDF-1.7\n...")

    def test_other_payload(self) -> None:
        assert not is_pdf(b"\x89PNG\r\n")
        assert not is_pdf(b"")


class TestPDFHandler:
    """Tests for PDF page rendering."""

    def test_default_dpi(self) -> None:
        assert PDFHandler().dpi == 300

    @patch("docmatch.analysis.pdf_handler.convert_from_bytes")
    def test_render_pages(self, mock_convert: MagicMock) -> None:
        mock_convert.return_value = [_blank_page(), _blank_page()]

        pages = PDFHandler(dpi=200).render(b"%PDF-1.4 fake content")

        assert len(pages) == 2
        assert isinstance(pages[0], Image.Image)
        mock_convert.assert_called_once_with(b"%PDF-1.4 fake content", dpi=200)

    @patch("docmatch.analysis.pdf_handler.convert_from_bytes")
    def test_corrupt_pdf_is_malformed(self, mock_convert: MagicMock) -> None:
        mock_convert.side_effect = PDFPageCountError("Unable to get page count")
        with pytest.raises(MalformedDocument) as exc_info:
            PDFHandler().render(b"%PDF-1.4 broken")
        assert exc_info.value.reason_code == "unreadable_pdf"

    @patch("docmatch.analysis.pdf_handler.convert_from_bytes")
    def test_missing_poppler(self, mock_convert: MagicMock) -> None:
        mock_convert.side_effect = PDFInfoNotInstalledError("pdfinfo not found")
        with pytest.raises(ConfigurationError):
            PDFHandler().render(b"%PDF-1.4")

    @patch("docmatch.analysis.pdf_handler.convert_from_bytes")
    def test_io_failure_is_transient(self, mock_convert: MagicMock) -> None:
        mock_convert.side_effect = OSError("No space left on device")
        with pytest.raises(TransientExternalFailure):
            PDFHandler().render(b"%PDF-1.4")


class TestTesseractAnalyzer:
    """Tests for the local analysis backend."""

    @patch("docmatch.analysis.analyzer.pytesseract")
    @patch("docmatch.analysis.analyzer.PDFHandler")
    def test_joins_page_text(
        self, mock_pdf_cls: MagicMock, mock_tess: MagicMock
    ) -> None:
        mock_pdf_cls.return_value.render.return_value = [
            _blank_page(),
            _blank_page(),
        ]
        mock_tess.image_to_string.side_effect = ["INVOICE\nPage one", "Page two"]

        result = TesseractAnalyzer(AnalyzerConfig(psm=4)).analyze(b"%PDF-1.4 data")

        assert result.full_text == "INVOICE\nPage one\nPage two"
        assert result.fields == {}
        assert result.tables == []
        _, kwargs = mock_tess.image_to_string.call_args
        assert kwargs["config"] == "--psm 4"
        assert kwargs["lang"] == "eng"

    def test_rejects_non_pdf(self) -> None:
        analyzer = TesseractAnalyzer(AnalyzerConfig())
        with pytest.raises(MalformedDocument) as exc_info:
            analyzer.analyze(b"\x89PNG\r\n")
        assert exc_info.value.reason_code == "non_pdf"

    @patch("docmatch.analysis.analyzer.pytesseract")
    @patch("docmatch.analysis.analyzer.PDFHandler")
    def test_missing_binary_is_configuration_error(
        self, mock_pdf_cls: MagicMock, mock_tess: MagicMock
    ) -> None:
        class NotFound(Exception):
            pass

        class TessError(Exception):
            pass

        mock_tess.TesseractNotFoundError = NotFound
        mock_tess.TesseractError = TessError
        mock_pdf_cls.return_value.render.return_value = [_blank_page()]
        mock_tess.image_to_string.side_effect = NotFound()

        with pytest.raises(ConfigurationError):
            TesseractAnalyzer(AnalyzerConfig()).analyze(b"%PDF-1.4 data")
