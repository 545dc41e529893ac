"""Document analysis backends.

The production analysis service is an external collaborator; anything
implementing :class:`DocumentAnalyzer` can be plugged into ingestion.
:class:`TesseractAnalyzer` is a local backend that returns page text only.
"""

from typing import Protocol

import pytesseract

from docmatch.utils.config import AnalyzerConfig
from docmatch.utils.exceptions import (
    ConfigurationError,
    MalformedDocument,
    TransientExternalFailure,
)
from docmatch.utils.logger import get_logger

from .pdf_handler import PDFHandler, is_pdf
from .result import AnalyzeResult

logger = get_logger(__name__)


class DocumentAnalyzer(Protocol):
    """Turns raw document bytes into text, fields, and tables."""

    def analyze(self, content: bytes) -> AnalyzeResult: ...


class TesseractAnalyzer:
    """Local analysis backend built on pdf2image and Tesseract.

    Produces the concatenated page text; fields and tables are left empty,
    so extraction falls back to its text heuristics.

    Args:
        config: Analyzer configuration (language, page segmentation, DPI).
    """

    def __init__(self, config: AnalyzerConfig) -> None:
        if config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = config.tesseract_cmd
        self.config = config
        self.pdf_handler = PDFHandler(dpi=config.pdf_dpi)

    def analyze(self, content: bytes) -> AnalyzeResult:
        """Run OCR over every page of a PDF.

        Args:
            content: Raw PDF bytes.

        Returns:
            Analysis result holding the page texts joined by newlines.

        Raises:
            MalformedDocument: The payload is not a PDF or cannot be parsed.
            ConfigurationError: The Tesseract binary is not installed.
            TransientExternalFailure: Rendering or OCR failed.
        """
        if not is_pdf(content):
            raise MalformedDocument("non_pdf", "payload does not start with %PDF")

        images = self.pdf_handler.render(content)
        tess_config = f"--psm {self.config.psm}"
        pages: list[str] = []
        for image in images:
            try:
                pages.append(
                    pytesseract.image_to_string(
                        image, lang=self.config.default_lang, config=tess_config
                    )
                )
            except pytesseract.TesseractNotFoundError as exc:
                raise ConfigurationError("Tesseract is not installed") from exc
            except pytesseract.TesseractError as exc:
                raise TransientExternalFailure(f"OCR failed: {exc}") from exc

        logger.info("Analysed %d page(s) with Tesseract", len(pages))
        return AnalyzeResult(full_text="\n".join(pages))
