"""PDF page rendering for the local analysis backend."""

from pdf2image import convert_from_bytes
from pdf2image.exceptions import (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFSyntaxError,
)
from PIL import Image

from docmatch.utils.exceptions import (
    ConfigurationError,
    MalformedDocument,
    TransientExternalFailure,
)
from docmatch.utils.logger import get_logger

logger = get_logger(__name__)

PDF_MAGIC = b"%PDF"


def is_pdf(content: bytes) -> bool:
    """Check the PDF signature at the start of a byte payload."""
    return content[:4] == PDF_MAGIC


class PDFHandler:
    """Renders PDF pages to PIL images for OCR.

    Args:
        dpi: Rendering resolution. Higher values read small print better
            but use more memory.
    """

    def __init__(self, dpi: int = 300) -> None:
        self.dpi = dpi

    def render(self, content: bytes) -> list[Image.Image]:
        """Render every page of a PDF.

        Args:
            content: Raw PDF bytes.

        Returns:
            Page images in document order.

        Raises:
            MalformedDocument: With reason ``unreadable_pdf`` when poppler
                cannot parse the file.
            ConfigurationError: poppler is not installed.
            TransientExternalFailure: Rendering failed for another reason.
        """
        try:
            pages = convert_from_bytes(content, dpi=self.dpi)
        except PDFInfoNotInstalledError as exc:
            raise ConfigurationError("poppler is not installed") from exc
        except (PDFPageCountError, PDFSyntaxError) as exc:
            raise MalformedDocument("unreadable_pdf", str(exc)) from exc
        except OSError as exc:
            raise TransientExternalFailure(f"PDF rendering failed: {exc}") from exc

        logger.info("Rendered %d page(s) at %d DPI", len(pages), self.dpi)
        return pages
