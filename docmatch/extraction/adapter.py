"""Extraction adapter: analysis output in, normalized document out.

Checks that the document's title agrees with the channel it arrived on,
picks a strategy through the template matcher and registry, and enforces
the guarantees every downstream stage relies on: a resolved organisation
and a document number.
"""

import re
from pathlib import Path

from docmatch.analysis.result import AnalyzeResult
from docmatch.models.documents import DocumentKind, NormalizedDocument
from docmatch.utils.config import ExtractionConfig
from docmatch.utils.exceptions import MalformedDocument
from docmatch.utils.logger import get_logger

from .strategies import StrategyRegistry, default_registry
from .template_matcher import TemplateMatcher

logger = get_logger(__name__)

# Checked in order; "purchase order" and GRN titles must win over a
# passing mention of an invoice.
_TITLE_PATTERNS: list[tuple[DocumentKind, re.Pattern[str]]] = [
    (
        DocumentKind.PURCHASE_ORDER,
        re.compile(
            r"\bpurchase\s+order\b(?!\s*(?::|#|(?:no|number|date|ref)\b))",
            re.IGNORECASE,
        ),
    ),
    (
        DocumentKind.GRN,
        re.compile(r"\bgoods\s+rece(?:ipt|ived)\s+note\b|^grn$", re.IGNORECASE),
    ),
    (
        DocumentKind.INVOICE,
        re.compile(
            r"\b(?:tax\s+)?invoice\b(?!\s*(?::|#|(?:no|number|date|to)\b))",
            re.IGNORECASE,
        ),
    ),
]


def detect_title(lines: list[str], scan_lines: int = 10) -> tuple[DocumentKind, str] | None:
    """Find the document title among the first lines of text.

    Args:
        lines: Stripped, non-empty text lines.
        scan_lines: How many leading lines to inspect.

    Returns:
        Tuple of (kind named by the title, title line), or ``None``.
    """
    for line in lines[:scan_lines]:
        for kind, pattern in _TITLE_PATTERNS:
            if pattern.search(line):
                return kind, line
    return None


class ExtractionAdapter:
    """Maps analysis results to normalized documents for a channel.

    Args:
        config: Extraction settings (templates file, title scan depth).
        registry: Strategy registry; defaults to the built-in strategies.
        matcher: Template matcher; defaults to one loaded from
            ``config.templates_path``.
    """

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        registry: StrategyRegistry | None = None,
        matcher: TemplateMatcher | None = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self.registry = registry or default_registry()
        self.matcher = matcher or TemplateMatcher(Path(self.config.templates_path))

    def adapt(
        self, result: AnalyzeResult, kind: DocumentKind, file_name: str
    ) -> NormalizedDocument:
        """Produce a normalized document of the channel's kind.

        Args:
            result: Analysis output for the file.
            kind: Document kind expected on the channel.
            file_name: Source file name, kept on the record.

        Returns:
            The normalized document.

        Raises:
            MalformedDocument: With reason ``title_mismatch``,
                ``unresolved_org`` or ``missing_document_number``.
        """
        lines = result.lines
        title = detect_title(lines, self.config.title_scan_lines)
        if title is not None and title[0] != kind:
            raise MalformedDocument(
                "title_mismatch",
                f"{file_name} is titled '{title[1]}' but arrived as {kind.label}",
            )

        template = self.matcher.match_template(result.full_text, kind)
        strategy = self.registry.get(kind, template.strategy if template else None)
        logger.debug("Extracting %s with strategy '%s'", file_name, strategy.name)

        document = strategy.extract(result, file_name)
        if title is not None:
            document.title = title[1]

        document.org = (document.org or "").strip()
        if not document.org:
            document.org = document.supplier.name.strip()
        if not document.org and kind != DocumentKind.INVOICE and lines:
            document.org = lines[0]
        if not document.org:
            raise MalformedDocument(
                "unresolved_org", f"No organisation found in {file_name}"
            )

        if not document.document_number.strip():
            raise MalformedDocument(
                "missing_document_number",
                f"No {kind.label} number found in {file_name}",
            )

        logger.info(
            "Extracted %s %s for %s with %d line(s)",
            kind.label,
            document.document_number,
            document.org,
            len(document.lines),
        )
        return document
