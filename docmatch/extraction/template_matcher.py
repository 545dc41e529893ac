"""Template matching for known document layouts.

Identifies the vendor layout of a document by matching its text against
regex identifiers from a YAML file. Each template names the document
kind it applies to and the extraction strategy that understands it.
"""

import re
from dataclasses import dataclass
from pathlib import Path

import yaml

from docmatch.models.documents import DocumentKind
from docmatch.utils.exceptions import ConfigurationError
from docmatch.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Template:
    """A layout definition with its identifiers compiled."""

    name: str
    kind: DocumentKind
    strategy: str
    identifiers: list[re.Pattern]
    min_confidence: float = 0.5

    def score(self, text: str) -> float:
        """Fraction of identifiers found in the text."""
        if not self.identifiers:
            return 0.0
        hits = sum(1 for pattern in self.identifiers if pattern.search(text))
        return hits / len(self.identifiers)


@dataclass
class TemplateMatch:
    """Result of matching a document against known templates."""

    template_name: str
    kind: DocumentKind
    strategy: str
    confidence: float


def _compile(name: str, entry: dict) -> Template:
    try:
        kind = DocumentKind(entry.get("kind"))
    except ValueError as exc:
        raise ConfigurationError(
            f"Template '{name}' has unknown document kind: {entry.get('kind')!r}"
        ) from exc
    try:
        identifiers = [re.compile(p, re.IGNORECASE) for p in entry.get("identifiers", [])]
    except re.error as exc:
        raise ConfigurationError(f"Template '{name}' has a bad identifier: {exc}") from exc
    return Template(
        name=name,
        kind=kind,
        strategy=entry.get("strategy", "default"),
        identifiers=identifiers,
        min_confidence=float(entry.get("min_confidence", 0.5)),
    )


class TemplateMatcher:
    """Matches OCR text against layout templates defined in YAML.

    A template entry looks like::

        acme_invoice:
          kind: invoice
          strategy: prebuilt_fields
          identifiers: ["ACME Ltd", "Invoice No"]
          min_confidence: 0.5

    Args:
        templates_path: Path to the YAML file defining templates.

    Raises:
        ConfigurationError: A template names an unknown kind or carries an
            invalid regex.
    """

    def __init__(self, templates_path: Path = Path("configs/templates.yaml")) -> None:
        path = Path(templates_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            logger.debug("Loaded %d templates from %s", len(data), path)
        else:
            logger.debug("No templates file at %s, using empty templates", path)
            data = {}
        self.templates = [_compile(name, entry) for name, entry in data.items()]

    def match_template(self, text: str, kind: DocumentKind) -> TemplateMatch | None:
        """Find the best matching template of a document kind.

        Args:
            text: OCR text from the document.
            kind: Only templates declared for this kind are considered.

        Returns:
            Best matching template, or ``None`` if no template scores
            above its minimum confidence.
        """
        best: TemplateMatch | None = None
        for template in self.templates:
            if template.kind != kind:
                continue
            score = template.score(text)
            if score > template.min_confidence and (best is None or score > best.confidence):
                best = TemplateMatch(template.name, kind, template.strategy, score)

        if best:
            logger.info(
                "Matched template '%s' (confidence=%.2f)", best.template_name, best.confidence
            )
        return best
