"""Shape of the document analysis output consumed by extraction.

The analysis service returns the full text, named key/value fields, and
tables whose cells are addressed by row and column index.
"""

from dataclasses import dataclass, field


@dataclass
class DocumentField:
    """A named field recognised by the analysis service.

    ``items`` holds nested rows for list-valued fields such as invoice
    line items, each row being a mapping of sub-field name to field.
    """

    content: str = ""
    items: list[dict[str, "DocumentField"]] = field(default_factory=list)


@dataclass
class TableCell:
    """A single table cell."""

    row_index: int
    column_index: int
    content: str


@dataclass
class Table:
    """A table detected in the document."""

    cells: list[TableCell] = field(default_factory=list)

    def rows(self) -> list[list[str]]:
        """Group cells into rows ordered by row then column index.

        Returns:
            Cell contents per row; gaps in column indices are not padded.
        """
        grouped: dict[int, list[TableCell]] = {}
        for cell in self.cells:
            grouped.setdefault(cell.row_index, []).append(cell)
        return [
            [c.content for c in sorted(grouped[idx], key=lambda c: c.column_index)]
            for idx in sorted(grouped)
        ]

    def header(self) -> list[str]:
        """Return the lower-cased first row, or an empty list."""
        rows = self.rows()
        return [h.strip().lower() for h in rows[0]] if rows else []


@dataclass
class AnalyzeResult:
    """Complete analysis output for one document."""

    full_text: str
    fields: dict[str, DocumentField] = field(default_factory=dict)
    tables: list[Table] = field(default_factory=list)

    @property
    def lines(self) -> list[str]:
        """Non-empty, stripped text lines."""
        return [line.strip() for line in self.full_text.splitlines() if line.strip()]

    def field_text(self, name: str) -> str | None:
        """Return a field's content, or ``None`` when absent or blank."""
        found = self.fields.get(name)
        if found is None or not found.content.strip():
            return None
        return found.content.strip()
