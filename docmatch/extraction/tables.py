"""Line-table helpers shared by the extraction strategies.

Tables are located by keywords in their header row and columns are looked
up by keyword, so column order may differ between vendors. Documents
without a usable table fall back to parsing item rows out of the text.
"""

import re
from collections.abc import Iterable

from docmatch.analysis.result import Table
from docmatch.models.documents import LineItem

from .parsing import clean_text, parse_decimal, split_currency

# CODE DESCRIPTION QTY PRICE [TOTAL]; the code must contain a digit.
_TEXT_ROW = re.compile(
    r"^(?P<code>(?=[A-Z0-9\-]*\d)[A-Z0-9][A-Z0-9\-]*)\s+"
    r"(?P<description>.+?)\s+"
    r"(?P<qty>\d+(?:\.\d+)?)\s+"
    r"(?P<price>[^\d\s]{0,3}\s?[\d,]+\.\d{2})"
    r"(?:\s+(?P<total>[^\d\s]{0,3}\s?[\d,]+\.\d{2}))?$"
)


def find_table(tables: Iterable[Table], *keywords: str) -> Table | None:
    """Return the first table whose header mentions every keyword.

    Args:
        tables: Candidate tables in document order.
        *keywords: Lower-case substrings that must each appear in some
            header cell.

    Returns:
        The matching table, or ``None``.
    """
    for table in tables:
        header = table.header()
        if all(any(keyword in cell for cell in header) for keyword in keywords):
            return table
    return None


def column_index(header: list[str], keyword: str) -> int | None:
    """Index of the first header cell containing ``keyword``."""
    for idx, cell in enumerate(header):
        if keyword in cell:
            return idx
    return None


def cell_at(row: list[str], index: int | None) -> str | None:
    """Cell content at ``index``, or ``None`` when missing or blank."""
    if index is None or index >= len(row):
        return None
    return clean_text(row[index])


def key_value_rows(table: Table) -> dict[str, str]:
    """Read a two-column label/value table, header row included.

    Returns:
        Mapping of lower-cased label to value for rows with both cells set.
    """
    pairs: dict[str, str] = {}
    for row in table.rows():
        key = cell_at(row, 0)
        value = cell_at(row, 1)
        if key and value:
            pairs[key.lower().rstrip(":")] = value
    return pairs


def lines_from_table(table: Table) -> list[LineItem]:
    """Map an invoice or purchase order line table to line items.

    Columns are found by the keywords ``code``, ``description``, ``qty``,
    ``unit``, ``net``, ``vat`` and ``total``. Rows without a description
    are skipped.

    Args:
        table: Table whose first row is the header.

    Returns:
        Parsed lines in table order.
    """
    header = table.header()
    columns = {
        name: column_index(header, name)
        for name in ("code", "description", "qty", "unit", "net", "vat", "total")
    }

    items: list[LineItem] = []
    for row in table.rows()[1:]:
        description = cell_at(row, columns["description"])
        if not description:
            continue
        currency, unit_price = split_currency(cell_at(row, columns["unit"]))
        quantity = parse_decimal(cell_at(row, columns["qty"]))
        total = parse_decimal(cell_at(row, columns["total"]))
        net = parse_decimal(cell_at(row, columns["net"]))
        items.append(
            LineItem(
                item_code=cell_at(row, columns["code"]),
                description=description,
                quantity=quantity,
                unit_price=unit_price,
                net_amount=net or quantity * unit_price,
                vat_amount=parse_decimal(cell_at(row, columns["vat"])),
                total_amount=total or net,
                currency=currency,
            )
        )
    return items


def lines_from_text(lines: Iterable[str]) -> list[LineItem]:
    """Parse ``CODE DESCRIPTION QTY PRICE [TOTAL]`` rows out of plain text.

    Args:
        lines: Stripped text lines.

    Returns:
        One line item per matching row.
    """
    items: list[LineItem] = []
    for line in lines:
        match = _TEXT_ROW.match(line)
        if not match:
            continue
        quantity = parse_decimal(match.group("qty"))
        currency, unit_price = split_currency(match.group("price"))
        net = quantity * unit_price
        total = parse_decimal(match.group("total")) if match.group("total") else net
        items.append(
            LineItem(
                item_code=match.group("code"),
                description=match.group("description").strip(),
                quantity=quantity,
                unit_price=unit_price,
                net_amount=net,
                total_amount=total,
                currency=currency,
            )
        )
    return items
