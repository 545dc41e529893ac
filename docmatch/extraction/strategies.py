"""Extraction strategies that map analysis output to normalized documents.

Each vendor layout is handled by a strategy registered under its document
kind and a name. Templates select a strategy by name; every kind has a
``default`` strategy used when no template matches.
"""

import re
from typing import Protocol

from docmatch.analysis.result import AnalyzeResult, DocumentField, Table
from docmatch.models.documents import (
    DocumentKind,
    GRNLineItem,
    LineItem,
    NormalizedDocument,
    NormalizedGRN,
    NormalizedInvoice,
    NormalizedPurchaseOrder,
    Party,
    ZERO,
)
from docmatch.utils.exceptions import ConfigurationError
from docmatch.utils.logger import get_logger

from .parsing import clean_text, parse_date, parse_decimal, split_currency
from .rule_extractor import RuleExtractor
from .tables import (
    cell_at,
    column_index,
    find_table,
    key_value_rows,
    lines_from_table,
    lines_from_text,
)

logger = get_logger(__name__)

DEFAULT_STRATEGY = "default"

# Lines that end a name/address block.
_METADATA_PREFIX = re.compile(
    r"^(VAT|Tel|Phone|Email|Company|Invoice|PO\s*(?:No|Number|Date)|GRN|Payment Terms|"
    r"Line|Item Code|Description|Qty|Unit Price|Net Amount|Subtotal|Website|www\.)",
    re.IGNORECASE,
)
_BILL_TO = re.compile(r"^Bill\s*To\b[:\s]*", re.IGNORECASE)
_CUSTOMER_STOP = re.compile(
    r"^(Invoice|PO\s*Number|GRN|Payment\s*Terms|Line|Item Code|Description|"
    r"Subtotal|Total|Bank)",
    re.IGNORECASE,
)
_GRN_ROW = re.compile(
    r"^(?P<code>(?=[A-Z0-9\-]*\d)[A-Z0-9][A-Z0-9\-]*)\s+(?P<description>.+?)\s+"
    r"(?P<ordered>\d+(?:\.\d+)?)\s+(?P<received>\d+(?:\.\d+)?)"
    r"(?:\s+(?P<invoiced>\d+(?:\.\d+)?))?$"
)


class ExtractionStrategy(Protocol):
    """Maps one vendor layout of one document kind to a normalized document."""

    kind: DocumentKind
    name: str

    def extract(self, result: AnalyzeResult, file_name: str) -> NormalizedDocument: ...


def _party_from_block(
    block: list[str], extractor: RuleExtractor, name_index: int = 0
) -> Party:
    """Read a name, address, and contact details out of a text block.

    Args:
        block: Stripped lines of the block, in order.
        extractor: Rule extractor used for contact details.
        name_index: Position of the name line; falls back to the first line.

    Returns:
        The party; an empty block gives an unnamed party.
    """
    if not block:
        return Party()
    if name_index >= len(block):
        name_index = 0
    text = "\n".join(block)

    address: list[str] = []
    for line in block[name_index + 1 :]:
        if _METADATA_PREFIX.match(line) or "@" in line:
            break
        address.append(line)

    return Party(
        name=block[name_index],
        address=clean_text(" ".join(address)),
        phone=extractor.first(text, "phone"),
        email=extractor.first(text, "email"),
        website=extractor.first(text, "website"),
        tax_id=extractor.first(text, "vat_number"),
        company_number=extractor.first(text, "company_number"),
    )


def _block_between(text: str, start: str, end: str) -> list[str]:
    """Lines between a start and an end regex, both case-insensitive."""
    match = re.search(
        rf"{start}\s*(.*?)\s*(?={end})", text, re.IGNORECASE | re.DOTALL
    )
    if not match:
        return []
    return [line.strip() for line in match.group(1).splitlines() if line.strip()]


def _bill_to_index(lines: list[str]) -> int | None:
    for idx, line in enumerate(lines):
        if _BILL_TO.match(line):
            return idx
    return None


def _document_currency(*candidates: str | None) -> str | None:
    for currency in candidates:
        if currency:
            return currency
    return None


def _fill_line_currency(lines: list[LineItem], currency: str | None) -> None:
    for line in lines:
        if line.currency is None:
            line.currency = currency


class InvoiceTextStrategy:
    """Invoice laid out as text: supplier block, "Bill To" block, line table.

    The first line above "Bill To" names the organisation and the second
    line names the supplier. Lines come from a table whose header mentions
    a description and a quantity, or from text rows when there is none.
    """

    kind = DocumentKind.INVOICE
    name = DEFAULT_STRATEGY

    def __init__(self, extractor: RuleExtractor | None = None) -> None:
        self.extractor = extractor or RuleExtractor()

    def extract(self, result: AnalyzeResult, file_name: str) -> NormalizedInvoice:
        text = result.full_text
        lines = result.lines
        invoice = NormalizedInvoice(file_name=file_name)

        bill_to = _bill_to_index(lines)
        if bill_to is not None:
            supplier_block = lines[:bill_to]
            if supplier_block:
                invoice.org = supplier_block[0]
            invoice.supplier = _party_from_block(
                supplier_block, self.extractor, name_index=1
            )
            invoice.customer = self._customer(lines, bill_to)

        invoice.invoice_no = self.extractor.first(text, "invoice_number") or ""
        invoice.invoice_date = parse_date(self.extractor.first(text, "invoice_date"))
        invoice.due_date = parse_date(self.extractor.first(text, "due_date"))
        invoice.po_number = self.extractor.first(text, "po_number")
        invoice.grn_number = self.extractor.first(text, "grn_number")
        invoice.payment_terms = self.extractor.first(text, "payment_terms")

        sub_currency, invoice.net_total = self.extractor.extract_amount(text, "subtotal")
        _, invoice.vat_total = self.extractor.extract_amount(text, "vat_total")
        total_currency, invoice.grand_total = self.extractor.extract_amount(text, "total")
        invoice.currency = _document_currency(total_currency, sub_currency)

        invoice.bank = self.extractor.extract_bank(text)

        table = find_table(result.tables, "description", "qty")
        invoice.lines = lines_from_table(table) if table else lines_from_text(lines)
        _fill_line_currency(invoice.lines, invoice.currency)
        return invoice

    def _customer(self, lines: list[str], bill_to: int) -> Party:
        block: list[str] = []
        remainder = _BILL_TO.sub("", lines[bill_to]).strip()
        if remainder:
            block.append(remainder)
        for line in lines[bill_to + 1 :]:
            if _CUSTOMER_STOP.match(line):
                break
            block.append(line)

        # Name is the first line that is not contact metadata.
        for idx, line in enumerate(block):
            if not _METADATA_PREFIX.match(line):
                return _party_from_block(block, self.extractor, name_index=idx)
        return Party()


class InvoiceFieldsStrategy:
    """Invoice read from the analysis service's prebuilt key/value fields."""

    kind = DocumentKind.INVOICE
    name = "prebuilt_fields"

    def __init__(self, extractor: RuleExtractor | None = None) -> None:
        self.extractor = extractor or RuleExtractor()

    def extract(self, result: AnalyzeResult, file_name: str) -> NormalizedInvoice:
        text = result.full_text
        field = result.field_text

        invoice = NormalizedInvoice(
            file_name=file_name,
            org=field("VendorName") or "",
            invoice_no=field("InvoiceId") or "",
            invoice_date=parse_date(field("InvoiceDate")),
            due_date=parse_date(field("DueDate")),
            po_number=field("PurchaseOrder"),
            payment_terms=field("PaymentTerm"),
            supplier=Party(
                name=field("VendorAddressRecipient") or field("VendorName") or "",
                address=clean_text(field("VendorAddress")),
                email=self.extractor.first(text, "email"),
                phone=self.extractor.first(text, "phone"),
                tax_id=field("VendorTaxId"),
            ),
            customer=Party(
                name=field("CustomerName") or "",
                address=clean_text(field("CustomerAddress")),
                email=field("CustomerEmail"),
                phone=field("CustomerPhoneNumber"),
            ),
            bank=self.extractor.extract_bank(text),
        )

        if not invoice.org:
            bill_to = _bill_to_index(result.lines)
            if bill_to:
                invoice.org = result.lines[0]

        sub_currency, invoice.net_total = split_currency(field("SubTotal"))
        _, invoice.vat_total = split_currency(field("TotalTax"))
        total_currency, invoice.grand_total = split_currency(field("InvoiceTotal"))
        invoice.currency = _document_currency(total_currency, sub_currency)

        items = result.fields.get("Items")
        invoice.lines = [self._line(item) for item in items.items] if items else []
        _fill_line_currency(invoice.lines, invoice.currency)
        return invoice

    def _line(self, item: dict[str, DocumentField]) -> LineItem:
        def content(key: str) -> str | None:
            found = item.get(key)
            return found.content if found else None

        currency, amount = split_currency(content("Amount"))
        tax = parse_decimal(content("Tax"))
        rate = content("TaxRate")
        return LineItem(
            item_code=clean_text(content("ProductCode")),
            description=clean_text(content("Description")),
            quantity=parse_decimal(content("Quantity")),
            unit_price=parse_decimal(content("UnitPrice")),
            net_amount=max(amount - tax, ZERO),
            vat_percentage=parse_decimal(rate) if rate else None,
            vat_amount=tax,
            total_amount=amount,
            currency=currency,
        )


class PurchaseOrderStrategy:
    """Purchase order with "Supplier:"/"Buyer:" blocks and a header table."""

    kind = DocumentKind.PURCHASE_ORDER
    name = DEFAULT_STRATEGY

    def __init__(self, extractor: RuleExtractor | None = None) -> None:
        self.extractor = extractor or RuleExtractor()

    def extract(
        self, result: AnalyzeResult, file_name: str
    ) -> NormalizedPurchaseOrder:
        text = result.full_text
        po = NormalizedPurchaseOrder(file_name=file_name)

        supplier_block = _block_between(text, r"Supplier:", r"PO\s*No|Buyer:")
        po.supplier = _party_from_block(supplier_block, self.extractor)
        buyer_block = _block_between(
            text, r"Buyer:", r"PO\s*No|PO\s*Date|Supplier:|$"
        )
        po.customer = _party_from_block(buyer_block, self.extractor)
        po.org = po.supplier.name
        po.bank = self.extractor.extract_bank(text)

        header = self._header_fields(result.tables)
        po.po_number = (
            header.get("po no")
            or header.get("po number")
            or self.extractor.first(text, "po_number")
            or ""
        )
        po.po_date = parse_date(header.get("po date")) or parse_date(
            self.extractor.first(text, "po_date")
        )
        po.delivery_date = parse_date(header.get("delivery date")) or parse_date(
            self.extractor.first(text, "delivery_date")
        )

        sub_currency, po.sub_total = self.extractor.extract_amount(text, "subtotal")
        _, po.vat_value = self.extractor.extract_amount(text, "vat_total")
        total_currency, po.total_value = self.extractor.extract_amount(text, "total")
        po.currency = _document_currency(total_currency, sub_currency)

        table = find_table(result.tables, "description", "qty")
        po.lines = lines_from_table(table) if table else lines_from_text(result.lines)
        _fill_line_currency(po.lines, po.currency)
        return po

    @staticmethod
    def _header_fields(tables: list[Table]) -> dict[str, str]:
        """Read PO number and dates from a header/value or a label/value table."""
        keys = ("po date", "delivery date", "po no")
        for table in tables:
            rows = table.rows()
            header = table.header()
            in_header = sum(1 for key in keys if any(key in cell for cell in header))
            if len(rows) > 1 and in_header >= 2:
                return {
                    label.rstrip(":"): value.strip()
                    for label, value in zip(header, rows[1])
                    if value.strip()
                }
            labels = " ".join(row[0].lower() for row in rows if row)
            if any(key in labels for key in keys):
                return key_value_rows(table)
        return {}


def _grn_lines_from_table(table: Table) -> list[GRNLineItem]:
    header = table.header()
    code = column_index(header, "code")
    description = column_index(header, "description")
    ordered = column_index(header, "order")
    received = column_index(header, "receiv")
    invoiced = column_index(header, "invoic")
    delivered = column_index(header, "date")
    remarks = column_index(header, "remark")

    items: list[GRNLineItem] = []
    for row in table.rows()[1:]:
        text = cell_at(row, description)
        if not text:
            continue
        items.append(
            GRNLineItem(
                item_code=cell_at(row, code),
                description=text,
                quantity_ordered=parse_decimal(cell_at(row, ordered)),
                quantity_received=parse_decimal(cell_at(row, received)),
                quantity_invoiced=parse_decimal(cell_at(row, invoiced)),
                delivery_date=parse_date(cell_at(row, delivered)),
                remarks=cell_at(row, remarks),
            )
        )
    return items


def _grn_lines_from_text(lines: list[str]) -> list[GRNLineItem]:
    items: list[GRNLineItem] = []
    for line in lines:
        match = _GRN_ROW.match(line)
        if not match:
            continue
        items.append(
            GRNLineItem(
                item_code=match.group("code"),
                description=match.group("description").strip(),
                quantity_ordered=parse_decimal(match.group("ordered")),
                quantity_received=parse_decimal(match.group("received")),
                quantity_invoiced=parse_decimal(match.group("invoiced")),
            )
        )
    return items


def _grn_lines(result: AnalyzeResult) -> list[GRNLineItem]:
    table = find_table(result.tables, "description")
    if table:
        return _grn_lines_from_table(table)
    return _grn_lines_from_text(result.lines)


class GRNReceiverStrategy:
    """GRN with "Supplier:" and "Receiver:" blocks and a "Related PO No"."""

    kind = DocumentKind.GRN
    name = DEFAULT_STRATEGY

    def __init__(self, extractor: RuleExtractor | None = None) -> None:
        self.extractor = extractor or RuleExtractor()

    def extract(self, result: AnalyzeResult, file_name: str) -> NormalizedGRN:
        text = result.full_text
        grn = NormalizedGRN(file_name=file_name)

        grn.supplier = _party_from_block(
            _block_between(text, r"Supplier:", r"Receiver:"), self.extractor
        )
        grn.customer = _party_from_block(
            _block_between(text, r"Receiver:", r"GRN\s*No"), self.extractor
        )
        grn.org = grn.supplier.name
        grn.grn_number = self.extractor.first(text, "grn_number") or ""
        grn.grn_date = parse_date(self.extractor.first(text, "grn_date"))
        grn.po_number = self.extractor.first(text, "po_number")
        grn.bank = self.extractor.extract_bank(text)
        grn.lines = _grn_lines(result)
        return grn


class GRNSupplierBlockStrategy:
    """GRN with the receiver above the title and a bare "Supplier" heading.

    The supplier block runs from the "Supplier" line to the line table
    heading ("Line"); the table carries item codes.
    """

    kind = DocumentKind.GRN
    name = "supplier_block"

    def __init__(self, extractor: RuleExtractor | None = None) -> None:
        self.extractor = extractor or RuleExtractor()

    def extract(self, result: AnalyzeResult, file_name: str) -> NormalizedGRN:
        text = result.full_text
        lines = result.lines
        grn = NormalizedGRN(file_name=file_name)

        title = next(
            (
                idx
                for idx, line in enumerate(lines)
                if re.search(r"GOODS\s+RECE(?:IPT|IVED)\s+NOTE", line, re.IGNORECASE)
            ),
            None,
        )
        if title:
            grn.customer = _party_from_block(lines[:title], self.extractor)

        start = next(
            (idx for idx, line in enumerate(lines) if line.lower() == "supplier"), None
        )
        if start is not None:
            block: list[str] = []
            for line in lines[start + 1 :]:
                if line.lower().startswith("line"):
                    break
                block.append(line)
            grn.supplier = _party_from_block(block, self.extractor)
            grn.supplier.tax_id = (
                self.extractor.first(text, "supplier_vat") or grn.supplier.tax_id
            )

        grn.org = grn.supplier.name
        grn.grn_number = self.extractor.first(text, "grn_number") or ""
        grn.grn_date = parse_date(self.extractor.first(text, "grn_date"))
        grn.po_number = self.extractor.first(text, "po_number")
        grn.bank = self.extractor.extract_bank(text)
        grn.lines = _grn_lines(result)
        return grn


class StrategyRegistry:
    """Registry of extraction strategies keyed by kind and name."""

    def __init__(self) -> None:
        self._strategies: dict[tuple[DocumentKind, str], ExtractionStrategy] = {}

    def register(self, strategy: ExtractionStrategy) -> None:
        """Add or replace the strategy registered under its kind and name."""
        self._strategies[(strategy.kind, strategy.name)] = strategy
        logger.debug("Registered %s strategy '%s'", strategy.kind.label, strategy.name)

    def get(self, kind: DocumentKind, name: str | None = None) -> ExtractionStrategy:
        """Look up a strategy, falling back to the kind's default.

        Args:
            kind: Document kind.
            name: Strategy name, usually from a matched template.

        Returns:
            The named strategy, or the default one when the name is unknown.

        Raises:
            ConfigurationError: The kind has no default strategy.
        """
        if name and (kind, name) in self._strategies:
            return self._strategies[(kind, name)]
        if name and name != DEFAULT_STRATEGY:
            logger.warning(
                "Unknown %s strategy '%s', using default", kind.label, name
            )
        try:
            return self._strategies[(kind, DEFAULT_STRATEGY)]
        except KeyError:
            raise ConfigurationError(
                f"No default extraction strategy for {kind.label}"
            ) from None

    def names(self, kind: DocumentKind) -> list[str]:
        return sorted(name for k, name in self._strategies if k == kind)


def default_registry(extractor: RuleExtractor | None = None) -> StrategyRegistry:
    """Registry holding every built-in strategy."""
    extractor = extractor or RuleExtractor()
    registry = StrategyRegistry()
    for strategy in (
        InvoiceTextStrategy(extractor),
        InvoiceFieldsStrategy(extractor),
        PurchaseOrderStrategy(extractor),
        GRNReceiverStrategy(extractor),
        GRNSupplierBlockStrategy(extractor),
    ):
        registry.register(strategy)
    return registry
