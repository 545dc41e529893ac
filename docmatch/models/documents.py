"""Normalized document model shared by invoices, purchase orders, and GRNs.

Every extraction strategy reduces its analysed document to one of the
shapes below before validation, persistence, and matching.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Any

ZERO = Decimal("0")


class DocumentKind(StrEnum):
    """Document kinds, valued by the inbound channel that carries them."""

    INVOICE = "invoice"
    PURCHASE_ORDER = "purchaseorder"
    GRN = "grndata"

    @property
    def label(self) -> str:
        """Human-readable name used in log messages and titles."""
        return _KIND_LABELS[self]


_KIND_LABELS = {
    DocumentKind.INVOICE: "invoice",
    DocumentKind.PURCHASE_ORDER: "purchase order",
    DocumentKind.GRN: "goods received note",
}


class MatchStatus(StrEnum):
    """Header-level reconciliation status of a purchase order."""

    PENDING = "Pending"
    PARTIALLY_MATCHED = "PartiallyMatched"
    MATCHED = "Matched"
    EXCEPTION = "Exception"


class LineStatus(StrEnum):
    """Reconciliation status of a purchase order line."""

    PENDING = "Pending"
    MATCHED = "Matched"
    EXCEPTION = "Exception"


class MatchedStatus(StrEnum):
    """Whether an invoice or GRN line contributed to a matched PO line."""

    UNMATCHED = "Unmatched"
    MATCHED = "Matched"


@dataclass
class Party:
    """A supplier or customer, identified by its exact name."""

    name: str = ""
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    tax_id: str | None = None
    company_number: str | None = None


@dataclass
class BankAccount:
    """Bank details, identified by ``(name, account_number)``."""

    name: str = ""
    branch: str | None = None
    account_number: str = ""
    sort_code: str | None = None
    iban: str | None = None
    branch_code: str | None = None
    payment_terms: str | None = None


@dataclass
class LineItem:
    """An invoice or purchase order line."""

    item_code: str | None = None
    description: str | None = None
    quantity: Decimal = ZERO
    unit_price: Decimal = ZERO
    net_amount: Decimal = ZERO
    vat_percentage: Decimal | None = None
    vat_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    currency: str | None = None


@dataclass
class GRNLineItem:
    """A goods-received note line."""

    item_code: str | None = None
    description: str | None = None
    quantity_ordered: Decimal = ZERO
    quantity_received: Decimal = ZERO
    quantity_invoiced: Decimal = ZERO
    delivery_date: date | None = None
    remarks: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NormalizedInvoice:
    """An invoice reduced to the shared model."""

    file_name: str
    org: str = ""
    invoice_no: str = ""
    invoice_date: date | None = None
    due_date: date | None = None
    po_number: str | None = None
    grn_number: str | None = None
    payment_terms: str | None = None
    title: str | None = None
    supplier: Party = field(default_factory=Party)
    customer: Party = field(default_factory=Party)
    bank: BankAccount = field(default_factory=BankAccount)
    lines: list[LineItem] = field(default_factory=list)
    net_total: Decimal = ZERO
    vat_total: Decimal = ZERO
    grand_total: Decimal = ZERO
    currency: str | None = None
    received_at: datetime = field(default_factory=_utcnow)

    kind = DocumentKind.INVOICE

    @property
    def document_number(self) -> str:
        return self.invoice_no


@dataclass
class NormalizedPurchaseOrder:
    """A purchase order reduced to the shared model."""

    file_name: str
    org: str = ""
    po_number: str = ""
    po_date: date | None = None
    delivery_date: date | None = None
    title: str | None = None
    supplier: Party = field(default_factory=Party)
    customer: Party = field(default_factory=Party)
    bank: BankAccount = field(default_factory=BankAccount)
    lines: list[LineItem] = field(default_factory=list)
    sub_total: Decimal = ZERO
    vat_value: Decimal = ZERO
    total_value: Decimal = ZERO
    currency: str | None = None
    received_at: datetime = field(default_factory=_utcnow)

    kind = DocumentKind.PURCHASE_ORDER

    @property
    def document_number(self) -> str:
        return self.po_number


@dataclass
class NormalizedGRN:
    """A goods-received note reduced to the shared model."""

    file_name: str
    org: str = ""
    grn_number: str = ""
    grn_date: date | None = None
    po_number: str | None = None
    title: str | None = None
    supplier: Party = field(default_factory=Party)
    customer: Party = field(default_factory=Party)
    bank: BankAccount = field(default_factory=BankAccount)
    lines: list[GRNLineItem] = field(default_factory=list)
    received_at: datetime = field(default_factory=_utcnow)

    kind = DocumentKind.GRN

    @property
    def document_number(self) -> str:
        return self.grn_number


NormalizedDocument = NormalizedInvoice | NormalizedPurchaseOrder | NormalizedGRN


def summary_fields(document: NormalizedDocument) -> dict[str, Any]:
    """Flatten a document into the field map checked by the rules engine.

    Args:
        document: Any normalized document.

    Returns:
        Field name-value pairs; dates are rendered as ISO strings.
    """
    fields: dict[str, Any] = {
        "org": document.org,
        "document_number": document.document_number,
        "supplier_name": document.supplier.name or None,
        "supplier_email": document.supplier.email,
        "supplier_phone": document.supplier.phone,
        "line_count": len(document.lines),
    }

    if isinstance(document, NormalizedInvoice):
        fields.update(
            {
                "invoice_date": _iso(document.invoice_date),
                "due_date": _iso(document.due_date),
                "po_number": document.po_number,
                "net_total": document.net_total,
                "vat_total": document.vat_total,
                "grand_total": document.grand_total,
                "line_items": [{"amount": line.net_amount} for line in document.lines],
            }
        )
    elif isinstance(document, NormalizedPurchaseOrder):
        fields.update(
            {
                "po_date": _iso(document.po_date),
                "delivery_date": _iso(document.delivery_date),
                "sub_total": document.sub_total,
                "total_value": document.total_value,
            }
        )
    else:
        fields.update(
            {
                "grn_date": _iso(document.grn_date),
                "po_number": document.po_number,
            }
        )
    return fields


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class SupplierMatchingPolicy:
    """Tolerances and mode used to reconcile a supplier's purchase orders.

    A PO line matches when the quantity differs by at most
    ``quantity_variance_pct`` percent of the ordered quantity and the unit
    price by at most ``price_variance_absolute``. Three-way matching
    compares against received quantities instead of invoiced ones.
    """

    is_3way_matching: bool = False
    quantity_variance_pct: Decimal = Decimal("5")
    price_variance_absolute: Decimal = Decimal("0.50")
