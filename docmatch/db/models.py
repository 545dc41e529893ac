"""SQLAlchemy ORM schema for parties, documents, lines, and the file audit.

Identity keys are enforced by unique constraints so that concurrent
ingestions cannot create the same party, bank, or document twice.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from docmatch.models.documents import LineStatus, MatchedStatus, MatchStatus


class ExactDecimal(TypeDecorator):
    """Decimal stored as its string form.

    Keeps every digit on backends without a native decimal type (SQLite
    stores ``Numeric`` as floating point).
    """

    impl = String(48)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(Decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class PartyMixin:
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(String(64))
    email: Mapped[str | None] = mapped_column(String(255))
    website: Mapped[str | None] = mapped_column(String(255))
    tax_id: Mapped[str | None] = mapped_column(String(64))
    company_number: Mapped[str | None] = mapped_column(String(64))


class Supplier(PartyMixin, Base):
    """A supplier and its optional matching policy."""

    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Policy columns are all null until a policy is set for the supplier.
    is_3way_matching: Mapped[bool | None] = mapped_column(Boolean)
    quantity_variance_pct: Mapped[Decimal | None] = mapped_column(ExactDecimal)
    price_variance_absolute: Mapped[Decimal | None] = mapped_column(ExactDecimal)


class Customer(PartyMixin, Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)


class Bank(Base):
    __tablename__ = "banks"
    __table_args__ = (UniqueConstraint("name", "account_number", name="uq_bank_identity"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_number: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    branch: Mapped[str | None] = mapped_column(String(255))
    sort_code: Mapped[str | None] = mapped_column(String(32))
    iban: Mapped[str | None] = mapped_column(String(64))
    branch_code: Mapped[str | None] = mapped_column(String(32))
    payment_terms: Mapped[str | None] = mapped_column(Text)


class DocumentMixin:
    """Columns shared by every stored document header."""

    org: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str | None] = mapped_column(String(255))
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    archive_uri: Mapped[str | None] = mapped_column(Text)
    is_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    supplier_id: Mapped[int | None] = mapped_column(ForeignKey("suppliers.id"))
    customer_id: Mapped[int | None] = mapped_column(ForeignKey("customers.id"))
    bank_id: Mapped[int | None] = mapped_column(ForeignKey("banks.id"))


class PurchaseOrder(DocumentMixin, Base):
    __tablename__ = "purchase_orders"
    __table_args__ = (UniqueConstraint("org", "po_number", name="uq_po_identity"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    po_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    po_date: Mapped[date | None] = mapped_column(Date)
    delivery_date: Mapped[date | None] = mapped_column(Date)
    sub_total: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    vat_value: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    total_value: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    currency: Mapped[str | None] = mapped_column(String(3))
    match_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MatchStatus.PENDING.value, index=True
    )

    supplier: Mapped[Supplier | None] = relationship()
    lines: Mapped[list["POLine"]] = relationship(
        back_populates="purchase_order", cascade="all, delete-orphan", order_by="POLine.id"
    )


class POLine(Base):
    __tablename__ = "po_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_code: Mapped[str | None] = mapped_column(String(64))
    description: Mapped[str | None] = mapped_column(Text)
    quantity_ordered: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    currency: Mapped[str | None] = mapped_column(String(3))
    line_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LineStatus.PENDING.value
    )
    exception_reason: Mapped[str | None] = mapped_column(Text)

    purchase_order: Mapped[PurchaseOrder] = relationship(back_populates="lines")


class Invoice(DocumentMixin, Base):
    __tablename__ = "invoices"
    __table_args__ = (UniqueConstraint("org", "invoice_no", name="uq_invoice_identity"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_no: Mapped[str] = mapped_column(String(64), nullable=False)
    invoice_date: Mapped[date | None] = mapped_column(Date)
    due_date: Mapped[date | None] = mapped_column(Date)
    # Reference by value; the PO may arrive later or never.
    po_number: Mapped[str | None] = mapped_column(String(64), index=True)
    grn_number: Mapped[str | None] = mapped_column(String(64))
    payment_terms: Mapped[str | None] = mapped_column(Text)
    net_total: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    vat_total: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    grand_total: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    currency: Mapped[str | None] = mapped_column(String(3))
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    lines: Mapped[list["InvoiceLine"]] = relationship(
        back_populates="invoice", cascade="all, delete-orphan", order_by="InvoiceLine.id"
    )


class InvoiceLine(Base):
    __tablename__ = "invoice_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_code: Mapped[str | None] = mapped_column(String(64), index=True)
    description: Mapped[str | None] = mapped_column(Text)
    quantity: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    net_amount: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    vat_percentage: Mapped[Decimal | None] = mapped_column(ExactDecimal)
    vat_amount: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    currency: Mapped[str | None] = mapped_column(String(3))
    matched_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MatchedStatus.UNMATCHED.value
    )

    invoice: Mapped[Invoice] = relationship(back_populates="lines")


class GRN(DocumentMixin, Base):
    __tablename__ = "grns"
    __table_args__ = (UniqueConstraint("org", "grn_number", name="uq_grn_identity"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    grn_number: Mapped[str] = mapped_column(String(64), nullable=False)
    grn_date: Mapped[date | None] = mapped_column(Date)
    po_number: Mapped[str | None] = mapped_column(String(64), index=True)

    lines: Mapped[list["GRNLine"]] = relationship(
        back_populates="grn", cascade="all, delete-orphan", order_by="GRNLine.id"
    )


class GRNLine(Base):
    __tablename__ = "grn_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    grn_id: Mapped[int] = mapped_column(
        ForeignKey("grns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_code: Mapped[str | None] = mapped_column(String(64), index=True)
    description: Mapped[str | None] = mapped_column(Text)
    quantity_ordered: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    quantity_received: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    quantity_invoiced: Mapped[Decimal] = mapped_column(ExactDecimal, default=Decimal("0"))
    delivery_date: Mapped[date | None] = mapped_column(Date)
    remarks: Mapped[str | None] = mapped_column(Text)
    matched_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MatchedStatus.UNMATCHED.value
    )

    grn: Mapped[GRN] = relationship(back_populates="lines")


class FileAudit(Base):
    """One row per file that was archived as a duplicate or as invalid."""

    __tablename__ = "file_audits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    channel: Mapped[str] = mapped_column(String(32), nullable=False)
    reason_code: Mapped[str] = mapped_column(String(64), nullable=False)
    archive_uri: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
