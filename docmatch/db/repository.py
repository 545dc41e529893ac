"""Document repository and deduplication gate.

Stores normalized documents with their parties, bank, and lines in one
transaction, and reports documents whose identity ``(org, number)`` is
already stored as duplicates instead of writing them again.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from docmatch.models.documents import (
    BankAccount,
    DocumentKind,
    NormalizedDocument,
    NormalizedGRN,
    NormalizedInvoice,
    NormalizedPurchaseOrder,
    Party,
    SupplierMatchingPolicy,
)
from docmatch.utils.exceptions import PersistenceFailure, TransientExternalFailure
from docmatch.utils.logger import get_logger

from .models import (
    GRN,
    Bank,
    Customer,
    FileAudit,
    GRNLine,
    Invoice,
    InvoiceLine,
    POLine,
    PurchaseOrder,
    Supplier,
)
from .session import Database

logger = get_logger(__name__)

_HEADER_MODELS = {
    DocumentKind.INVOICE: Invoice,
    DocumentKind.PURCHASE_ORDER: PurchaseOrder,
    DocumentKind.GRN: GRN,
}

_NUMBER_COLUMNS = {
    DocumentKind.INVOICE: Invoice.invoice_no,
    DocumentKind.PURCHASE_ORDER: PurchaseOrder.po_number,
    DocumentKind.GRN: GRN.grn_number,
}


@dataclass
class UpsertResult:
    """Outcome of storing a document."""

    document_id: int
    duplicate: bool


@contextmanager
def translate_db_errors(action: str) -> Iterator[None]:
    """Map SQLAlchemy errors to the package's exceptions.

    Connectivity problems become :class:`TransientExternalFailure` so the
    caller can retry; anything else becomes :class:`PersistenceFailure`.
    """
    try:
        yield
    except OperationalError as exc:
        raise TransientExternalFailure(f"Database unavailable while {action}: {exc}") from exc
    except SQLAlchemyError as exc:
        raise PersistenceFailure(f"Database error while {action}: {exc}") from exc


class DocumentRepository:
    """Persistence operations over the document store.

    Args:
        database: Engine and session factory.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    def upsert(self, document: NormalizedDocument) -> UpsertResult:
        """Store a document unless its identity is already present.

        Parties and bank are fetched or created, then the header and its
        lines are inserted, all in one transaction.

        Args:
            document: Normalized document with ``org`` and number set.

        Returns:
            The stored or existing document id and whether it was a duplicate.

        Raises:
            TransientExternalFailure: The database is unreachable.
            PersistenceFailure: The write failed and was rolled back.
        """
        kind = document.kind
        number = document.document_number
        try:
            with translate_db_errors(f"storing {kind.label} {number}"):
                with self.database.session_scope() as session:
                    existing = self._find_id(session, kind, document.org, number)
                    if existing is not None:
                        logger.info(
                            "Duplicate %s %s for %s (id=%d)",
                            kind.label,
                            number,
                            document.org,
                            existing,
                        )
                        return UpsertResult(document_id=existing, duplicate=True)

                    header = self._build_header(session, document)
                    session.add(header)
                    session.flush()
                    document_id = header.id
        except PersistenceFailure as exc:
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            # Another ingestion stored the same document first.
            with translate_db_errors(f"re-reading {kind.label} {number}"):
                with self.database.session_scope() as session:
                    existing = self._find_id(session, kind, document.org, number)
            if existing is None:
                raise
            logger.info("Concurrent duplicate %s %s for %s", kind.label, number, document.org)
            return UpsertResult(document_id=existing, duplicate=True)

        logger.info(
            "Stored %s %s for %s (id=%d, %d line(s))",
            kind.label,
            number,
            document.org,
            document_id,
            len(document.lines),
        )
        return UpsertResult(document_id=document_id, duplicate=False)

    def _find_id(
        self, session: Session, kind: DocumentKind, org: str, number: str
    ) -> int | None:
        model = _HEADER_MODELS[kind]
        return session.scalar(
            select(model.id).where(model.org == org, _NUMBER_COLUMNS[kind] == number)
        )

    def get_or_insert_party(
        self, session: Session, model: type[Supplier] | type[Customer], party: Party
    ) -> int | None:
        """Return the id of the party with this name, creating it if needed.

        The insert runs inside a SAVEPOINT; if a concurrent writer created
        the same name first, the unique constraint fires and the existing
        row is read back instead.

        Returns:
            Party id, or ``None`` for an unnamed party.
        """
        name = party.name.strip()
        if not name:
            return None

        query = select(model.id).where(model.name == name)
        existing = session.scalar(query)
        if existing is not None:
            return existing

        row = model(
            name=name,
            address=party.address,
            phone=party.phone,
            email=party.email,
            website=party.website,
            tax_id=party.tax_id,
            company_number=party.company_number,
        )
        try:
            with session.begin_nested():
                session.add(row)
        except IntegrityError:
            logger.debug("%s '%s' created concurrently, reusing it", model.__name__, name)
            return session.scalar(query)
        return row.id

    def get_or_insert_bank(self, session: Session, bank: BankAccount) -> int | None:
        """Return the id of the bank with this name and account, creating it if needed.

        Returns:
            Bank id, or ``None`` when the bank has no name.
        """
        name = bank.name.strip()
        if not name:
            return None
        account = (bank.account_number or "").strip()

        query = select(Bank.id).where(Bank.name == name, Bank.account_number == account)
        existing = session.scalar(query)
        if existing is not None:
            return existing

        row = Bank(
            name=name,
            account_number=account,
            branch=bank.branch,
            sort_code=bank.sort_code,
            iban=bank.iban,
            branch_code=bank.branch_code,
            payment_terms=bank.payment_terms,
        )
        try:
            with session.begin_nested():
                session.add(row)
        except IntegrityError:
            return session.scalar(query)
        return row.id

    def _build_header(
        self, session: Session, document: NormalizedDocument
    ) -> Invoice | PurchaseOrder | GRN:
        if not isinstance(document, (NormalizedInvoice, NormalizedPurchaseOrder, NormalizedGRN)):
            raise TypeError(f"Unsupported document type: {type(document).__name__}")

        common = {
            "org": document.org,
            "title": document.title,
            "file_name": document.file_name,
            "received_at": document.received_at,
            "supplier_id": self.get_or_insert_party(session, Supplier, document.supplier),
            "customer_id": self.get_or_insert_party(session, Customer, document.customer),
            "bank_id": self.get_or_insert_bank(session, document.bank),
        }

        if isinstance(document, NormalizedInvoice):
            return Invoice(
                **common,
                invoice_no=document.invoice_no,
                invoice_date=document.invoice_date,
                due_date=document.due_date,
                po_number=document.po_number,
                grn_number=document.grn_number,
                payment_terms=document.payment_terms,
                net_total=document.net_total,
                vat_total=document.vat_total,
                grand_total=document.grand_total,
                currency=document.currency,
                lines=[
                    InvoiceLine(
                        item_code=line.item_code,
                        description=line.description,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        net_amount=line.net_amount,
                        vat_percentage=line.vat_percentage,
                        vat_amount=line.vat_amount,
                        total_amount=line.total_amount,
                        currency=line.currency,
                    )
                    for line in document.lines
                ],
            )

        if isinstance(document, NormalizedPurchaseOrder):
            return PurchaseOrder(
                **common,
                po_number=document.po_number,
                po_date=document.po_date,
                delivery_date=document.delivery_date,
                sub_total=document.sub_total,
                vat_value=document.vat_value,
                total_value=document.total_value,
                currency=document.currency,
                lines=[
                    POLine(
                        item_code=line.item_code,
                        description=line.description,
                        quantity_ordered=line.quantity,
                        unit_price=line.unit_price,
                        total_amount=line.total_amount,
                        currency=line.currency,
                    )
                    for line in document.lines
                ],
            )

        return GRN(
            **common,
            grn_number=document.grn_number,
            grn_date=document.grn_date,
            po_number=document.po_number,
            lines=[
                GRNLine(
                    item_code=line.item_code,
                    description=line.description,
                    quantity_ordered=line.quantity_ordered,
                    quantity_received=line.quantity_received,
                    quantity_invoiced=line.quantity_invoiced,
                    delivery_date=line.delivery_date,
                    remarks=line.remarks,
                )
                for line in document.lines
            ],
        )

    def set_archive_uri(self, kind: DocumentKind, document_id: int, uri: str) -> None:
        """Record where a stored document's source file was archived."""
        model = _HEADER_MODELS[kind]
        with translate_db_errors(f"recording archive location of {kind.label} {document_id}"):
            with self.database.session_scope() as session:
                session.execute(
                    update(model).where(model.id == document_id).values(archive_uri=uri)
                )

    def record_file_audit(
        self, file_name: str, channel: str, reason_code: str, archive_uri: str | None
    ) -> int:
        """Add an audit row for a duplicate or invalid file.

        Returns:
            Id of the audit row.
        """
        with translate_db_errors(f"auditing {file_name}"):
            with self.database.session_scope() as session:
                row = FileAudit(
                    file_name=file_name,
                    channel=channel,
                    reason_code=reason_code,
                    archive_uri=archive_uri,
                )
                session.add(row)
                session.flush()
                audit_id = row.id
        logger.info("Audited %s on %s: %s", file_name, channel, reason_code)
        return audit_id

    def list_file_audits(self, limit: int = 100) -> list[FileAudit]:
        """Most recent audit rows first."""
        with translate_db_errors("listing file audits"):
            with self.database.session_scope() as session:
                return list(
                    session.scalars(
                        select(FileAudit).order_by(FileAudit.id.desc()).limit(limit)
                    )
                )

    def set_matching_policy(
        self, supplier_name: str, policy: SupplierMatchingPolicy
    ) -> int:
        """Set a supplier's matching policy, creating the supplier if needed.

        Returns:
            The supplier id.
        """
        with translate_db_errors(f"setting matching policy for {supplier_name}"):
            with self.database.session_scope() as session:
                supplier_id = self.get_or_insert_party(
                    session, Supplier, Party(name=supplier_name)
                )
                if supplier_id is None:
                    raise PersistenceFailure("Supplier name must not be empty")
                session.execute(
                    update(Supplier)
                    .where(Supplier.id == supplier_id)
                    .values(
                        is_3way_matching=policy.is_3way_matching,
                        quantity_variance_pct=policy.quantity_variance_pct,
                        price_variance_absolute=policy.price_variance_absolute,
                    )
                )
        logger.info(
            "Matching policy for %s: %s, qty %s%%, price %s",
            supplier_name,
            "3-way" if policy.is_3way_matching else "2-way",
            policy.quantity_variance_pct,
            policy.price_variance_absolute,
        )
        return supplier_id

    def get_purchase_order(self, org: str, po_number: str) -> PurchaseOrder | None:
        """Load a purchase order with its lines and supplier."""
        with translate_db_errors(f"reading purchase order {po_number}"):
            with self.database.session_scope() as session:
                return session.scalar(
                    select(PurchaseOrder)
                    .options(
                        selectinload(PurchaseOrder.lines),
                        selectinload(PurchaseOrder.supplier),
                    )
                    .where(PurchaseOrder.org == org, PurchaseOrder.po_number == po_number)
                )
