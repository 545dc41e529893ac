"""Tests for the document repository and deduplication gate."""

from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import selectinload

from docmatch.db.models import (
    GRN,
    Bank,
    Customer,
    Invoice,
    InvoiceLine,
    POLine,
    PurchaseOrder,
    Supplier,
)
from docmatch.db.repository import DocumentRepository, translate_db_errors
from docmatch.db.session import Database
from docmatch.models.documents import (
    BankAccount,
    DocumentKind,
    MatchStatus,
    Party,
    SupplierMatchingPolicy,
)
from docmatch.utils.exceptions import PersistenceFailure, TransientExternalFailure

from conftest import SUPPLIER, make_grn, make_invoice, make_purchase_order


def _count(database: Database, model) -> int:
    with database.session_scope() as session:
        return session.scalar(select(func.count()).select_from(model))


class TestUpsert:
    """Tests for storing documents and detecting duplicates."""

    def test_stores_purchase_order_with_lines(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        po = make_purchase_order(lines=[("WID-100", "10", "10.50"), ("BOL-200", "100", "0.25")])

        result = repository.upsert(po)

        assert result.duplicate is False
        stored = repository.get_purchase_order(SUPPLIER, "PO-5001")
        assert stored is not None
        assert stored.id == result.document_id
        assert stored.match_status == MatchStatus.PENDING
        assert stored.supplier.name == SUPPLIER
        assert [line.item_code for line in stored.lines] == ["WID-100", "BOL-200"]
        assert stored.lines[0].unit_price == Decimal("10.50")
        assert stored.lines[1].line_status == "Pending"

    def test_decimal_precision_preserved(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        repository.upsert(make_purchase_order(lines=[("WID-100", "3", "0.1")]))
        with database.session_scope() as session:
            line = session.scalars(select(POLine)).one()
            assert line.total_amount == Decimal("0.3")

    def test_same_identity_is_duplicate(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        first = repository.upsert(make_invoice())
        second = repository.upsert(make_invoice())

        assert second.duplicate is True
        assert second.document_id == first.document_id
        assert _count(database, Invoice) == 1

    def test_duplicate_leaves_first_record_untouched(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        first = make_invoice(lines=[("WID-100", "10", "10.50")])
        first.grand_total = Decimal("126.00")
        repository.upsert(first)

        changed = make_invoice(lines=[("BOL-200", "40", "0.30"), ("NUT-300", "5", "1.00")])
        changed.file_name = "resent.pdf"
        changed.grand_total = Decimal("999.99")
        changed.po_number = "PO-9999"
        result = repository.upsert(changed)

        assert result.duplicate is True
        with database.session_scope() as session:
            invoice = session.scalars(
                select(Invoice).options(selectinload(Invoice.lines))
            ).one()
            assert invoice.file_name == "INV-1001.pdf"
            assert invoice.grand_total == Decimal("126.00")
            assert invoice.po_number == "PO-5001"
            assert [
                (line.item_code, line.quantity, line.unit_price) for line in invoice.lines
            ] == [("WID-100", Decimal("10"), Decimal("10.50"))]
        assert _count(database, InvoiceLine) == 1

    def test_identity_is_per_org(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        repository.upsert(make_grn(org="Acme Supplies Ltd"))
        other = repository.upsert(make_grn(org="Beta Traders"))

        assert other.duplicate is False
        assert _count(database, GRN) == 2

    def test_parties_are_shared(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        repository.upsert(make_purchase_order())
        repository.upsert(make_invoice())
        repository.upsert(make_grn())

        assert _count(database, Supplier) == 1
        assert _count(database, Customer) == 1

    def test_unnamed_bank_not_stored(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        invoice = make_invoice()
        invoice.bank = BankAccount(name="", account_number="12345678")
        repository.upsert(invoice)

        assert _count(database, Bank) == 0
        with database.session_scope() as session:
            assert session.scalars(select(Invoice)).one().bank_id is None

    def test_bank_without_account_stored_with_empty_account(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        invoice = make_invoice()
        invoice.bank = BankAccount(name="Barclays")
        repository.upsert(invoice)

        with database.session_scope() as session:
            bank = session.scalars(select(Bank)).one()
            assert bank.account_number == ""

    def test_integrity_error_reported_as_concurrent_duplicate(
        self, repository: DocumentRepository
    ) -> None:
        stored = repository.upsert(make_invoice())

        # Simulate a writer that missed the existing row on its first read.
        with patch.object(
            DocumentRepository, "_find_id", side_effect=[None, stored.document_id]
        ):
            result = repository.upsert(make_invoice())

        assert result.duplicate is True
        assert result.document_id == stored.document_id


class TestGetOrInsert:
    def test_existing_party_reused(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        with database.session_scope() as session:
            first = repository.get_or_insert_party(session, Supplier, Party(name="Acme"))
            second = repository.get_or_insert_party(session, Supplier, Party(name=" Acme "))
        assert first == second

    def test_unnamed_party_skipped(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        with database.session_scope() as session:
            assert repository.get_or_insert_party(session, Customer, Party()) is None

    def test_bank_identity_includes_account(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        with database.session_scope() as session:
            a = repository.get_or_insert_bank(session, BankAccount(name="HSBC", account_number="1"))
            b = repository.get_or_insert_bank(session, BankAccount(name="HSBC", account_number="2"))
            c = repository.get_or_insert_bank(session, BankAccount(name="HSBC", account_number="1"))
        assert a != b
        assert a == c

    def test_unsupported_document_type_rejected(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        with database.session_scope() as session:
            with pytest.raises(TypeError, match="Unsupported document type: Party"):
                repository._build_header(session, Party(name="Acme"))
        assert _count(database, Supplier) == 0


class TestAuditAndPolicy:
    def test_file_audits_newest_first(self, repository: DocumentRepository) -> None:
        repository.record_file_audit("a.pdf", "invoice", "title_mismatch", None)
        repository.record_file_audit("b.pdf", "grndata", "duplicate", "file:///x/b.pdf")

        audits = repository.list_file_audits()

        assert [a.file_name for a in audits] == ["b.pdf", "a.pdf"]
        assert audits[0].archive_uri == "file:///x/b.pdf"
        assert audits[1].reason_code == "title_mismatch"

    def test_set_matching_policy_creates_supplier(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        policy = SupplierMatchingPolicy(
            is_3way_matching=True,
            quantity_variance_pct=Decimal("2.5"),
            price_variance_absolute=Decimal("0.10"),
        )
        supplier_id = repository.set_matching_policy("Beta Traders", policy)

        with database.session_scope() as session:
            supplier = session.get(Supplier, supplier_id)
            assert supplier.is_3way_matching is True
            assert supplier.quantity_variance_pct == Decimal("2.5")
            assert supplier.price_variance_absolute == Decimal("0.10")

    def test_set_matching_policy_empty_name(self, repository: DocumentRepository) -> None:
        with pytest.raises(PersistenceFailure):
            repository.set_matching_policy("  ", SupplierMatchingPolicy())

    def test_set_archive_uri(
        self, repository: DocumentRepository, database: Database
    ) -> None:
        stored = repository.upsert(make_purchase_order())
        repository.set_archive_uri(DocumentKind.PURCHASE_ORDER, stored.document_id, "file:///a")

        with database.session_scope() as session:
            assert session.get(PurchaseOrder, stored.document_id).archive_uri == "file:///a"


class TestTranslateDbErrors:
    def test_operational_error_is_transient(self) -> None:
        with pytest.raises(TransientExternalFailure):
            with translate_db_errors("testing"):
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    def test_other_errors_pass_through(self) -> None:
        with pytest.raises(KeyError):
            with translate_db_errors("testing"):
                raise KeyError("x")
