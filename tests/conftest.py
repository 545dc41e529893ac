"""Shared test fixtures for the document matching test suite."""

from decimal import Decimal
from pathlib import Path

import pytest

from docmatch.analysis.result import AnalyzeResult
from docmatch.db.repository import DocumentRepository
from docmatch.db.session import Database
from docmatch.models.documents import (
    GRNLineItem,
    LineItem,
    NormalizedGRN,
    NormalizedInvoice,
    NormalizedPurchaseOrder,
    Party,
)
from docmatch.utils.config import DatabaseConfig

INVOICE_TEXT = """\
Acme Holdings
Acme Supplies Ltd
12 High Street
London
Tel: +44 20 7946 0958
Email: accounts@acme.example
VAT No: GB123456789
INVOICE
Bill To
Widget Works plc
5 Market Road
Leeds
Invoice No: INV-1001
Invoice Date: 15/01/2024
Due Date: 14/02/2024
PO Number: PO-5001
Payment Terms: 30 days
WID-100 Steel widget 10 10.50 105.00
BOL-200 Brass bolt 100 0.25 25.00
Subtotal: £130.00
VAT: £26.00
Total: £156.00
Bank: Barclays
Sort Code: 20-00-00
Account Number: 12345678
"""

PURCHASE_ORDER_TEXT = """\
PURCHASE ORDER
Supplier:
Acme Supplies Ltd
12 High Street
London
Tel: +44 20 7946 0958
Buyer:
Widget Works plc
5 Market Road
Leeds
PO No: PO-5001
PO Date: 10/01/2024
Delivery Date: 20/01/2024
WID-100 Steel widget 10 10.50 105.00
BOL-200 Brass bolt 100 0.25 25.00
Subtotal: £130.00
VAT: £26.00
Total: £156.00
"""

GRN_TEXT = """\
GOODS RECEIVED NOTE
Supplier:
Acme Supplies Ltd
12 High Street
Receiver:
Widget Works plc
5 Market Road
GRN No: GRN-7001
GRN Date: 18/01/2024
Related PO No: PO-5001
WID-100 Steel widget 10 10
BOL-200 Brass bolt 100 95
"""

SUPPLIER = "Acme Supplies Ltd"


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


@pytest.fixture
def invoice_result() -> AnalyzeResult:
    return AnalyzeResult(full_text=INVOICE_TEXT)


@pytest.fixture
def purchase_order_result() -> AnalyzeResult:
    return AnalyzeResult(full_text=PURCHASE_ORDER_TEXT)


@pytest.fixture
def grn_result() -> AnalyzeResult:
    return AnalyzeResult(full_text=GRN_TEXT)


@pytest.fixture
def database() -> Database:
    """In-memory database with the schema created."""
    db = Database(DatabaseConfig(url="sqlite://"))
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def repository(database: Database) -> DocumentRepository:
    return DocumentRepository(database)


def make_purchase_order(
    po_number: str = "PO-5001",
    lines: list[tuple[str | None, str, str]] | None = None,
    org: str = SUPPLIER,
) -> NormalizedPurchaseOrder:
    """Purchase order with ``(item_code, quantity, unit_price)`` lines."""
    lines = lines if lines is not None else [("WID-100", "10", "10.50")]
    return NormalizedPurchaseOrder(
        file_name=f"{po_number}.pdf",
        org=org,
        po_number=po_number,
        supplier=Party(name=org),
        customer=Party(name="Widget Works plc"),
        lines=[
            LineItem(
                item_code=code,
                description=f"Item {code}",
                quantity=Decimal(qty),
                unit_price=Decimal(price),
                total_amount=Decimal(qty) * Decimal(price),
            )
            for code, qty, price in lines
        ],
    )


def make_invoice(
    invoice_no: str = "INV-1001",
    po_number: str = "PO-5001",
    lines: list[tuple[str, str, str]] | None = None,
    org: str = SUPPLIER,
) -> NormalizedInvoice:
    """Invoice with ``(item_code, quantity, unit_price)`` lines."""
    lines = lines if lines is not None else [("WID-100", "10", "10.50")]
    return NormalizedInvoice(
        file_name=f"{invoice_no}.pdf",
        org=org,
        invoice_no=invoice_no,
        po_number=po_number,
        supplier=Party(name=org),
        lines=[
            LineItem(
                item_code=code,
                quantity=Decimal(qty),
                unit_price=Decimal(price),
                net_amount=Decimal(qty) * Decimal(price),
            )
            for code, qty, price in lines
        ],
    )


def make_grn(
    grn_number: str = "GRN-7001",
    po_number: str = "PO-5001",
    lines: list[tuple[str, str]] | None = None,
    org: str = SUPPLIER,
) -> NormalizedGRN:
    """GRN with ``(item_code, quantity_received)`` lines."""
    lines = lines if lines is not None else [("WID-100", "10")]
    return NormalizedGRN(
        file_name=f"{grn_number}.pdf",
        org=org,
        grn_number=grn_number,
        po_number=po_number,
        supplier=Party(name=org),
        lines=[
            GRNLineItem(
                item_code=code,
                quantity_ordered=Decimal(received),
                quantity_received=Decimal(received),
            )
            for code, received in lines
        ],
    )
