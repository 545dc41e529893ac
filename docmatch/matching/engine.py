"""Reconciliation of purchase orders against invoices and GRNs.

A cycle walks every purchase order that is still Pending or
PartiallyMatched, evaluates its lines with the supplier's policy,
propagates matches to the contributing invoice and GRN lines, and derives
the header status. Each purchase order is written in its own transaction.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from docmatch.db.models import GRN, GRNLine, Invoice, InvoiceLine, POLine, PurchaseOrder, Supplier
from docmatch.db.repository import translate_db_errors
from docmatch.db.session import Database
from docmatch.models.documents import (
    LineStatus,
    MatchedStatus,
    MatchStatus,
    SupplierMatchingPolicy,
)
from docmatch.utils.exceptions import DocMatchError
from docmatch.utils.logger import get_logger

from .rules import NO_ITEM_CODE, derive_po_status, evaluate_line

logger = get_logger(__name__)

OPEN_STATUSES = (MatchStatus.PENDING.value, MatchStatus.PARTIALLY_MATCHED.value)


@dataclass
class CycleReport:
    """Counts of purchase orders by outcome for one cycle."""

    examined: int = 0
    matched: int = 0
    partially_matched: int = 0
    exceptions: int = 0
    pending: int = 0
    failed: int = 0

    def record(self, status: MatchStatus) -> None:
        if status == MatchStatus.MATCHED:
            self.matched += 1
        elif status == MatchStatus.PARTIALLY_MATCHED:
            self.partially_matched += 1
        elif status == MatchStatus.EXCEPTION:
            self.exceptions += 1
        else:
            self.pending += 1


class MatchingEngine:
    """Runs reconciliation cycles over the document store.

    Args:
        database: Engine and session factory.
        default_policy: Policy for suppliers without one, and for
            purchase orders without a supplier.
    """

    def __init__(
        self, database: Database, default_policy: SupplierMatchingPolicy | None = None
    ) -> None:
        self.database = database
        self.default_policy = default_policy or SupplierMatchingPolicy()

    def run_cycle(self) -> CycleReport:
        """Reconcile every open purchase order once.

        A purchase order that fails is rolled back, logged, and counted;
        the cycle continues with the next one.

        Returns:
            Outcome counts for the cycle.

        Raises:
            TransientExternalFailure: Candidates could not be read.
        """
        report = CycleReport()
        with translate_db_errors("selecting purchase orders to reconcile"):
            with self.database.session_scope() as session:
                candidates = list(
                    session.scalars(
                        select(PurchaseOrder.id)
                        .where(PurchaseOrder.match_status.in_(OPEN_STATUSES))
                        .order_by(PurchaseOrder.id)
                    )
                )

        for po_id in candidates:
            report.examined += 1
            try:
                status = self.reconcile_purchase_order(po_id)
            except DocMatchError as exc:
                report.failed += 1
                logger.error("Reconciling purchase order id=%d failed: %s", po_id, exc)
                continue
            report.record(status)

        logger.info(
            "Matching cycle: %d examined, %d matched, %d partially matched, "
            "%d exceptions, %d failed",
            report.examined,
            report.matched,
            report.partially_matched,
            report.exceptions,
            report.failed,
        )
        return report

    def resolve_policy(self, supplier: Supplier | None) -> SupplierMatchingPolicy:
        """The supplier's policy, or the default when none is set."""
        if supplier is None or supplier.is_3way_matching is None:
            return self.default_policy
        return SupplierMatchingPolicy(
            is_3way_matching=supplier.is_3way_matching,
            quantity_variance_pct=(
                supplier.quantity_variance_pct
                if supplier.quantity_variance_pct is not None
                else self.default_policy.quantity_variance_pct
            ),
            price_variance_absolute=(
                supplier.price_variance_absolute
                if supplier.price_variance_absolute is not None
                else self.default_policy.price_variance_absolute
            ),
        )

    def reconcile_purchase_order(self, po_id: int) -> MatchStatus:
        """Evaluate and store the status of one purchase order.

        Every line is re-evaluated against all invoice and GRN lines for
        its item, so a later invoice that over-bills a matched item turns
        the line into an exception. The header status is derived from the
        full set of line statuses and written in the same transaction.

        Args:
            po_id: Purchase order id.

        Returns:
            The new header status.
        """
        with translate_db_errors(f"reconciling purchase order id={po_id}"):
            with self.database.session_scope() as session:
                po = session.get(
                    PurchaseOrder,
                    po_id,
                    options=[selectinload(PurchaseOrder.lines), selectinload(PurchaseOrder.supplier)],
                )
                if po is None:
                    raise DocMatchError(f"Purchase order id={po_id} no longer exists")

                policy = self.resolve_policy(po.supplier)
                touched_invoices: dict[int, Invoice] = {}
                touched_grns: dict[int, GRN] = {}

                for line in po.lines:
                    self._reconcile_line(
                        session, po, line, policy, touched_invoices, touched_grns
                    )

                for invoice in touched_invoices.values():
                    if all(il.matched_status == MatchedStatus.MATCHED for il in invoice.lines):
                        invoice.is_processed = True
                        invoice.is_approved = True
                for grn in touched_grns.values():
                    if all(gl.matched_status == MatchedStatus.MATCHED for gl in grn.lines):
                        grn.is_processed = True

                status = derive_po_status(line.line_status for line in po.lines)
                po.match_status = status.value
                if status == MatchStatus.MATCHED:
                    po.is_processed = True

                logger.debug(
                    "Purchase order %s (%s): %s", po.po_number, po.org, status.value
                )
                return status

    def _reconcile_line(
        self,
        session: Session,
        po: PurchaseOrder,
        line: POLine,
        policy: SupplierMatchingPolicy,
        touched_invoices: dict[int, Invoice],
        touched_grns: dict[int, GRN],
    ) -> None:
        if not line.item_code:
            line.line_status = LineStatus.PENDING.value
            line.exception_reason = NO_ITEM_CODE
            return

        invoice_lines = list(
            session.scalars(
                select(InvoiceLine)
                .join(Invoice)
                .where(
                    Invoice.po_number == po.po_number,
                    InvoiceLine.item_code == line.item_code,
                )
                .order_by(InvoiceLine.id)
            )
        )
        grn_lines: list[GRNLine] = []
        if policy.is_3way_matching:
            grn_lines = list(
                session.scalars(
                    select(GRNLine)
                    .join(GRN)
                    .where(GRN.po_number == po.po_number, GRNLine.item_code == line.item_code)
                    .order_by(GRNLine.id)
                )
            )

        evaluation = evaluate_line(
            line.item_code,
            line.quantity_ordered,
            line.unit_price,
            invoice_lines,
            grn_lines,
            policy,
        )
        line.line_status = evaluation.status.value
        line.exception_reason = evaluation.reason

        if evaluation.status == LineStatus.EXCEPTION:
            logger.warning(
                "PO %s line %s: %s", po.po_number, line.item_code, evaluation.reason
            )
        if not evaluation.matched:
            return

        for invoice_line in invoice_lines:
            invoice_line.matched_status = MatchedStatus.MATCHED.value
            touched_invoices[invoice_line.invoice_id] = invoice_line.invoice
        for grn_line in grn_lines:
            grn_line.matched_status = MatchedStatus.MATCHED.value
            touched_grns[grn_line.grn_id] = grn_line.grn
