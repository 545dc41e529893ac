"""Tolerance rules for reconciling purchase order lines.

Pure functions: no database access, so the boundary behaviour can be
tested directly.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from docmatch.models.documents import LineStatus, MatchStatus, SupplierMatchingPolicy
from docmatch.utils.config import MatchingPolicyConfig

INVOICE_MISSING = "Invoice not yet received"
INVOICE_OR_GRN_MISSING = "Invoice/GRN not yet received"
NO_ITEM_CODE = "Line has no item code"


class InvoicedLine(Protocol):
    quantity: Decimal
    unit_price: Decimal


class ReceivedLine(Protocol):
    quantity_received: Decimal


@dataclass
class LineEvaluation:
    """Outcome of evaluating one PO line against its invoices and GRNs."""

    status: LineStatus
    reason: str | None = None
    invoice_qty: Decimal | None = None
    invoice_price: Decimal | None = None
    grn_qty: Decimal | None = None

    @property
    def matched(self) -> bool:
        return self.status == LineStatus.MATCHED


def policy_from_config(config: MatchingPolicyConfig) -> SupplierMatchingPolicy:
    """Build the fallback policy from configuration."""
    return SupplierMatchingPolicy(
        is_3way_matching=config.is_3way_matching,
        quantity_variance_pct=Decimal(config.quantity_variance_pct),
        price_variance_absolute=Decimal(config.price_variance_absolute),
    )


def evaluate_line(
    item_code: str,
    po_quantity: Decimal,
    po_unit_price: Decimal,
    invoice_lines: Sequence[InvoicedLine],
    grn_lines: Sequence[ReceivedLine],
    policy: SupplierMatchingPolicy,
) -> LineEvaluation:
    """Evaluate a PO line against the invoice and GRN lines for its item.

    The invoice price is the unweighted mean of the invoice unit prices.
    Under three-way matching the received quantity is compared with the
    ordered quantity; otherwise the invoiced quantity is. Both tolerance
    comparisons are inclusive.

    Args:
        item_code: Item code of the PO line, used in reason messages.
        po_quantity: Ordered quantity.
        po_unit_price: Ordered unit price.
        invoice_lines: Invoice lines for the same PO number and item code.
        grn_lines: GRN lines for the same PO number and item code. Ignored
            under two-way matching.
        policy: Tolerances and matching mode.

    Returns:
        The line evaluation with the aggregated figures.
    """
    three_way = policy.is_3way_matching
    if not invoice_lines or (three_way and not grn_lines):
        return LineEvaluation(
            status=LineStatus.PENDING,
            reason=INVOICE_OR_GRN_MISSING if three_way else INVOICE_MISSING,
        )

    invoice_qty = sum((line.quantity for line in invoice_lines), Decimal("0"))
    invoice_price = sum(
        (line.unit_price for line in invoice_lines), Decimal("0")
    ) / len(invoice_lines)
    grn_qty = (
        sum((line.quantity_received for line in grn_lines), Decimal("0"))
        if three_way
        else None
    )
    compared_qty = grn_qty if grn_qty is not None else invoice_qty

    qty_ok = abs(po_quantity - compared_qty) <= (
        po_quantity * policy.quantity_variance_pct / 100
    )
    price_ok = abs(po_unit_price - invoice_price) <= policy.price_variance_absolute

    evaluation = LineEvaluation(
        status=LineStatus.MATCHED,
        invoice_qty=invoice_qty,
        invoice_price=invoice_price,
        grn_qty=grn_qty,
    )
    if qty_ok and price_ok:
        return evaluation

    problems: list[str] = []
    if not price_ok:
        problems.append(
            f"{invoice_qty} units charged at {invoice_price} should have been "
            f"{po_unit_price} for {item_code}"
        )
    if not qty_ok:
        if three_way:
            problems.append(
                f"Only {grn_qty} received against {po_quantity} ordered for {item_code}"
            )
        else:
            problems.append(
                f"Invoice quantity {invoice_qty} does not match PO quantity "
                f"{po_quantity} for {item_code}"
            )
    problems.append(
        f"PO Qty={po_quantity}, Invoice Qty={invoice_qty}, "
        f"GRN Qty={grn_qty if grn_qty is not None else 'n/a'}, "
        f"PO Price={po_unit_price}, Invoice Price={invoice_price}"
    )
    evaluation.status = LineStatus.EXCEPTION
    evaluation.reason = "; ".join(problems)
    return evaluation


def derive_po_status(line_statuses: Iterable[LineStatus | str]) -> MatchStatus:
    """Header status from line statuses.

    Exception dominates Pending, which dominates Matched. A PO without
    lines stays Pending.
    """
    statuses = {LineStatus(status) for status in line_statuses}
    if not statuses:
        return MatchStatus.PENDING
    if LineStatus.EXCEPTION in statuses:
        return MatchStatus.EXCEPTION
    if LineStatus.PENDING in statuses:
        return MatchStatus.PARTIALLY_MATCHED
    return MatchStatus.MATCHED
