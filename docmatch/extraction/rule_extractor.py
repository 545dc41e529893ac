"""Rule-based field extraction using regex patterns.

Finds contact details, bank details, totals, and document references in
OCR text with pattern tables ordered from most to least specific.
"""

import re
from decimal import Decimal

from docmatch.models.documents import BankAccount

from .parsing import ZERO, split_currency

# Pattern definitions: (regex, flags). The first capture group is the value.
_EMAIL_PATTERNS: list[tuple[str, int]] = [
    (r"\b([A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,})\b", 0),
]

_PHONE_PATTERNS: list[tuple[str, int]] = [
    (r"(?:Tel|Phone)[:. ]*(\+?\d[\d \-()]{7,}\d)", re.IGNORECASE),
]

_VAT_PATTERNS: list[tuple[str, int]] = [
    (r"VAT\s*(?:No\.?|Number|Reg\.?|#)?[: ]+([A-Z0-9 ]*\d[A-Z0-9 ]*)$", re.IGNORECASE | re.MULTILINE),
]

_SUPPLIER_VAT_PATTERNS: list[tuple[str, int]] = [
    (r"Supplier\s*VAT[: ]*([A-Z0-9 ]*\d[A-Z0-9 ]*)$", re.IGNORECASE | re.MULTILINE),
]

_DATE_VALUE = (
    r"(\d{1,4}[/\-.]\d{1,2}[/\-.]\d{2,4}"
    r"|\d{1,2} [A-Za-z]{3,9} \d{4}"
    r"|[A-Za-z]{3,9} \d{1,2}, ?\d{4})"
)

_INVOICE_DATE_PATTERNS: list[tuple[str, int]] = [
    (rf"Invoice\s*Date[: ]*{_DATE_VALUE}", re.IGNORECASE),
]

_DUE_DATE_PATTERNS: list[tuple[str, int]] = [
    (rf"(?:Due|Payment\s*Due)\s*Date[: ]*{_DATE_VALUE}", re.IGNORECASE),
]

_PO_DATE_PATTERNS: list[tuple[str, int]] = [
    (rf"(?:PO|Order)\s*Date[: ]*{_DATE_VALUE}", re.IGNORECASE),
]

_DELIVERY_DATE_PATTERNS: list[tuple[str, int]] = [
    (rf"Delivery\s*Date[: ]*{_DATE_VALUE}", re.IGNORECASE),
]

_GRN_DATE_PATTERNS: list[tuple[str, int]] = [
    (rf"(?:GRN|Received)\s*Date[: ]*{_DATE_VALUE}", re.IGNORECASE),
]

_COMPANY_NUMBER_PATTERNS: list[tuple[str, int]] = [
    (r"Company\s*(?:No\.?|Number)[:\s]*([A-Z0-9]+)", re.IGNORECASE),
]

_WEBSITE_PATTERNS: list[tuple[str, int]] = [
    (r"\b((?:https?://)?www\.[A-Za-z0-9.\-]+\.[A-Za-z]{2,}(?:/\S*)?)", re.IGNORECASE),
]

_BANK_NAME_PATTERNS: list[tuple[str, int]] = [
    (r"Bank(?:\s*Name)?:\s*([A-Za-z&' ]+?)(?=\s*(?:Sort|Account|IBAN|SWIFT|Branch|$))", re.IGNORECASE | re.MULTILINE),
]

_BRANCH_PATTERNS: list[tuple[str, int]] = [
    (r"Branch(?:\s*Name)?:\s*(.+)", re.IGNORECASE),
]

_SORT_CODE_PATTERNS: list[tuple[str, int]] = [
    (r"Sort\s*Code[:\s]*(\d{2}[\-\s]?\d{2}[\-\s]?\d{2})", re.IGNORECASE),
]

_ACCOUNT_PATTERNS: list[tuple[str, int]] = [
    (r"Account\s*(?:Number|No\.?)[:\s]*(\d+)", re.IGNORECASE),
    (r"Account[:\s]+(\d{6,})", re.IGNORECASE),
]

_IBAN_PATTERNS: list[tuple[str, int]] = [
    (r"IBAN[:\s]*([A-Z]{2}\d{2}(?:\s?[A-Z0-9]{4}){2,7}(?:\s?[A-Z0-9]{1,3})?)", re.IGNORECASE),
]

_SWIFT_PATTERNS: list[tuple[str, int]] = [
    (r"(?:SWIFT/BIC|SWIFT|BIC)[:\s]*([A-Z0-9]{8,11})", re.IGNORECASE),
]

_PAYMENT_TERMS_PATTERNS: list[tuple[str, int]] = [
    (r"Payment\s*Terms[:\s]+([^\n\r]+)", re.IGNORECASE),
    (r"Please make payment\s*(.+?)(?:\.\s*Thank you|$)", re.IGNORECASE | re.DOTALL),
]

_INVOICE_NUMBER_PATTERNS: list[tuple[str, int]] = [
    (r"Invoice\s*(?:No\.?|Number|#)[:\s]*([A-Z0-9][A-Z0-9\-/]*)", re.IGNORECASE),
]

_PO_NUMBER_PATTERNS: list[tuple[str, int]] = [
    (r"(?:Related\s*)?(?:PO|Purchase\s*Order)\s*(?:No\.?|Number|#)[:\s]*([A-Z0-9][A-Z0-9\-/]*)", re.IGNORECASE),
]

_GRN_NUMBER_PATTERNS: list[tuple[str, int]] = [
    (r"GRN\s*(?:No\.?|Number|#)[:\s]*([A-Z0-9][A-Z0-9\-/]*)", re.IGNORECASE),
    (r"GRN\(s\)[:\s]*([A-Z0-9][A-Z0-9\-/]*)", re.IGNORECASE),
]

# Amount patterns capture an optional currency marker together with the number.
_SUBTOTAL_PATTERNS: list[tuple[str, int]] = [
    (r"(?:Sub\s*total|Net\s*Total)[: \t]*([^\d\s\-]{0,3} ?[\d,]+(?:\.\d+)?)", re.IGNORECASE),
]

_VAT_TOTAL_PATTERNS: list[tuple[str, int]] = [
    (r"(?:VAT|Tax)(?: ?Total| ?Amount| ?@? ?\(?\d+(?:\.\d+)?%\)?)?[ \t]*:[ \t]*([^\d\s\-]{0,3} ?[\d,]+\.\d{2})", re.IGNORECASE),
]

_TOTAL_PATTERNS: list[tuple[str, int]] = [
    (r"(?:Total\s*Amount\s*Due|Grand\s*Total|Amount\s*Due|Balance\s*Due)[: \t]*([^\d\s\-]{0,3} ?[\d,]+(?:\.\d+)?)", re.IGNORECASE),
    (r"(?<!Sub)(?<!Sub )(?<!Net )\bTotal(?: Value)?[ \t]*:?[ \t]*([^\d\s\-]{0,3} ?[\d,]+\.\d{2})", re.IGNORECASE),
]


class RuleExtractor:
    """Regex-based field extractor for business document text.

    Matches pattern tables against OCR text to identify contact
    details, bank details, totals, and document references.
    """

    def __init__(self) -> None:
        self.patterns: dict[str, list[tuple[str, int]]] = {
            "email": _EMAIL_PATTERNS,
            "phone": _PHONE_PATTERNS,
            "vat_number": _VAT_PATTERNS,
            "supplier_vat": _SUPPLIER_VAT_PATTERNS,
            "company_number": _COMPANY_NUMBER_PATTERNS,
            "website": _WEBSITE_PATTERNS,
            "bank_name": _BANK_NAME_PATTERNS,
            "branch": _BRANCH_PATTERNS,
            "sort_code": _SORT_CODE_PATTERNS,
            "account_number": _ACCOUNT_PATTERNS,
            "iban": _IBAN_PATTERNS,
            "swift": _SWIFT_PATTERNS,
            "payment_terms": _PAYMENT_TERMS_PATTERNS,
            "invoice_number": _INVOICE_NUMBER_PATTERNS,
            "po_number": _PO_NUMBER_PATTERNS,
            "grn_number": _GRN_NUMBER_PATTERNS,
            "invoice_date": _INVOICE_DATE_PATTERNS,
            "due_date": _DUE_DATE_PATTERNS,
            "po_date": _PO_DATE_PATTERNS,
            "delivery_date": _DELIVERY_DATE_PATTERNS,
            "grn_date": _GRN_DATE_PATTERNS,
            "subtotal": _SUBTOTAL_PATTERNS,
            "vat_total": _VAT_TOTAL_PATTERNS,
            "total": _TOTAL_PATTERNS,
        }

    def first(self, text: str, field_name: str) -> str | None:
        """Return the first non-empty match for a field.

        Patterns are tried in order, so a specific pattern wins over a
        generic one even when the generic match appears earlier in the text.

        Args:
            text: OCR text to search.
            field_name: Name of a registered field.

        Returns:
            The stripped value, or ``None``.
        """
        for pattern, flags in self.patterns.get(field_name, []):
            match = re.search(pattern, text, flags)
            if match and match.group(1).strip():
                return match.group(1).strip()
        return None

    def extract_amount(self, text: str, field_name: str) -> tuple[str | None, Decimal]:
        """Extract an amount field and its currency marker.

        Args:
            text: OCR text to search.
            field_name: One of ``subtotal``, ``vat_total``, ``total``.

        Returns:
            Tuple of (currency or ``None``, amount or zero).
        """
        raw = self.first(text, field_name)
        if raw is None:
            return None, ZERO
        return split_currency(raw)

    def extract_bank(self, text: str) -> BankAccount:
        """Collect bank details from a document's text.

        Args:
            text: OCR text to search.

        Returns:
            Bank account; fields not found are left empty.
        """
        iban = self.first(text, "iban")
        return BankAccount(
            name=self.first(text, "bank_name") or "",
            branch=self.first(text, "branch"),
            account_number=self.first(text, "account_number") or "",
            sort_code=self.first(text, "sort_code"),
            iban=iban.replace(" ", "") if iban else None,
            branch_code=self.first(text, "swift"),
            payment_terms=self.first(text, "payment_terms"),
        )
