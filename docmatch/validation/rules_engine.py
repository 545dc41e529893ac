"""Configurable validation rules engine for normalized documents.

Field rules are loaded from YAML per document kind and checked before a
record is persisted. Cross-field total checks are reported as warnings;
OCR totals are too unreliable to block on.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from docmatch.extraction.parsing import DATE_FORMATS
from docmatch.models.documents import NormalizedDocument, summary_fields
from docmatch.utils.logger import get_logger

logger = get_logger(__name__)

TOTALS_TOLERANCE = Decimal("0.05")

# A check returns (passed, message) for a value that is present.
Check = Callable[[Any, dict], tuple[bool, str]]


@dataclass
class ValidationResult:
    """Result of a single field validation check."""

    field_name: str
    is_valid: bool
    message: str
    rule_name: str
    blocking: bool = True


@dataclass
class ValidationReport:
    """Aggregated validation report for a document."""

    all_valid: bool
    results: list[ValidationResult]
    warnings: list[str] = field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        """Messages of the failed blocking checks."""
        return [r.message for r in self.results if r.blocking and not r.is_valid]


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value).replace(",", "").replace("$", "").replace("£", ""))


def _check_date(value: Any, rule: dict) -> tuple[bool, str]:
    text = str(value)
    for fmt in rule.get("formats") or DATE_FORMATS:
        try:
            datetime.strptime(text, fmt)
        except ValueError:
            continue
        return True, f"Valid date format: {fmt}"
    return False, f"Invalid date format: {value}"


def _check_non_negative(value: Any, rule: dict) -> tuple[bool, str]:
    try:
        amount = _to_decimal(value)
    except InvalidOperation:
        return False, f"Invalid amount format: {value}"
    if amount < 0:
        return False, f"Amount must not be negative: {amount}"
    return True, f"Valid amount: {amount}"


def _check_range(value: Any, rule: dict) -> tuple[bool, str]:
    try:
        amount = _to_decimal(value)
        low = Decimal(str(rule.get("min", 0)))
        high = Decimal(str(rule.get("max", 1000000)))
    except (InvalidOperation, TypeError):
        return False, f"Invalid amount: {value}"
    if low <= amount <= high:
        return True, "Amount in valid range"
    return False, f"Amount {amount} outside range [{low}, {high}]"


def _check_regex(value: Any, rule: dict) -> tuple[bool, str]:
    pattern = rule.get("pattern", "")
    if re.match(pattern, str(value)):
        return True, "Matches pattern"
    return False, f"Does not match pattern: {pattern}"


CHECKS: dict[str, Check] = {
    "date_format": _check_date,
    "non_negative_amount": _check_non_negative,
    "amount_range": _check_range,
    "regex": _check_regex,
}


class RulesEngine:
    """Configurable validation rules engine.

    Applies field-level rules loaded from a YAML file, keyed by document
    kind (``invoice``, ``purchaseorder``, ``grndata``), then runs the
    cross-field checks. Besides the entries of :data:`CHECKS`, a rule of
    type ``required`` fails on missing or blank values; every other rule
    passes when the value is missing.

    Args:
        rules_path: Path to the validation rules YAML file.
    """

    def __init__(
        self, rules_path: Path = Path("configs/validation_rules.yaml")
    ) -> None:
        self.rules = self._load_rules(Path(rules_path))

    def _load_rules(self, path: Path) -> dict:
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f)
                if data:
                    logger.info("Loaded validation rules from %s", path)
                    return data
        logger.debug("Using default validation rules")
        return self._default_rules()

    def _default_rules(self) -> dict:
        """Rules used when no rules file is available."""
        identity = {
            "org": [{"type": "required"}],
            "document_number": [{"type": "required"}],
        }
        return {
            "invoice": {
                **identity,
                "invoice_date": [{"type": "date_format"}],
                "due_date": [{"type": "date_format"}],
                "net_total": [{"type": "non_negative_amount"}],
                "grand_total": [{"type": "non_negative_amount"}],
            },
            "purchaseorder": {
                **identity,
                "po_date": [{"type": "date_format"}],
                "delivery_date": [{"type": "date_format"}],
                "total_value": [{"type": "non_negative_amount"}],
            },
            "grndata": {
                **identity,
                "grn_date": [{"type": "date_format"}],
            },
        }

    def validate(self, document: NormalizedDocument) -> ValidationReport:
        """Validate a document against the rules of its kind.

        Args:
            document: Normalized document from the extraction adapter.

        Returns:
            Validation report; ``all_valid`` ignores warnings.
        """
        return self.validate_fields(summary_fields(document), document.kind.value)

    def check_field(
        self, field_name: str, value: Any, rule: dict
    ) -> ValidationResult | None:
        """Apply one rule to one value.

        Returns:
            The result, or None when the rule type is unknown.
        """
        rule_type = rule.get("type", "")
        if rule_type == "required":
            if value is not None and str(value).strip():
                return ValidationResult(field_name, True, "Required field present", rule_type)
            return ValidationResult(
                field_name, False, f"Required field missing: {field_name}", rule_type
            )

        check = CHECKS.get(rule_type)
        if check is None:
            return None
        if value is None:
            return ValidationResult(field_name, True, "No value to validate", rule_type)
        passed, message = check(value, rule)
        return ValidationResult(field_name, passed, message, rule_type)

    def validate_fields(
        self, fields: dict[str, Any], document_type: str
    ) -> ValidationReport:
        """Validate a flat field map against document-type rules.

        Args:
            fields: Field name-value pairs.
            document_type: Rule set to apply.

        Returns:
            Validation report with results and warnings.
        """
        results: list[ValidationResult] = []
        warnings: list[str] = []

        for field_name, rules in self.rules.get(document_type, {}).items():
            for rule in rules:
                result = self.check_field(field_name, fields.get(field_name), rule)
                if result is None:
                    warnings.append(f"Unknown rule type: {rule.get('type')}")
                else:
                    results.append(result)

        for result in self._cross_validate(fields):
            results.append(result)
            if not result.is_valid:
                warnings.append(result.message)

        all_valid = all(r.is_valid for r in results if r.blocking)
        logger.info(
            "Validation for %s: %s (%d checks, %d warnings)",
            document_type,
            "PASSED" if all_valid else "FAILED",
            len(results),
            len(warnings),
        )

        return ValidationReport(all_valid=all_valid, results=results, warnings=warnings)

    def _cross_validate(self, fields: dict[str, Any]) -> list[ValidationResult]:
        """Run non-blocking cross-field checks.

        Compares the sum of line amounts with the net total, and net plus
        VAT with the grand total, within a 5% tolerance. A check is skipped
        when a total it needs was not extracted.
        """
        results: list[ValidationResult] = []

        items = fields.get("line_items")
        net_total = fields.get("net_total")
        if isinstance(items, list) and items and net_total:
            items_sum = sum(
                (_to_decimal(item.get("amount") or 0) for item in items), Decimal("0")
            )
            results.append(
                _compare_totals("line_items_total", items_sum, net_total, "Line items sum")
            )

        grand_total = fields.get("grand_total")
        if net_total and grand_total:
            combined = _to_decimal(net_total) + _to_decimal(fields.get("vat_total") or 0)
            results.append(
                _compare_totals("grand_total", combined, grand_total, "Net plus VAT")
            )

        return results


def _compare_totals(
    field_name: str, actual: Decimal, expected: Any, label: str
) -> ValidationResult:
    total = _to_decimal(expected)
    within = abs(actual - total) <= total * TOTALS_TOLERANCE
    message = (
        f"{label} matches total"
        if within
        else f"{label} ({actual}) doesn't match total ({total})"
    )
    return ValidationResult(field_name, within, message, "cross_field", blocking=False)
