"""
Two-Stage Posting Validation

DESIGN DECISION: Posting requests are validated in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Value ranges the request models can't express on their own
  (installment count, positive payment, non-negative interest)
- Range ordering (start before end)
- This catches malformed requests

STAGE 2 - SEMANTIC VALIDATION:
- Ledger rules that need the stored entry (expense only, something left over)
- Absurd amount detection
- Posting far away from the transaction date
- This catches logically impossible or suspicious postings

Stage 2 is skipped if stage 1 fails.

IMPORTANT: Validation NEVER silently fixes issues. Errors are turned into
InvalidArgumentError by ``ensure_valid``; warnings are only reported.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from ledger.config import AppSettings, get_settings
from ledger.errors import InvalidArgumentError
from ledger.models.entry import EntryCreate, EntryUpdate, InstallmentCreate, LedgerEntry
from ledger.models.validation import ValidationIssue, ValidationResult

MIN_INSTALLMENTS = 2

# Months between tx_date and posted period before we flag it
POSTING_DRIFT_WARNING_MONTHS = 12

_NO_ISSUES: Callable[[], list[ValidationIssue]] = list


def _error(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=fix,
    )


def _warning(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
        suggested_fix=fix,
    )


class PostingValidator:
    """
    Validates posting requests through a two-stage pipeline.

    Stage 1: Schema validation (request only)
    Stage 2: Semantic validation (request plus stored state, if any)
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    # =========================================================================
    # PIPELINE
    # =========================================================================

    def _run(
        self,
        operation: str,
        schema: Callable[[], list[ValidationIssue]],
        semantic: Callable[[], list[ValidationIssue]] = _NO_ISSUES,
    ) -> ValidationResult:
        all_issues = schema()
        schema_valid = not any(i.severity == "error" for i in all_issues)

        semantic_valid = False
        if schema_valid:
            semantic_issues = semantic()
            all_issues.extend(semantic_issues)
            semantic_valid = not any(i.severity == "error" for i in semantic_issues)

        return ValidationResult(
            operation=operation,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=[i.message for i in all_issues if i.severity == "warning"],
        )

    @staticmethod
    def ensure_valid(result: ValidationResult) -> ValidationResult:
        """
        Raise InvalidArgumentError on the first error-level issue.

        Returns the result unchanged otherwise, so warnings can still be
        inspected by the caller.
        """
        if not result.is_valid:
            raise InvalidArgumentError(result.first_error_message() or "Invalid request")
        return result

    # =========================================================================
    # SHARED CHECKS
    # =========================================================================

    def _amount_checks(self, field: str, amount: Decimal) -> list[ValidationIssue]:
        issues = []
        max_amount = Decimal(str(self._settings.max_entry_amount))
        if abs(amount) > max_amount:
            issues.append(_warning(
                field,
                "suspicious_value",
                f"Amount ({amount:,.2f}) seems unusually high",
                "Please verify this amount is correct",
            ))
        if amount == 0:
            issues.append(_warning(
                field,
                "suspicious_value",
                "Amount is zero and won't affect any total",
            ))
        return issues

    @staticmethod
    def _posting_drift_checks(tx_date: date, year: int, month: int) -> list[ValidationIssue]:
        drift = abs((year * 12 + month) - (tx_date.year * 12 + tx_date.month))
        if drift > POSTING_DRIFT_WARNING_MONTHS:
            return [_warning(
                "posted_period",
                "inconsistent",
                f"Posted period {year}-{month:02d} is {drift} months away from {tx_date}",
                "Please verify the posted month",
            )]
        return []

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def validate_entry(self, request: EntryCreate) -> ValidationResult:
        """Simple transaction: only warnings are possible."""
        return self._run(
            "create_entry",
            _NO_ISSUES,
            lambda: (
                self._amount_checks("amount", request.amount)
                + self._posting_drift_checks(
                    request.tx_date, request.posted_year, request.posted_month
                )
            ),
        )

    def validate_installment_plan(self, request: InstallmentCreate) -> ValidationResult:
        def schema() -> list[ValidationIssue]:
            if request.installment_total < MIN_INSTALLMENTS:
                return [_error(
                    "installment_total",
                    "invalid_value",
                    f"An installment plan needs at least {MIN_INSTALLMENTS} installments",
                    "Use a simple transaction for a single payment",
                )]
            return []

        return self._run(
            "create_installment_plan",
            schema,
            lambda: (
                self._amount_checks("amount", request.amount)
                + self._posting_drift_checks(
                    request.tx_date, request.posted_year, request.posted_month
                )
            ),
        )

    def validate_entry_update(self, changes: EntryUpdate) -> ValidationResult:
        return self._run(
            "update_entry",
            _NO_ISSUES,
            lambda: (
                self._amount_checks("amount", changes.amount)
                if changes.amount is not None else []
            ),
        )

    def validate_partial_payment(
        self,
        entry: LedgerEntry,
        paid_amount: Decimal,
        interest_amount: Decimal,
    ) -> ValidationResult:
        """
        Partial payment against a stored entry.

        Schema: paid > 0, interest >= 0.
        Semantic: the entry is an expense and paying leaves something owed.
        """
        def schema() -> list[ValidationIssue]:
            issues = []
            if paid_amount <= 0:
                issues.append(_error(
                    "paid_amount",
                    "invalid_value",
                    "Paid amount must be greater than zero",
                ))
            if interest_amount < 0:
                issues.append(_error(
                    "interest_amount",
                    "invalid_value",
                    "Interest amount cannot be negative",
                ))
            return issues

        def semantic() -> list[ValidationIssue]:
            if not entry.is_expense:
                return [_error(
                    "entry_id",
                    "invalid_value",
                    "Only expense entries can be partially paid",
                )]
            if abs(entry.amount) - paid_amount <= 0:
                return [_error(
                    "paid_amount",
                    "invalid_value",
                    "Paid amount must be less than the full amount",
                    "Record a full payment instead",
                )]
            return self._amount_checks("interest_amount", interest_amount) if interest_amount else []

        return self._run("partial_payment", schema, semantic)

    def validate_date_range(self, start: date, end: date) -> ValidationResult:
        def schema() -> list[ValidationIssue]:
            if start > end:
                return [_error(
                    "date_range",
                    "inconsistent",
                    f"Start date {start} is after end date {end}",
                )]
            return []

        return self._run("list_entries_by_date_range", schema)
