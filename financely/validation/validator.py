"""
Two-Stage Expense Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (description, positive amount)
- References resolve (payer and category exist in the household)
- This catches half-filled forms and stale ids

STAGE 2 - SEMANTIC VALIDATION:
- Split arithmetic (the split-sum rule)
- Split members exist and appear once
- Future date detection
- Absurd amount detection
- This catches logically impossible or suspicious expenses

WHY TWO STAGES:
1. Separation of concerns (structural vs logical)
2. Better error messages (know exactly what kind of issue)
3. Split checks are meaningless without a valid amount, so stage 2 is
   skipped when stage 1 fails

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the ledger refuses to record anything with errors.
"""

from datetime import date, timedelta
from typing import Optional

from financely.config import LedgerSettings, get_settings
from financely.models.household import MAX_DESCRIPTION_LENGTH, ExpenseDraft, Household
from financely.models.money import format_inr
from financely.models.validation import ValidationIssue, ValidationResult


class InvalidExpenseError(ValueError):
    """An expense draft failed validation. Nothing was recorded."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = result.error_messages or ["Expense is invalid"]
        super().__init__("; ".join(messages))

    @property
    def issues(self) -> list[ValidationIssue]:
        return self.result.issues


class ExpenseValidator:
    """
    Validates expense drafts against the household through a two-stage
    pipeline.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    def _validate_schema(
        self,
        draft: ExpenseDraft,
        household: Household,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not draft.description.strip():
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                severity="error",
                suggested_fix="Describe what the money was spent on",
            ))
        elif len(draft.description) > MAX_DESCRIPTION_LENGTH:
            issues.append(ValidationIssue(
                field="description",
                issue_type="too_long",
                message=(
                    f"Description is {len(draft.description)} characters; "
                    f"the limit is {MAX_DESCRIPTION_LENGTH}"
                ),
                severity="error",
                suggested_fix="Shorten the description",
            ))

        if draft.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))

        if household.get_member(draft.member_id) is None:
            issues.append(ValidationIssue(
                field="member_id",
                issue_type="unknown_reference",
                message=f"Unknown payer: {draft.member_id}",
                severity="error",
                suggested_fix="Pick one of the household members",
            ))

        if household.get_category(draft.category_id) is None:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="unknown_reference",
                message=f"Unknown category: {draft.category_id}",
                severity="error",
                suggested_fix="Pick one of the household categories",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        draft: ExpenseDraft,
        household: Household,
        as_of: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Split rules:
        - manual entry: splits must add up to the amount exactly
        - imported: splits may add up to less, never more; no splits at
          all is fine (the payer carries the whole amount)

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        seen = set()
        for split in draft.splits:
            if household.get_member(split.member_id) is None:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="unknown_reference",
                    message=f"Split references unknown member: {split.member_id}",
                    severity="error",
                ))
            if split.member_id in seen:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="duplicate_member",
                    message=f"Member {split.member_id} appears in more than one split",
                    severity="error",
                    suggested_fix="Combine the shares into one split",
                ))
            seen.add(split.member_id)

        split_total = sum(split.amount for split in draft.splits)
        if draft.imported:
            if split_total > draft.amount:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="split_mismatch",
                    message=(
                        f"Splits total {format_inr(split_total, show_paise=True)}, "
                        f"more than the amount {format_inr(draft.amount, show_paise=True)}"
                    ),
                    severity="error",
                ))
        elif split_total != draft.amount:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="split_mismatch",
                message=(
                    f"Splits total {format_inr(split_total, show_paise=True)} but the "
                    f"amount is {format_inr(draft.amount, show_paise=True)}"
                ),
                severity="error",
                suggested_fix="Adjust the shares or use an equal split",
            ))

        max_future_date = as_of + timedelta(days=self._settings.future_date_tolerance_days)
        if draft.date > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Expense date ({draft.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        if draft.amount > self._settings.max_expense_amount_cents:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({format_inr(draft.amount)}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(
        self,
        draft: ExpenseDraft,
        household: Household,
        as_of: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            draft: The expense as entered or imported
            household: Snapshot the references are checked against
            as_of: "Today" for the future-date check

        Returns:
            ValidationResult with all issues found
        """
        as_of = as_of or date.today()
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(draft, household)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(draft, household, as_of)
            all_issues.extend(semantic_issues)

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def ensure_valid(
        self,
        draft: ExpenseDraft,
        household: Household,
        as_of: Optional[date] = None,
    ) -> ValidationResult:
        """
        Validate and raise if the draft cannot be recorded.

        Raises:
            InvalidExpenseError: If any error-level issue was found
        """
        result = self.validate(draft, household, as_of)
        if not result.is_valid:
            raise InvalidExpenseError(result)
        return result

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ This expense can't be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
