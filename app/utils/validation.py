# app/utils/validation.py
"""
Ledger invariants and record defaults.

Everything here is pure: the engine calls these before staging a write set
and any raised error aborts the whole operation.
"""
import re
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Sequence

from app.core.exceptions import (
    AllocationConfigError,
    InvalidAllocation,
    ValidationError,
)
from app.models.transaction import (
    ALLOCATION_TYPES,
    RecipientKind,
    TransactionSource,
    TransactionStatus,
    TransactionType,
)
from app.utils.distribution import BudgetPercentages, check_percentages, coerce_percentages, to_money

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

# Sources a client may submit; Distribution belongs to the engine
CLIENT_SOURCES = frozenset(s for s in TransactionSource if s != TransactionSource.distribution)

# Counterparty of every system allocation
DISTRIBUTION_RECIPIENT: Dict[str, Any] = {
    "name": "Income Distribution",
    "kind": RecipientKind.merchant,
    "details": "Auto-allocated from Income",
}


# ────────────────────────────────────────────────────────────────────────────────
# DEFAULTS
# ────────────────────────────────────────────────────────────────────────────────
def status_for_source(source: TransactionSource) -> TransactionStatus:
    if source in (TransactionSource.manual, TransactionSource.distribution):
        return TransactionStatus.categorized
    return TransactionStatus.pending


def synthesize_income_recipient(description: str, recipient: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Income rows without a named recipient are attributed to their own description."""
    if recipient and (recipient.get("name") or "").strip():
        return dict(recipient)
    synthesized = dict(recipient or {})
    synthesized["name"] = description or "Income Source"
    synthesized["kind"] = RecipientKind.merchant
    return synthesized


def derived_description(parent_description: str, transaction_type: TransactionType) -> str:
    return f"{parent_description} - {transaction_type.value} Allocation"


# ────────────────────────────────────────────────────────────────────────────────
# FIELD PREDICATES
# ────────────────────────────────────────────────────────────────────────────────
def validate_amount(amount: Any) -> Decimal:
    if amount is None:
        raise ValidationError("Please add an amount", field="amount")
    value = to_money(amount)
    if value <= 0:
        raise ValidationError("Amount must be greater than zero", field="amount")
    return value


def validate_description(description: Optional[str]) -> str:
    cleaned = (description or "").strip()
    if not cleaned:
        raise ValidationError("Please add a description", field="description")
    return cleaned


def validate_currency(currency: Optional[str]) -> str:
    code = (currency or "").strip().upper()
    if not _CURRENCY_RE.match(code):
        raise ValidationError("Currency must be a 3-letter code", field="currency")
    return code


def validate_client_source(source: TransactionSource) -> TransactionSource:
    if source not in CLIENT_SOURCES:
        raise ValidationError(
            "Source 'Distribution' is reserved for system-generated allocations",
            field="source",
        )
    return source


def validate_recipient(transaction_type: TransactionType, recipient_name: Optional[str]) -> None:
    if transaction_type != TransactionType.income and not (recipient_name or "").strip():
        raise ValidationError(
            "Recipient name is required for non-income transactions",
            field="recipient.name",
        )


def validate_percentages(percentages: Any) -> BudgetPercentages:
    """Budget preference triple check; a bad triple is a configuration error, never corrected."""
    try:
        pct = coerce_percentages(percentages)
        check_percentages(pct)
    except InvalidAllocation as e:
        raise AllocationConfigError(e.detail, field=e.field)
    return pct


# ────────────────────────────────────────────────────────────────────────────────
# RECORD / GROUP INVARIANTS
# ────────────────────────────────────────────────────────────────────────────────
def validate_standalone(tx: Any) -> None:
    """A directly entered Needs/Wants/Savings row has no parent and stays editable."""
    if tx.transaction_type == TransactionType.income:
        raise ValidationError(
            "Income transactions must be recorded through income distribution",
            field="transaction_type",
        )
    if tx.parent_transaction_id is not None or tx.is_distribution or not tx.is_editable:
        raise ValidationError(
            "Standalone transactions cannot be linked to a parent transaction",
            field="parent_transaction_id",
        )
    validate_amount(tx.amount)
    validate_recipient(tx.transaction_type, tx.recipient_name)


def validate_distribution_group(
    income: Any,
    derived: Sequence[Any],
    previous_ids: Optional[Iterable[Any]] = None,
) -> None:
    """
    Exactly one derived row per allocation type, flagged as a system
    distribution, linked to ``income`` and summing to its amount. When
    ``previous_ids`` is given, surviving derived rows must keep their ids.
    """
    field = "distributions"
    if income.transaction_type != TransactionType.income or income.is_distribution:
        raise ValidationError("Distribution parent must be an income transaction", field=field)

    validate_amount(income.amount)

    types = sorted((d.transaction_type for d in derived), key=ALLOCATION_TYPES.index)
    if len(derived) != len(ALLOCATION_TYPES) or tuple(types) != ALLOCATION_TYPES:
        raise ValidationError(
            "Income must have exactly one Needs, Wants and Savings allocation",
            field=field,
        )

    for d in derived:
        if d.parent_transaction_id != income.id or d.user_id != income.user_id:
            raise ValidationError("Allocation is not linked to its income transaction", field=field)
        if not d.is_distribution or d.is_editable or d.source != TransactionSource.distribution:
            raise ValidationError("Allocation must be a locked system distribution", field=field)
        if to_money(d.amount) < 0:
            raise ValidationError("Allocation amounts cannot be negative", field=field)
        validate_recipient(d.transaction_type, d.recipient_name)

    total = sum(to_money(d.amount) for d in derived)
    if total != to_money(income.amount):
        raise ValidationError(
            f"Allocations sum to {total} but income is {to_money(income.amount)}",
            field=field,
        )

    if previous_ids is not None:
        current = {d.id for d in derived}
        missing = set(previous_ids) - current
        if missing:
            raise ValidationError("Existing allocations must keep their ids", field=field)
