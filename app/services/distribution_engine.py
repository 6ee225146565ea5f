# app/services/distribution_engine.py
"""
Income distribution & transaction consistency engine.

An Income transaction and its three derived allocations (Needs, Wants,
Savings) form a distribution group. The engine creates, updates and deletes
a group as one unit: every operation stages its full write set on the
request's session and commits once, so either all rows change or none do.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db_utils import bounded
from app.core.exceptions import (
    LedgerError,
    NotDeletableError,
    NotEditableError,
    NotFoundError,
    StoreUnavailable,
    ValidationError,
)
from app.crud.transaction import (
    aggregate_recipients,
    delete_distribution_group,
    delete_transaction,
    get_distributions_for_parent,
    get_income_transactions,
    get_recent_with_recipient,
    get_transaction_by_id,
    get_transactions_for_user,
    stage_transactions,
)
from app.models.transaction import (
    ALLOCATION_TYPES,
    Transaction,
    TransactionSource,
    TransactionType,
)
from app.schemas.transaction import ExpenseCreate, IncomeCreate, TransactionFilters, TransactionUpdate
from app.services.budget import BudgetPreferenceProvider, CategoryResolver
from app.utils.distribution import allocate
from app.utils.validation import (
    DISTRIBUTION_RECIPIENT,
    derived_description,
    status_for_source,
    synthesize_income_recipient,
    validate_amount,
    validate_client_source,
    validate_currency,
    validate_description,
    validate_distribution_group,
    validate_recipient,
    validate_standalone,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Patch fields copied verbatim once present
_PLAIN_FIELDS = ("tag", "notes", "status")


class DistributionGroup(NamedTuple):
    income: Transaction
    # Always ordered Needs, Wants, Savings
    distributions: List[Transaction]


class AuditFinding(NamedTuple):
    income_id: uuid.UUID
    user_id: uuid.UUID
    problem: str
    repaired: bool


def _recipient_columns(recipient: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    recipient = recipient or {}
    return {
        "recipient_name": (recipient.get("name") or "").strip() or None,
        "recipient_kind": recipient.get("kind"),
        "recipient_details": recipient.get("details"),
        "recipient_frequency": recipient.get("frequency") or 1,
    }


class DistributionEngine:
    def __init__(
        self,
        db: AsyncSession,
        preferences: BudgetPreferenceProvider,
        categories: CategoryResolver,
    ):
        self.db = db
        self.preferences = preferences
        self.categories = categories

    # ────────────────────────────────────────────────────────────────────────
    # UNIT OF WORK
    # ────────────────────────────────────────────────────────────────────────
    async def _atomic(self, work: Callable[[], Awaitable[T]]) -> T:
        """Run ``work`` and commit once; any failure rolls the whole write set back."""
        try:
            result = await bounded(work())
            await bounded(self.db.commit())
            return result
        except Exception:
            try:
                await bounded(self.db.rollback())
            except StoreUnavailable as e:
                logger.error(f"Rollback did not complete, session left for disposal: {e.detail}")
            raise

    async def _load(self, owner_id: uuid.UUID, transaction_id: uuid.UUID) -> Transaction:
        tx = await get_transaction_by_id(transaction_id, owner_id, self.db)
        if tx is None:
            raise NotFoundError("Transaction not found", field="id")
        return tx

    # ────────────────────────────────────────────────────────────────────────
    # RECORD BUILDERS
    # ────────────────────────────────────────────────────────────────────────
    async def _resolve_currency(self, owner_id: uuid.UUID, currency: Optional[str]) -> str:
        if currency:
            return validate_currency(currency)
        return validate_currency(await self.preferences.get_preferred_currency(owner_id))

    def _new_transaction(self, owner_id: uuid.UUID, **fields: Any) -> Transaction:
        now = datetime.utcnow()
        fields.setdefault("transaction_date", now)
        return Transaction(
            id=uuid.uuid4(),
            user_id=owner_id,
            created_at=now,
            updated_at=now,
            **fields,
        )

    def _build_derived(
        self,
        income: Transaction,
        transaction_type: TransactionType,
        amount,
        category_id: uuid.UUID,
    ) -> Transaction:
        derived = self._new_transaction(
            income.user_id,
            amount=amount,
            transaction_type=transaction_type,
            category_id=category_id,
            attachments=[],
            description="",
            currency=income.currency,
        )
        self._lock_derived(income, derived)
        self._copy_parent_fields(income, derived)
        return derived

    @staticmethod
    def _lock_derived(income: Transaction, derived: Transaction) -> None:
        """Link and flags every system allocation carries."""
        derived.parent_transaction_id = income.id
        derived.is_distribution = True
        derived.is_editable = False
        derived.source = TransactionSource.distribution
        derived.status = status_for_source(TransactionSource.distribution)
        for column, value in _recipient_columns(DISTRIBUTION_RECIPIENT).items():
            setattr(derived, column, value)

    @staticmethod
    def _copy_parent_fields(income: Transaction, derived: Transaction) -> None:
        derived.description = derived_description(income.description, derived.transaction_type)
        derived.transaction_date = income.transaction_date
        derived.currency = income.currency

    async def _allocation_category(self, owner_id: uuid.UUID, transaction_type: TransactionType) -> uuid.UUID:
        # Allocations are filed under the owner's default category for their own type
        return await self.categories.resolve_or_default(owner_id, None, transaction_type)

    async def _reconcile(
        self,
        income: Transaction,
        children: Sequence[Transaction],
        reallocate: bool,
    ) -> Tuple[List[Transaction], List[Transaction]]:
        """
        Bring ``children`` in line with ``income``: refresh the copied
        fields and the derived flags, re-size amounts from the current
        percentages when asked to (or when allocations are missing), and
        build any missing rows.
        Returns (group in allocation order, newly built rows).
        """
        by_type = {c.transaction_type: c for c in children}
        missing = [t for t in ALLOCATION_TYPES if t not in by_type]
        if missing:
            logger.warning(
                f"Income {income.id} is missing {', '.join(t.value for t in missing)} allocation(s); regenerating"
            )
            reallocate = True

        allocation = None
        if reallocate:
            percentages = await self.preferences.get_percentages(income.user_id)
            allocation = allocate(income.amount, percentages)

        now = datetime.utcnow()
        group: List[Transaction] = []
        created: List[Transaction] = []
        for index, transaction_type in enumerate(ALLOCATION_TYPES):
            category_id = await self._allocation_category(income.user_id, transaction_type)
            child = by_type.get(transaction_type)
            if child is None:
                child = self._build_derived(income, transaction_type, allocation[index], category_id)
                created.append(child)
            else:
                if allocation is not None:
                    child.amount = allocation[index]
                child.category_id = category_id
                self._lock_derived(income, child)
                self._copy_parent_fields(income, child)
                child.updated_at = now
            group.append(child)
        return group, created

    # ────────────────────────────────────────────────────────────────────────
    # CREATE
    # ────────────────────────────────────────────────────────────────────────
    async def create_income(self, owner_id: uuid.UUID, draft: IncomeCreate) -> DistributionGroup:
        """Record an income and fan it out into Needs/Wants/Savings allocations."""

        async def work() -> DistributionGroup:
            description = validate_description(draft.description)
            amount = validate_amount(draft.amount)
            source = validate_client_source(draft.source)
            recipient = synthesize_income_recipient(
                description, draft.recipient.model_dump() if draft.recipient else None
            )
            currency = await self._resolve_currency(owner_id, draft.currency)

            percentages = await self.preferences.get_percentages(owner_id)
            allocation = allocate(amount, percentages)

            category_id = await self.categories.resolve_or_default(
                owner_id, draft.category_id, TransactionType.income
            )
            fields = dict(
                description=description,
                amount=amount,
                category_id=category_id,
                transaction_type=TransactionType.income,
                currency=currency,
                source=source,
                status=status_for_source(source),
                tag=draft.tag,
                notes=draft.notes,
                attachments=[a.model_dump(mode="json") for a in draft.attachments],
                parent_transaction_id=None,
                is_distribution=False,
                is_editable=True,
                **_recipient_columns(recipient),
            )
            if draft.transaction_date is not None:
                fields["transaction_date"] = draft.transaction_date
            income = self._new_transaction(owner_id, **fields)

            distributions = []
            for transaction_type, share in zip(ALLOCATION_TYPES, allocation):
                derived_category = await self._allocation_category(owner_id, transaction_type)
                distributions.append(self._build_derived(income, transaction_type, share, derived_category))
            validate_distribution_group(income, distributions)

            # Parent first so the allocations' parent link is satisfiable at flush time
            await stage_transactions(self.db, [income])
            await stage_transactions(self.db, distributions)
            return DistributionGroup(income, distributions)

        group = await self._atomic(work)
        logger.info(
            f"Income {group.income.id} of {group.income.amount} {group.income.currency} recorded for user {owner_id}; "
            f"allocated {'/'.join(str(d.amount) for d in group.distributions)}"
        )
        return group

    async def create_expense(
        self,
        owner_id: uuid.UUID,
        draft: ExpenseCreate,
        transaction_type: Optional[TransactionType] = None,
    ) -> Transaction:
        """Record a standalone Needs/Wants/Savings transaction. No cascading."""
        transaction_type = transaction_type or draft.transaction_type
        if transaction_type not in ALLOCATION_TYPES:
            raise ValidationError(
                "Expense type must be one of Needs, Wants or Savings",
                field="transaction_type",
            )

        async def work() -> Transaction:
            description = validate_description(draft.description)
            amount = validate_amount(draft.amount)
            source = validate_client_source(draft.source)
            recipient = draft.recipient.model_dump() if draft.recipient else None
            columns = _recipient_columns(recipient)
            validate_recipient(transaction_type, columns["recipient_name"])
            currency = await self._resolve_currency(owner_id, draft.currency)
            category_id = await self.categories.resolve_or_default(owner_id, draft.category_id, transaction_type)

            fields = dict(
                description=description,
                amount=amount,
                category_id=category_id,
                transaction_type=transaction_type,
                currency=currency,
                source=source,
                status=status_for_source(source),
                tag=draft.tag,
                notes=draft.notes,
                attachments=[a.model_dump(mode="json") for a in draft.attachments],
                parent_transaction_id=None,
                is_distribution=False,
                is_editable=True,
                **columns,
            )
            if draft.transaction_date is not None:
                fields["transaction_date"] = draft.transaction_date
            tx = self._new_transaction(owner_id, **fields)
            validate_standalone(tx)
            await stage_transactions(self.db, [tx])
            return tx

        tx = await self._atomic(work)
        logger.info(f"{transaction_type.value} transaction {tx.id} of {tx.amount} {tx.currency} recorded for user {owner_id}")
        return tx

    # ────────────────────────────────────────────────────────────────────────
    # UPDATE
    # ────────────────────────────────────────────────────────────────────────
    async def _apply_patch(self, tx: Transaction, changes: Dict[str, Any]) -> None:
        previous_description = tx.description
        if "description" in changes:
            tx.description = validate_description(changes["description"])
        if "amount" in changes:
            tx.amount = validate_amount(changes["amount"])
        if "transaction_date" in changes:
            if changes["transaction_date"] is None:
                raise ValidationError("Transaction date cannot be cleared", field="transaction_date")
            tx.transaction_date = changes["transaction_date"]
        if "currency" in changes:
            tx.currency = validate_currency(changes["currency"])
        if "category_id" in changes:
            tx.category_id = await self.categories.resolve_or_default(
                tx.user_id, changes["category_id"], tx.transaction_type
            )
        if "recipient" in changes:
            recipient = changes["recipient"]
            if tx.is_income:
                recipient = synthesize_income_recipient(tx.description, recipient)
            for column, value in _recipient_columns(recipient).items():
                setattr(tx, column, value)
        elif tx.is_income and tx.recipient_name == previous_description != tx.description:
            # Recipient was synthesized from the old description
            tx.recipient_name = tx.description
        if "attachments" in changes:
            tx.attachments = list(changes["attachments"] or [])
        for field in _PLAIN_FIELDS:
            if field in changes:
                if field == "status" and changes[field] is None:
                    raise ValidationError("Status cannot be cleared", field="status")
                setattr(tx, field, changes[field])
        tx.updated_at = datetime.utcnow()

    @staticmethod
    def _refuse_edit(tx: Transaction) -> None:
        if tx.is_distribution or not tx.is_editable:
            raise NotEditableError(
                "This transaction cannot be directly edited because it is a system-generated "
                "distribution. Please edit the parent income transaction instead.",
                field="id",
            )

    async def check_editable(self, owner_id: uuid.UUID, transaction_id: uuid.UUID) -> None:
        """Raise NotFoundError / NotEditableError before a patch body is even parsed."""
        tx = await bounded(self._load(owner_id, transaction_id))
        self._refuse_edit(tx)

    async def update_transaction(self, owner_id: uuid.UUID, transaction_id: uuid.UUID, patch: TransactionUpdate):
        """
        Update a transaction.

        Returns a DistributionGroup when the target is an Income transaction
        (its allocations are updated in place), otherwise the updated row.
        Derived allocations are never editable directly.
        """
        changes = patch.model_dump(exclude_unset=True)
        if changes.get("attachments") is not None:
            # Stored in a JSON column
            changes["attachments"] = [a.model_dump(mode="json") for a in patch.attachments]

        async def work():
            tx = await self._load(owner_id, transaction_id)
            self._refuse_edit(tx)

            if not tx.is_income:
                await self._apply_patch(tx, changes)
                validate_standalone(tx)
                await self.db.flush()
                return tx

            children = await get_distributions_for_parent(tx.id, owner_id, self.db)
            previous_ids = [c.id for c in children]
            previous_amount = tx.amount

            await self._apply_patch(tx, changes)
            amount_changed = validate_amount(tx.amount) != validate_amount(previous_amount)

            group, created = await self._reconcile(tx, children, reallocate=amount_changed)
            validate_distribution_group(tx, group, previous_ids=previous_ids)
            if created:
                await stage_transactions(self.db, created)
            await self.db.flush()
            return DistributionGroup(tx, group)

        result = await self._atomic(work)
        if isinstance(result, DistributionGroup):
            logger.info(
                f"Income {result.income.id} updated for user {owner_id}; allocations now "
                f"{'/'.join(str(d.amount) for d in result.distributions)}"
            )
        else:
            logger.info(f"Transaction {result.id} updated for user {owner_id}")
        return result

    # ────────────────────────────────────────────────────────────────────────
    # DELETE
    # ────────────────────────────────────────────────────────────────────────
    async def delete_transaction(self, owner_id: uuid.UUID, transaction_id: uuid.UUID) -> None:
        """Delete a transaction; deleting an income removes its allocations with it."""

        async def work() -> int:
            tx = await self._load(owner_id, transaction_id)
            if tx.is_distribution or not tx.is_editable:
                raise NotDeletableError(
                    "This transaction cannot be directly deleted because it is a system-generated "
                    "distribution. Please delete the parent income transaction instead.",
                    field="id",
                )
            if tx.is_income:
                return await delete_distribution_group(tx.id, owner_id, self.db)
            await delete_transaction(tx, self.db)
            return 1

        removed = await self._atomic(work)
        logger.info(f"Deleted transaction {transaction_id} for user {owner_id} ({removed} row(s))")

    # ────────────────────────────────────────────────────────────────────────
    # READ
    # ────────────────────────────────────────────────────────────────────────
    async def _complete_group(self, income: Transaction) -> DistributionGroup:
        children = await get_distributions_for_parent(income.id, income.user_id, self.db)
        if {c.transaction_type for c in children} >= set(ALLOCATION_TYPES):
            ordered = sorted(children, key=lambda c: ALLOCATION_TYPES.index(c.transaction_type))
            return DistributionGroup(income, ordered)

        group, created = await self._reconcile(income, children, reallocate=True)
        validate_distribution_group(income, group, previous_ids=[c.id for c in children])
        await stage_transactions(self.db, created)
        return DistributionGroup(income, group)

    async def get_transaction(self, owner_id: uuid.UUID, transaction_id: uuid.UUID) -> Transaction:
        async def work() -> Transaction:
            tx = await self._load(owner_id, transaction_id)
            if tx.is_income and not tx.is_distribution:
                await self._complete_group(tx)
            return tx

        return await self._atomic(work)

    async def get_distribution_group(self, owner_id: uuid.UUID, income_id: uuid.UUID) -> DistributionGroup:
        async def work() -> DistributionGroup:
            tx = await self._load(owner_id, income_id)
            if not tx.is_income or tx.is_distribution:
                raise NotFoundError("Income transaction not found", field="id")
            return await self._complete_group(tx)

        return await self._atomic(work)

    async def list_transactions(
        self, owner_id: uuid.UUID, filters: Optional[TransactionFilters] = None
    ) -> List[Transaction]:
        return await bounded(get_transactions_for_user(owner_id, self.db, filters))

    async def suggest_recipients(self, owner_id: uuid.UUID, limit: Optional[int] = None) -> List[Dict]:
        """Recipients from the user's recent transactions, most frequent first."""
        window = limit or settings.RECIPIENT_SUGGESTION_WINDOW
        recent = await bounded(get_recent_with_recipient(owner_id, self.db, window))
        return aggregate_recipients(recent)

    # ────────────────────────────────────────────────────────────────────────
    # AUDIT
    # ────────────────────────────────────────────────────────────────────────
    async def audit_distributions(
        self, owner_id: Optional[uuid.UUID] = None, repair: bool = False
    ) -> List[AuditFinding]:
        """
        Check every income group against the ledger invariants. With
        ``repair`` each broken group is rebuilt from the current
        percentages in its own commit.
        """
        incomes = await bounded(get_income_transactions(self.db, owner_id))
        # A rolled back repair expires every loaded row, so walk by id
        targets = [(income.id, income.user_id) for income in incomes]
        findings: List[AuditFinding] = []
        for income_id, user_id in targets:
            income = await bounded(get_transaction_by_id(income_id, user_id, self.db))
            if income is None:
                continue
            children = await bounded(get_distributions_for_parent(income_id, user_id, self.db))
            try:
                validate_distribution_group(income, children)
                continue
            except ValidationError as e:
                problem = e.detail

            repaired = False
            if repair:
                async def work(income=income, children=children) -> None:
                    group, created = await self._reconcile(income, children, reallocate=True)
                    validate_distribution_group(income, group, previous_ids=[c.id for c in children])
                    await stage_transactions(self.db, created)

                try:
                    await self._atomic(work)
                    repaired = True
                    logger.warning(f"Repaired distribution group of income {income_id} ({problem})")
                except LedgerError as e:
                    logger.error(f"Could not repair distribution group of income {income_id}: {e.detail}")
                    problem = f"{problem}; repair failed: {e.detail}"
            findings.append(AuditFinding(income_id, user_id, problem, repaired))
        return findings
