# app/crud/transaction.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import delete, desc, func, or_
from app.models.transaction import Transaction, TransactionType
from typing import Dict, List, Optional, Sequence, Tuple
import uuid
from app.schemas.transaction import TransactionFilters

# Store-level helpers. Nothing in here commits: the distribution engine
# owns the unit of work so a whole write set lands in a single commit.

async def get_transaction_by_id(transaction_id: uuid.UUID, user_id: uuid.UUID, db: AsyncSession) -> Optional[Transaction]:
    result = await db.execute(
        select(Transaction).where(Transaction.id == transaction_id, Transaction.user_id == user_id)
    )
    return result.scalar_one_or_none()

async def get_distributions_for_parent(parent_id: uuid.UUID, user_id: uuid.UUID, db: AsyncSession) -> List[Transaction]:
    result = await db.execute(
        select(Transaction)
        .where(
            Transaction.parent_transaction_id == parent_id,
            Transaction.user_id == user_id,
        )
        .with_for_update()
    )
    return list(result.scalars().all())

async def get_income_transactions(db: AsyncSession, user_id: Optional[uuid.UUID] = None) -> List[Transaction]:
    """Every non-derived Income row, optionally for one user (used by the consistency audit)."""
    q = select(Transaction).where(
        Transaction.transaction_type == TransactionType.income,
        Transaction.is_distribution.is_(False),
    )
    if user_id is not None:
        q = q.where(Transaction.user_id == user_id)
    result = await db.execute(q.order_by(Transaction.user_id, Transaction.transaction_date))
    return list(result.scalars().all())

async def get_transactions_for_user(
    user_id: uuid.UUID,
    db: AsyncSession,
    filters: Optional[TransactionFilters] = None,
) -> List[Transaction]:
    filters = filters or TransactionFilters()
    q = select(Transaction).where(Transaction.user_id == user_id)

    if filters.transaction_type is not None:
        q = q.where(Transaction.transaction_type == filters.transaction_type)
    if filters.category_id is not None:
        q = q.where(Transaction.category_id == filters.category_id)
    if filters.tag:
        q = q.where(Transaction.tag == filters.tag)
    if filters.source is not None:
        q = q.where(Transaction.source == filters.source)
    if filters.status is not None:
        q = q.where(Transaction.status == filters.status)
    if filters.start_date is not None:
        q = q.where(Transaction.transaction_date >= filters.start_date)
    if filters.end_date is not None:
        q = q.where(Transaction.transaction_date <= filters.end_date)
    if not filters.include_distributions:
        q = q.where(Transaction.is_distribution.is_(False))
    if filters.search:
        pattern = f"%{filters.search.lower()}%"
        q = q.where(
            or_(
                func.lower(Transaction.description).like(pattern),
                func.lower(Transaction.recipient_name).like(pattern),
            )
        )

    q = (
        q.order_by(desc(Transaction.transaction_date), desc(Transaction.created_at))
        .offset(filters.skip)
        .limit(filters.limit)
    )
    result = await db.execute(q)
    return list(result.scalars().all())

async def get_recent_with_recipient(user_id: uuid.UUID, db: AsyncSession, limit: int = 20) -> List[Transaction]:
    """Most recent user-entered transactions that carry a recipient name."""
    result = await db.execute(
        select(Transaction)
        .where(
            Transaction.user_id == user_id,
            Transaction.recipient_name.is_not(None),
            Transaction.recipient_name != "",
            Transaction.is_distribution.is_(False),
        )
        .order_by(desc(Transaction.transaction_date))
        .limit(limit)
    )
    return list(result.scalars().all())

async def stage_transactions(db: AsyncSession, transactions: Sequence[Transaction]) -> None:
    db.add_all(list(transactions))
    await db.flush()

async def delete_distribution_group(parent_id: uuid.UUID, user_id: uuid.UUID, db: AsyncSession) -> int:
    """Delete an income row and its allocations with a single statement."""
    result = await db.execute(
        delete(Transaction)
        .where(
            Transaction.user_id == user_id,
            or_(
                Transaction.id == parent_id,
                Transaction.parent_transaction_id == parent_id,
            ),
        )
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount

async def delete_transaction(tx: Transaction, db: AsyncSession) -> None:
    await db.delete(tx)
    await db.flush()

def aggregate_recipients(transactions: Sequence[Transaction]) -> List[Dict]:
    """Unique (name, kind) recipients with their frequency, most frequent first."""
    recipients: Dict[Tuple[str, Optional[str]], Dict] = {}
    for tx in transactions:
        if not tx.recipient_name:
            continue
        kind = getattr(tx.recipient_kind, "value", tx.recipient_kind)
        key = (tx.recipient_name, kind)
        if key in recipients:
            recipients[key]["frequency"] += 1
        else:
            recipients[key] = {
                "name": tx.recipient_name,
                "kind": kind,
                "details": tx.recipient_details or "",
                "frequency": 1,
            }
    return sorted(recipients.values(), key=lambda r: r["frequency"], reverse=True)
