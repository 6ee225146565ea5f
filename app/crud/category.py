# app/crud/category.py
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
from app.models.category import Category
from app.models.transaction import TransactionType
from typing import Dict, Optional
import uuid

# Built-in category each transaction type falls back to
DEFAULT_CATEGORIES: Dict[TransactionType, dict] = {
    TransactionType.income: {"name": "Salary", "icon": "pi pi-money-bill", "color": "#4CAF50"},
    TransactionType.needs: {"name": "Needs", "icon": "pi pi-home", "color": "#2196F3"},
    TransactionType.wants: {"name": "Wants", "icon": "pi pi-shopping-cart", "color": "#FF9800"},
    TransactionType.savings: {"name": "Savings", "icon": "pi pi-wallet", "color": "#9C27B0"},
}

async def get_category_by_id(category_id: uuid.UUID, user_id: uuid.UUID, db: AsyncSession) -> Optional[Category]:
    result = await db.execute(
        select(Category).where(Category.id == category_id, Category.user_id == user_id)
    )
    return result.scalar_one_or_none()

async def get_category_by_name_for_user(
    name: str, user_id: uuid.UUID, db: AsyncSession, category_type: Optional[TransactionType] = None
) -> Optional[Category]:
    """Case-insensitive lookup of a category by name for a given user."""
    q = select(Category).where(
        Category.user_id == user_id,
        func.lower(Category.name) == func.lower(name),
    )
    if category_type is not None:
        q = q.where(Category.type == category_type)
    result = await db.execute(q.limit(1))
    return result.scalar_one_or_none()

async def get_or_create_default_category(
    user_id: uuid.UUID, transaction_type: TransactionType, db: AsyncSession
) -> Category:
    """Find the user's built-in category for ``transaction_type``, staging it if missing."""
    defaults = DEFAULT_CATEGORIES[transaction_type]
    existing = await get_category_by_name_for_user(defaults["name"], user_id, db, transaction_type)
    if existing is not None:
        return existing

    now = datetime.utcnow()
    category = Category(
        id=uuid.uuid4(),
        user_id=user_id,
        type=transaction_type,
        is_custom=False,
        created_at=now,
        updated_at=now,
        **defaults,
    )
    db.add(category)
    await db.flush()
    return category
