# app/services/budget.py
"""
Collaborators the distribution engine consumes: the user's budget
percentages and the category fallback.
"""
import logging
import uuid
from typing import Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import User
from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.crud.category import get_category_by_id, get_or_create_default_category
from app.models.transaction import TransactionType
from app.utils.distribution import BudgetPercentages
from app.utils.validation import validate_percentages

logger = logging.getLogger(__name__)


class BudgetPreferenceProvider(Protocol):
    async def get_percentages(self, owner_id: uuid.UUID) -> BudgetPercentages:
        ...

    async def get_preferred_currency(self, owner_id: uuid.UUID) -> str:
        ...


class CategoryResolver(Protocol):
    async def resolve_or_default(
        self,
        owner_id: uuid.UUID,
        category_id: Optional[uuid.UUID],
        transaction_type: TransactionType,
    ) -> uuid.UUID:
        ...


class DatabaseBudgetPreferenceProvider:
    """Reads the split stored on the user row, inside the caller's DB transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_user_row(self, owner_id: uuid.UUID, lock: bool = False):
        q = select(
            User.budget_needs_percentage,
            User.budget_wants_percentage,
            User.budget_savings_percentage,
            User.preferred_currency,
        ).where(User.id == owner_id)
        if lock:
            # Serialises recompute against a concurrent preference edit
            q = q.with_for_update()
        row = (await self.db.execute(q)).first()
        if row is None:
            raise NotFoundError("User not found", field="owner_id")
        return row

    async def get_percentages(self, owner_id: uuid.UUID) -> BudgetPercentages:
        row = await self._get_user_row(owner_id, lock=True)
        return validate_percentages({
            "needs": row.budget_needs_percentage,
            "wants": row.budget_wants_percentage,
            "savings": row.budget_savings_percentage,
        })

    async def get_preferred_currency(self, owner_id: uuid.UUID) -> str:
        row = await self._get_user_row(owner_id)
        return row.preferred_currency or settings.DEFAULT_CURRENCY

    async def set_percentages(self, owner_id: uuid.UUID, percentages: BudgetPercentages) -> BudgetPercentages:
        """Stage a new split for the user; the caller commits."""
        pct = validate_percentages(percentages)
        result = await self.db.execute(
            update(User)
            .where(User.id == owner_id)
            .values(
                budget_needs_percentage=pct.needs,
                budget_wants_percentage=pct.wants,
                budget_savings_percentage=pct.savings,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("User not found", field="owner_id")
        logger.info(f"Budget preferences for user {owner_id} set to {pct.needs}/{pct.wants}/{pct.savings}")
        return pct


class DatabaseCategoryResolver:
    """Falls back to the user's built-in category when the given one is missing or foreign."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_or_default(
        self,
        owner_id: uuid.UUID,
        category_id: Optional[uuid.UUID],
        transaction_type: TransactionType,
    ) -> uuid.UUID:
        if category_id is not None:
            category = await get_category_by_id(category_id, owner_id, self.db)
            if category is not None:
                return category.id
            logger.info(
                f"Category {category_id} not found for user {owner_id}; using default {transaction_type.value} category"
            )

        category = await get_or_create_default_category(owner_id, transaction_type, self.db)
        return category.id
