# app/api/v1/routes/users.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from app.core.auth import User, UserRead, UserUpdate
from app.core.database import get_async_session
from app.core.db_utils import bounded
from app.api.deps import get_current_user
from app.schemas.user import BudgetPreferences
from app.services.budget import DatabaseBudgetPreferenceProvider
from app.utils.distribution import BudgetPercentages
from app.utils.validation import validate_currency

router = APIRouter(tags=["User Management"])

# 1) GET /users/me
@router.get("/me", response_model=UserRead)
async def read_own_profile(
    user: User = Depends(get_current_user)
):
    """Get current user's profile"""
    return user

# 2) PATCH /users/me
@router.patch("/me", response_model=UserRead)
async def update_own_profile(
    user_update: UserUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Update the profile fields this service owns (name, preferred currency)"""
    update_dict = user_update.model_dump(exclude_unset=True, include={"full_name", "preferred_currency"})
    if not update_dict:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields provided for update"
        )
    if "preferred_currency" in update_dict:
        update_dict["preferred_currency"] = validate_currency(update_dict["preferred_currency"])

    try:
        await db.execute(
            update(User)
            .where(User.id == user.id)
            .values(**update_dict)
        )
        await bounded(db.commit())
    except SQLAlchemyError as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database error occurred while updating profile: {str(e)}"
        )

    result = await db.execute(
        select(User).where(User.id == user.id).execution_options(populate_existing=True)
    )
    return result.scalars().first()

# 3) GET /users/me/budget-preferences
@router.get("/me/budget-preferences", response_model=BudgetPreferences)
async def read_budget_preferences(
    user: User = Depends(get_current_user),
):
    """Current needs/wants/savings split used for new income distributions"""
    return BudgetPreferences(
        needs=user.budget_needs_percentage,
        wants=user.budget_wants_percentage,
        savings=user.budget_savings_percentage,
    )

# 4) PUT /users/me/budget-preferences
@router.put("/me/budget-preferences", response_model=BudgetPreferences)
async def update_budget_preferences(
    preferences: BudgetPreferences,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Replace the split. It must sum to 100; existing distributions keep their
    amounts until their income is edited.
    """
    provider = DatabaseBudgetPreferenceProvider(db)
    try:
        pct = await provider.set_percentages(
            user.id, BudgetPercentages(preferences.needs, preferences.wants, preferences.savings)
        )
        await bounded(db.commit())
    except Exception:
        await db.rollback()
        raise
    return BudgetPreferences(needs=pct.needs, wants=pct.wants, savings=pct.savings)
