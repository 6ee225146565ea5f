# app/api/v1/routes/transactions.py
from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError
from typing import Annotated, Any, Dict, List, Optional, Union
import uuid

from app.schemas.transaction import (
    DistributionGroupRead,
    ExpenseCreate,
    IncomeCreate,
    RecipientSuggestion,
    TransactionFilters,
    TransactionRead,
    TransactionUpdate,
)
from app.core.auth import User
from app.api.deps import get_current_user, get_distribution_engine
from app.services.distribution_engine import DistributionEngine, DistributionGroup

router = APIRouter(prefix="/transactions", tags=["transactions"])


def _group_read(group: DistributionGroup) -> DistributionGroupRead:
    return DistributionGroupRead(
        income=TransactionRead.model_validate(group.income),
        distributions=[TransactionRead.model_validate(d) for d in group.distributions],
    )


@router.get("", response_model=List[TransactionRead])
async def read_transactions(
    filters: Annotated[TransactionFilters, Query()],
    engine: DistributionEngine = Depends(get_distribution_engine),
    user: User = Depends(get_current_user),
):
    return await engine.list_transactions(user.id, filters)

@router.post("/income", response_model=DistributionGroupRead, status_code=status.HTTP_201_CREATED)
async def create_income_transaction(
    tx_in: IncomeCreate,
    engine: DistributionEngine = Depends(get_distribution_engine),
    user: User = Depends(get_current_user),
):
    """
    Record an income and split it into Needs, Wants and Savings allocations
    using the user's current budget percentages.
    """
    group = await engine.create_income(user.id, tx_in)
    return _group_read(group)

@router.post("/expense", response_model=TransactionRead, status_code=status.HTTP_201_CREATED)
async def create_expense_transaction(
    tx_in: ExpenseCreate,
    engine: DistributionEngine = Depends(get_distribution_engine),
    user: User = Depends(get_current_user),
):
    return await engine.create_expense(user.id, tx_in, tx_in.transaction_type)

@router.get("/recipients", response_model=List[RecipientSuggestion])
async def read_recipient_suggestions(
    limit: Optional[int] = Query(None, ge=1, le=200, description="How many recent transactions to scan"),
    engine: DistributionEngine = Depends(get_distribution_engine),
    user: User = Depends(get_current_user),
):
    """Frequent recipients from recent transactions, for auto-suggestion."""
    return await engine.suggest_recipients(user.id, limit)

@router.get("/{transaction_id}", response_model=TransactionRead)
async def read_transaction(
    transaction_id: uuid.UUID,
    engine: DistributionEngine = Depends(get_distribution_engine),
    user: User = Depends(get_current_user),
):
    return await engine.get_transaction(user.id, transaction_id)

@router.get("/{transaction_id}/distribution", response_model=DistributionGroupRead)
async def read_distribution_group(
    transaction_id: uuid.UUID,
    engine: DistributionEngine = Depends(get_distribution_engine),
    user: User = Depends(get_current_user),
):
    group = await engine.get_distribution_group(user.id, transaction_id)
    return _group_read(group)

@router.patch("/{transaction_id}", response_model=Union[DistributionGroupRead, TransactionRead])
async def update_transaction_endpoint(
    transaction_id: uuid.UUID,
    payload: Dict[str, Any] = Body(..., description="Fields to change, as in TransactionUpdate"),
    engine: DistributionEngine = Depends(get_distribution_engine),
    user: User = Depends(get_current_user),
):
    """
    Update a transaction. Editing an income returns the income together
    with its refreshed allocations; allocations themselves are read-only.
    """
    # Allocations answer 403 whatever the body holds
    await engine.check_editable(user.id, transaction_id)
    try:
        tx_in = TransactionUpdate.model_validate(payload)
    except PydanticValidationError as e:
        raise RequestValidationError(
            [{**err, "loc": ("body", *err["loc"])} for err in e.errors(include_url=False)]
        )

    result = await engine.update_transaction(user.id, transaction_id, tx_in)
    if isinstance(result, DistributionGroup):
        return _group_read(result)
    return TransactionRead.model_validate(result)

@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction_endpoint(
    transaction_id: uuid.UUID,
    engine: DistributionEngine = Depends(get_distribution_engine),
    user: User = Depends(get_current_user),
):
    await engine.delete_transaction(user.id, transaction_id)
    return None
