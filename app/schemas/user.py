# app/schemas/user.py
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field


class BudgetPreferences(BaseModel):
    """Needs/wants/savings split in percent. The sum is checked by the ledger validator."""
    model_config = ConfigDict(from_attributes=True)

    needs: Decimal = Field(..., ge=0, le=100, max_digits=5, decimal_places=2)
    wants: Decimal = Field(..., ge=0, le=100, max_digits=5, decimal_places=2)
    savings: Decimal = Field(..., ge=0, le=100, max_digits=5, decimal_places=2)
