# app/schemas/transaction.py
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from decimal import Decimal
import uuid

from app.models.transaction import (
    RecipientKind,
    TransactionSource,
    TransactionStatus,
    TransactionType,
)


class Recipient(BaseModel):
    name: str = Field(..., max_length=255)
    kind: Optional[RecipientKind] = None
    details: Optional[str] = Field(None, max_length=255)
    frequency: int = Field(1, ge=1)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        return v.strip()


class Attachment(BaseModel):
    url: str
    filename: Optional[str] = None
    type: Optional[str] = Field(None, pattern="^(receipt|invoice|image|document|other)$")
    uploaded_at: Optional[datetime] = None


class TransactionBase(BaseModel):
    description: str = Field(..., max_length=255, description="E.g. Salary for March")
    # Positivity is enforced by the ledger validator so the error carries the failing field
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    category_id: Optional[uuid.UUID] = Field(..., description="Category to file the transaction under")
    transaction_date: Optional[datetime] = Field(None, description="ISO 8601 date/time; defaults to now")
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    recipient: Optional[Recipient] = None
    tag: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)


class IncomeCreate(TransactionBase):
    source: TransactionSource = TransactionSource.manual


class ExpenseCreate(TransactionBase):
    transaction_type: TransactionType
    source: TransactionSource = TransactionSource.manual


class TransactionUpdate(BaseModel):
    """Patch body; identity fields (type, source, parent link, flags) are not patchable."""
    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = Field(None, max_length=255)
    amount: Optional[Decimal] = Field(None, max_digits=12, decimal_places=2)
    category_id: Optional[uuid.UUID] = None
    transaction_date: Optional[datetime] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    recipient: Optional[Recipient] = None
    tag: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    attachments: Optional[List[Attachment]] = None
    status: Optional[TransactionStatus] = None


class TransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    description: str
    amount: Decimal
    category_id: Optional[uuid.UUID] = None
    transaction_type: TransactionType
    recipient: Optional[Recipient] = None
    transaction_date: datetime
    currency: str
    source: TransactionSource
    status: TransactionStatus
    tag: Optional[str] = None
    notes: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)
    parent_transaction_id: Optional[uuid.UUID] = None
    is_distribution: bool
    is_editable: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DistributionGroupRead(BaseModel):
    income: TransactionRead
    distributions: List[TransactionRead]


class TransactionFilters(BaseModel):
    transaction_type: Optional[TransactionType] = None
    category_id: Optional[uuid.UUID] = None
    tag: Optional[str] = None
    source: Optional[TransactionSource] = None
    status: Optional[TransactionStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    include_distributions: bool = True
    search: Optional[str] = None
    skip: int = Field(0, ge=0)
    limit: int = Field(100, ge=1, le=500)


class RecipientSuggestion(BaseModel):
    name: str
    kind: Optional[RecipientKind] = None
    details: Optional[str] = None
    frequency: int
