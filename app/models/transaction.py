# app/models/transaction.py
import enum
import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, ForeignKey, Numeric, DateTime, Boolean, Integer, Text, JSON,
    Enum, Index, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship
from app.core.database import Base


class TransactionType(str, enum.Enum):
    income = "Income"
    needs = "Needs"
    wants = "Wants"
    savings = "Savings"


# Derived allocation order; also the tie-break order for rounding remainders
ALLOCATION_TYPES = (TransactionType.needs, TransactionType.wants, TransactionType.savings)


class TransactionSource(str, enum.Enum):
    manual = "Manual"
    sms = "SMS"
    email = "Email"
    import_ = "Import"
    distribution = "Distribution"


class TransactionStatus(str, enum.Enum):
    pending = "pending"
    categorized = "categorized"
    verified = "verified"


class RecipientKind(str, enum.Enum):
    contact = "contact"
    upi = "upi"
    bank = "bank"
    merchant = "merchant"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        # At most one derived row per (parent, type): guards against double distribution
        UniqueConstraint("parent_transaction_id", "transaction_type", name="uq_transactions_parent_type"),
        Index("ix_transactions_user_date", "user_id", "transaction_date"),
        Index("ix_transactions_user_type", "user_id", "transaction_type"),
        Index("ix_transactions_user_category", "user_id", "category_id"),
        Index("ix_transactions_user_recipient", "user_id", "recipient_name"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    description = Column(String(length=255), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    category_id = Column(Uuid(as_uuid=True), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    transaction_type = Column(
        Enum(TransactionType, name="transaction_type", values_callable=_enum_values),
        nullable=False,
    )

    recipient_name = Column(String(length=255), nullable=True)
    recipient_kind = Column(
        Enum(RecipientKind, name="recipient_kind", values_callable=_enum_values),
        nullable=True,
    )
    recipient_details = Column(String(length=255), nullable=True)
    recipient_frequency = Column(Integer, nullable=False, default=1)

    transaction_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    currency = Column(String(length=3), nullable=False)
    source = Column(
        Enum(TransactionSource, name="transaction_source", values_callable=_enum_values),
        nullable=False,
        default=TransactionSource.manual,
    )
    status = Column(
        Enum(TransactionStatus, name="transaction_status", values_callable=_enum_values),
        nullable=False,
        default=TransactionStatus.categorized,
    )

    tag = Column(String(length=100), nullable=True)
    notes = Column(Text, nullable=True)
    attachments = Column(JSON, nullable=False, default=list)

    parent_transaction_id = Column(
        Uuid(as_uuid=True), ForeignKey("transactions.id", ondelete="CASCADE"), nullable=True
    )
    is_distribution = Column(Boolean, nullable=False, default=False)
    is_editable = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=None)
    updated_at = Column(DateTime, default=None)

    user = relationship("User", back_populates="transactions")
    category = relationship("Category", back_populates="transactions")

    @property
    def is_income(self) -> bool:
        return self.transaction_type == TransactionType.income

    @property
    def recipient(self):
        if not self.recipient_name:
            return None
        return {
            "name": self.recipient_name,
            "kind": self.recipient_kind,
            "details": self.recipient_details,
            "frequency": self.recipient_frequency,
        }

    def __repr__(self):
        return (
            f"<Transaction type={self.transaction_type} amount={self.amount} "
            f"date={self.transaction_date} user_id={self.user_id}>"
        )
