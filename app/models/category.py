# app/models/category.py
import uuid
from sqlalchemy import Column, String, ForeignKey, Boolean, DateTime, Enum, Uuid
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.transaction import TransactionType, _enum_values

class Category(Base):
    __tablename__ = "categories"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(length=100), nullable=False)
    # Which side of the 50/30/20 split this category belongs to
    type = Column(
        Enum(TransactionType, name="category_type", values_callable=_enum_values),
        nullable=False,
    )
    icon = Column(String(length=50), nullable=True)
    color = Column(String(length=20), nullable=True)
    is_custom = Column(Boolean(), default=True)  # False for built-in defaults (Salary, etc.)

    created_at = Column(DateTime, default=None)
    updated_at = Column(DateTime, default=None)

    user = relationship("User", back_populates="categories")
    transactions = relationship("Transaction", back_populates="category")

    def __repr__(self):
        return f"<Category name={self.name} type={self.type} user_id={self.user_id}>"
