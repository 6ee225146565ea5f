# app/models/user.py
# User lives in core/auth.py (fastapi-users model). Importing this module
# registers every mapped table on Base.metadata, for create_all and Alembic.

from app.core.auth import User
from app.models.category import Category
from app.models.transaction import Transaction

__all__ = ["User", "Category", "Transaction"]
