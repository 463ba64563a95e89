"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from invoicing.models.base import Base, TimestampMixin, PrimaryKeyMixin
from invoicing.models.user import User, UserRole
from invoicing.models.client import Client
from invoicing.models.invoice import Invoice, InvoiceStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "User",
    "UserRole",
    "Client",
    "Invoice",
    "InvoiceStatus",
]
