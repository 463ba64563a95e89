"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from invoicing.dao.base import BaseDAO
from invoicing.dao.user import UserDAO
from invoicing.dao.client import ClientDAO
from invoicing.dao.invoice import InvoiceDAO

__all__ = [
    "BaseDAO",
    "UserDAO",
    "ClientDAO",
    "InvoiceDAO",
]
