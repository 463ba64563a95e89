"""Database package"""

from invoicing.db.session import AsyncSessionLocal, engine, get_db
from invoicing.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db"]
