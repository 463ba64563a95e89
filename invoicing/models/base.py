"""
Base model class and mixins for all SQLAlchemy models.

WHY: Users and clients share the same integer primary key and timestamp
columns; the mixins keep those definitions in one place.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.orm import DeclarativeBase


# Largest value an INTEGER (int4) primary key can hold.
MAX_ID = 2**31 - 1


class Base(DeclarativeBase):
    """Declarative base shared by every model (and by Alembic autogenerate)."""

    pass


class TimestampMixin:
    """Adds created_at/updated_at columns maintained by SQLAlchemy."""

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class PrimaryKeyMixin:
    """Adds an auto-incrementing integer primary key."""

    id = Column(Integer, primary_key=True, index=True)
