"""
User model.

WHY: Users are the staff members who manage clients and invoices. Their
role determines whether they can perform admin-only actions (editing and
deleting invoices, managing other users).
"""

import enum
from sqlalchemy import Column, String, Enum, Boolean, DateTime

from invoicing.models.base import Base, TimestampMixin, PrimaryKeyMixin


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    WHY: Enum ensures only valid roles can be assigned, making role-based
    access control (RBAC) more reliable.
    """

    ADMIN = "ADMIN"  # Full access, including destructive invoice operations
    STAFF = "STAFF"  # Day-to-day client and invoice management


class User(Base, PrimaryKeyMixin, TimestampMixin):
    """User model representing a staff member who signs in to the back office."""

    __tablename__ = "users"

    name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    # WHY: Default STAFF role ensures least-privilege access (A01: Broken Access Control)
    role = Column(
        Enum(UserRole, name="userrole", native_enum=False, length=20),
        nullable=False,
        default=UserRole.STAFF,
    )

    # WHY: is_active allows disabling accounts without deleting them
    is_active = Column(Boolean, default=True, nullable=False)

    # WHY: Only a SHA-256 digest of the emailed reset token is stored, so a
    # leaked row cannot be replayed as a reset link
    reset_password_token_hash = Column(String(64), nullable=True, index=True)
    reset_password_expires = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
