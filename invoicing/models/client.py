"""
Client model.

WHY: Clients are the billed parties. Each client owns zero or more
invoices and supplies the display data (name, company, email) shown on
invoices and the public payment page.
"""

from typing import List, TYPE_CHECKING
from sqlalchemy import Column, String, Text
from sqlalchemy.orm import relationship, Mapped

from invoicing.models.base import Base, TimestampMixin, PrimaryKeyMixin

if TYPE_CHECKING:
    from invoicing.models.invoice import Invoice


class Client(Base, PrimaryKeyMixin, TimestampMixin):
    """Client model representing a customer who receives invoices."""

    __tablename__ = "clients"

    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=False)
    address = Column(Text, nullable=False)
    company_name = Column(String(255), nullable=True)

    # WHY: No delete cascade. Invoices are financial records, so a client
    # with invoices cannot be removed (enforced in the API).
    invoices: Mapped[List["Invoice"]] = relationship(
        "Invoice",
        back_populates="client",
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name={self.name})>"
