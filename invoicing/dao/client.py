"""
Client Data Access Object.

WHAT: Database operations for the Client model.
"""

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.dao.base import BaseDAO
from invoicing.models.client import Client
from invoicing.models.invoice import Invoice


class ClientDAO(BaseDAO[Client]):
    """Data Access Object for Client model."""

    def __init__(self, session: AsyncSession):
        """
        Initialize ClientDAO.

        Args:
            session: Async database session
        """
        super().__init__(Client, session)

    async def count_invoices(self, client_id: int) -> int:
        """
        Count invoices billed to a client.

        WHY: A client that still owns invoices cannot be deleted, since
        invoices are financial records.

        Args:
            client_id: Client ID

        Returns:
            Number of invoices for the client
        """
        result = await self.session.execute(
            select(func.count(Invoice.id)).where(Invoice.client_id == client_id)
        )
        return result.scalar_one()
