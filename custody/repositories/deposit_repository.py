"""
Deposit repository.

Data access layer for Deposit model.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from custody.models.deposit import Deposit
from custody.models.enums import DepositStatus
from custody.repositories.base import BaseRepository


class DepositRepository(BaseRepository[Deposit]):
    """Deposit repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize deposit repository."""
        super().__init__(Deposit, session)

    async def get_by_tx_reference(
        self, tx_reference: str
    ) -> Deposit | None:
        """
        Get deposit by transaction reference.

        Args:
            tx_reference: Chain transaction id

        Returns:
            Deposit or None
        """
        deposits = await self.find_by(tx_reference=tx_reference)
        return deposits[0] if deposits else None

    async def is_reference_credited(self, tx_reference: str) -> bool:
        """
        Check whether a confirmed deposit already holds this reference.

        Args:
            tx_reference: Chain transaction id

        Returns:
            True if credited
        """
        return await self.exists(
            tx_reference=tx_reference,
            status=DepositStatus.CONFIRMED.value,
        )
