"""
Withdrawal repository.

Data access layer for Withdrawal model.
"""

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from custody.models.withdrawal import Withdrawal
from custody.repositories.base import BaseRepository


class WithdrawalRepository(BaseRepository[Withdrawal]):
    """Withdrawal repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize withdrawal repository."""
        super().__init__(Withdrawal, session)

    async def claim_attempt(
        self,
        id: int,
        expected_status: str,
        previous_reference: str | None,
        reference: str,
    ) -> bool:
        """
        Record a signed transaction as the withdrawal's current attempt.

        Conditional on both status and the previous attempt, so of two
        passes holding the same snapshot only one can claim the record.

        Args:
            id: Withdrawal ID
            expected_status: Status the row must currently have
            previous_reference: Attempt the caller saw (None for none)
            reference: Hash of the transaction about to be sent

        Returns:
            True if this caller now owns the attempt
        """
        if previous_reference is None:
            attempt_matches = Withdrawal.last_attempt_reference.is_(None)
        else:
            attempt_matches = Withdrawal.last_attempt_reference == previous_reference

        stmt = (
            update(Withdrawal)
            .where(Withdrawal.id == id)
            .where(Withdrawal.status == expected_status)
            .where(attempt_matches)
            .values(last_attempt_reference=reference)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

