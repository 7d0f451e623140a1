"""
Ledger store.

The only path through which reconciliation reads and writes records.
Every status write is a single conditional update committed on its own,
so an interrupted pass leaves only final, resumable transitions.
"""

from collections.abc import Sequence
from typing import Any, Protocol

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from custody.models.enums import LedgerEntity, WithdrawalStatus
from custody.repositories.base import BaseRepository
from custody.repositories.deposit_repository import DepositRepository
from custody.repositories.withdrawal_repository import WithdrawalRepository


class LedgerStore(Protocol):
    """Record access used by the verifier and settler."""

    async def list_by_status(
        self, entity: LedgerEntity, status: str
    ) -> Sequence[Any]:
        ...

    async def get(self, entity: LedgerEntity, record_id: int) -> Any | None:
        ...

    async def update_status_if_current(
        self,
        entity: LedgerEntity,
        record_id: int,
        expected_status: str,
        new_status: str,
        **fields: Any,
    ) -> bool:
        ...

    async def annotate(
        self, entity: LedgerEntity, record_id: int, **fields: Any
    ) -> None:
        ...

    async def claim_attempt(
        self,
        record_id: int,
        previous_reference: str | None,
        reference: str,
    ) -> bool:
        ...

    async def is_reference_credited(self, tx_reference: str) -> bool:
        ...


class SqlLedgerStore:
    """
    LedgerStore backed by SQLAlchemy async sessions.

    Each call opens a short-lived session; nothing is cached between calls.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """
        Initialize store.

        Args:
            session_factory: Session maker bound to the ledger database
        """
        self._session_factory = session_factory

    @staticmethod
    def _repository(entity: LedgerEntity, session: AsyncSession) -> BaseRepository:
        if entity == LedgerEntity.DEPOSIT:
            return DepositRepository(session)
        if entity == LedgerEntity.WITHDRAWAL:
            return WithdrawalRepository(session)
        raise ValueError(f"Unknown ledger entity: {entity}")

    async def list_by_status(
        self, entity: LedgerEntity, status: str
    ) -> list[Any]:
        """
        List records of one kind in the given status.

        Args:
            entity: Record kind
            status: Status value

        Returns:
            Detached records ordered by ID
        """
        async with self._session_factory() as session:
            return await self._repository(entity, session).find_by(status=status)

    async def get(self, entity: LedgerEntity, record_id: int) -> Any | None:
        """
        Re-read a single record.

        Args:
            entity: Record kind
            record_id: Record ID

        Returns:
            Record or None
        """
        async with self._session_factory() as session:
            return await self._repository(entity, session).get_by_id(record_id)

    async def update_status_if_current(
        self,
        entity: LedgerEntity,
        record_id: int,
        expected_status: str,
        new_status: str,
        **fields: Any,
    ) -> bool:
        """
        Transition status only if it still equals expected_status.

        Args:
            entity: Record kind
            record_id: Record ID
            expected_status: Required current status
            new_status: Status to write
            **fields: Extra columns written atomically with the status

        Returns:
            False if the precondition failed (concurrent mutation)
        """
        async with self._session_factory() as session:
            repo = self._repository(entity, session)
            updated = await repo.update_if_status(
                record_id, expected_status, new_status, **fields
            )
            await session.commit()

        if not updated:
            logger.warning(
                f"{entity} {record_id}: expected status '{expected_status}' "
                f"no longer current, transition to '{new_status}' skipped"
            )
        return updated

    async def annotate(
        self, entity: LedgerEntity, record_id: int, **fields: Any
    ) -> None:
        """
        Write non-status bookkeeping columns (last check outcome, etc).

        Args:
            entity: Record kind
            record_id: Record ID
            **fields: Columns to write
        """
        async with self._session_factory() as session:
            await self._repository(entity, session).update_fields(record_id, **fields)
            await session.commit()

    async def claim_attempt(
        self,
        record_id: int,
        previous_reference: str | None,
        reference: str,
    ) -> bool:
        """
        Claim an approved withdrawal for one signed transaction.

        Committed before the transaction is sent, so a crash after the
        send still leaves the hash for the next pass to look up.

        Args:
            record_id: Withdrawal ID
            previous_reference: Attempt the caller saw on its re-read
            reference: Hash of the signed transaction

        Returns:
            False if another pass claimed or finalized the record first
        """
        async with self._session_factory() as session:
            claimed = await WithdrawalRepository(session).claim_attempt(
                record_id,
                WithdrawalStatus.APPROVED.value,
                previous_reference,
                reference,
            )
            await session.commit()

        if not claimed:
            logger.warning(f"Withdrawal {record_id}: attempt already claimed elsewhere")
        return claimed

    async def is_reference_credited(self, tx_reference: str) -> bool:
        """
        Check whether a confirmed deposit already uses this reference.

        Args:
            tx_reference: Chain transaction id

        Returns:
            True if credited
        """
        async with self._session_factory() as session:
            return await DepositRepository(session).is_reference_credited(tx_reference)
