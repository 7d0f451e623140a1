"""
Deposit model.

Represents a user claim that a chain transfer was sent to the hot wallet.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from custody.models.base import Base
from custody.models.enums import DepositStatus
from custody.models.types import MoneyType


class Deposit(Base):
    """
    Deposit entity.

    Attributes:
        id: Primary key
        user_id: Owning user (identity lives outside this service)
        tx_reference: Chain transaction id supplied by the user
        amount: Claimed amount in token units (Decimal)
        status: pending / confirmed
        confirmed_at: Set once, on confirmation
        last_check_outcome: Result of the most recent verification attempt
        last_checked_at: When that attempt ran
        created_at: Submission time
    """

    __tablename__ = "deposits"
    __table_args__ = (
        CheckConstraint(
            'amount > 0', name='check_deposit_amount_positive'
        ),
        CheckConstraint(
            "status IN ('pending', 'confirmed')",
            name='check_deposit_status'
        ),
        Index('idx_deposit_status', 'status'),
    )

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )

    # Blockchain data
    tx_reference: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )
    amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DepositStatus.PENDING.value
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Operator visibility: not_found, awaiting_confirmations, mismatch:<reason>, error:<kind>
    last_check_outcome: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    last_checked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Deposit(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
