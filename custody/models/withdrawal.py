"""
Withdrawal model.

Represents a user request to send tokens from the hot wallet.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from custody.models.base import Base
from custody.models.enums import WithdrawalStatus
from custody.models.types import MoneyType


class Withdrawal(Base):
    """
    Withdrawal entity.

    Lifecycle: pending -> approved (external reviewer) -> sent | rejected.
    sent and rejected are terminal.
    """

    __tablename__ = "withdrawals"
    __table_args__ = (
        CheckConstraint(
            'amount > 0', name='check_withdrawal_amount_positive'
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'sent', 'rejected')",
            name='check_withdrawal_status'
        ),
        Index('idx_withdrawal_status', 'status'),
    )

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )

    amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False
    )
    to_address: Mapped[str] = mapped_column(
        String(255), nullable=False
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WithdrawalStatus.PENDING.value
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Set when sent
    tx_reference: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True
    )
    # Hash of a signed broadcast whose outcome was not confirmed
    last_attempt_reference: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    # Set when rejected
    failure_reason: Mapped[str | None] = mapped_column(
        Text, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Withdrawal(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
