"""
Reconciliation result types.

Every record processed in a pass produces exactly one tagged result;
pass summaries are folded from those results.
"""

from collections import Counter
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class DepositOutcome(StrEnum):
    """Result of verifying one deposit."""

    CONFIRMED = "confirmed"
    NOT_FOUND = "not_found"  # Indexer lag or unknown reference
    AWAITING_CONFIRMATIONS = "awaiting_confirmations"
    MISMATCH = "mismatch"  # Found, but does not satisfy the match
    CONFLICT = "conflict"  # Status changed under us
    ERROR = "error"  # Transient infra or malformed response


class MismatchReason(StrEnum):
    """Why a found transaction did not confirm a deposit."""

    REVERTED = "reverted"
    NO_TRANSFER_EVENTS = "no_transfer_events"
    WRONG_CONTRACT = "wrong_contract"
    WRONG_RECIPIENT = "wrong_recipient"
    WRONG_AMOUNT = "wrong_amount"
    REFERENCE_ALREADY_CREDITED = "reference_already_credited"


class SettlementOutcome(StrEnum):
    """Result of settling one withdrawal."""

    SENT = "sent"
    REJECTED = "rejected"
    DEFERRED = "deferred"  # No definitive answer, stays approved
    SKIPPED = "skipped"  # No longer approved, or claimed by another pass
    CONFLICT = "conflict"  # Status changed between broadcast and write
    ERROR = "error"


@dataclass(frozen=True)
class DepositCheck:
    """Tagged verification result for one deposit."""

    deposit_id: int
    outcome: DepositOutcome
    reason: str | None = None

    @property
    def label(self) -> str:
        """Compact form stored as the deposit's last check outcome."""
        if self.reason:
            return f"{self.outcome.value}:{self.reason}"
        return self.outcome.value


@dataclass(frozen=True)
class SettlementResult:
    """Tagged settlement result for one withdrawal."""

    withdrawal_id: int
    outcome: SettlementOutcome
    tx_reference: str | None = None
    reason: str | None = None


@dataclass
class VerificationSummary:
    """Deposit pass summary."""

    checked: int = 0
    confirmed: int = 0
    not_found: int = 0
    awaiting_confirmations: int = 0
    mismatched: int = 0
    conflicts: int = 0
    errors: int = 0

    @classmethod
    def from_checks(cls, checks: Iterable[DepositCheck]) -> "VerificationSummary":
        checks = list(checks)
        counts = Counter(check.outcome for check in checks)
        return cls(
            checked=len(checks),
            confirmed=counts[DepositOutcome.CONFIRMED],
            not_found=counts[DepositOutcome.NOT_FOUND],
            awaiting_confirmations=counts[DepositOutcome.AWAITING_CONFIRMATIONS],
            mismatched=counts[DepositOutcome.MISMATCH],
            conflicts=counts[DepositOutcome.CONFLICT],
            errors=counts[DepositOutcome.ERROR],
        )

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class SettlementSummary:
    """Withdrawal pass summary."""

    checked: int = 0
    settled: int = 0
    rejected: int = 0
    deferred: int = 0
    skipped: int = 0
    conflicts: int = 0
    errors: int = 0

    @classmethod
    def from_results(cls, results: Iterable[SettlementResult]) -> "SettlementSummary":
        results = list(results)
        counts = Counter(result.outcome for result in results)
        return cls(
            checked=len(results),
            settled=counts[SettlementOutcome.SENT],
            rejected=counts[SettlementOutcome.REJECTED],
            deferred=counts[SettlementOutcome.DEFERRED],
            skipped=counts[SettlementOutcome.SKIPPED],
            conflicts=counts[SettlementOutcome.CONFLICT],
            errors=counts[SettlementOutcome.ERROR],
        )

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class PassReport:
    """
    Outcome of one scheduled or triggered pass.

    ok is False when the pass itself failed (e.g. ConfigurationError);
    skipped is True when the same job was already running.
    """

    job: str
    ok: bool
    summary: dict[str, int] = field(default_factory=dict)
    error: str | None = None
    skipped: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def http_status(self) -> int:
        """Status code for the trigger surface."""
        if self.skipped:
            return 409
        return 200 if self.ok else 500

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": self.ok, "job": self.job, **self.summary}
        if self.skipped:
            payload["skipped"] = True
        if self.error:
            payload["error"] = self.error
        if self.started_at:
            payload["started_at"] = self.started_at.isoformat()
        if self.finished_at:
            payload["finished_at"] = self.finished_at.isoformat()
        return payload
