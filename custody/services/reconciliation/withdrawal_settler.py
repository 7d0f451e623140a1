"""
Withdrawal settlement.

Broadcasts approved withdrawals from the hot wallet and records their
fate. Each approved withdrawal gets at most one broadcast per approval.
The signed transaction is claimed in the ledger before it is sent and
terminal states are written with a compare-and-swap on 'approved'.
Ambiguous outcomes leave the record approved for the next pass.
"""

from typing import Any

from custody.models.enums import LedgerEntity, WithdrawalStatus
from custody.repositories.ledger import LedgerStore
from custody.services.blockchain.amount_codec import AmountCodec
from custody.services.blockchain.chain_client import ChainClient
from custody.services.blockchain.signing import HotWalletSigner, SigningContext
from custody.utils.datetime_utils import utc_now
from custody.utils.exceptions import (
    AttemptClaimLostError,
    ConfigurationError,
    InvalidAddressError,
    InvalidAmountError,
    is_transient,
)
from custody.utils.security import mask_address, mask_tx_hash

from .base import ReconciliationService, process_concurrently
from .results import SettlementOutcome, SettlementResult, SettlementSummary


class WithdrawalSettler(ReconciliationService):
    """
    Settlement half of the engine.

    The hot wallet key is only touched inside run_pass, through a
    signing session that is closed when the pass ends.
    """

    def __init__(
        self,
        store: LedgerStore,
        chain: ChainClient,
        codec: AmountCodec,
        token_contract: str,
        signer: HotWalletSigner | None,
        concurrency: int = 1,
    ) -> None:
        """
        Initialize withdrawal settler.

        Args:
            store: Ledger store
            chain: Chain client
            codec: Token amount codec
            token_contract: Stablecoin contract address
            signer: Hot wallet signer (None means signing is not configured)
            concurrency: Withdrawals settled in parallel
        """
        super().__init__(store, chain, codec, token_contract, concurrency)
        self.signer = signer

    async def run_pass(self) -> SettlementSummary:
        """
        Settle every approved withdrawal once.

        Returns:
            Summary with checked/settled/rejected counts

        Raises:
            ConfigurationError: Signing unavailable; nothing was broadcast
        """
        if self.signer is None:
            raise ConfigurationError("Hot wallet signer is not configured")

        with self.signer.session() as signing:
            withdrawals = await self.store.list_by_status(
                LedgerEntity.WITHDRAWAL, WithdrawalStatus.APPROVED.value
            )
            self.logger.info(f"Settling {len(withdrawals)} approved withdrawal(s)")

            async def worker(withdrawal: Any) -> SettlementResult:
                return await self._settle_isolated(withdrawal, signing)

            results = await process_concurrently(withdrawals, worker, self.concurrency)

        summary = SettlementSummary.from_results(results)
        self.logger.info(
            f"Withdrawal settlement complete: "
            f"{summary.checked} checked, "
            f"{summary.settled} sent, "
            f"{summary.rejected} rejected, "
            f"{summary.deferred} deferred, "
            f"{summary.errors} errors"
        )
        return summary

    async def _settle_isolated(
        self, withdrawal: Any, signing: SigningContext
    ) -> SettlementResult:
        """Settle one withdrawal; failures never escape into the batch."""
        try:
            return await self.settle_withdrawal(withdrawal, signing)
        except Exception as e:
            if is_transient(e):
                self.logger.warning(
                    f"Withdrawal {withdrawal.id}: transient failure, stays approved: {e}"
                )
                return SettlementResult(
                    withdrawal.id, SettlementOutcome.DEFERRED, reason=str(e)
                )
            self.logger.exception(f"Withdrawal {withdrawal.id}: unexpected error: {e}")
            return SettlementResult(withdrawal.id, SettlementOutcome.ERROR, reason=str(e))

    async def settle_withdrawal(
        self, withdrawal: Any, signing: SigningContext
    ) -> SettlementResult:
        """
        Attempt exactly one settlement action for an approved withdrawal.

        The signed transaction is claimed in the ledger before it is sent.
        A pass that loses the claim sends nothing.

        Args:
            withdrawal: Withdrawal record from the pass snapshot
            signing: Open signing context

        Returns:
            Tagged result
        """
        current = await self.store.get(LedgerEntity.WITHDRAWAL, withdrawal.id)
        if current is None or current.status != WithdrawalStatus.APPROVED.value:
            self.logger.info(
                f"Withdrawal {withdrawal.id} no longer approved, skipping"
            )
            return SettlementResult(withdrawal.id, SettlementOutcome.SKIPPED)

        previous_reference = current.last_attempt_reference
        if previous_reference:
            resolved = await self._resolve_previous_attempt(current)
            if resolved is not None:
                return resolved

        try:
            amount_raw = self.codec.to_units(current.amount)
            if amount_raw <= 0:
                raise InvalidAmountError(f"Amount must be positive: {current.amount}")
        except (InvalidAmountError, TypeError) as e:
            return await self._reject(current, f"Invalid amount: {e}")

        if not self.chain.is_valid_address(current.to_address):
            return await self._reject(
                current, f"Invalid destination address: {current.to_address!r}"
            )

        async def claim(tx_reference: str) -> None:
            claimed = await self.store.claim_attempt(
                current.id, previous_reference, tx_reference
            )
            if not claimed:
                raise AttemptClaimLostError(
                    f"Withdrawal {current.id} claimed by another pass"
                )

        try:
            result = await self.chain.broadcast_transfer(
                self.token_contract,
                current.to_address,
                amount_raw,
                signing,
                before_send=claim,
            )
        except AttemptClaimLostError as e:
            self.logger.warning(f"{e}, nothing sent")
            return SettlementResult(withdrawal.id, SettlementOutcome.SKIPPED, reason=str(e))
        except InvalidAddressError as e:
            return await self._reject(current, str(e))

        if result.accepted:
            return await self._finalize(
                current,
                WithdrawalStatus.SENT,
                SettlementOutcome.SENT,
                tx_reference=result.tx_reference,
            )
        return await self._reject(current, result.error or "Broadcast refused by node")

    async def _resolve_previous_attempt(self, withdrawal: Any) -> SettlementResult | None:
        """
        Settle from an earlier broadcast whose answer was lost.

        Returns None only when the node has never heard of the earlier
        transaction, in which case a fresh broadcast proceeds.
        """
        reference = withdrawal.last_attempt_reference
        previous = await self.chain.get_transaction(reference)
        if previous is None:
            if await self.chain.is_known(reference):
                self.logger.info(
                    f"Withdrawal {withdrawal.id}: earlier attempt "
                    f"{mask_tx_hash(reference)} still pending, waiting"
                )
                return SettlementResult(
                    withdrawal.id,
                    SettlementOutcome.DEFERRED,
                    tx_reference=reference,
                    reason="earlier attempt pending",
                )
            self.logger.warning(
                f"Withdrawal {withdrawal.id}: earlier attempt "
                f"{mask_tx_hash(reference)} unknown to the node, broadcasting again"
            )
            return None

        if previous.success:
            self.logger.info(
                f"Withdrawal {withdrawal.id}: earlier attempt "
                f"{mask_tx_hash(reference)} was mined"
            )
            return await self._finalize(
                withdrawal,
                WithdrawalStatus.SENT,
                SettlementOutcome.SENT,
                tx_reference=reference,
            )
        return await self._reject(
            withdrawal, f"Earlier broadcast {reference} reverted on chain"
        )

    async def _reject(self, withdrawal: Any, reason: str) -> SettlementResult:
        self.logger.warning(f"Withdrawal {withdrawal.id} rejected: {reason}")
        return await self._finalize(
            withdrawal,
            WithdrawalStatus.REJECTED,
            SettlementOutcome.REJECTED,
            failure_reason=reason,
        )

    async def _finalize(
        self,
        withdrawal: Any,
        status: WithdrawalStatus,
        outcome: SettlementOutcome,
        tx_reference: str | None = None,
        failure_reason: str | None = None,
    ) -> SettlementResult:
        """Write a terminal status only if the record is still approved."""
        fields: dict[str, Any] = {
            "processed_at": utc_now(),
            "last_attempt_reference": None,
        }
        if tx_reference is not None:
            fields["tx_reference"] = tx_reference
        if failure_reason is not None:
            fields["failure_reason"] = failure_reason

        try:
            updated = await self.store.update_status_if_current(
                LedgerEntity.WITHDRAWAL,
                withdrawal.id,
                WithdrawalStatus.APPROVED.value,
                status.value,
                **fields,
            )
        except Exception:
            if tx_reference is not None:
                # The claimed attempt is resolved from the chain next pass
                self.logger.critical(
                    f"Withdrawal {withdrawal.id}: broadcast {tx_reference} succeeded "
                    f"but status write failed"
                )
            raise

        if not updated:
            self.logger.error(
                f"Withdrawal {withdrawal.id}: status changed concurrently, "
                f"'{status.value}' not written (tx={tx_reference})"
            )
            return SettlementResult(
                withdrawal.id,
                SettlementOutcome.CONFLICT,
                tx_reference=tx_reference,
                reason=failure_reason,
            )

        if outcome == SettlementOutcome.SENT:
            self.logger.success(
                f"Withdrawal {withdrawal.id} sent: {withdrawal.amount} USDT "
                f"to {mask_address(withdrawal.to_address)}, TX: {tx_reference}"
            )
        return SettlementResult(
            withdrawal.id, outcome, tx_reference=tx_reference, reason=failure_reason
        )
