"""
Deposit verification.

Matches pending deposit claims against the chain. A deposit is confirmed
only when its referenced transaction succeeded and carries a Transfer of
the configured token, to the hot wallet, in exactly the claimed amount.
Anything else leaves it pending.
"""

from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from custody.models.enums import DepositStatus, LedgerEntity
from custody.repositories.ledger import LedgerStore
from custody.services.blockchain.amount_codec import AmountCodec
from custody.services.blockchain.chain_client import ChainClient, TransferEvent
from custody.utils.datetime_utils import utc_now
from custody.utils.exceptions import MalformedChainDataError, is_transient
from custody.utils.security import mask_tx_hash

from .base import ReconciliationService, process_concurrently
from .results import DepositCheck, DepositOutcome, MismatchReason, VerificationSummary


class DepositVerifier(ReconciliationService):
    """
    Reconciliation half of the engine.

    Never receives signing material.
    """

    def __init__(
        self,
        store: LedgerStore,
        chain: ChainClient,
        codec: AmountCodec,
        token_contract: str,
        hot_wallet_address: str,
        min_confirmations: int = 0,
        concurrency: int = 1,
    ) -> None:
        """
        Initialize deposit verifier.

        Args:
            store: Ledger store
            chain: Chain client
            codec: Token amount codec
            token_contract: Stablecoin contract address
            hot_wallet_address: Address deposits must be sent to
            min_confirmations: Blocks required before confirming (0 disables)
            concurrency: Deposits checked in parallel
        """
        super().__init__(store, chain, codec, token_contract, concurrency)
        self.hot_wallet_address = chain.canonical_address(hot_wallet_address)
        self.min_confirmations = min_confirmations

    async def run_pass(self) -> VerificationSummary:
        """
        Verify every pending deposit once.

        Returns:
            Summary with checked/confirmed counts and outcome breakdown
        """
        deposits = await self.store.list_by_status(
            LedgerEntity.DEPOSIT, DepositStatus.PENDING.value
        )
        self.logger.info(f"Verifying {len(deposits)} pending deposit(s)")

        checks = await process_concurrently(deposits, self._verify_isolated, self.concurrency)
        summary = VerificationSummary.from_checks(checks)

        self.logger.info(
            f"Deposit verification complete: "
            f"{summary.checked} checked, "
            f"{summary.confirmed} confirmed, "
            f"{summary.not_found} not found, "
            f"{summary.mismatched} mismatched, "
            f"{summary.errors} errors"
        )
        return summary

    async def _verify_isolated(self, deposit: Any) -> DepositCheck:
        """Verify one deposit; failures become ERROR results."""
        try:
            check = await self.verify_deposit(deposit)
        except MalformedChainDataError as e:
            self.logger.error(f"Deposit {deposit.id}: malformed chain response: {e}")
            check = DepositCheck(deposit.id, DepositOutcome.ERROR, "malformed_response")
        except Exception as e:
            if is_transient(e):
                self.logger.warning(
                    f"Deposit {deposit.id}: transient failure, retry next pass: {e}"
                )
                check = DepositCheck(deposit.id, DepositOutcome.ERROR, "transient")
            else:
                self.logger.exception(f"Deposit {deposit.id}: unexpected error: {e}")
                check = DepositCheck(deposit.id, DepositOutcome.ERROR, "unexpected")

        if check.outcome not in (DepositOutcome.CONFIRMED, DepositOutcome.CONFLICT):
            await self._record_outcome(deposit.id, check)
        return check

    async def verify_deposit(self, deposit: Any) -> DepositCheck:
        """
        Check one deposit against the chain and confirm it on a match.

        Args:
            deposit: Pending deposit record

        Returns:
            Tagged result
        """
        reference = deposit.tx_reference

        tx = await self.chain.get_transaction(reference)
        if tx is None:
            self.logger.info(
                f"Deposit {deposit.id}: transaction {mask_tx_hash(reference)} not found yet"
            )
            return DepositCheck(deposit.id, DepositOutcome.NOT_FOUND)

        if not tx.success:
            return self._mismatch(deposit, MismatchReason.REVERTED)

        if self.min_confirmations > 0:
            confirmations = await self.chain.get_confirmations(reference)
            if confirmations < self.min_confirmations:
                self.logger.info(
                    f"Deposit {deposit.id}: {confirmations}/{self.min_confirmations} "
                    f"confirmations"
                )
                return DepositCheck(deposit.id, DepositOutcome.AWAITING_CONFIRMATIONS)

        events = self.chain.decode_transfer_events(tx)
        reason = self.match_transfer(events, deposit.amount)
        if reason is not None:
            return self._mismatch(deposit, reason)

        if await self.store.is_reference_credited(reference):
            return self._mismatch(deposit, MismatchReason.REFERENCE_ALREADY_CREDITED)

        now = utc_now()
        updated = await self.store.update_status_if_current(
            LedgerEntity.DEPOSIT,
            deposit.id,
            DepositStatus.PENDING.value,
            DepositStatus.CONFIRMED.value,
            confirmed_at=now,
            last_check_outcome=DepositOutcome.CONFIRMED.value,
            last_checked_at=now,
        )
        if not updated:
            return DepositCheck(deposit.id, DepositOutcome.CONFLICT)

        self.logger.success(
            f"Deposit {deposit.id} confirmed: {deposit.amount} USDT, "
            f"TX: {mask_tx_hash(reference)}"
        )
        return DepositCheck(deposit.id, DepositOutcome.CONFIRMED)

    def match_transfer(
        self, events: Sequence[TransferEvent], amount: Decimal
    ) -> MismatchReason | None:
        """
        Find a transfer satisfying contract, recipient and exact amount.

        Args:
            events: Decoded transfer events of the transaction
            amount: Claimed deposit amount

        Returns:
            None on a match, otherwise the most specific mismatch reason
        """
        if not events:
            return MismatchReason.NO_TRANSFER_EVENTS

        token_events = [
            e for e in events
            if self.chain.canonical_address(e.contract) == self.token_contract
        ]
        if not token_events:
            return MismatchReason.WRONG_CONTRACT

        to_hot_wallet = [
            e for e in token_events
            if self.chain.canonical_address(e.to) == self.hot_wallet_address
        ]
        if not to_hot_wallet:
            return MismatchReason.WRONG_RECIPIENT

        if any(self.codec.matches(e.amount_raw, amount) for e in to_hot_wallet):
            return None
        return MismatchReason.WRONG_AMOUNT

    def _mismatch(self, deposit: Any, reason: MismatchReason) -> DepositCheck:
        self.logger.warning(
            f"Deposit {deposit.id}: transaction {mask_tx_hash(deposit.tx_reference)} "
            f"does not match claim ({reason.value}), left pending"
        )
        return DepositCheck(deposit.id, DepositOutcome.MISMATCH, reason.value)

    async def _record_outcome(self, deposit_id: int, check: DepositCheck) -> None:
        """Store last outcome for operators; never fails the record."""
        try:
            await self.store.annotate(
                LedgerEntity.DEPOSIT,
                deposit_id,
                last_check_outcome=check.label,
                last_checked_at=utc_now(),
            )
        except Exception as e:
            self.logger.warning(f"Deposit {deposit_id}: could not record outcome: {e}")
