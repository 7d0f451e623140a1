"""
Web3 chain client.

ChainClient implementation over an EVM-compatible JSON-RPC node using
AsyncWeb3. Reads transaction receipts, decodes token Transfer logs and
broadcasts signed token transfers.
"""

import asyncio
from typing import Any

import aiohttp
from eth_utils import is_address, is_hexstr, remove_0x_prefix, to_bytes, to_checksum_address
from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import (
    ContractLogicError,
    TransactionNotFound,
    Web3Exception,
    Web3RPCError,
)

from custody.config.constants import BLOCKCHAIN_TIMEOUT, GAS_LIMIT_MULTIPLIER
from custody.config.settings import Settings
from custody.utils.exceptions import (
    InvalidAddressError,
    MalformedChainDataError,
    TransientChainError,
)
from custody.utils.security import mask_address, mask_tx_hash

from .chain_client import BeforeSend, BroadcastResult, TransactionInfo, TransferEvent
from .core_constants import TRANSFER_EVENT_TOPIC, TRANSFER_TOPIC_COUNT, USDT_ABI
from .rpc_wrapper import with_timeout
from .signing import SigningContext

# Node responses meaning "this exact transaction is already in my pool"
_ALREADY_KNOWN_MARKERS = ("already known", "known transaction")

# Refusals that hold for this transfer no matter when it is retried.
# Anything else (rate limits, busy nodes, nonce races) is transient.
_REFUSAL_MARKERS = (
    "insufficient funds",
    "intrinsic gas too low",
    "execution reverted",
    "exceeds block gas limit",
    "invalid sender",
)


def _rpc_error_message(error: Web3RPCError) -> str:
    response = getattr(error, "rpc_response", None)
    if isinstance(response, dict):
        detail = response.get("error")
        if isinstance(detail, dict) and detail.get("message"):
            return str(detail["message"])
    return str(error)


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return to_bytes(hexstr=value)
    raise TypeError(f"Expected bytes or hex string, got {type(value).__name__}")


def _is_tx_hash(reference: str) -> bool:
    return (
        isinstance(reference, str)
        and is_hexstr(reference)
        and len(remove_0x_prefix(reference)) == 64
    )


class Web3ChainClient:
    """
    Chain client backed by AsyncWeb3.

    Features:
    - Per-call timeouts (TransientChainError on expiry)
    - Strict Transfer log decoding
    - Broadcast with ambiguous-outcome detection
    """

    def __init__(
        self,
        web3: AsyncWeb3,
        timeout: float = BLOCKCHAIN_TIMEOUT,
    ) -> None:
        """
        Initialize chain client.

        Args:
            web3: AsyncWeb3 instance
            timeout: Timeout for each node call in seconds
        """
        self.web3 = web3
        self.timeout = timeout
        self._nonce_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Web3ChainClient":
        """Build client from settings (node URL, optional API key header)."""
        request_kwargs: dict[str, Any] = {
            "timeout": aiohttp.ClientTimeout(total=settings.chain_timeout_seconds),
        }
        if settings.chain_api_key:
            request_kwargs["headers"] = {
                settings.chain_api_key_header: settings.chain_api_key,
            }

        web3 = AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                settings.chain_rpc_url,
                request_kwargs=request_kwargs,
            )
        )
        return cls(web3=web3, timeout=settings.chain_timeout_seconds)

    async def close(self) -> None:
        """Close the provider's HTTP session."""
        disconnect = getattr(self.web3.provider, "disconnect", None)
        if disconnect is None:
            return
        try:
            await disconnect()
        except Exception as e:
            logger.warning(f"Error closing chain provider: {e}")

    def is_valid_address(self, address: str) -> bool:
        """Whether address is a well-formed 20-byte hex address."""
        return isinstance(address, str) and is_address(address)

    def canonical_address(self, address: str) -> str:
        """Checksum form for valid addresses, lowercase otherwise."""
        if self.is_valid_address(address):
            return to_checksum_address(address)
        return address.lower()

    async def get_transaction(self, reference: str) -> TransactionInfo | None:
        """
        Fetch transaction receipt.

        Args:
            reference: Transaction hash

        Returns:
            TransactionInfo, or None if the node does not know the
            transaction or the reference is not a transaction hash

        Raises:
            TransientChainError: Node timeout or unavailability
            MalformedChainDataError: Receipt missing required fields
        """
        if not _is_tx_hash(reference):
            logger.warning(f"Reference {reference!r} is not a transaction hash")
            return None

        try:
            receipt = await with_timeout(
                self.web3.eth.get_transaction_receipt(reference),
                timeout=self.timeout,
                operation_name="get_transaction_receipt",
            )
        except TransactionNotFound:
            logger.debug(f"Transaction {mask_tx_hash(reference)} not found")
            return None
        except Web3Exception as e:
            raise TransientChainError(f"Receipt lookup failed: {e}") from e

        if receipt is None:
            return None

        try:
            return TransactionInfo(
                reference=reference,
                success=receipt["status"] == 1,
                block_number=receipt["blockNumber"],
                logs=tuple(receipt["logs"]),
            )
        except (KeyError, TypeError) as e:
            raise MalformedChainDataError(
                f"Malformed receipt for {mask_tx_hash(reference)}: {e}"
            ) from e

    def decode_transfer_events(self, tx: TransactionInfo) -> list[TransferEvent]:
        """
        Decode Transfer(address,address,uint256) logs.

        Logs with another signature, extra indexed topics (e.g. NFT
        transfers) or malformed data are skipped.

        Args:
            tx: Transaction info with raw logs

        Returns:
            Decoded transfer events
        """
        events: list[TransferEvent] = []

        for log in tx.logs:
            try:
                topics = [_as_bytes(t) for t in log["topics"]]
                if len(topics) != TRANSFER_TOPIC_COUNT:
                    continue
                if topics[0] != TRANSFER_EVENT_TOPIC:
                    continue

                data = _as_bytes(log["data"])
                if len(data) != 32:
                    logger.warning(
                        f"Skipping Transfer log with {len(data)}-byte data "
                        f"in {mask_tx_hash(tx.reference)}"
                    )
                    continue

                events.append(
                    TransferEvent(
                        contract=to_checksum_address(log["address"]),
                        sender=to_checksum_address(topics[1][-20:]),
                        to=to_checksum_address(topics[2][-20:]),
                        amount_raw=int.from_bytes(data, "big"),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    f"Skipping undecodable log in {mask_tx_hash(tx.reference)}: {e}"
                )

        return events

    async def get_confirmations(self, reference: str) -> int:
        """
        Confirmation depth of a mined transaction.

        Args:
            reference: Transaction hash

        Returns:
            Blocks since inclusion (1 = in the latest block), 0 if unknown
        """
        tx = await self.get_transaction(reference)
        if tx is None or tx.block_number is None:
            return 0

        try:
            latest = await with_timeout(
                self.web3.eth.block_number,
                timeout=self.timeout,
                operation_name="block_number",
            )
        except Web3Exception as e:
            raise TransientChainError(f"Block number lookup failed: {e}") from e

        return max(0, latest - tx.block_number + 1)

    async def is_known(self, reference: str) -> bool:
        """
        Whether the node has the transaction, mined or still pending.

        Args:
            reference: Transaction hash

        Returns:
            False only on a definite "not found"

        Raises:
            TransientChainError: Node could not answer
        """
        if not _is_tx_hash(reference):
            return False

        try:
            tx = await with_timeout(
                self.web3.eth.get_transaction(reference),
                timeout=self.timeout,
                operation_name="get_transaction",
            )
        except TransactionNotFound:
            return False
        except Web3Exception as e:
            raise TransientChainError(f"Transaction lookup failed: {e}") from e
        return tx is not None

    async def broadcast_transfer(
        self,
        token_contract: str,
        to_address: str,
        amount_raw: int,
        signer: SigningContext,
        before_send: BeforeSend | None = None,
    ) -> BroadcastResult:
        """
        Build, sign and submit a token transfer.

        Args:
            token_contract: Token contract address
            to_address: Recipient address
            amount_raw: Amount in token units
            signer: Open signing context of the hot wallet
            before_send: Awaited with the transaction hash after signing
                and before submission; an exception from it aborts the send

        Returns:
            BroadcastResult with accepted=True and the transaction hash, or
            accepted=False with the node's refusal reason

        Raises:
            InvalidAddressError: Recipient is malformed
            TransientChainError: No definitive answer from the node
        """
        if not self.is_valid_address(to_address):
            raise InvalidAddressError(f"Invalid destination address: {to_address!r}")

        recipient = to_checksum_address(to_address)
        contract = self.web3.eth.contract(
            address=to_checksum_address(token_contract),
            abi=USDT_ABI,
        )
        transfer_function = contract.functions.transfer(recipient, amount_raw)

        try:
            gas_estimate = await with_timeout(
                transfer_function.estimate_gas({"from": signer.address}),
                timeout=self.timeout,
                operation_name="estimate_gas",
            )
        except ContractLogicError as e:
            # Node executed the call and it reverts (e.g. insufficient token balance)
            logger.error(f"Transfer to {mask_address(recipient)} would revert: {e}")
            return BroadcastResult(accepted=False, error=f"Transfer would revert: {e}")
        except Web3Exception as e:
            raise TransientChainError(f"Gas estimation failed: {e}") from e

        # Nonce acquisition through send must not interleave between transfers
        async with self._nonce_lock:
            return await self._sign_and_send(
                transfer_function,
                int(gas_estimate * GAS_LIMIT_MULTIPLIER),
                signer,
                recipient,
                amount_raw,
                before_send,
            )

    async def _sign_and_send(
        self,
        transfer_function: Any,
        gas_limit: int,
        signer: SigningContext,
        recipient: str,
        amount_raw: int,
        before_send: BeforeSend | None,
    ) -> BroadcastResult:
        """Build with a fresh pending nonce, sign, submit."""
        try:
            nonce = await with_timeout(
                self.web3.eth.get_transaction_count(signer.address, "pending"),
                timeout=self.timeout,
                operation_name="get_transaction_count",
            )
            gas_price = await with_timeout(
                self.web3.eth.gas_price,
                timeout=self.timeout,
                operation_name="gas_price",
            )
            chain_id = await with_timeout(
                self.web3.eth.chain_id,
                timeout=self.timeout,
                operation_name="chain_id",
            )
            transaction = await with_timeout(
                transfer_function.build_transaction(
                    {
                        "from": signer.address,
                        "gas": gas_limit,
                        "gasPrice": gas_price,
                        "nonce": nonce,
                        "chainId": chain_id,
                    }
                ),
                timeout=self.timeout,
                operation_name="build_transaction",
            )
        except Web3Exception as e:
            raise TransientChainError(f"Transaction build failed: {e}") from e

        signed = signer.sign_transaction(transaction)
        tx_reference = self.web3.to_hex(signed.hash)

        if before_send is not None:
            await before_send(tx_reference)

        logger.info(
            f"Broadcasting {amount_raw} units to {mask_address(recipient)}\n"
            f"  From: {mask_address(signer.address)}\n"
            f"  Nonce: {nonce}\n"
            f"  TX: {tx_reference}"
        )

        try:
            await with_timeout(
                self.web3.eth.send_raw_transaction(signed.raw_transaction),
                timeout=self.timeout,
                operation_name="send_raw_transaction",
            )
        except TransientChainError:
            # IMPORTANT: Timeout does NOT mean the node rejected it
            if await self._node_knows(tx_reference):
                logger.warning(
                    f"Send timed out but node has {mask_tx_hash(tx_reference)} - accepted"
                )
                return BroadcastResult(accepted=True, tx_reference=tx_reference)
            raise TransientChainError(
                f"Broadcast of {mask_tx_hash(tx_reference)} timed out without an answer",
                tx_reference=tx_reference,
            )
        except Web3RPCError as e:
            return self._classify_send_error(e, tx_reference)
        except Web3Exception as e:
            raise TransientChainError(
                f"Broadcast outcome unknown: {e}", tx_reference=tx_reference
            ) from e

        return BroadcastResult(accepted=True, tx_reference=tx_reference)

    def _classify_send_error(
        self, error: Web3RPCError, tx_reference: str
    ) -> BroadcastResult:
        """
        Map a JSON-RPC error from send_raw_transaction.

        Raises:
            TransientChainError: Error says nothing final about the transfer
        """
        message = _rpc_error_message(error)
        lowered = message.lower()

        if any(marker in lowered for marker in _ALREADY_KNOWN_MARKERS):
            return BroadcastResult(accepted=True, tx_reference=tx_reference)

        if any(marker in lowered for marker in _REFUSAL_MARKERS):
            logger.error(f"Node refused transaction {mask_tx_hash(tx_reference)}: {message}")
            return BroadcastResult(accepted=False, error=message)

        logger.warning(
            f"Send of {mask_tx_hash(tx_reference)} failed without a final answer: {message}"
        )
        raise TransientChainError(
            f"Node error on broadcast: {message}", tx_reference=tx_reference
        ) from error

    async def _node_knows(self, tx_reference: str) -> bool:
        """Best-effort pool check after a send timeout."""
        try:
            return await self.is_known(tx_reference)
        except TransientChainError:
            return False
