"""Tests for the AsyncWeb3 chain client (node mocked)."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3RPCError

from custody.services.blockchain.chain_client import TransactionInfo
from custody.services.blockchain.core_constants import TRANSFER_EVENT_TOPIC
from custody.services.blockchain.web3_client import Web3ChainClient
from custody.utils.exceptions import (
    AttemptClaimLostError,
    InvalidAddressError,
    MalformedChainDataError,
    TransientChainError,
)
from tests.fakes import DESTINATION, HOT_WALLET, OTHER_ADDRESS, USDT_CONTRACT, tx_hash


def _awaitable(value):
    """Single-use awaitable standing in for AsyncWeb3 awaitable properties."""

    async def coro():
        return value

    return coro()


def _topic(address: str) -> bytes:
    return bytes(12) + bytes.fromhex(address[2:])


def _transfer_log(to: str = HOT_WALLET, amount: int = 100_000_000, **overrides):
    log = {
        "address": USDT_CONTRACT.lower(),
        "topics": [TRANSFER_EVENT_TOPIC, _topic(OTHER_ADDRESS), _topic(to)],
        "data": amount.to_bytes(32, "big"),
    }
    log.update(overrides)
    return log


@pytest.fixture
def web3():
    """Mocked AsyncWeb3."""
    mock = MagicMock()
    mock.eth.get_transaction_receipt = AsyncMock()
    mock.eth.get_transaction = AsyncMock()
    mock.eth.get_transaction_count = AsyncMock(return_value=7)
    mock.eth.send_raw_transaction = AsyncMock()
    mock.to_hex = Web3.to_hex
    return mock


@pytest.fixture
def client(web3):
    return Web3ChainClient(web3=web3, timeout=1.0)


class TestGetTransaction:
    """Receipt lookup."""

    @pytest.mark.asyncio
    async def test_successful_receipt(self, client, web3):
        web3.eth.get_transaction_receipt.return_value = {
            "status": 1,
            "blockNumber": 100,
            "logs": [_transfer_log()],
        }

        tx = await client.get_transaction(tx_hash(1))

        assert tx.success is True
        assert tx.block_number == 100
        assert len(tx.logs) == 1

    @pytest.mark.asyncio
    async def test_reverted_receipt(self, client, web3):
        web3.eth.get_transaction_receipt.return_value = {
            "status": 0,
            "blockNumber": 100,
            "logs": [],
        }

        tx = await client.get_transaction(tx_hash(1))

        assert tx.success is False

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, client, web3):
        web3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not found")

        assert await client.get_transaction(tx_hash(1)) is None

    @pytest.mark.asyncio
    async def test_non_hash_reference_is_not_found(self, client, web3):
        assert await client.get_transaction("T1") is None
        web3.eth.get_transaction_receipt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_node_timeout_is_transient(self, client, web3):
        web3.eth.get_transaction_receipt.side_effect = TimeoutError()

        with pytest.raises(TransientChainError):
            await client.get_transaction(tx_hash(1))

    @pytest.mark.asyncio
    async def test_node_error_is_transient(self, client, web3):
        web3.eth.get_transaction_receipt.side_effect = Web3RPCError("header not found")

        with pytest.raises(TransientChainError):
            await client.get_transaction(tx_hash(1))

    @pytest.mark.asyncio
    async def test_malformed_receipt(self, client, web3):
        web3.eth.get_transaction_receipt.return_value = {"blockNumber": 100}

        with pytest.raises(MalformedChainDataError):
            await client.get_transaction(tx_hash(1))

    @pytest.mark.asyncio
    async def test_confirmations(self, client, web3):
        web3.eth.get_transaction_receipt.return_value = {
            "status": 1,
            "blockNumber": 100,
            "logs": [],
        }
        web3.eth.block_number = _awaitable(110)

        assert await client.get_confirmations(tx_hash(1)) == 11


class TestDecodeTransferEvents:
    """Transfer log decoding."""

    def _tx(self, *logs):
        return TransactionInfo(tx_hash(1), success=True, block_number=1, logs=logs)

    def test_decodes_transfer(self, client):
        events = client.decode_transfer_events(self._tx(_transfer_log()))

        assert len(events) == 1
        event = events[0]
        assert event.contract == to_checksum_address(USDT_CONTRACT)
        assert event.to == HOT_WALLET
        assert event.sender == to_checksum_address(OTHER_ADDRESS)
        assert event.amount_raw == 100_000_000

    def test_decodes_hex_encoded_log(self, client):
        log = _transfer_log()
        log["topics"] = [Web3.to_hex(t) for t in log["topics"]]
        log["data"] = Web3.to_hex(log["data"])

        events = client.decode_transfer_events(self._tx(log))

        assert events[0].amount_raw == 100_000_000

    def test_skips_other_events(self, client):
        approval_topic = Web3.keccak(text="Approval(address,address,uint256)")
        log = _transfer_log()
        log["topics"] = [approval_topic] + log["topics"][1:]

        assert client.decode_transfer_events(self._tx(log)) == []

    def test_skips_nft_transfers(self, client):
        """ERC-721 Transfer has the same signature with an indexed token id."""
        log = _transfer_log()
        log["topics"] = log["topics"] + [bytes(32)]
        log["data"] = b""

        assert client.decode_transfer_events(self._tx(log)) == []

    def test_skips_malformed_data(self, client):
        log = _transfer_log(data=b"\x01\x02")

        assert client.decode_transfer_events(self._tx(log)) == []

    def test_keeps_good_logs_next_to_bad_ones(self, client):
        broken = {"address": USDT_CONTRACT}
        events = client.decode_transfer_events(self._tx(broken, _transfer_log(amount=5)))

        assert [e.amount_raw for e in events] == [5]


class TestBroadcastTransfer:
    """Signing and submission."""

    @pytest.fixture
    def transfer_function(self, web3):
        function = MagicMock()
        function.estimate_gas = AsyncMock(return_value=50_000)
        function.build_transaction = AsyncMock(
            return_value={
                "to": to_checksum_address(USDT_CONTRACT),
                "data": "0xa9059cbb",
                "value": 0,
                "gas": 60_000,
                "gasPrice": 3_000_000_000,
                "nonce": 7,
                "chainId": 56,
            }
        )
        web3.eth.contract.return_value.functions.transfer.return_value = function
        web3.eth.gas_price = _awaitable(3_000_000_000)
        web3.eth.chain_id = _awaitable(56)
        return function

    @pytest.mark.asyncio
    async def test_accepted(self, client, web3, signer, transfer_function):
        with signer.session() as signing:
            result = await client.broadcast_transfer(
                USDT_CONTRACT, DESTINATION, 50_500_000, signing
            )

        assert result.accepted is True
        assert result.tx_reference.startswith("0x")
        assert len(result.tx_reference) == 66
        web3.eth.send_raw_transaction.assert_awaited_once()
        web3.eth.contract.return_value.functions.transfer.assert_called_once_with(
            to_checksum_address(DESTINATION), 50_500_000
        )
        build_args = transfer_function.build_transaction.call_args.args[0]
        assert build_args["nonce"] == 7
        assert build_args["gas"] == 60_000

    @pytest.mark.asyncio
    async def test_invalid_address(self, client, web3, signer):
        with signer.session() as signing:
            with pytest.raises(InvalidAddressError):
                await client.broadcast_transfer(USDT_CONTRACT, "Txyz", 1, signing)

        web3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_would_revert(self, client, web3, signer, transfer_function):
        transfer_function.estimate_gas.side_effect = ContractLogicError(
            "execution reverted: transfer amount exceeds balance"
        )

        with signer.session() as signing:
            result = await client.broadcast_transfer(USDT_CONTRACT, DESTINATION, 1, signing)

        assert result.accepted is False
        assert "exceeds balance" in result.error
        web3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_node_refuses(self, client, web3, signer, transfer_function):
        web3.eth.send_raw_transaction.side_effect = Web3RPCError(
            "insufficient funds for gas * price + value"
        )

        with signer.session() as signing:
            result = await client.broadcast_transfer(USDT_CONTRACT, DESTINATION, 1, signing)

        assert result.accepted is False
        assert "insufficient funds" in result.error

    @pytest.mark.asyncio
    async def test_already_known_is_accepted(self, client, web3, signer, transfer_function):
        web3.eth.send_raw_transaction.side_effect = Web3RPCError("already known")

        with signer.session() as signing:
            result = await client.broadcast_transfer(USDT_CONTRACT, DESTINATION, 1, signing)

        assert result.accepted is True
        assert result.tx_reference is not None

    @pytest.mark.asyncio
    async def test_timeout_without_trace_is_transient(
        self, client, web3, signer, transfer_function
    ):
        """Ambiguous: the error carries the hash so the next pass can look it up."""
        web3.eth.send_raw_transaction.side_effect = TimeoutError()
        web3.eth.get_transaction.side_effect = TransactionNotFound("not found")

        with signer.session() as signing:
            with pytest.raises(TransientChainError) as exc_info:
                await client.broadcast_transfer(USDT_CONTRACT, DESTINATION, 1, signing)

        assert exc_info.value.tx_reference is not None
        assert len(exc_info.value.tx_reference) == 66

    @pytest.mark.asyncio
    async def test_timeout_but_node_has_it(self, client, web3, signer, transfer_function):
        web3.eth.send_raw_transaction.side_effect = TimeoutError()
        web3.eth.get_transaction.return_value = {"hash": "0x01"}

        with signer.session() as signing:
            result = await client.broadcast_transfer(USDT_CONTRACT, DESTINATION, 1, signing)

        assert result.accepted is True

    @pytest.mark.asyncio
    async def test_refusal_read_from_rpc_response(
        self, client, web3, signer, transfer_function
    ):
        web3.eth.send_raw_transaction.side_effect = Web3RPCError(
            "RPC error",
            rpc_response={"error": {"code": -32000, "message": "intrinsic gas too low"}},
        )

        with signer.session() as signing:
            result = await client.broadcast_transfer(USDT_CONTRACT, DESTINATION, 1, signing)

        assert result.accepted is False
        assert result.error == "intrinsic gas too low"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message",
        [
            "{'code': -32005, 'message': 'rate limit exceeded'}",
            "header not found",
            "nonce too low",
            "server busy, try again later",
            "replacement transaction underpriced",
        ],
    )
    async def test_node_errors_without_final_answer_are_transient(
        self, client, web3, signer, transfer_function, message
    ):
        """The send may have landed or may succeed later; never a rejection."""
        web3.eth.send_raw_transaction.side_effect = Web3RPCError(message)

        with signer.session() as signing:
            with pytest.raises(TransientChainError) as exc_info:
                await client.broadcast_transfer(USDT_CONTRACT, DESTINATION, 1, signing)

        assert exc_info.value.tx_reference is not None
        assert len(exc_info.value.tx_reference) == 66

    @pytest.mark.asyncio
    async def test_before_send_gets_hash_first(self, client, web3, signer, transfer_function):
        seen = []

        async def before_send(tx_reference):
            web3.eth.send_raw_transaction.assert_not_awaited()
            seen.append(tx_reference)

        with signer.session() as signing:
            result = await client.broadcast_transfer(
                USDT_CONTRACT, DESTINATION, 1, signing, before_send=before_send
            )

        assert seen == [result.tx_reference]
        web3.eth.send_raw_transaction.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_before_send_failure_aborts_send(
        self, client, web3, signer, transfer_function
    ):
        async def before_send(tx_reference):
            raise AttemptClaimLostError("claimed elsewhere")

        with signer.session() as signing:
            with pytest.raises(AttemptClaimLostError):
                await client.broadcast_transfer(
                    USDT_CONTRACT, DESTINATION, 1, signing, before_send=before_send
                )

        web3.eth.send_raw_transaction.assert_not_awaited()


class TestIsKnown:
    """Pool and chain lookup by hash."""

    @pytest.mark.asyncio
    async def test_pending_transaction(self, client, web3):
        web3.eth.get_transaction.return_value = {"hash": tx_hash(1), "blockNumber": None}

        assert await client.is_known(tx_hash(1)) is True

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, client, web3):
        web3.eth.get_transaction.side_effect = TransactionNotFound("not found")

        assert await client.is_known(tx_hash(1)) is False

    @pytest.mark.asyncio
    async def test_node_error_is_transient(self, client, web3):
        web3.eth.get_transaction.side_effect = Web3RPCError("header not found")

        with pytest.raises(TransientChainError):
            await client.is_known(tx_hash(1))

    @pytest.mark.asyncio
    async def test_non_hash_reference(self, client, web3):
        assert await client.is_known("T1") is False
        web3.eth.get_transaction.assert_not_awaited()
