"""Tests for hot wallet signing sessions."""

import pytest

from custody.services.blockchain.signing import HotWalletSigner
from custody.utils.exceptions import ConfigurationError
from tests.fakes import HOT_WALLET, OTHER_ADDRESS, TEST_PRIVATE_KEY


class TestHotWalletSigner:
    """Per-pass key scope."""

    def test_session_opens_and_closes(self, signer):
        with signer.session() as signing:
            assert signing.is_open is True
            assert signing.address == HOT_WALLET

        assert signing.is_open is False

    def test_context_closed_after_error(self, signer):
        with pytest.raises(RuntimeError):
            with signer.session() as signing:
                raise RuntimeError("pass failed")

        assert signing.is_open is False

    def test_closed_context_cannot_sign(self, signer):
        with signer.session() as signing:
            pass

        with pytest.raises(ConfigurationError):
            signing.sign_transaction({"nonce": 0})

    def test_key_loaded_per_session(self):
        """Loader is consulted on every session, never cached."""
        calls = []

        def loader():
            calls.append(1)
            return TEST_PRIVATE_KEY

        signer = HotWalletSigner(key_loader=loader, expected_address=HOT_WALLET)
        with signer.session():
            pass
        with signer.session():
            pass

        assert len(calls) == 2

    def test_missing_key(self):
        signer = HotWalletSigner(key_loader=lambda: None, expected_address=HOT_WALLET)

        with pytest.raises(ConfigurationError, match="not configured"):
            with signer.session():
                pass

    def test_mismatched_wallet(self):
        signer = HotWalletSigner(
            key_loader=lambda: TEST_PRIVATE_KEY, expected_address=OTHER_ADDRESS
        )

        with pytest.raises(ConfigurationError):
            with signer.session():
                pass

    def test_expected_address_case_insensitive(self):
        signer = HotWalletSigner(
            key_loader=lambda: TEST_PRIVATE_KEY, expected_address=HOT_WALLET.lower()
        )

        with signer.session() as signing:
            assert signing.address == HOT_WALLET

    def test_repr_does_not_leak_key(self, signer):
        with signer.session() as signing:
            text = repr(signing)

        assert TEST_PRIVATE_KEY not in text
        assert TEST_PRIVATE_KEY[2:] not in text

    def test_signs_transaction(self, signer):
        transaction = {
            "nonce": 0,
            "gas": 100000,
            "gasPrice": 1_000_000_000,
            "to": OTHER_ADDRESS,
            "value": 0,
            "data": "0x",
            "chainId": 56,
        }

        with signer.session() as signing:
            signed = signing.sign_transaction(transaction)

        assert len(signed.hash) == 32
