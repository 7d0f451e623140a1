"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tests.fakes import (  # noqa: E402
    HOT_WALLET,
    TEST_PRIVATE_KEY,
    USDT_CONTRACT,
    FakeChainClient,
    InMemoryLedgerStore,
)

# Minimal environment for Settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CHAIN_RPC_URL", "http://localhost:8545")
os.environ.setdefault("USDT_CONTRACT_ADDRESS", USDT_CONTRACT)
os.environ.setdefault("HOT_WALLET_ADDRESS", HOT_WALLET)
os.environ.setdefault("HOT_WALLET_PRIVATE_KEY", TEST_PRIVATE_KEY)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from custody.config.database import (  # noqa: E402
    create_engine,
    create_session_maker,
    create_tables,
)
from custody.services.blockchain.amount_codec import AmountCodec  # noqa: E402
from custody.services.blockchain.signing import HotWalletSigner  # noqa: E402
from custody.services.reconciliation.deposit_verifier import DepositVerifier  # noqa: E402
from custody.services.reconciliation.withdrawal_settler import (  # noqa: E402
    WithdrawalSettler,
)


@pytest.fixture
def store():
    """In-memory ledger store."""
    return InMemoryLedgerStore()


@pytest.fixture
def chain():
    """Fake chain client."""
    return FakeChainClient()


@pytest.fixture
def codec():
    """USDT amount codec (6 decimals)."""
    return AmountCodec(6)


@pytest.fixture
def verifier(store, chain, codec):
    """Deposit verifier wired to fakes."""
    return DepositVerifier(
        store=store,
        chain=chain,
        codec=codec,
        token_contract=USDT_CONTRACT,
        hot_wallet_address=HOT_WALLET,
        min_confirmations=1,
    )


@pytest.fixture
def signer():
    """Signer holding the test key."""
    return HotWalletSigner(key_loader=lambda: TEST_PRIVATE_KEY, expected_address=HOT_WALLET)


@pytest.fixture
def settler(store, chain, codec, signer):
    """Withdrawal settler wired to fakes."""
    return WithdrawalSettler(
        store=store,
        chain=chain,
        codec=codec,
        token_contract=USDT_CONTRACT,
        signer=signer,
    )


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """Session maker over a file-backed SQLite ledger."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await create_tables(engine)
    try:
        yield create_session_maker(engine)
    finally:
        await engine.dispose()
