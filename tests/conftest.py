"""
Test configuration for btcsend tests.
"""

from __future__ import annotations

import pytest

from btcsend.address import pubkey_to_p2wpkh_address, pubkey_to_p2wpkh_script
from btcsend.backends.base import ChainBackend
from btcsend.config import DerivationPath, NetworkType
from btcsend.errors import NotFoundError
from btcsend.keys import DerivedKey, derive
from btcsend.models import UTXO

# BIP84 test vector mnemonic
TEST_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)


class FakeBackend(ChainBackend):
    """In-memory chain backend recording what the wallet asked for."""

    def __init__(
        self,
        utxos: list[UTXO] | None = None,
        fee_estimates: dict[str, float] | None = None,
    ):
        self.utxos = utxos or []
        self.fee_estimates = fee_estimates if fee_estimates is not None else {"1": 2.136}
        self.broadcasts: list[str] = []
        self.fee_requests = 0
        self.closed = False

    async def list_utxos(self, address: str) -> list[UTXO]:
        return list(self.utxos)

    async def get_scriptpubkey(self, txid: str, vout: int) -> bytes:
        for utxo in self.utxos:
            if utxo.txid == txid and utxo.vout == vout:
                return utxo.scriptpubkey
        raise NotFoundError(f"{txid}:{vout}")

    async def get_fee_estimates(self) -> dict[str, float]:
        self.fee_requests += 1
        return dict(self.fee_estimates)

    async def broadcast_transaction(self, tx_hex: str) -> str:
        self.broadcasts.append(tx_hex)
        return "f" * 64

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def test_mnemonic() -> str:
    """Test mnemonic (not for production use!)."""
    return TEST_MNEMONIC


@pytest.fixture
def wallet_key(test_mnemonic: str) -> DerivedKey:
    """Key at the default path on testnet."""
    return derive(test_mnemonic, DerivationPath(), NetworkType.TESTNET)


@pytest.fixture
def wallet_script(wallet_key: DerivedKey) -> bytes:
    return pubkey_to_p2wpkh_script(wallet_key.public_key)


@pytest.fixture
def payee_key(test_mnemonic: str) -> DerivedKey:
    """A second key from the same seed, used as payment destination."""
    return derive(test_mnemonic, DerivationPath(index=1), NetworkType.TESTNET)


@pytest.fixture
def payee_address(payee_key: DerivedKey) -> str:
    return pubkey_to_p2wpkh_address(payee_key.public_key, NetworkType.TESTNET)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()
