"""
Tests for the end-to-end send pipeline against an in-memory backend.
"""

from __future__ import annotations

import pytest

from btcsend.address import hash160, pubkey_to_p2wpkh_script
from btcsend.config import DerivationPath, NetworkType
from btcsend.errors import (
    DecodeError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidMnemonicError,
    NetworkError,
    NotFoundError,
    SigningError,
)
from btcsend.fees import estimate_vsize
from btcsend.keys import DerivedKey
from btcsend.models import UTXO
from btcsend.serialization import deserialize_transaction, get_txid, get_vsize
from btcsend.wallet import Wallet

from conftest import FakeBackend


def make_wallet(mnemonic: str, backend: FakeBackend) -> Wallet:
    return Wallet(mnemonic, backend, network=NetworkType.TESTNET)


class TestWalletInit:
    def test_derives_default_address(self, test_mnemonic: str, wallet_key: DerivedKey) -> None:
        wallet = make_wallet(test_mnemonic, FakeBackend())

        assert wallet.address == wallet_key.address
        assert wallet.address.startswith("tb1q")
        assert wallet.public_key == wallet_key.public_key
        assert wallet.private_key == wallet_key.private_key

    def test_custom_derivation(self, test_mnemonic: str, payee_key: DerivedKey) -> None:
        wallet = Wallet(test_mnemonic, FakeBackend(), derivation=DerivationPath(index=1))
        assert wallet.address == payee_key.address

    def test_invalid_mnemonic(self) -> None:
        with pytest.raises(InvalidMnemonicError) as exc_info:
            make_wallet("abandon abandon abandon", FakeBackend())
        assert exc_info.value.stage == "derive"


class TestCreateTransaction:
    @pytest.mark.asyncio
    async def test_single_utxo_payment(
        self,
        test_mnemonic: str,
        wallet_script: bytes,
        payee_address: str,
        payee_key: DerivedKey,
    ) -> None:
        utxo = UTXO(txid="aa" * 32, vout=0, value=10_000, scriptpubkey=wallet_script)
        backend = FakeBackend(utxos=[utxo], fee_estimates={"1": 2.136, "6": 1.0})
        wallet = make_wallet(test_mnemonic, backend)

        signed = await wallet.create_transaction(payee_address, 1_200)

        assert signed.fee == 300
        tx = signed.tx
        assert [(o.value, o.script_pubkey) for o in tx.outputs] == [
            (1_200, b"\x00\x14" + hash160(payee_key.public_key)),
            (8_500, wallet_script),
        ]
        assert len(tx.inputs) == 1
        assert tx.inputs[0].outpoint == utxo.outpoint
        assert tx.inputs[0].script_sig == b""
        assert len(tx.inputs[0].witness) == 2
        assert tx.inputs[0].witness[1] == wallet.public_key

        assert signed.txid == get_txid(tx)
        assert signed.hex == signed.raw.hex()
        assert backend.broadcasts == []

    @pytest.mark.asyncio
    async def test_raw_parses_back(
        self, test_mnemonic: str, wallet_script: bytes, payee_address: str
    ) -> None:
        utxo = UTXO(txid="aa" * 32, vout=0, value=10_000, scriptpubkey=wallet_script)
        wallet = make_wallet(test_mnemonic, FakeBackend(utxos=[utxo]))

        signed = await wallet.create_transaction(payee_address, 1_200)
        parsed = deserialize_transaction(signed.raw)

        assert parsed == signed.tx
        assert get_txid(parsed) == signed.txid

    @pytest.mark.asyncio
    async def test_vsize_close_to_estimate(
        self, test_mnemonic: str, wallet_script: bytes, payee_address: str
    ) -> None:
        utxos = [
            UTXO(txid=f"{i + 1:064x}", vout=i, value=3_000, scriptpubkey=wallet_script)
            for i in range(3)
        ]
        wallet = make_wallet(test_mnemonic, FakeBackend(utxos=utxos))

        signed = await wallet.create_transaction(payee_address, 7_000)

        assert len(signed.tx.inputs) == 3
        estimate = estimate_vsize(3, 2)
        assert abs(get_vsize(signed.tx) - estimate) <= 3

    @pytest.mark.asyncio
    async def test_selects_largest_first(
        self, test_mnemonic: str, wallet_script: bytes, payee_address: str
    ) -> None:
        small = UTXO(txid="aa" * 32, vout=0, value=2_000, scriptpubkey=wallet_script)
        large = UTXO(txid="bb" * 32, vout=1, value=50_000, scriptpubkey=wallet_script)
        wallet = make_wallet(test_mnemonic, FakeBackend(utxos=[small, large]))

        signed = await wallet.create_transaction(payee_address, 1_200)

        assert [txin.outpoint for txin in signed.tx.inputs] == [large.outpoint]
        assert signed.tx.outputs[1].value == 50_000 - 1_200 - signed.fee

    @pytest.mark.asyncio
    async def test_no_utxos(self, test_mnemonic: str, payee_address: str) -> None:
        backend = FakeBackend()
        wallet = make_wallet(test_mnemonic, backend)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await wallet.create_transaction(payee_address, 1_200)

        assert exc_info.value.stage == "select"
        assert backend.fee_requests == 0
        assert backend.broadcasts == []

    @pytest.mark.asyncio
    async def test_not_enough_for_change(
        self, test_mnemonic: str, wallet_script: bytes, payee_address: str
    ) -> None:
        utxo = UTXO(txid="aa" * 32, vout=0, value=1_000, scriptpubkey=wallet_script)
        backend = FakeBackend(utxos=[utxo])
        wallet = make_wallet(test_mnemonic, backend)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await wallet.create_transaction(payee_address, 1_200)

        assert exc_info.value.stage == "assemble"
        assert backend.broadcasts == []

    @pytest.mark.asyncio
    async def test_missing_fee_target(
        self, test_mnemonic: str, wallet_script: bytes, payee_address: str
    ) -> None:
        utxo = UTXO(txid="aa" * 32, vout=0, value=10_000, scriptpubkey=wallet_script)
        wallet = make_wallet(test_mnemonic, FakeBackend(utxos=[utxo], fee_estimates={"6": 1.0}))

        with pytest.raises(NotFoundError) as exc_info:
            await wallet.create_transaction(payee_address, 1_200)

        assert exc_info.value.stage == "fee_rate"

    @pytest.mark.asyncio
    async def test_invalid_fee_rate(
        self, test_mnemonic: str, wallet_script: bytes, payee_address: str
    ) -> None:
        utxo = UTXO(txid="aa" * 32, vout=0, value=10_000, scriptpubkey=wallet_script)
        for rate in (-5.0, float("nan"), float("inf")):
            backend = FakeBackend(utxos=[utxo], fee_estimates={"1": rate})
            wallet = make_wallet(test_mnemonic, backend)

            with pytest.raises(DecodeError) as exc_info:
                await wallet.send(payee_address, 1_200)

            assert exc_info.value.stage == "fee_rate"
            assert backend.broadcasts == []

    @pytest.mark.asyncio
    async def test_non_positive_amount(
        self, test_mnemonic: str, wallet_script: bytes, payee_address: str
    ) -> None:
        utxo = UTXO(txid="aa" * 32, vout=0, value=10_000, scriptpubkey=wallet_script)
        backend = FakeBackend(utxos=[utxo])
        wallet = make_wallet(test_mnemonic, backend)

        for amount in (0, -1_200):
            with pytest.raises(InvalidAmountError) as exc_info:
                await wallet.create_transaction(payee_address, amount)
            assert exc_info.value.stage == "validate"

        assert backend.fee_requests == 0
        assert backend.broadcasts == []

    @pytest.mark.asyncio
    async def test_custom_fee_target(
        self, test_mnemonic: str, wallet_script: bytes, payee_address: str
    ) -> None:
        utxo = UTXO(txid="aa" * 32, vout=0, value=10_000, scriptpubkey=wallet_script)
        backend = FakeBackend(utxos=[utxo], fee_estimates={"6": 1.0})
        wallet = Wallet(test_mnemonic, backend, fee_target="6")

        signed = await wallet.create_transaction(payee_address, 1_200)

        assert signed.fee == 141

    @pytest.mark.asyncio
    async def test_foreign_utxo_fails_signing(
        self, test_mnemonic: str, payee_key: DerivedKey, payee_address: str
    ) -> None:
        foreign_script = pubkey_to_p2wpkh_script(payee_key.public_key)
        utxo = UTXO(txid="aa" * 32, vout=0, value=10_000, scriptpubkey=foreign_script)
        backend = FakeBackend(utxos=[utxo])
        wallet = make_wallet(test_mnemonic, backend)

        with pytest.raises(SigningError) as exc_info:
            await wallet.send(payee_address, 1_200)

        assert exc_info.value.stage == "sign"
        assert backend.broadcasts == []

    @pytest.mark.asyncio
    async def test_backend_failure_tagged(self, test_mnemonic: str, payee_address: str) -> None:
        class UnreachableBackend(FakeBackend):
            async def list_utxos(self, address: str) -> list[UTXO]:
                raise NetworkError("connection refused")

        wallet = make_wallet(test_mnemonic, UnreachableBackend())

        with pytest.raises(NetworkError) as exc_info:
            await wallet.create_transaction(payee_address, 1_200)

        assert exc_info.value.stage == "list_utxos"
        assert str(exc_info.value) == "[list_utxos] connection refused"


class TestSend:
    @pytest.mark.asyncio
    async def test_broadcasts_signed_hex(
        self, test_mnemonic: str, wallet_script: bytes, payee_address: str
    ) -> None:
        utxo = UTXO(txid="aa" * 32, vout=0, value=10_000, scriptpubkey=wallet_script)
        backend = FakeBackend(utxos=[utxo])
        wallet = make_wallet(test_mnemonic, backend)

        txid = await wallet.send(payee_address, 1_200)

        assert txid == "f" * 64
        assert len(backend.broadcasts) == 1
        expected = await wallet.create_transaction(payee_address, 1_200)
        assert backend.broadcasts[0] == expected.hex

    @pytest.mark.asyncio
    async def test_balance_and_close(self, test_mnemonic: str, wallet_script: bytes) -> None:
        utxos = [
            UTXO(txid="aa" * 32, vout=0, value=10_000, scriptpubkey=wallet_script),
            UTXO(txid="bb" * 32, vout=2, value=2_500, scriptpubkey=wallet_script),
        ]
        backend = FakeBackend(utxos=utxos)
        wallet = make_wallet(test_mnemonic, backend)

        assert await wallet.get_balance() == 12_500

        await wallet.close()
        assert backend.closed
