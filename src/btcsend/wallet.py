"""
Single-key wallet: builds, signs and broadcasts one-recipient payments.

Pipeline for send():
    derive (once, at construction) -> validate -> list_utxos -> select -> fee_rate
    -> estimate_fee -> assemble -> sign -> serialize -> broadcast
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from btcsend.backends.base import ChainBackend
from btcsend.builder import TransactionAssembler
from btcsend.coin_selection import select_utxos
from btcsend.config import DerivationPath, NetworkType, Settings
from btcsend.constants import DEFAULT_OUTPUT_COUNT
from btcsend.errors import InsufficientFundsError, InvalidAmountError, pipeline_stage
from btcsend.fees import estimate_fee
from btcsend.keys import derive
from btcsend.models import Transaction
from btcsend.serialization import get_txid, serialize_transaction
from btcsend.signing import DigestSigner, LocalKeySigner, TransactionSigner


@dataclass
class SignedTransaction:
    tx: Transaction
    raw: bytes
    txid: str
    fee: int

    @property
    def hex(self) -> str:
        return self.raw.hex()


class Wallet:
    """
    Wallet holding exactly one key, derived once from the mnemonic.

    Change is always paid back to the wallet's own address. A custom
    DigestSigner may be supplied; it is addressed with the wallet address as
    key id and must sign for the derived public key.
    """

    def __init__(
        self,
        mnemonic: str,
        backend: ChainBackend,
        network: NetworkType = NetworkType.TESTNET,
        derivation: DerivationPath | None = None,
        fee_target: str = "1",
        signer: DigestSigner | None = None,
    ):
        self.backend = backend
        self.network = network
        self.derivation = derivation or DerivationPath()
        self.fee_target = fee_target

        with pipeline_stage("derive"):
            key = derive(mnemonic, self.derivation, network)

        self.address = key.address
        self.public_key = key.public_key
        self._private_key = key.private_key
        self.signer = signer or LocalKeySigner(key.private_key, key_id=self.address)

        logger.info(f"Initialized wallet {self.address} ({self.derivation}, {network.value})")

    @classmethod
    def from_settings(cls, mnemonic: str, settings: Settings, backend: ChainBackend) -> Wallet:
        return cls(
            mnemonic=mnemonic,
            backend=backend,
            network=settings.network,
            derivation=settings.derivation,
            fee_target=settings.fee_target,
        )

    @property
    def private_key(self) -> bytes:
        return self._private_key

    async def get_balance(self) -> int:
        """Sum of all UTXOs currently reported for the wallet address."""
        with pipeline_stage("list_utxos"):
            return await self.backend.get_balance(self.address)

    async def create_transaction(self, payee_address: str, amount: int) -> SignedTransaction:
        """
        Build and sign a payment of amount sats to payee_address.

        Raises:
            WalletError subclass tagged with the failing stage. Nothing is
            broadcast and no partially signed transaction is returned.
        """
        with pipeline_stage("validate"):
            if amount <= 0:
                raise InvalidAmountError(f"Payment amount must be positive: {amount}")

        with pipeline_stage("list_utxos"):
            utxos = await self.backend.list_utxos(self.address)

        with pipeline_stage("select"):
            selection = select_utxos(utxos, amount)
            if not selection.utxos:
                raise InsufficientFundsError(f"No UTXOs available for {self.address}")

        with pipeline_stage("fee_rate"):
            fee_rate = await self.backend.get_fee_rate(self.fee_target)

        with pipeline_stage("estimate_fee"):
            fee = estimate_fee(len(selection.utxos), DEFAULT_OUTPUT_COUNT, fee_rate)
        logger.info(f"Fee: {fee} sats ({fee_rate} sat/vB)")

        with pipeline_stage("assemble"):
            assembler = TransactionAssembler(self.address, self.network)
            tx = assembler.assemble(
                payee_address, amount, selection.utxos, selection.total_value, fee
            )

        with pipeline_stage("sign"):
            TransactionSigner(self.signer, key_id=self.address).sign(tx, selection.utxos)

        with pipeline_stage("serialize"):
            raw = serialize_transaction(tx)
            txid = get_txid(tx)

        logger.info(f"Transaction created: {txid} ({len(raw)} bytes)")
        return SignedTransaction(tx=tx, raw=raw, txid=txid, fee=fee)

    async def broadcast(self, raw: bytes) -> str:
        """Hex-encode and submit a serialized transaction. Returns the provider's txid."""
        with pipeline_stage("broadcast"):
            return await self.backend.broadcast_transaction(raw.hex())

    async def send(self, payee_address: str, amount: int) -> str:
        """Build, sign and broadcast a payment. Returns the txid."""
        signed = await self.create_transaction(payee_address, amount)
        txid = await self.broadcast(signed.raw)
        logger.info(f"Transaction sent: {txid}")
        return txid

    async def close(self) -> None:
        """Close backend connection"""
        await self.backend.close()
