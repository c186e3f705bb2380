"""
Bitcoin transaction signing for P2WPKH and P2PKH inputs.

Signing is split in two layers:
- DigestSigner: the capability "sign this 32-byte digest under key_id".
  LocalKeySigner implements it with a single in-memory key; a threshold or
  multi-party signer can implement the same two methods.
- TransactionSigner: computes the per-input sighash and builds the witness
  or script_sig from the signatures returned by the DigestSigner.
"""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod

from coincurve import PrivateKey
from loguru import logger

from btcsend.address import ScriptType, classify_script, hash160, p2pkh_script
from btcsend.constants import SIGHASH_ALL
from btcsend.errors import SigningError
from btcsend.models import UTXO, OutPoint, Transaction, TxInput
from btcsend.serialization import (
    encode_bytes,
    hash256,
    serialize_outpoint,
    serialize_output,
    serialize_transaction,
)

# Opcodes used when building push-only scripts
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D


class DigestSigner(ABC):
    """Produces ECDSA signatures over precomputed digests."""

    @abstractmethod
    def public_key(self, key_id: str) -> bytes:
        """Compressed (33-byte) public key for key_id"""

    @abstractmethod
    def sign_digest(self, key_id: str, digest: bytes) -> bytes:
        """DER-encoded signature of a 32-byte digest (no further hashing)"""


class LocalKeySigner(DigestSigner):
    """DigestSigner backed by one private key held in memory."""

    def __init__(self, private_key: bytes, key_id: str):
        try:
            self._private_key = PrivateKey(private_key)
        except ValueError as e:
            raise SigningError(f"Invalid private key: {e}") from e
        self.key_id = key_id

    def _check_key_id(self, key_id: str) -> None:
        if key_id != self.key_id:
            raise SigningError(f"Unknown key id: {key_id}")

    def public_key(self, key_id: str) -> bytes:
        self._check_key_id(key_id)
        return self._private_key.public_key.format(compressed=True)

    def sign_digest(self, key_id: str, digest: bytes) -> bytes:
        self._check_key_id(key_id)
        if len(digest) != 32:
            raise SigningError(f"Digest must be 32 bytes, got {len(digest)}")
        # The sighash is already SHA256d, hasher=None skips hashing
        return self._private_key.sign(digest, hasher=None)


def push_data(data: bytes) -> bytes:
    """Minimal script push of data."""
    length = len(data)
    if length < OP_PUSHDATA1:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    if length <= 0xFFFF:
        return bytes([OP_PUSHDATA2]) + struct.pack("<H", length) + data
    raise SigningError(f"Push data too large: {length} bytes")


def _check_sighash_type(sighash_type: int) -> None:
    if sighash_type != SIGHASH_ALL:
        raise SigningError(f"Unsupported sighash type: {sighash_type:#x}")


def compute_sighash_segwit(
    tx: Transaction,
    input_index: int,
    script_code: bytes,
    value: int,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """
    BIP143 signature hash for a witness v0 input.

    Args:
        tx: The transaction being signed
        input_index: Index of the input to sign
        script_code: scriptCode without length prefix (the P2PKH script for P2WPKH)
        value: Value of the output being spent (in satoshis)
        sighash_type: Only SIGHASH_ALL is supported
    """
    _check_sighash_type(sighash_type)
    if not 0 <= input_index < len(tx.inputs):
        raise SigningError(f"Input index out of range: {input_index}")

    try:
        hash_prevouts = hash256(
            b"".join(serialize_outpoint(inp.txid, inp.vout) for inp in tx.inputs)
        )
        hash_sequence = hash256(b"".join(struct.pack("<I", inp.sequence) for inp in tx.inputs))
        hash_outputs = hash256(b"".join(serialize_output(out) for out in tx.outputs))

        target = tx.inputs[input_index]

        preimage = (
            struct.pack("<i", tx.version)
            + hash_prevouts
            + hash_sequence
            + serialize_outpoint(target.txid, target.vout)
            + encode_bytes(script_code)
            + struct.pack("<q", value)
            + struct.pack("<I", target.sequence)
            + hash_outputs
            + struct.pack("<I", tx.locktime)
            + struct.pack("<I", sighash_type)
        )
        return hash256(preimage)

    except Exception as e:
        raise SigningError(f"Failed to compute segwit sighash: {e}") from e


def compute_sighash_legacy(
    tx: Transaction,
    input_index: int,
    script_code: bytes,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """
    Legacy (pre-segwit) signature hash.

    Every input's script_sig is blanked except the one being signed, which is
    replaced by the prior output's locking script. Witness data is excluded.
    """
    _check_sighash_type(sighash_type)
    if not 0 <= input_index < len(tx.inputs):
        raise SigningError(f"Input index out of range: {input_index}")

    try:
        stripped = Transaction(
            version=tx.version,
            inputs=[
                TxInput(
                    txid=inp.txid,
                    vout=inp.vout,
                    script_sig=script_code if i == input_index else b"",
                    sequence=inp.sequence,
                )
                for i, inp in enumerate(tx.inputs)
            ],
            outputs=tx.outputs,
            locktime=tx.locktime,
        )
        preimage = serialize_transaction(stripped, include_witness=False)
        return hash256(preimage + struct.pack("<I", sighash_type))

    except Exception as e:
        raise SigningError(f"Failed to compute legacy sighash: {e}") from e


def create_p2wpkh_script_code(pubkey_hash: bytes) -> bytes:
    """scriptCode for P2WPKH signing (BIP143): the equivalent P2PKH script."""
    return p2pkh_script(pubkey_hash)


def create_witness_stack(signature: bytes, pubkey_bytes: bytes) -> list[bytes]:
    return [signature, pubkey_bytes]


def create_p2pkh_script_sig(signature: bytes, pubkey_bytes: bytes) -> bytes:
    return push_data(signature) + push_data(pubkey_bytes)


class TransactionSigner:
    """
    Signs every input of a transaction with one key.

    Inputs are matched to the UTXOs they spend by outpoint, not by position.
    Unlocking data is only written back once every input has been signed.
    """

    def __init__(self, signer: DigestSigner, key_id: str, sighash_type: int = SIGHASH_ALL):
        self.signer = signer
        self.key_id = key_id
        self.sighash_type = sighash_type

    def sign(self, tx: Transaction, utxos: list[UTXO]) -> None:
        """
        Fill in witness / script_sig for every input of tx.

        Raises:
            SigningError: an input has no matching UTXO, spends an unsupported
                script type or a script not locked to this key, or the
                signature could not be produced. tx is left unchanged.
        """
        by_outpoint: dict[OutPoint, UTXO] = {utxo.outpoint: utxo for utxo in utxos}

        try:
            pubkey = self.signer.public_key(self.key_id)
        except SigningError:
            raise
        except Exception as e:
            raise SigningError(f"Failed to obtain public key: {e}") from e
        pubkey_hash = hash160(pubkey)

        unlocking: list[tuple[bytes, list[bytes]]] = []
        for index, txin in enumerate(tx.inputs):
            utxo = by_outpoint.get(txin.outpoint)
            if utxo is None:
                raise SigningError(f"No UTXO data for input {index} ({txin.outpoint})")
            unlocking.append(self._sign_input(tx, index, utxo, pubkey, pubkey_hash))

        for txin, (script_sig, witness) in zip(tx.inputs, unlocking, strict=True):
            txin.script_sig = script_sig
            txin.witness = witness

        logger.debug(f"Signed {len(tx.inputs)} inputs")

    def _sign_input(
        self,
        tx: Transaction,
        index: int,
        utxo: UTXO,
        pubkey: bytes,
        pubkey_hash: bytes,
    ) -> tuple[bytes, list[bytes]]:
        """Return (script_sig, witness) for one input."""
        script_type = classify_script(utxo.scriptpubkey)

        if script_type == ScriptType.P2WPKH:
            if utxo.scriptpubkey[2:] != pubkey_hash:
                raise SigningError(f"Input {index} ({utxo.outpoint}) is not locked to our key")
            sighash = compute_sighash_segwit(
                tx,
                index,
                create_p2wpkh_script_code(pubkey_hash),
                utxo.value,
                self.sighash_type,
            )
            signature = self._sign(sighash, index)
            return b"", create_witness_stack(signature, pubkey)

        if script_type == ScriptType.P2PKH:
            if utxo.scriptpubkey[3:23] != pubkey_hash:
                raise SigningError(f"Input {index} ({utxo.outpoint}) is not locked to our key")
            sighash = compute_sighash_legacy(tx, index, utxo.scriptpubkey, self.sighash_type)
            signature = self._sign(sighash, index)
            return create_p2pkh_script_sig(signature, pubkey), []

        raise SigningError(
            f"Cannot sign input {index} ({utxo.outpoint}): unsupported script type "
            f"{script_type.value}"
        )

    def _sign(self, sighash: bytes, index: int) -> bytes:
        try:
            der_signature = self.signer.sign_digest(self.key_id, sighash)
        except SigningError:
            raise
        except Exception as e:
            raise SigningError(f"Failed to sign input {index}: {e}") from e
        return der_signature + bytes([self.sighash_type])
