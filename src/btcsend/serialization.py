"""
Bitcoin transaction wire format.

Layout:
- version (int32 LE)
- [marker 0x00, flag 0x01] when any input carries witness data
- varint input count, inputs (prev hash LE, index, script_sig, sequence)
- varint output count, outputs (value int64 LE, script_pubkey)
- [witness stack per input]
- locktime (uint32 LE)
"""

from __future__ import annotations

import hashlib
import struct

from btcsend.constants import SEGWIT_FLAG, SEGWIT_MARKER, WITNESS_SCALE_FACTOR
from btcsend.errors import SerializationError
from btcsend.models import Transaction, TxInput, TxOutput


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def encode_varint(value: int) -> bytes:
    """Encode integer as Bitcoin varint."""
    if value < 0:
        raise SerializationError(f"Cannot encode negative varint: {value}")
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", value)
    if value <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", value)
    return b"\xff" + struct.pack("<Q", value)


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    """Read varint at offset, return (value, new_offset)."""
    first = data[offset]
    offset += 1

    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        return struct.unpack("<H", data[offset : offset + 2])[0], offset + 2
    if first == 0xFE:
        return struct.unpack("<I", data[offset : offset + 4])[0], offset + 4
    return struct.unpack("<Q", data[offset : offset + 8])[0], offset + 8


def encode_bytes(data: bytes) -> bytes:
    """Varint length prefix followed by the data."""
    return encode_varint(len(data)) + data


def serialize_outpoint(txid: str, vout: int) -> bytes:
    """Serialize outpoint (txid:vout)."""
    # txid is in display format (big-endian), raw tx uses little-endian
    txid_bytes = bytes.fromhex(txid)
    if len(txid_bytes) != 32:
        raise SerializationError(f"Invalid txid length: {txid}")
    return txid_bytes[::-1] + struct.pack("<I", vout)


def serialize_input(inp: TxInput) -> bytes:
    return (
        serialize_outpoint(inp.txid, inp.vout)
        + encode_bytes(inp.script_sig)
        + struct.pack("<I", inp.sequence)
    )


def serialize_output(out: TxOutput) -> bytes:
    return struct.pack("<q", out.value) + encode_bytes(out.script_pubkey)


def serialize_witness(stack: list[bytes]) -> bytes:
    return encode_varint(len(stack)) + b"".join(encode_bytes(item) for item in stack)


def serialize_transaction(tx: Transaction, include_witness: bool = True) -> bytes:
    """
    Serialize transaction to bytes.

    The segwit marker, flag and witness section are only written when
    include_witness is set and at least one input carries witness data.
    """
    try:
        with_witness = include_witness and tx.has_witness

        result = struct.pack("<i", tx.version)
        if with_witness:
            result += bytes([SEGWIT_MARKER, SEGWIT_FLAG])

        result += encode_varint(len(tx.inputs))
        for inp in tx.inputs:
            result += serialize_input(inp)

        result += encode_varint(len(tx.outputs))
        for out in tx.outputs:
            result += serialize_output(out)

        if with_witness:
            for inp in tx.inputs:
                result += serialize_witness(inp.witness)

        result += struct.pack("<I", tx.locktime)
        return result

    except SerializationError:
        raise
    except (ValueError, struct.error) as e:
        raise SerializationError(f"Failed to serialize transaction: {e}") from e


def deserialize_transaction(tx_bytes: bytes) -> Transaction:
    """Parse a raw transaction, with or without witness data."""
    try:
        offset = 0
        version = struct.unpack("<i", tx_bytes[offset : offset + 4])[0]
        offset += 4

        has_witness = False
        if tx_bytes[offset] == SEGWIT_MARKER and tx_bytes[offset + 1] == SEGWIT_FLAG:
            has_witness = True
            offset += 2

        input_count, offset = read_varint(tx_bytes, offset)
        inputs: list[TxInput] = []

        for _ in range(input_count):
            txid = tx_bytes[offset : offset + 32][::-1].hex()
            offset += 32
            vout = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
            offset += 4
            script_len, offset = read_varint(tx_bytes, offset)
            script_sig = tx_bytes[offset : offset + script_len]
            offset += script_len
            sequence = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
            offset += 4
            inputs.append(TxInput(txid, vout, script_sig, sequence))

        output_count, offset = read_varint(tx_bytes, offset)
        outputs: list[TxOutput] = []

        for _ in range(output_count):
            value = struct.unpack("<q", tx_bytes[offset : offset + 8])[0]
            offset += 8
            script_len, offset = read_varint(tx_bytes, offset)
            outputs.append(TxOutput(value, tx_bytes[offset : offset + script_len]))
            offset += script_len

        if has_witness:
            for inp in inputs:
                stack_count, offset = read_varint(tx_bytes, offset)
                for _ in range(stack_count):
                    item_len, offset = read_varint(tx_bytes, offset)
                    inp.witness.append(tx_bytes[offset : offset + item_len])
                    offset += item_len

        locktime = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
        offset += 4

        if offset != len(tx_bytes):
            raise ValueError(f"{len(tx_bytes) - offset} trailing bytes")

        return Transaction(version=version, inputs=inputs, outputs=outputs, locktime=locktime)

    except (IndexError, ValueError, struct.error) as e:
        raise SerializationError(f"Failed to parse transaction: {e}") from e


def get_txid(tx: Transaction) -> str:
    """Double SHA256 of the witness-stripped encoding, in display byte order."""
    return hash256(serialize_transaction(tx, include_witness=False))[::-1].hex()


def get_vsize(tx: Transaction) -> int:
    """Virtual size in vbytes (BIP141 weight / 4, rounded up)."""
    base_size = len(serialize_transaction(tx, include_witness=False))
    total_size = len(serialize_transaction(tx))
    weight = base_size * (WITNESS_SCALE_FACTOR - 1) + total_size
    return (weight + WITNESS_SCALE_FACTOR - 1) // WITNESS_SCALE_FACTOR
