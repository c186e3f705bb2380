"""
Bitcoin address and locking script utilities.
"""

from __future__ import annotations

import hashlib
from enum import Enum

import base58
import bech32

from btcsend.config import BECH32_HRP, NetworkType
from btcsend.errors import DecodeError

# Base58check version bytes: (P2PKH, P2SH)
BASE58_VERSIONS: dict[NetworkType, tuple[int, int]] = {
    NetworkType.MAINNET: (0x00, 0x05),
    NetworkType.TESTNET: (0x6F, 0xC4),
    NetworkType.SIGNET: (0x6F, 0xC4),
    NetworkType.REGTEST: (0x6F, 0xC4),
}


class ScriptType(str, Enum):
    P2PKH = "p2pkh"
    P2SH = "p2sh"
    P2WPKH = "p2wpkh"
    P2WSH = "p2wsh"
    P2TR = "p2tr"
    UNKNOWN = "unknown"


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def classify_script(script: bytes) -> ScriptType:
    """Identify a standard locking script by its template."""
    if len(script) == 22 and script[0] == 0x00 and script[1] == 0x14:
        return ScriptType.P2WPKH
    if len(script) == 34 and script[0] == 0x00 and script[1] == 0x20:
        return ScriptType.P2WSH
    if len(script) == 34 and script[0] == 0x51 and script[1] == 0x20:
        return ScriptType.P2TR
    if (
        len(script) == 25
        and script[:3] == b"\x76\xa9\x14"
        and script[23:] == b"\x88\xac"
    ):
        return ScriptType.P2PKH
    if len(script) == 23 and script[:2] == b"\xa9\x14" and script[22] == 0x87:
        return ScriptType.P2SH
    return ScriptType.UNKNOWN


def p2pkh_script(pubkey_hash: bytes) -> bytes:
    """OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG"""
    return b"\x76\xa9\x14" + pubkey_hash + b"\x88\xac"


def p2wpkh_script(pubkey_hash: bytes) -> bytes:
    """OP_0 <20-byte-pubkeyhash>"""
    return bytes([0x00, 0x14]) + pubkey_hash


def pubkey_to_p2wpkh_script(pubkey_bytes: bytes) -> bytes:
    return p2wpkh_script(hash160(pubkey_bytes))


def pubkey_to_p2wpkh_address(
    pubkey_bytes: bytes, network: NetworkType = NetworkType.MAINNET
) -> str:
    """
    Convert compressed public key to P2WPKH (native segwit) address.
    BIP173 bech32 encoding.
    """
    if len(pubkey_bytes) != 33:
        raise ValueError(f"Invalid compressed pubkey length: {len(pubkey_bytes)}")

    address = bech32.encode(BECH32_HRP[network], 0, hash160(pubkey_bytes))
    if address is None:
        raise ValueError(f"Failed to encode P2WPKH address for {pubkey_bytes.hex()}")
    return address


def address_to_scriptpubkey(address: str, network: NetworkType = NetworkType.MAINNET) -> bytes:
    """
    Convert a Bitcoin address for the given network to its locking script.

    Supports:
    - P2WPKH, P2WSH (bech32, witness v0)
    - P2TR (bech32m, witness v1)
    - P2PKH, P2SH (base58check)

    Raises:
        DecodeError: malformed address or address for another network
    """
    hrp = BECH32_HRP[network]

    if address.lower().startswith(hrp + "1"):
        witver, witprog = bech32.decode(hrp, address)
        if witver is None or witprog is None:
            raise DecodeError(f"Invalid bech32 address: {address}")

        program = bytes(witprog)
        if witver == 0:
            if len(program) == 20:
                return bytes([0x00, 0x14]) + program
            if len(program) == 32:
                return bytes([0x00, 0x20]) + program
        elif witver == 1 and len(program) == 32:
            return bytes([0x51, 0x20]) + program

        raise DecodeError(f"Unsupported witness program in address: {address}")

    try:
        decoded = base58.b58decode_check(address)
    except ValueError as e:
        raise DecodeError(f"Invalid address for {network.value}: {address}") from e

    if len(decoded) != 21:
        raise DecodeError(f"Invalid base58 payload length: {len(decoded)}")

    version, payload = decoded[0], decoded[1:]
    p2pkh_version, p2sh_version = BASE58_VERSIONS[network]

    if version == p2pkh_version:
        return p2pkh_script(payload)
    if version == p2sh_version:
        # OP_HASH160 <20-byte-scripthash> OP_EQUAL
        return bytes([0xA9, 0x14]) + payload + bytes([0x87])

    raise DecodeError(f"Address version {version:#04x} is not valid on {network.value}")
