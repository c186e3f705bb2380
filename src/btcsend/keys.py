"""
BIP32 HD key derivation from a BIP39 mnemonic.
Implements BIP84 (Native SegWit) derivation paths.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass

from coincurve import PrivateKey, PublicKey
from loguru import logger
from mnemonic import Mnemonic

from btcsend.address import pubkey_to_p2wpkh_address
from btcsend.config import DerivationPath, NetworkType
from btcsend.constants import HARDENED_OFFSET
from btcsend.errors import DerivationError, InvalidMnemonicError

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)


class HDKey:
    """
    Hierarchical Deterministic Key for Bitcoin.
    Implements BIP32 private derivation.
    """

    def __init__(self, private_key: PrivateKey, chain_code: bytes, depth: int = 0):
        self._private_key = private_key
        self._public_key = private_key.public_key
        self.chain_code = chain_code
        self.depth = depth

    @property
    def private_key(self) -> PrivateKey:
        """Return the coincurve PrivateKey instance."""
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        """Return the coincurve PublicKey instance."""
        return self._public_key

    @classmethod
    def from_seed(cls, seed: bytes) -> HDKey:
        """Create master HD key from seed"""
        hmac_result = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        key_bytes = hmac_result[:32]
        chain_code = hmac_result[32:]

        key_int = int.from_bytes(key_bytes, "big")
        if key_int == 0 or key_int >= SECP256K1_N:
            raise DerivationError("Invalid master key")

        return cls(PrivateKey(key_bytes), chain_code, depth=0)

    def derive(self, path: str) -> HDKey:
        """
        Derive child key from path notation (e.g., "m/84'/0'/0'/0/0")
        ' or h indicates hardened derivation
        """
        if not path.startswith("m"):
            raise ValueError("Path must start with 'm'")

        indices = []
        for part in path.split("/")[1:]:
            if not part:
                continue
            hardened = part.endswith("'") or part.endswith("h")
            index = int(part.rstrip("'h"))
            indices.append(index + HARDENED_OFFSET if hardened else index)

        return self.derive_indices(indices)

    def derive_indices(self, indices: list[int]) -> HDKey:
        key = self
        for index in indices:
            key = key._derive_child(index)
        return key

    def _derive_child(self, index: int) -> HDKey:
        """Derive a child key at the given index"""
        if index < 0 or index > 0xFFFFFFFF:
            raise DerivationError(f"Child index out of range: {index}")

        if index >= HARDENED_OFFSET:
            data = b"\x00" + self._private_key.secret + index.to_bytes(4, "big")
        else:
            data = self._public_key.format(compressed=True) + index.to_bytes(4, "big")

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        key_offset = hmac_result[:32]
        child_chain = hmac_result[32:]

        offset_int = int.from_bytes(key_offset, "big")
        if offset_int >= SECP256K1_N:
            raise DerivationError(f"Invalid key offset at index {index}")

        parent_key_int = int.from_bytes(self._private_key.secret, "big")
        child_key_int = (parent_key_int + offset_int) % SECP256K1_N

        if child_key_int == 0:
            raise DerivationError(f"Invalid child key at index {index}")

        child_private_key = PrivateKey(child_key_int.to_bytes(32, "big"))
        return HDKey(child_private_key, child_chain, depth=self.depth + 1)

    def get_private_key_bytes(self) -> bytes:
        """Get private key as 32 bytes"""
        return self._private_key.secret

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        """Get public key bytes"""
        return self._public_key.format(compressed=compressed)

    def get_address(self, network: NetworkType = NetworkType.MAINNET) -> str:
        """Get P2WPKH (Native SegWit) address for this key"""
        return pubkey_to_p2wpkh_address(self.get_public_key_bytes(), network)


@dataclass(frozen=True)
class DerivedKey:
    private_key: bytes
    public_key: bytes
    address: str

    def __repr__(self) -> str:
        return f"DerivedKey(address={self.address!r})"


def normalize_mnemonic(mnemonic: str) -> str:
    """Collapse runs of whitespace (newlines, doubled spaces) to single spaces."""
    return " ".join(mnemonic.split())


def validate_mnemonic(mnemonic: str) -> bool:
    """Check the BIP39 wordlist membership and checksum."""
    return Mnemonic("english").check(normalize_mnemonic(mnemonic))


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """
    Convert a BIP39 mnemonic to its 64-byte seed.

    Raises:
        InvalidMnemonicError: checksum or wordlist validation failed
    """
    mnemonic = normalize_mnemonic(mnemonic)
    if not validate_mnemonic(mnemonic):
        raise InvalidMnemonicError("Invalid mnemonic: checksum validation failed")
    return Mnemonic.to_seed(mnemonic, passphrase)


def derive(
    mnemonic: str,
    path: DerivationPath | None = None,
    network: NetworkType = NetworkType.TESTNET,
    passphrase: str = "",
) -> DerivedKey:
    """
    Derive the private key and P2WPKH address at a BIP84 path.

    Raises:
        InvalidMnemonicError: the phrase fails BIP39 validation
        DerivationError: a derivation step produced an invalid key
    """
    path = path or DerivationPath()
    seed = mnemonic_to_seed(mnemonic, passphrase)

    try:
        key = HDKey.from_seed(seed).derive_indices(path.indices())
    except DerivationError:
        raise
    except ValueError as e:
        raise DerivationError(f"Derivation along {path} failed: {e}") from e

    address = key.get_address(network)
    logger.debug(f"Derived {network.value} address at {path}")
    return DerivedKey(
        private_key=key.get_private_key_bytes(),
        public_key=key.get_public_key_bytes(compressed=True),
        address=address,
    )
