"""
btcsend - build, sign and broadcast single-recipient bitcoin payments
from a BIP84 mnemonic wallet.
"""

__version__ = "0.1.0"

from btcsend.errors import (
    DecodeError,
    DerivationError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidMnemonicError,
    NetworkError,
    NotFoundError,
    SerializationError,
    SigningError,
    WalletError,
)
from btcsend.wallet import SignedTransaction, Wallet

__all__ = [
    "DecodeError",
    "DerivationError",
    "InsufficientFundsError",
    "InvalidAmountError",
    "InvalidMnemonicError",
    "NetworkError",
    "NotFoundError",
    "SerializationError",
    "SignedTransaction",
    "SigningError",
    "Wallet",
    "WalletError",
]
