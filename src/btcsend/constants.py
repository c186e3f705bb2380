"""
Bitcoin protocol constants and the static size model used for fee estimation.
"""

from __future__ import annotations

# BIP32 hardened derivation bit (2^31)
HARDENED_OFFSET = 0x80000000

TX_VERSION = 2
DEFAULT_SEQUENCE = 0xFFFFFFFF
DEFAULT_LOCKTIME = 0

SIGHASH_ALL = 0x01

# Segwit marker and flag bytes inserted after the version
SEGWIT_MARKER = 0x00
SEGWIT_FLAG = 0x01

# Virtual size model for P2WPKH spends (vbytes)
TX_BASE_VSIZE = 10
P2WPKH_INPUT_VSIZE = 68
P2WPKH_OUTPUT_VSIZE = 31

# Payment output plus change output
DEFAULT_OUTPUT_COUNT = 2

# Witness scale factor (BIP141)
WITNESS_SCALE_FACTOR = 4
