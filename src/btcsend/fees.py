"""
Fee estimation from a static virtual size model.
"""

from __future__ import annotations

import math

from btcsend.constants import P2WPKH_INPUT_VSIZE, P2WPKH_OUTPUT_VSIZE, TX_BASE_VSIZE


def estimate_vsize(num_inputs: int, num_outputs: int) -> int:
    """
    Estimate virtual size for a P2WPKH spend.

    SegWit P2WPKH inputs: 68 vbytes each
    P2WPKH outputs: 31 vbytes each
    Overhead: 10 vbytes
    """
    if num_inputs < 0 or num_outputs < 0:
        raise ValueError("Input and output counts must be non-negative")
    return TX_BASE_VSIZE + P2WPKH_INPUT_VSIZE * num_inputs + P2WPKH_OUTPUT_VSIZE * num_outputs


def estimate_fee(num_inputs: int, num_outputs: int, fee_rate: float) -> int:
    """
    Calculate the absolute fee in sats for a fee rate in sat/vbyte.

    The product is truncated and one sat is added as a rounding margin.
    """
    if not math.isfinite(fee_rate) or fee_rate < 0:
        raise ValueError(f"Fee rate must be a non-negative number: {fee_rate}")
    return int(estimate_vsize(num_inputs, num_outputs) * fee_rate) + 1
