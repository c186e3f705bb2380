"""
Largest-first coin selection.
"""

from __future__ import annotations

from loguru import logger

from btcsend.models import UTXO, CoinSelection


def select_utxos(utxos: list[UTXO], target_amount: int) -> CoinSelection:
    """
    Greedily pick the largest UTXOs until their total reaches target_amount.

    Selection stops as soon as the target is met or the set is exhausted.
    A short selection is returned as-is; the assembler rejects it when the
    change amount comes out non-positive.
    """
    # Ties are broken by outpoint so the result does not depend on input order
    ordered = sorted(utxos, key=lambda u: (-u.value, u.txid, u.vout))

    selected: list[UTXO] = []
    total = 0

    for utxo in ordered:
        selected.append(utxo)
        total += utxo.value
        if total >= target_amount:
            break

    logger.debug(
        f"Selected {len(selected)} of {len(utxos)} UTXOs: {total} sats for target {target_amount}"
    )
    return CoinSelection(utxos=selected, total_value=total)
