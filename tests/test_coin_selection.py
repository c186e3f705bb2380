"""
Tests for largest-first coin selection.
"""

from __future__ import annotations

import random

from btcsend.coin_selection import select_utxos
from btcsend.models import UTXO


def make_utxos(values: list[int]) -> list[UTXO]:
    return [
        UTXO(txid=f"{i:064x}", vout=i % 3, value=value, scriptpubkey=b"\x00\x14" + b"\x00" * 20)
        for i, value in enumerate(values)
    ]


class TestSelectUtxos:
    def test_largest_first(self) -> None:
        utxos = make_utxos([1_000, 50_000, 20_000, 5_000])
        selection = select_utxos(utxos, 30_000)

        assert [u.value for u in selection.utxos] == [50_000]
        assert selection.total_value == 50_000

    def test_accumulates_until_target(self) -> None:
        utxos = make_utxos([10_000, 30_000, 20_000, 5_000])
        selection = select_utxos(utxos, 45_000)

        assert [u.value for u in selection.utxos] == [30_000, 20_000]
        assert selection.total_value == 50_000

    def test_total_covers_target_when_feasible(self) -> None:
        rng = random.Random(7)
        for _ in range(50):
            values = [rng.randint(1, 100_000) for _ in range(rng.randint(1, 12))]
            target = rng.randint(1, sum(values))
            selection = select_utxos(make_utxos(values), target)
            assert selection.total_value >= target
            assert selection.total_value == sum(u.value for u in selection.utxos)

    def test_order_independent(self) -> None:
        utxos = make_utxos([7_000, 7_000, 3_000, 12_000, 7_000])
        expected = select_utxos(utxos, 20_000)

        rng = random.Random(1)
        for _ in range(10):
            shuffled = list(utxos)
            rng.shuffle(shuffled)
            result = select_utxos(shuffled, 20_000)
            assert [u.outpoint for u in result.utxos] == [u.outpoint for u in expected.utxos]

    def test_short_selection_returns_everything(self) -> None:
        utxos = make_utxos([1_000, 2_000])
        selection = select_utxos(utxos, 10_000)

        assert len(selection.utxos) == 2
        assert selection.total_value == 3_000

    def test_empty_set(self) -> None:
        selection = select_utxos([], 1_200)

        assert selection.utxos == []
        assert selection.total_value == 0

    def test_does_not_mutate_input(self) -> None:
        utxos = make_utxos([1, 3, 2])
        original = list(utxos)
        select_utxos(utxos, 4)
        assert utxos == original
