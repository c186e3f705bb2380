"""
Transaction and UTXO data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from btcsend.constants import DEFAULT_LOCKTIME, DEFAULT_SEQUENCE, TX_VERSION


@dataclass(frozen=True)
class OutPoint:
    """Reference to a prior transaction output (txid in display byte order)."""

    txid: str
    vout: int

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass
class UTXO:
    txid: str
    vout: int
    value: int
    scriptpubkey: bytes = b""

    @property
    def outpoint(self) -> OutPoint:
        return OutPoint(self.txid, self.vout)


@dataclass
class CoinSelection:
    """Result of coin selection"""

    utxos: list[UTXO]
    total_value: int


@dataclass
class TxInput:
    """Transaction input."""

    txid: str
    vout: int
    script_sig: bytes = b""
    sequence: int = DEFAULT_SEQUENCE
    witness: list[bytes] = field(default_factory=list)

    @property
    def outpoint(self) -> OutPoint:
        return OutPoint(self.txid, self.vout)


@dataclass
class TxOutput:
    """Transaction output."""

    value: int
    script_pubkey: bytes


@dataclass
class Transaction:
    """
    Mutable transaction skeleton.

    Created empty by the assembler, filled with inputs and outputs, then
    completed in place by the signer.
    """

    version: int = TX_VERSION
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    locktime: int = DEFAULT_LOCKTIME

    def add_input(self, txin: TxInput) -> None:
        self.inputs.append(txin)

    def add_output(self, txout: TxOutput) -> None:
        self.outputs.append(txout)

    @property
    def has_witness(self) -> bool:
        return any(inp.witness for inp in self.inputs)

    @property
    def output_value(self) -> int:
        return sum(out.value for out in self.outputs)
