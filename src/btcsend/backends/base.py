"""
Base chain data backend interface.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod

from btcsend.errors import DecodeError, NotFoundError
from btcsend.models import UTXO


class ChainBackend(ABC):
    """
    Abstract chain data provider.
    Implementations list UTXOs, resolve locking scripts, report fee rates
    and relay signed transactions.
    """

    @abstractmethod
    async def list_utxos(self, address: str) -> list[UTXO]:
        """Get UTXOs for an address, each with its locking script resolved"""

    @abstractmethod
    async def get_scriptpubkey(self, txid: str, vout: int) -> bytes:
        """Get the locking script of output vout of transaction txid"""

    @abstractmethod
    async def get_fee_estimates(self) -> dict[str, float]:
        """Get fee rates in sat/vbyte keyed by confirmation target"""

    @abstractmethod
    async def broadcast_transaction(self, tx_hex: str) -> str:
        """Broadcast transaction, returns txid"""

    async def get_fee_rate(self, target: str = "1") -> float:
        """
        Fee rate in sat/vbyte for a confirmation target.

        Raises:
            NotFoundError: the provider has no estimate for target
            DecodeError: the estimate is negative or not a finite number
        """
        estimates = await self.get_fee_estimates()
        if target not in estimates:
            raise NotFoundError(f"Fee estimate for target '{target}' not found")
        rate = estimates[target]
        if not math.isfinite(rate) or rate < 0:
            raise DecodeError(f"Invalid fee rate for target '{target}': {rate}")
        return rate

    async def get_balance(self, address: str) -> int:
        """Get balance for an address in satoshis"""
        utxos = await self.list_utxos(address)
        return sum(utxo.value for utxo in utxos)

    async def close(self) -> None:
        """Close backend connection"""
        pass
