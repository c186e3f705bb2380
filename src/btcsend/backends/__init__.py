"""
Chain data backend implementations.

Available backends:
- EsploraBackend: Esplora REST API (Blockstream, mempool.space or self-hosted)
"""

from btcsend.backends.base import ChainBackend
from btcsend.backends.esplora import EsploraBackend

__all__ = [
    "ChainBackend",
    "EsploraBackend",
]
