"""
Error taxonomy for the send pipeline.

Every component raises a subclass of WalletError. The wallet runs each stage
inside pipeline_stage(), which tags the error with the stage name so a caller
can tell where a run aborted without losing the concrete error type.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger


class WalletError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class InvalidMnemonicError(WalletError):
    pass


class DerivationError(WalletError):
    pass


class NetworkError(WalletError):
    pass


class DecodeError(WalletError):
    pass


class NotFoundError(WalletError):
    """An expected field or key is missing from a provider response."""

    pass


class InvalidAmountError(WalletError):
    """Payment amount is zero or negative."""

    pass


class InsufficientFundsError(WalletError):
    pass


class SigningError(WalletError):
    pass


class SerializationError(WalletError):
    pass


@contextmanager
def pipeline_stage(name: str) -> Iterator[None]:
    """Tag any WalletError raised inside the block with the stage name."""
    try:
        yield
    except WalletError as e:
        if e.stage is None:
            e.stage = name
        logger.debug(f"Stage '{name}' failed: {e.message}")
        raise
    except Exception:
        logger.exception(f"Stage '{name}' failed unexpectedly")
        raise
