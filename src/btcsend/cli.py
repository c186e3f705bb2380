"""
btcsend CLI - derive the wallet address, check its balance and send payments.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger

from btcsend.backends.esplora import EsploraBackend
from btcsend.config import NetworkType, Settings
from btcsend.errors import WalletError
from btcsend.keys import derive
from btcsend.wallet import Wallet

app = typer.Typer(
    name="btcsend",
    help="Send bitcoin from a BIP84 mnemonic wallet",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _load_mnemonic(mnemonic: str | None, mnemonic_file: Path | None) -> str:
    if mnemonic_file:
        if not mnemonic_file.exists():
            logger.error(f"Mnemonic file not found: {mnemonic_file}")
            raise typer.Exit(1)
        mnemonic = mnemonic_file.read_text().strip()

    if not mnemonic:
        logger.error("Mnemonic required. Use --mnemonic, --mnemonic-file, or MNEMONIC env var")
        raise typer.Exit(1)

    return mnemonic


def _build_settings(network: NetworkType | None, api_url: str | None) -> Settings:
    overrides: dict[str, object] = {}
    if network is not None:
        overrides["network"] = network
    if api_url:
        overrides["api_url"] = api_url
    return Settings(**overrides)


def _create_backend(settings: Settings) -> EsploraBackend:
    return EsploraBackend(
        api_url=settings.api_url,
        timeout=settings.http_timeout,
        max_retries=settings.max_retries,
        retry_base_delay=settings.retry_base_delay,
    )


@app.command()
def address(
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC", help="BIP39 mnemonic"),
    mnemonic_file: Path | None = typer.Option(
        None, "--mnemonic-file", "-f", help="Path to mnemonic file"
    ),
    network: NetworkType | None = typer.Option(None, "--network", "-n", help="Bitcoin network"),
    show_private_key: bool = typer.Option(
        False, "--show-private-key", help="Also print the private key (hex)"
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", "-l", help="Log level (default: BTCSEND_LOG_LEVEL or INFO)"
    ),
) -> None:
    """Display the derived receiving address."""
    settings = _build_settings(network, None)
    setup_logging(log_level or settings.log_level)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)

    try:
        key = derive(mnemonic, settings.derivation, settings.network)
    except WalletError as e:
        logger.error(f"Failed to derive address: {e}")
        raise typer.Exit(1)

    typer.echo(f"Address:     {key.address}")
    typer.echo(f"Path:        {settings.derivation}")
    if show_private_key:
        logger.warning("Printing private key - anyone with it can spend your coins")
        typer.echo(f"Private key: {key.private_key.hex()}")


@app.command()
def balance(
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC", help="BIP39 mnemonic"),
    mnemonic_file: Path | None = typer.Option(
        None, "--mnemonic-file", "-f", help="Path to mnemonic file"
    ),
    network: NetworkType | None = typer.Option(None, "--network", "-n", help="Bitcoin network"),
    api_url: str | None = typer.Option(None, "--api-url", help="Esplora API base URL"),
    log_level: str | None = typer.Option(
        None, "--log-level", "-l", help="Log level (default: BTCSEND_LOG_LEVEL or INFO)"
    ),
) -> None:
    """Display the balance of the derived address."""
    settings = _build_settings(network, api_url)
    setup_logging(log_level or settings.log_level)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)

    try:
        asyncio.run(_show_balance(mnemonic, settings))
    except WalletError as e:
        logger.error(f"Failed to fetch balance: {e}")
        raise typer.Exit(1)


async def _show_balance(mnemonic: str, settings: Settings) -> None:
    backend = _create_backend(settings)
    try:
        wallet = Wallet.from_settings(mnemonic, settings, backend)
        total = await wallet.get_balance()
        typer.echo(f"{wallet.address}: {total:,} sats ({total / 1e8:.8f} BTC)")
    finally:
        await backend.close()


@app.command()
def send(
    destination: str = typer.Argument(..., help="Destination address"),
    amount: int = typer.Argument(..., min=1, help="Amount in sats"),
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC", help="BIP39 mnemonic"),
    mnemonic_file: Path | None = typer.Option(
        None, "--mnemonic-file", "-f", help="Path to mnemonic file"
    ),
    network: NetworkType | None = typer.Option(None, "--network", "-n", help="Bitcoin network"),
    api_url: str | None = typer.Option(None, "--api-url", help="Esplora API base URL"),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Build and sign, print the raw transaction, do not broadcast"
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", "-l", help="Log level (default: BTCSEND_LOG_LEVEL or INFO)"
    ),
) -> None:
    """Send AMOUNT sats to DESTINATION, returning change to the wallet address."""
    settings = _build_settings(network, api_url)
    setup_logging(log_level or settings.log_level)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)

    try:
        asyncio.run(_send(mnemonic, settings, destination, amount, dry_run))
    except WalletError as e:
        logger.error(f"Send failed: {e}")
        raise typer.Exit(1)


async def _send(
    mnemonic: str, settings: Settings, destination: str, amount: int, dry_run: bool
) -> None:
    backend = _create_backend(settings)
    try:
        wallet = Wallet.from_settings(mnemonic, settings, backend)
        signed = await wallet.create_transaction(destination, amount)

        if dry_run:
            typer.echo(f"TXID: {signed.txid}")
            typer.echo(f"Fee:  {signed.fee} sats")
            typer.echo(signed.hex)
            return

        txid = await wallet.broadcast(signed.raw)
        typer.echo(f"Transaction sent: {txid}")
    finally:
        await backend.close()


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
