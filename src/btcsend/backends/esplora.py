"""
Esplora REST API blockchain backend.

Works with Blockstream's and mempool.space's public Esplora instances, or a
self-hosted electrs/esplora server.

Endpoints used:
- GET  /address/{address}/utxo
- GET  /tx/{txid}
- GET  /fee-estimates
- POST /tx  (raw transaction hex as text/plain)
"""

from __future__ import annotations

import asyncio
import random
from typing import Annotated, Any

import httpx
from loguru import logger
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from btcsend.backends.base import ChainBackend
from btcsend.errors import DecodeError, NetworkError, NotFoundError
from btcsend.models import UTXO

DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 0.5

# HTTP statuses worth retrying: rate limiting and server-side failures
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class EsploraUTXO(BaseModel):
    txid: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")
    vout: int = Field(..., ge=0)
    value: int = Field(..., ge=0)


class EsploraTxOut(BaseModel):
    scriptpubkey: str
    value: int = Field(..., ge=0)


class EsploraTx(BaseModel):
    txid: str
    vout: list[EsploraTxOut]


_utxo_list_adapter = TypeAdapter(list[EsploraUTXO])
# Fee rates must be finite and non-negative sat/vB values
_fee_estimates_adapter = TypeAdapter(
    dict[str, Annotated[float, Field(ge=0, allow_inf_nan=False)]]
)


class _RetryableError(Exception):
    """Transient failure raised inside the retry loop."""


class EsploraBackend(ChainBackend):
    """
    Blockchain backend using an Esplora HTTP API.

    GET requests are retried with exponential backoff on transport errors,
    timeouts and retryable HTTP statuses. Decode and not-found failures are
    never retried, and neither is broadcasting.
    """

    def __init__(
        self,
        api_url: str,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def _get(self, endpoint: str) -> httpx.Response:
        """GET an endpoint, retrying transient failures."""
        url = f"{self.api_url}/{endpoint}"
        last_error = ""

        for attempt in range(self.max_retries + 1):
            try:
                logger.debug(f"GET {url}")
                try:
                    response = await self.client.get(url)
                except httpx.TimeoutException as e:
                    raise _RetryableError(f"timed out: {e}") from e
                except httpx.TransportError as e:
                    raise _RetryableError(f"transport error: {e}") from e

                if response.status_code in RETRYABLE_STATUS_CODES:
                    raise _RetryableError(f"HTTP {response.status_code}: {response.text}")

            except _RetryableError as e:
                last_error = str(e)
                if attempt < self.max_retries:
                    delay = self.retry_base_delay * (2**attempt) + random.uniform(
                        0, self.retry_base_delay
                    )
                    logger.warning(
                        f"GET {endpoint} failed ({last_error}), retrying in {delay:.2f}s "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                break

            if response.status_code == 404:
                raise NotFoundError(f"Not found: {endpoint}")
            if response.is_error:
                raise NetworkError(
                    f"GET {endpoint} failed with HTTP {response.status_code}: {response.text}"
                )
            return response

        logger.error(f"GET {endpoint} failed after {self.max_retries + 1} attempts")
        raise NetworkError(f"GET {endpoint} failed: {last_error}")

    async def _get_json(self, endpoint: str) -> Any:
        response = await self._get(endpoint)
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"Invalid JSON from {endpoint}: {e}") from e

    async def list_utxos(self, address: str) -> list[UTXO]:
        """
        Get UTXOs for an address.

        Each UTXO's locking script is resolved with a follow-up /tx call; if
        any of those fails the whole listing fails.
        """
        data = await self._get_json(f"address/{address}/utxo")
        try:
            records = _utxo_list_adapter.validate_python(data)
        except ValidationError as e:
            raise DecodeError(f"Malformed UTXO list for {address}: {e}") from e

        utxos: list[UTXO] = []
        for record in records:
            scriptpubkey = await self.get_scriptpubkey(record.txid, record.vout)
            utxos.append(
                UTXO(
                    txid=record.txid.lower(),
                    vout=record.vout,
                    value=record.value,
                    scriptpubkey=scriptpubkey,
                )
            )

        logger.debug(f"Found {len(utxos)} UTXOs for {address}")
        return utxos

    async def get_scriptpubkey(self, txid: str, vout: int) -> bytes:
        data = await self._get_json(f"tx/{txid}")
        try:
            tx = EsploraTx.model_validate(data)
        except ValidationError as e:
            raise DecodeError(f"Malformed transaction {txid}: {e}") from e

        if not 0 <= vout < len(tx.vout):
            raise NotFoundError(f"Output index {vout} out of range for {txid}")

        try:
            return bytes.fromhex(tx.vout[vout].scriptpubkey)
        except ValueError as e:
            raise DecodeError(f"Invalid scriptpubkey hex for {txid}:{vout}: {e}") from e

    async def get_fee_estimates(self) -> dict[str, float]:
        data = await self._get_json("fee-estimates")
        try:
            estimates = _fee_estimates_adapter.validate_python(data)
        except ValidationError as e:
            raise DecodeError(f"Malformed fee estimates: {e}") from e
        logger.debug(f"Fee estimates: {estimates}")
        return estimates

    async def broadcast_transaction(self, tx_hex: str) -> str:
        """Submit raw transaction hex. Not retried."""
        url = f"{self.api_url}/tx"
        try:
            response = await self.client.post(
                url, content=tx_hex, headers={"Content-Type": "text/plain"}
            )
        except httpx.HTTPError as e:
            logger.error(f"Broadcast failed: {e}")
            raise NetworkError(f"Broadcast failed: {e}") from e

        if response.is_error:
            raise NetworkError(
                f"Broadcast rejected with HTTP {response.status_code}: {response.text.strip()}"
            )

        txid = response.text.strip()
        logger.info(f"Broadcast accepted: {txid}")
        return txid

    async def close(self) -> None:
        await self.client.aclose()
