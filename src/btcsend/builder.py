"""
Transaction assembler.

Builds the unsigned transaction skeleton from:
- the payee address and amount (always output 0)
- the selected UTXOs (one input each, in selection order)
- the change back to the wallet's own address (always output 1)
"""

from __future__ import annotations

from loguru import logger

from btcsend.address import address_to_scriptpubkey
from btcsend.config import NetworkType
from btcsend.errors import InsufficientFundsError, InvalidAmountError
from btcsend.models import UTXO, Transaction, TxInput, TxOutput


class TransactionAssembler:
    """
    Assembles single-recipient transactions with a mandatory change output.

    Transactions that would leave zero or negative change are rejected, so
    exact-amount spends are not supported.
    """

    def __init__(self, change_address: str, network: NetworkType = NetworkType.TESTNET):
        self.network = network
        self.change_address = change_address
        self._change_script = address_to_scriptpubkey(change_address, network)

    def assemble(
        self,
        payee_address: str,
        amount: int,
        selected_utxos: list[UTXO],
        total_selected_value: int,
        fee: int,
    ) -> Transaction:
        """
        Build the unsigned transaction.

        Args:
            payee_address: Destination address
            amount: Payment amount in sats
            selected_utxos: UTXOs to spend
            total_selected_value: Sum of the selected UTXO values
            fee: Absolute fee in sats

        Returns:
            Unsigned Transaction with payment and change outputs

        Raises:
            DecodeError: payee address cannot be decoded for this network
            InvalidAmountError: amount is zero or negative
            InsufficientFundsError: change would be zero or negative
        """
        if amount <= 0:
            raise InvalidAmountError(f"Payment amount must be positive: {amount}")

        tx = Transaction()

        payee_script = address_to_scriptpubkey(payee_address, self.network)
        tx.add_output(TxOutput(value=amount, script_pubkey=payee_script))

        for utxo in selected_utxos:
            # script_sig is filled in by the signer for legacy inputs
            tx.add_input(TxInput(txid=utxo.txid, vout=utxo.vout))

        change = total_selected_value - amount - fee
        if change <= 0:
            raise InsufficientFundsError(
                f"Insufficient funds: need {amount + fee} sats plus change "
                f"(amount {amount} + fee {fee}), selected {total_selected_value}"
            )

        tx.add_output(TxOutput(value=change, script_pubkey=self._change_script))

        logger.debug(
            f"Assembled tx: {len(tx.inputs)} inputs, payment {amount}, change {change}, fee {fee}"
        )
        return tx
