"""Cache of unspent outputs kept next to the chain."""

from __future__ import annotations

from dataclasses import dataclass

from minichain.block import Block
from minichain.blockchain import Blockchain, BlockchainError
from minichain.transaction import TXInput, TXOutput, TXOutputs, Transaction
from minichain.wallet import Wallet, hash_pub_key

UTXO_BUCKET = "chainstate"


@dataclass
class UTXOSet:
    """Unspent outputs indexed by transaction ID."""

    blockchain: Blockchain

    def _entries(self) -> list[tuple[bytes, TXOutputs]]:
        return [
            (key, TXOutputs.deserialize(value))
            for key, value in self.blockchain.store.items(UTXO_BUCKET)
        ]

    def find_spendable_outputs(
        self, pub_key_hash: bytes, amount: int
    ) -> tuple[int, dict[str, list[int]]]:
        """Collect outputs of ``pub_key_hash`` until ``amount`` is covered."""
        unspent: dict[str, list[int]] = {}
        accumulated = 0
        for key, outs in self._entries():
            for index, output in enumerate(outs.outputs):
                if output.is_locked_with_key(pub_key_hash) and accumulated < amount:
                    accumulated += output.value
                    unspent.setdefault(key.hex(), []).append(index)
        return accumulated, unspent

    def find_utxo(self, pub_key_hash: bytes) -> list[TXOutput]:
        """All unspent outputs locked to ``pub_key_hash``."""
        return [
            output
            for _, outs in self._entries()
            for output in outs.outputs
            if output.is_locked_with_key(pub_key_hash)
        ]

    def count_transactions(self) -> int:
        """Number of transactions that still have unspent outputs."""
        return len(self.blockchain.store.items(UTXO_BUCKET))

    def reindex(self) -> None:
        """Rebuild the set from the whole chain."""
        store = self.blockchain.store
        store.drop_bucket(UTXO_BUCKET)
        for tx_id, outs in self.blockchain.find_utxo().items():
            store.put(UTXO_BUCKET, bytes.fromhex(tx_id), outs.serialize())

    def update(self, block: Block) -> None:
        """Apply a new tip block to the set."""
        store = self.blockchain.store
        for tx in block.transactions:
            if not tx.is_coinbase():
                for tx_input in tx.vin:
                    stored = store.get(UTXO_BUCKET, tx_input.txid)
                    if stored is None:
                        raise BlockchainError(
                            f"no unspent outputs for transaction {tx_input.txid.hex()}"
                        )
                    remaining = [
                        output
                        for index, output in enumerate(TXOutputs.deserialize(stored).outputs)
                        if index != tx_input.vout
                    ]
                    if remaining:
                        store.put(UTXO_BUCKET, tx_input.txid, TXOutputs(remaining).serialize())
                    else:
                        store.delete(UTXO_BUCKET, tx_input.txid)
            store.put(UTXO_BUCKET, tx.id, TXOutputs(list(tx.vout)).serialize())


def new_utxo_transaction(
    wallet: Wallet, to: str, amount: int, utxo_set: UTXOSet
) -> Transaction:
    """A signed transaction sending ``amount`` from ``wallet`` to ``to``."""
    pub_key_hash = hash_pub_key(wallet.public_key)
    accumulated, spendable = utxo_set.find_spendable_outputs(pub_key_hash, amount)
    if accumulated < amount:
        raise BlockchainError("not enough funds")

    inputs = [
        TXInput(bytes.fromhex(tx_id), index, b"", wallet.public_key)
        for tx_id, indexes in spendable.items()
        for index in indexes
    ]
    outputs = [TXOutput.for_address(amount, to)]
    if accumulated > amount:
        outputs.append(TXOutput.for_address(accumulated - amount, wallet.address()))

    tx = Transaction(b"", inputs, outputs)
    tx.id = tx.hash()
    utxo_set.blockchain.sign_transaction(tx, wallet)
    return tx