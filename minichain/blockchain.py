"""The persistent chain of blocks."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator, Optional

from minichain.block import Block
from minichain.proofofwork import TARGET_BITS
from minichain.storage import Store
from minichain.transaction import TXOutputs, Transaction, new_coinbase_tx
from minichain.wallet import Wallet

DB_FILE = "blockchain_{}.db"
BLOCKS_BUCKET = "blocks"
TIP_KEY = b"l"
GENESIS_COINBASE_DATA = (
    "The Times 03/Jan/2009 Chancellor on brink of second bailout for banks"
)


class BlockchainError(Exception):
    """A problem with the chain or its contents."""


class BlockchainExistsError(BlockchainError):
    """A chain database is already present."""


class BlockchainNotFoundError(BlockchainError):
    """No chain database is present."""


def db_file_path(node_id: str, directory: "str | Path" = ".") -> Path:
    """Location of the chain database for a node."""
    return Path(directory) / DB_FILE.format(node_id)


class Blockchain:
    """Blocks stored by hash, with the tip under a fixed key."""

    def __init__(self, store: Store, tip: bytes, target_bits: int = TARGET_BITS):
        self.store = store
        self.tip = tip
        self.target_bits = target_bits

    @classmethod
    def create(
        cls,
        address: str,
        node_id: str,
        directory: "str | Path" = ".",
        target_bits: int = TARGET_BITS,
    ) -> Blockchain:
        """Create a new chain whose genesis reward goes to ``address``."""
        path = db_file_path(node_id, directory)
        if path.exists():
            raise BlockchainExistsError("blockchain already exists")
        genesis = Block.genesis(new_coinbase_tx(address, GENESIS_COINBASE_DATA), target_bits)
        store = Store(path)
        store.put(BLOCKS_BUCKET, genesis.hash, genesis.serialize())
        store.put(BLOCKS_BUCKET, TIP_KEY, genesis.hash)
        return cls(store, genesis.hash, target_bits)

    @classmethod
    def open(
        cls, node_id: str, directory: "str | Path" = ".", target_bits: int = TARGET_BITS
    ) -> Blockchain:
        """Open the existing chain of a node."""
        path = db_file_path(node_id, directory)
        if not path.exists():
            raise BlockchainNotFoundError("no existing blockchain found, create one first")
        store = Store(path)
        tip = store.get(BLOCKS_BUCKET, TIP_KEY)
        if tip is None:
            store.close()
            raise BlockchainNotFoundError("blockchain database has no tip")
        return cls(store, tip, target_bits)

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> Blockchain:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _load(self, block_hash: bytes) -> Optional[Block]:
        data = self.store.get(BLOCKS_BUCKET, block_hash)
        return None if data is None else Block.deserialize(data)

    def _last_block(self) -> Block:
        last_hash = self.store.get(BLOCKS_BUCKET, TIP_KEY)
        block = None if last_hash is None else self._load(last_hash)
        if block is None:
            raise BlockchainError("last block is missing")
        return block

    def __iter__(self) -> Iterator[Block]:
        """Blocks from the tip back to the genesis block."""
        current = self.tip
        while True:
            block = self._load(current)
            if block is None:
                raise BlockchainError(f"block {current.hex()} is missing")
            yield block
            if not block.prev_block_hash:
                return
            current = block.prev_block_hash

    def add_block(self, block: Block) -> None:
        """Store a block; it becomes the tip if it is higher than the current one."""
        if self.store.get(BLOCKS_BUCKET, block.hash) is not None:
            return
        self.store.put(BLOCKS_BUCKET, block.hash, block.serialize())
        if block.height > self._last_block().height:
            self.store.put(BLOCKS_BUCKET, TIP_KEY, block.hash)
            self.tip = block.hash

    def find_transaction(self, tx_id: bytes) -> Transaction:
        """The transaction with ``tx_id``."""
        for block in self:
            for tx in block.transactions:
                if tx.id == tx_id:
                    return tx
        raise BlockchainError("transaction is not found")

    def find_utxo(self) -> dict[str, TXOutputs]:
        """Unspent outputs of every transaction, keyed by hex transaction ID."""
        utxo: dict[str, TXOutputs] = {}
        spent: dict[str, set[int]] = {}
        for block in self:
            for tx in block.transactions:
                tx_id = tx.id.hex()
                spent_indexes = spent.get(tx_id, set())
                for index, output in enumerate(tx.vout):
                    if index not in spent_indexes:
                        utxo.setdefault(tx_id, TXOutputs()).outputs.append(output)
                if not tx.is_coinbase():
                    for tx_input in tx.vin:
                        spent.setdefault(tx_input.txid.hex(), set()).add(tx_input.vout)
        return utxo

    def best_height(self) -> int:
        """Height of the latest block."""
        return self._last_block().height

    def get_block(self, block_hash: bytes) -> Block:
        """The block with ``block_hash``."""
        block = self._load(block_hash)
        if block is None:
            raise BlockchainError("block is not found")
        return block

    def block_hashes(self) -> list[bytes]:
        """Hashes of all blocks from the tip back."""
        return [block.hash for block in self]

    def mine_block(self, transactions: Iterable[Transaction]) -> Block:
        """Verify transactions, mine them into a new tip block and store it."""
        transactions = list(transactions)
        for tx in transactions:
            if not self.verify_transaction(tx):
                raise BlockchainError("invalid transaction")
        last = self._last_block()
        block = Block.mine(transactions, last.hash, last.height + 1, self.target_bits)
        self.store.put(BLOCKS_BUCKET, block.hash, block.serialize())
        self.store.put(BLOCKS_BUCKET, TIP_KEY, block.hash)
        self.tip = block.hash
        return block

    def _previous_transactions(self, tx: Transaction) -> dict[str, Transaction]:
        previous = {}
        for tx_input in tx.vin:
            prev = self.find_transaction(tx_input.txid)
            previous[prev.id.hex()] = prev
        return previous

    def sign_transaction(self, tx: Transaction, wallet: Wallet) -> None:
        """Sign the inputs of ``tx`` with ``wallet``."""
        tx.sign(wallet, self._previous_transactions(tx))

    def verify_transaction(self, tx: Transaction) -> bool:
        """Check the input signatures of ``tx``."""
        if tx.is_coinbase():
            return True
        return tx.verify(self._previous_transactions(tx))