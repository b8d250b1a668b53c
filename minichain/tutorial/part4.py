"""Persistent proof-of-work chain whose blocks carry simple transactions."""

from __future__ import annotations

import argparse
import hashlib
import json
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Sequence

from minichain.blockchain import (
    GENESIS_COINBASE_DATA,
    BlockchainError,
    BlockchainExistsError,
    BlockchainNotFoundError,
)
from minichain.storage import Store
from minichain.utils import int_to_hex

SUBSIDY = 10
TARGET_BITS = 24
MAX_NONCE = 2**63 - 1
DB_FILE = "blockchain.db"
BLOCKS_BUCKET = "blocks"
TIP_KEY = b"l"

USAGE = "\n".join(
    [
        "Usage:",
        "  getbalance -address ADDRESS - Get balance of ADDRESS",
        "  createblockchain -address ADDRESS - Create a blockchain and send genesis block reward to ADDRESS",
        "  printchain - Print all the blocks of the blockchain",
        "  send -from FROM -to TO -amount AMOUNT - Send AMOUNT of coins from FROM address to TO",
    ]
)


@dataclass
class TXInput:
    """Reference to an output of an earlier transaction plus unlocking data."""

    txid: bytes
    vout: int
    script_sig: str

    def can_unlock_output_with(self, unlocking_data: str) -> bool:
        """Whether this input was made by ``unlocking_data`` (an address)."""
        return self.script_sig == unlocking_data


@dataclass
class TXOutput:
    """Coins locked to an address."""

    value: int
    script_pub_key: str

    def can_be_unlocked_with(self, unlocking_data: str) -> bool:
        """Whether ``unlocking_data`` (an address) may spend this output."""
        return self.script_pub_key == unlocking_data


@dataclass
class Transaction:
    """A transaction: an ID, inputs and outputs."""

    id: bytes = b""
    vin: list[TXInput] = field(default_factory=list)
    vout: list[TXOutput] = field(default_factory=list)

    def is_coinbase(self) -> bool:
        """Whether this is a reward transaction with no real input."""
        return len(self.vin) == 1 and not self.vin[0].txid and self.vin[0].vout == -1

    def set_id(self) -> None:
        """Set the ID to the SHA-256 of the encoded transaction."""
        encoded = json.dumps(self._to_dict(), sort_keys=True, separators=(",", ":"))
        self.id = hashlib.sha256(encoded.encode("utf-8")).digest()

    def _to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id.hex(),
            "vin": [
                {"txid": i.txid.hex(), "vout": i.vout, "script_sig": i.script_sig}
                for i in self.vin
            ],
            "vout": [
                {"value": o.value, "script_pub_key": o.script_pub_key} for o in self.vout
            ],
        }

    @classmethod
    def _from_dict(cls, raw: dict[str, Any]) -> Transaction:
        return cls(
            bytes.fromhex(raw["id"]),
            [
                TXInput(bytes.fromhex(i["txid"]), int(i["vout"]), str(i["script_sig"]))
                for i in raw["vin"]
            ],
            [TXOutput(int(o["value"]), str(o["script_pub_key"])) for o in raw["vout"]],
        )


def new_coinbase_tx(to: str, data: str = "") -> Transaction:
    """A reward transaction paying the subsidy to ``to``."""
    if not data:
        data = f"Reward to '{to}'"
    tx = Transaction(b"", [TXInput(b"", -1, data)], [TXOutput(SUBSIDY, to)])
    tx.set_id()
    return tx


def new_utxo_transaction(
    sender: str, to: str, amount: int, blockchain: Blockchain
) -> Transaction:
    """A transaction moving ``amount`` from ``sender`` to ``to``, with change."""
    accumulated, spendable = blockchain.find_spendable_outputs(sender, amount)
    if accumulated < amount:
        raise BlockchainError("not enough funds")

    inputs = [
        TXInput(bytes.fromhex(tx_id), index, sender)
        for tx_id, indexes in spendable.items()
        for index in indexes
    ]
    outputs = [TXOutput(amount, to)]
    if accumulated > amount:
        outputs.append(TXOutput(accumulated - amount, sender))

    tx = Transaction(b"", inputs, outputs)
    tx.set_id()
    return tx


@dataclass
class Block:
    """A mined group of transactions linked to its predecessor."""

    timestamp: int
    transactions: list[Transaction] = field(default_factory=list)
    prev_block_hash: bytes = b""
    hash: bytes = b""
    nonce: int = 0

    @classmethod
    def new(
        cls,
        transactions: Iterable[Transaction],
        prev_block_hash: bytes,
        target_bits: int = TARGET_BITS,
    ) -> Block:
        """Create a block and mine it."""
        block = cls(int(time.time()), list(transactions), bytes(prev_block_hash), b"", 0)
        block.nonce, block.hash = ProofOfWork(block, target_bits).run()
        return block

    @classmethod
    def genesis(cls, coinbase: Transaction, target_bits: int = TARGET_BITS) -> Block:
        """The first block, holding only the coinbase transaction."""
        return cls.new([coinbase], b"", target_bits)

    def hash_transactions(self) -> bytes:
        """SHA-256 of the concatenated transaction IDs."""
        return hashlib.sha256(b"".join(tx.id for tx in self.transactions)).digest()

    def serialize(self) -> bytes:
        content = {
            "timestamp": self.timestamp,
            "transactions": [tx._to_dict() for tx in self.transactions],
            "prev_block_hash": self.prev_block_hash.hex(),
            "hash": self.hash.hex(),
            "nonce": self.nonce,
        }
        return json.dumps(content, sort_keys=True, separators=(",", ":")).encode("utf-8")

    @classmethod
    def deserialize(cls, data: bytes) -> Block:
        try:
            raw = json.loads(data)
            return cls(
                int(raw["timestamp"]),
                [Transaction._from_dict(entry) for entry in raw["transactions"]],
                bytes.fromhex(raw["prev_block_hash"]),
                bytes.fromhex(raw["hash"]),
                int(raw["nonce"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"malformed block: {exc}") from exc


class ProofOfWork:
    """Searches for a nonce whose hash is below ``1 << (256 - target_bits)``."""

    def __init__(self, block: Block, target_bits: int = TARGET_BITS):
        if not 0 <= target_bits <= 256:
            raise ValueError("target bits must be between 0 and 256")
        self.block = block
        self.target_bits = target_bits
        self.target = 1 << (256 - target_bits)

    def _prefix(self) -> bytes:
        return b"".join(
            (
                self.block.prev_block_hash,
                self.block.hash_transactions(),
                int_to_hex(self.block.timestamp),
                int_to_hex(self.target_bits),
            )
        )

    def prepare_data(self, nonce: int) -> bytes:
        """Previous hash, transactions hash, timestamp, target bits and nonce."""
        return self._prefix() + int_to_hex(nonce)

    def run(self) -> tuple[int, bytes]:
        """Try nonces from zero; return the first valid one with its hash."""
        print("Mining a new block", end="")
        prefix = self._prefix()
        for nonce in range(MAX_NONCE):
            digest = hashlib.sha256(prefix + int_to_hex(nonce)).digest()
            if int.from_bytes(digest, "big") < self.target:
                print(f"\r{digest.hex()}", end="")
                print("\n\n", end="")
                return nonce, digest
        raise RuntimeError("no valid nonce found")

    def validate(self) -> bool:
        """Whether the block's nonce gives a hash below the target."""
        digest = hashlib.sha256(self.prepare_data(self.block.nonce)).digest()
        return int.from_bytes(digest, "big") < self.target


class Blockchain:
    """Blocks stored by hash in a file; the tip hash is kept under a fixed key."""

    def __init__(self, store: Store, tip: bytes, target_bits: int = TARGET_BITS):
        self.store = store
        self.tip = tip
        self.target_bits = target_bits

    @classmethod
    def create(
        cls, address: str, path: "str | Path" = DB_FILE, target_bits: int = TARGET_BITS
    ) -> Blockchain:
        """Create a new chain whose genesis reward goes to ``address``."""
        if Path(path).exists():
            raise BlockchainExistsError("Blockchain already exists.")
        genesis = Block.genesis(new_coinbase_tx(address, GENESIS_COINBASE_DATA), target_bits)
        store = Store(path)
        store.put(BLOCKS_BUCKET, genesis.hash, genesis.serialize())
        store.put(BLOCKS_BUCKET, TIP_KEY, genesis.hash)
        return cls(store, genesis.hash, target_bits)

    @classmethod
    def open(cls, path: "str | Path" = DB_FILE, target_bits: int = TARGET_BITS) -> Blockchain:
        """Open an existing chain."""
        if not Path(path).exists():
            raise BlockchainNotFoundError("No existing blockchain found. Create one first.")
        store = Store(path)
        tip = store.get(BLOCKS_BUCKET, TIP_KEY)
        if tip is None:
            store.close()
            raise BlockchainNotFoundError("No existing blockchain found. Create one first.")
        return cls(store, tip, target_bits)

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> Blockchain:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __iter__(self) -> Iterator[Block]:
        """Blocks from the tip back to the genesis block."""
        current = self.tip
        while True:
            encoded = self.store.get(BLOCKS_BUCKET, current)
            if encoded is None:
                raise BlockchainError(f"block {current.hex()} is missing")
            block = Block.deserialize(encoded)
            yield block
            if not block.prev_block_hash:
                return
            current = block.prev_block_hash

    def mine_block(self, transactions: Iterable[Transaction]) -> Block:
        """Mine the transactions into a new tip block and store it."""
        last_hash = self.store.get(BLOCKS_BUCKET, TIP_KEY) or self.tip
        block = Block.new(transactions, last_hash, self.target_bits)
        self.store.put(BLOCKS_BUCKET, block.hash, block.serialize())
        self.store.put(BLOCKS_BUCKET, TIP_KEY, block.hash)
        self.tip = block.hash
        return block

    def find_unspent_transactions(self, address: str) -> list[Transaction]:
        """Transactions holding outputs of ``address`` that are not yet spent.

        A transaction appears once for every such output.
        """
        unspent: list[Transaction] = []
        spent: dict[str, set[int]] = {}
        for block in self:
            for tx in block.transactions:
                tx_id = tx.id.hex()
                spent_indexes = spent.get(tx_id, set())
                for index, output in enumerate(tx.vout):
                    if index in spent_indexes:
                        continue
                    if output.can_be_unlocked_with(address):
                        unspent.append(tx)
                if not tx.is_coinbase():
                    for tx_input in tx.vin:
                        if tx_input.can_unlock_output_with(address):
                            spent.setdefault(tx_input.txid.hex(), set()).add(tx_input.vout)
        return unspent

    def find_utxo(self, address: str) -> list[TXOutput]:
        """Outputs of the unspent transactions that ``address`` can unlock."""
        return [
            output
            for tx in self.find_unspent_transactions(address)
            for output in tx.vout
            if output.can_be_unlocked_with(address)
        ]

    def find_spendable_outputs(
        self, address: str, amount: int
    ) -> tuple[int, dict[str, list[int]]]:
        """Collect outputs of ``address`` until at least ``amount`` is covered."""
        unspent: dict[str, list[int]] = {}
        accumulated = 0
        for tx in self.find_unspent_transactions(address):
            tx_id = tx.id.hex()
            for index, output in enumerate(tx.vout):
                if output.can_be_unlocked_with(address) and accumulated < amount:
                    accumulated += output.value
                    unspent.setdefault(tx_id, []).append(index)
                    if accumulated >= amount:
                        return accumulated, unspent
        return accumulated, unspent


def _print_chain(chain: Blockchain) -> None:
    for block in chain:
        print(f"Prev hash: {block.prev_block_hash.hex()}")
        print(f"Hash: {block.hash.hex()}")
        valid = ProofOfWork(block, chain.target_bits).validate()
        print(f"PoW: {str(valid).lower()}")
        print()


def _parsers() -> dict[str, argparse.ArgumentParser]:
    getbalance = argparse.ArgumentParser(prog="getbalance")
    getbalance.add_argument(
        "-address", "--address", dest="address", default="",
        help="The address to get balance for",
    )
    createblockchain = argparse.ArgumentParser(prog="createblockchain")
    createblockchain.add_argument(
        "-address", "--address", dest="address", default="",
        help="The address to send genesis block reward to",
    )
    send = argparse.ArgumentParser(prog="send")
    send.add_argument("-from", "--from", dest="sender", default="", help="Source wallet address")
    send.add_argument("-to", "--to", dest="to", default="", help="Destination wallet address")
    send.add_argument("-amount", "--amount", dest="amount", type=int, default=0,
                      help="Amount to send")
    printchain = argparse.ArgumentParser(prog="printchain")
    return {
        "getbalance": getbalance,
        "createblockchain": createblockchain,
        "send": send,
        "printchain": printchain,
    }


def _run(command: str, options: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    if command == "getbalance":
        if not options.address:
            parser.print_usage()
            return 1
        with Blockchain.open(DB_FILE) as chain:
            balance = sum(output.value for output in chain.find_utxo(options.address))
        print(f"Balance of '{options.address}': {balance}")
    elif command == "createblockchain":
        if not options.address:
            parser.print_usage()
            return 1
        Blockchain.create(options.address, DB_FILE).close()
        print("Done!")
    elif command == "printchain":
        with Blockchain.open(DB_FILE) as chain:
            _print_chain(chain)
    elif command == "send":
        if not options.sender or not options.to or options.amount <= 0:
            parser.print_usage()
            return 1
        with Blockchain.open(DB_FILE) as chain:
            tx = new_utxo_transaction(options.sender, options.to, options.amount, chain)
            chain.mine_block([tx])
        print("Success!")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run a chain command against the database in the working directory."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print(USAGE)
        return 1

    command, rest = args[0], args[1:]
    parser = _parsers().get(command)
    if parser is None:
        print(USAGE)
        return 1

    try:
        options = parser.parse_args(rest)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 1

    try:
        return _run(command, options, parser)
    except BlockchainError as exc:
        print(exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())