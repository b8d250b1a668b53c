"""Proof-of-work chain persisted to a file, with a small command line."""

from __future__ import annotations

import argparse
import hashlib
import json
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Sequence, Tuple

from minichain.storage import Store
from minichain.utils import int_to_hex

DB_FILE = "blockchain.db"
BLOCKS_BUCKET = "blocks"
TIP_KEY = b"l"
TARGET_BITS = 24
MAX_NONCE = 2**63 - 1

USAGE = """
Usage:
  addblock -data BLOCK_DATA    add a block to the blockchain
  printchain                   print all the blocks of the blockchain
"""

__all__ = ["Block", "Blockchain", "ProofOfWork", "main"]


@dataclass
class Block:
    """A mined block that can be stored as bytes."""

    timestamp: int
    prev_block_hash: bytes = b""
    hash: bytes = b""
    data: bytes = b""
    nonce: int = 0

    @classmethod
    def new(
        cls, data: "str | bytes", prev_block_hash: bytes, target_bits: int = TARGET_BITS
    ) -> Block:
        """Mine a block holding ``data`` on top of ``prev_block_hash``."""
        payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        block = cls(int(time.time()), bytes(prev_block_hash), b"", payload, 0)
        block.nonce, block.hash = ProofOfWork(block, target_bits).run()
        return block

    @classmethod
    def genesis(cls, target_bits: int = TARGET_BITS) -> Block:
        """Mine the first block of a chain."""
        return cls.new("Genesis Block", b"", target_bits)

    def serialize(self) -> bytes:
        content = {
            "timestamp": self.timestamp,
            "data": self.data.hex(),
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
                bytes.fromhex(raw["prev_block_hash"]),
                bytes.fromhex(raw["hash"]),
                bytes.fromhex(raw["data"]),
                int(raw["nonce"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"malformed block: {exc}") from exc


class ProofOfWork:
    """Search for a nonce whose block hash falls below a target."""

    def __init__(self, block: Block, target_bits: int = TARGET_BITS):
        if not 0 <= target_bits <= 256:
            raise ValueError(f"target bits must be between 0 and 256, got {target_bits}")
        self.block = block
        self.target_bits = target_bits
        self.target = 1 << (256 - target_bits)

    def prepare_data(self, nonce: int) -> bytes:
        return b"".join(
            (
                self.block.prev_block_hash,
                self.block.data,
                int_to_hex(self.block.timestamp),
                int_to_hex(self.target_bits),
                int_to_hex(nonce),
            )
        )

    def run(self) -> Tuple[int, bytes]:
        """Return the first nonce that satisfies the target, with its hash."""
        shown = self.block.data.decode("utf-8", errors="replace")
        print(f'Mining the block containing "{shown}"')
        nonce = 0
        digest = b""
        while nonce < MAX_NONCE:
            digest = hashlib.sha256(self.prepare_data(nonce)).digest()
            if int.from_bytes(digest, "big") < self.target:
                print(f"\r{digest.hex()}", end="")
                break
            nonce += 1
        print("\n")
        return nonce, digest

    def validate(self) -> bool:
        digest = hashlib.sha256(self.prepare_data(self.block.nonce)).digest()
        return int.from_bytes(digest, "big") < self.target


class Blockchain:
    """Blocks stored by hash; the tip hash is kept under a fixed key."""

    def __init__(self, path: "str | Path" = DB_FILE, target_bits: int = TARGET_BITS):
        self.target_bits = target_bits
        self.store = Store(path)
        tip = self.store.get(BLOCKS_BUCKET, TIP_KEY)
        if tip is None:
            print("No existing blockchain found. Creating a new one...")
            try:
                genesis = Block.genesis(target_bits)
            except BaseException:
                self.store.close()
                raise
            self.store.put(BLOCKS_BUCKET, genesis.hash, genesis.serialize())
            self.store.put(BLOCKS_BUCKET, TIP_KEY, genesis.hash)
            tip = genesis.hash
        self.tip = tip

    def add_block(self, data: "str | bytes") -> Block:
        """Mine a block holding ``data`` on top of the tip and store it."""
        last_hash = self.store.get(BLOCKS_BUCKET, TIP_KEY) or self.tip
        block = Block.new(data, last_hash, self.target_bits)
        self.store.put(BLOCKS_BUCKET, block.hash, block.serialize())
        self.store.put(BLOCKS_BUCKET, TIP_KEY, block.hash)
        self.tip = block.hash
        return block

    def __iter__(self) -> Iterator[Block]:
        """Blocks from the tip back to the genesis block."""
        current = self.tip
        while True:
            encoded = self.store.get(BLOCKS_BUCKET, current)
            if encoded is None:
                raise LookupError(f"block {current.hex()} is missing")
            block = Block.deserialize(encoded)
            yield block
            if not block.prev_block_hash:
                return
            current = block.prev_block_hash

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> Blockchain:
        return self

    def __exit__(self, *args) -> None:
        self.close()


def _print_chain(chain: Blockchain) -> None:
    for block in chain:
        print(f"Prev hash: {block.prev_block_hash.hex()}")
        print(f"Data: {block.data.decode('utf-8', errors='replace')}")
        print(f"Hash: {block.hash.hex()}")
        valid = ProofOfWork(block, chain.target_bits).validate()
        print(f"PoW: {str(valid).lower()}")
        print()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run ``addblock`` or ``printchain`` against the chain in the working directory."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print(USAGE, end="")
        return 1

    command, rest = args[0], args[1:]
    if command == "addblock":
        parser = argparse.ArgumentParser(prog="addblock")
        parser.add_argument("-data", "--data", dest="data", default="", help="Block data")
    elif command == "printchain":
        parser = argparse.ArgumentParser(prog="printchain")
    else:
        print(USAGE, end="")
        return 1

    try:
        options = parser.parse_args(rest)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 1

    if command == "addblock" and not options.data:
        parser.print_usage()
        return 1

    with Blockchain(DB_FILE) as chain:
        if command == "addblock":
            chain.add_block(options.data)
        else:
            _print_chain(chain)
    return 0


if __name__ == "__main__":
    sys.exit(main())