"""The simplest chain: blocks linked by hash, kept in memory."""

from __future__ import annotations

import hashlib
import sys
import time
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence


def _to_bytes(data: "str | bytes") -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


@dataclass
class Block:
    """A block header (timestamp, previous hash, own hash) and its data."""

    timestamp: int
    prev_block_hash: bytes = b""
    hash: bytes = b""
    data: bytes = b""

    @classmethod
    def new(cls, data: "str | bytes", prev_block_hash: bytes) -> Block:
        """Create a block and compute its hash."""
        block = cls(int(time.time()), bytes(prev_block_hash), b"", _to_bytes(data))
        block.set_hash()
        return block

    @classmethod
    def genesis(cls) -> Block:
        """The first block of a chain."""
        return cls.new("Genesis Block", b"")

    def set_hash(self) -> None:
        """Hash is SHA-256 of previous hash, data and decimal timestamp."""
        headers = self.prev_block_hash + self.data + str(self.timestamp).encode("ascii")
        self.hash = hashlib.sha256(headers).digest()


class BlockChain:
    """An in-memory list of blocks starting with the genesis block."""

    def __init__(self) -> None:
        self.blocks: list[Block] = [Block.genesis()]

    def add_block(self, data: "str | bytes") -> Block:
        """Append a block holding ``data`` after the current last block."""
        block = Block.new(data, self.blocks[-1].hash)
        self.blocks.append(block)
        return block

    def __iter__(self) -> Iterator[Block]:
        """Blocks from the genesis block onwards."""
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Build a small chain and print its blocks."""
    chain = BlockChain()
    chain.add_block("Send 1 BTC to Ivan")
    chain.add_block("Send 2 more BTC to Ivan")

    for block in chain:
        print(f"Prev hash: {block.prev_block_hash.hex()}")
        print(f"Data: {block.data.decode('utf-8', errors='replace')}")
        print(f"Hash: {block.hash.hex()}")
        print()
    return 0


if __name__ == "__main__":
    sys.exit(main())