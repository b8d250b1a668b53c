"""In-memory chain whose blocks are secured by proof-of-work."""

from __future__ import annotations

import hashlib
import sys
import time
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from minichain.utils import int_to_hex

TARGET_BITS = 24
MAX_NONCE = 2**63 - 1


def _to_bytes(data: "str | bytes") -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


@dataclass
class Block:
    """A block whose hash was found by proof-of-work."""

    timestamp: int
    prev_block_hash: bytes = b""
    hash: bytes = b""
    data: bytes = b""
    nonce: int = 0

    @classmethod
    def new(
        cls, data: "str | bytes", prev_block_hash: bytes, target_bits: int = TARGET_BITS
    ) -> Block:
        """Create a block and mine it."""
        block = cls(int(time.time()), bytes(prev_block_hash), b"", _to_bytes(data), 0)
        block.nonce, block.hash = ProofOfWork(block, target_bits).run()
        return block

    @classmethod
    def genesis(cls, target_bits: int = TARGET_BITS) -> Block:
        """The first block of a chain."""
        return cls.new("Genesis Block", b"", target_bits)


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
                self.block.data,
                int_to_hex(self.block.timestamp),
                int_to_hex(self.target_bits),
            )
        )

    def prepare_data(self, nonce: int) -> bytes:
        """Previous hash, data, timestamp, target bits and nonce, joined."""
        return self._prefix() + int_to_hex(nonce)

    def run(self) -> tuple[int, bytes]:
        """Try nonces from zero; return the first valid one with its hash."""
        print(f'Mining the block containing "{self.block.data.decode("utf-8", errors="replace")}"')
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


class BlockChain:
    """An in-memory list of mined blocks."""

    def __init__(self, target_bits: int = TARGET_BITS):
        self.target_bits = target_bits
        self.blocks: list[Block] = [Block.genesis(target_bits)]

    def add_block(self, data: "str | bytes") -> Block:
        """Mine and append a block holding ``data``."""
        block = Block.new(data, self.blocks[-1].hash, self.target_bits)
        self.blocks.append(block)
        return block

    def __iter__(self) -> Iterator[Block]:
        """Blocks from the genesis block onwards."""
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Mine a small chain and print its blocks with their proof-of-work status."""
    chain = BlockChain()
    chain.add_block("Send 1 BTC to Ivan")
    chain.add_block("Send 2 more BTC to Ivan")

    for block in chain:
        print(f"Prev hash: {block.prev_block_hash.hex()}")
        print(f"Data: {block.data.decode('utf-8', errors='replace')}")
        print(f"Hash: {block.hash.hex()}")
        valid = ProofOfWork(block, chain.target_bits).validate()
        print(f"PoW: {str(valid).lower()}")
        print()
    return 0


if __name__ == "__main__":
    sys.exit(main())