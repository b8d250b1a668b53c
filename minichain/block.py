"""Blocks of the chain."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Iterable

from minichain.merkle_tree import MerkleTree
from minichain.proofofwork import TARGET_BITS, ProofOfWork
from minichain.transaction import Transaction


@dataclass
class Block:
    """A mined group of transactions linked to its predecessor."""

    timestamp: int
    transactions: list[Transaction] = field(default_factory=list)
    prev_block_hash: bytes = b""
    hash: bytes = b""
    nonce: int = 0
    height: int = 0

    @classmethod
    def mine(
        cls,
        transactions: Iterable[Transaction],
        prev_block_hash: bytes,
        height: int,
        target_bits: int = TARGET_BITS,
    ) -> Block:
        """Create a block and run proof-of-work on it."""
        block = cls(int(time.time()), list(transactions), prev_block_hash, b"", 0, height)
        block.nonce, block.hash = ProofOfWork(block, target_bits).run()
        return block

    @classmethod
    def genesis(cls, coinbase: Transaction, target_bits: int = TARGET_BITS) -> Block:
        """The first block of a chain, holding only the coinbase."""
        return cls.mine([coinbase], b"", 0, target_bits)

    def hash_transactions(self) -> bytes:
        """Merkle root of the serialized transactions."""
        return MerkleTree(tx.serialize() for tx in self.transactions).root_hash

    def serialize(self) -> bytes:
        content = {
            "timestamp": self.timestamp,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "prev_block_hash": self.prev_block_hash.hex(),
            "hash": self.hash.hex(),
            "nonce": self.nonce,
            "height": self.height,
        }
        return json.dumps(content, sort_keys=True, separators=(",", ":")).encode("utf-8")

    @classmethod
    def deserialize(cls, data: bytes) -> Block:
        try:
            raw = json.loads(data)
            return cls(
                int(raw["timestamp"]),
                [Transaction.from_dict(entry) for entry in raw["transactions"]],
                bytes.fromhex(raw["prev_block_hash"]),
                bytes.fromhex(raw["hash"]),
                int(raw["nonce"]),
                int(raw["height"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"malformed block: {exc}") from exc