"""Merkle tree over a sequence of byte strings."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class MerkleNode:
    """A node of a Merkle tree; leaves have no children."""

    data: bytes
    left: Optional[MerkleNode] = None
    right: Optional[MerkleNode] = None


def merkle_node(
    left: Optional[MerkleNode], right: Optional[MerkleNode], data: Optional[bytes] = None
) -> MerkleNode:
    """Build a leaf from ``data`` or a branch from two children."""
    if left is None and right is None:
        return MerkleNode(hashlib.sha256(data or b"").digest())
    if left is None or right is None:
        raise ValueError("a branch node needs both children")
    return MerkleNode(hashlib.sha256(left.data + right.data).digest(), left, right)


class MerkleTree:
    """A Merkle tree; odd levels are padded by repeating their last node."""

    def __init__(self, data: Iterable[bytes]):
        items = list(data)
        if not items:
            raise ValueError("a Merkle tree needs at least one item")
        if len(items) % 2:
            items.append(items[-1])
        nodes = [merkle_node(None, None, item) for item in items]
        while len(nodes) > 1:
            if len(nodes) % 2:
                nodes.append(nodes[-1])
            nodes = [merkle_node(left, right) for left, right in zip(nodes[::2], nodes[1::2])]
        self.root = nodes[0]

    @property
    def root_hash(self) -> bytes:
        """Hash held by the root node."""
        return self.root.data