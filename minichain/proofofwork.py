"""Proof-of-work search and validation for blocks."""

from __future__ import annotations

import hashlib
import logging
from typing import Any

from minichain.utils import int_to_hex

TARGET_BITS = 16
MAX_NONCE = 2**63 - 1

_log = logging.getLogger(__name__)


class ProofOfWork:
    """Finds and checks a nonce whose hash falls below a target."""

    def __init__(self, block: Any, target_bits: int = TARGET_BITS):
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
        """The bytes hashed for a given nonce."""
        return self._prefix() + int_to_hex(nonce)

    def run(self) -> tuple[int, bytes]:
        """Search nonces from zero; return the first valid nonce and its hash."""
        prefix = self._prefix()
        _log.debug("mining a new block")
        for nonce in range(MAX_NONCE):
            digest = hashlib.sha256(prefix + int_to_hex(nonce)).digest()
            if int.from_bytes(digest, "big") < self.target:
                _log.debug("found hash %s at nonce %d", digest.hex(), nonce)
                return nonce, digest
        raise RuntimeError("no valid nonce found")

    def validate(self) -> bool:
        """Whether the block's stored nonce satisfies the target."""
        digest = hashlib.sha256(self.prepare_data(self.block.nonce)).digest()
        return int.from_bytes(digest, "big") < self.target