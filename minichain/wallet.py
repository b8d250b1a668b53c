"""Key pairs, addresses and signatures."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any

from Crypto.Hash import RIPEMD160, SHA256
from Crypto.PublicKey import ECC
from Crypto.Signature import DSS

from minichain.base58 import base58_decode, base58_encode

VERSION = 0x00
ADDRESS_CHECKSUM_LEN = 4
_CURVE = "P-256"
_COORD_LEN = 32
_SCALAR_FIELD = "scalar"
_POINT_FIELD = "point"


def hash_pub_key(pub_key: bytes) -> bytes:
    """RIPEMD-160 of the SHA-256 of a public key."""
    return RIPEMD160.new(hashlib.sha256(pub_key).digest()).digest()


def checksum(payload: bytes) -> bytes:
    """First bytes of a double SHA-256, used as an address checksum."""
    digest = hashlib.sha256(hashlib.sha256(payload).digest()).digest()
    return digest[:ADDRESS_CHECKSUM_LEN]


def validate_address(address: "str | bytes") -> bool:
    """Whether an address decodes and carries a matching checksum."""
    try:
        decoded = base58_decode(address)
    except ValueError:
        return False
    if len(decoded) <= ADDRESS_CHECKSUM_LEN:
        return False
    payload, actual = decoded[:-ADDRESS_CHECKSUM_LEN], decoded[-ADDRESS_CHECKSUM_LEN:]
    return checksum(payload) == actual


def pub_key_hash_from_address(address: "str | bytes") -> bytes:
    """Strip version byte and checksum from a decoded address."""
    decoded = base58_decode(address)
    if len(decoded) <= ADDRESS_CHECKSUM_LEN:
        raise ValueError("address is too short")
    return decoded[1:-ADDRESS_CHECKSUM_LEN]


def _public_bytes(key: ECC.EccKey) -> bytes:
    point = key.pointQ
    return int(point.x).to_bytes(_COORD_LEN, "big") + int(point.y).to_bytes(_COORD_LEN, "big")


def verify_signature(pub_key: bytes, data: bytes, signature: bytes) -> bool:
    """Check an r||s signature of ``data`` against an X||Y public key."""
    if not pub_key or not signature:
        return False
    half = len(pub_key) // 2
    try:
        key = ECC.construct(
            curve=_CURVE,
            point_x=int.from_bytes(pub_key[:half], "big"),
            point_y=int.from_bytes(pub_key[half:], "big"),
        )
        DSS.new(key, "fips-186-3").verify(SHA256.new(data), signature)
    except (ValueError, TypeError):
        return False
    return True


@dataclass(frozen=True)
class Wallet:
    """A P-256 key pair; the public key is stored as X||Y."""

    private_key: ECC.EccKey = field(compare=False, repr=False)
    public_key: bytes

    @classmethod
    def generate(cls) -> Wallet:
        """Create a wallet with a fresh key pair."""
        key = ECC.generate(curve=_CURVE)
        return cls(key, _public_bytes(key))

    def address(self) -> str:
        """Base58 address with version byte and checksum."""
        versioned = bytes([VERSION]) + hash_pub_key(self.public_key)
        return base58_encode(versioned + checksum(versioned))

    def sign(self, data: bytes) -> bytes:
        """Sign ``data``; the signature is r||s."""
        return DSS.new(self.private_key, "fips-186-3").sign(SHA256.new(data))

    def to_dict(self) -> dict[str, str]:
        """Plain representation suitable for JSON."""
        scalar_hex = int(self.private_key.d).to_bytes(_COORD_LEN, "big").hex()
        return {_SCALAR_FIELD: scalar_hex, _POINT_FIELD: self.public_key.hex()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Wallet:
        """Rebuild a wallet from :meth:`to_dict` output."""
        key = ECC.construct(curve=_CURVE, d=int(data[_SCALAR_FIELD], 16))
        public_bytes = _public_bytes(key)
        stored = data.get(_POINT_FIELD)
        if stored is not None and bytes.fromhex(stored) != public_bytes:
            raise ValueError("public key does not match the signing scalar")
        return cls(key, public_bytes)