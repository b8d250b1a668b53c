"""Transactions, their inputs and outputs."""

from __future__ import annotations

import hashlib
import json
import secrets
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from minichain.wallet import (
    Wallet,
    hash_pub_key,
    pub_key_hash_from_address,
    verify_signature,
)

SUBSIDY = 10


def _dumps(obj: Any) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _loads(data: bytes) -> Any:
    try:
        return json.loads(data)
    except ValueError as exc:
        raise ValueError(f"malformed serialized data: {exc}") from exc


@dataclass
class TXInput:
    """A reference to an output of an earlier transaction."""

    txid: bytes
    vout: int
    signature: bytes = b""
    pub_key: bytes = b""

    def uses_key(self, pub_key_hash: bytes) -> bool:
        """Whether this input was made with the key behind ``pub_key_hash``."""
        return hash_pub_key(self.pub_key) == pub_key_hash

    def to_dict(self) -> dict[str, Any]:
        return {
            "txid": self.txid.hex(),
            "vout": self.vout,
            "signature": self.signature.hex(),
            "pub_key": self.pub_key.hex(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TXInput:
        return cls(
            bytes.fromhex(data["txid"]),
            int(data["vout"]),
            bytes.fromhex(data["signature"]),
            bytes.fromhex(data["pub_key"]),
        )


@dataclass
class TXOutput:
    """An amount locked to a public key hash."""

    value: int
    pub_key_hash: bytes = b""

    @classmethod
    def for_address(cls, value: int, address: "str | bytes") -> TXOutput:
        """An output of ``value`` locked to ``address``."""
        output = cls(value)
        output.lock(address)
        return output

    def lock(self, address: "str | bytes") -> None:
        """Lock the output to the owner of ``address``."""
        self.pub_key_hash = pub_key_hash_from_address(address)

    def is_locked_with_key(self, pub_key_hash: bytes) -> bool:
        """Whether the owner of ``pub_key_hash`` may spend this output."""
        return self.pub_key_hash == pub_key_hash

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "pub_key_hash": self.pub_key_hash.hex()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TXOutput:
        return cls(int(data["value"]), bytes.fromhex(data["pub_key_hash"]))


@dataclass
class TXOutputs:
    """The outputs kept for one transaction."""

    outputs: list[TXOutput] = field(default_factory=list)

    def serialize(self) -> bytes:
        return _dumps({"outputs": [output.to_dict() for output in self.outputs]})

    @classmethod
    def deserialize(cls, data: bytes) -> TXOutputs:
        raw = _loads(data)
        try:
            return cls([TXOutput.from_dict(entry) for entry in raw["outputs"]])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"malformed outputs: {exc}") from exc


@dataclass
class Transaction:
    """A transfer of value from inputs to outputs."""

    id: bytes
    vin: list[TXInput]
    vout: list[TXOutput]

    def is_coinbase(self) -> bool:
        """Whether this is a reward transaction with no real input."""
        return len(self.vin) == 1 and not self.vin[0].txid and self.vin[0].vout == -1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id.hex(),
            "vin": [tx_input.to_dict() for tx_input in self.vin],
            "vout": [output.to_dict() for output in self.vout],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Transaction:
        return cls(
            bytes.fromhex(data["id"]),
            [TXInput.from_dict(entry) for entry in data["vin"]],
            [TXOutput.from_dict(entry) for entry in data["vout"]],
        )

    def serialize(self) -> bytes:
        return _dumps(self.to_dict())

    @classmethod
    def deserialize(cls, data: bytes) -> Transaction:
        raw = _loads(data)
        try:
            return cls.from_dict(raw)
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"malformed transaction: {exc}") from exc

    def hash(self) -> bytes:
        """SHA-256 of the transaction serialized without its ID."""
        return hashlib.sha256(replace(self, id=b"").serialize()).digest()

    def trimmed_copy(self) -> Transaction:
        """A copy with input signatures and public keys removed."""
        return Transaction(
            self.id,
            [TXInput(tx_input.txid, tx_input.vout) for tx_input in self.vin],
            [TXOutput(output.value, output.pub_key_hash) for output in self.vout],
        )

    def _previous(self, prev_txs: Mapping[str, Transaction]) -> list[Transaction]:
        previous = []
        for tx_input in self.vin:
            prev = prev_txs.get(tx_input.txid.hex())
            if prev is None or not prev.id:
                raise ValueError("previous transaction is not correct")
            previous.append(prev)
        return previous

    def sign(self, wallet: Wallet, prev_txs: Mapping[str, Transaction]) -> None:
        """Sign every input with ``wallet``; coinbase transactions are left alone."""
        if self.is_coinbase():
            return
        previous = self._previous(prev_txs)
        tx_copy = self.trimmed_copy()
        for tx_input, copy_input, prev in zip(self.vin, tx_copy.vin, previous):
            copy_input.pub_key = prev.vout[tx_input.vout].pub_key_hash
            tx_input.signature = wallet.sign(tx_copy.serialize())
            copy_input.pub_key = b""

    def verify(self, prev_txs: Mapping[str, Transaction]) -> bool:
        """Check the signatures of all inputs."""
        if self.is_coinbase():
            return True
        previous = self._previous(prev_txs)
        tx_copy = self.trimmed_copy()
        for tx_input, copy_input, prev in zip(self.vin, tx_copy.vin, previous):
            copy_input.pub_key = prev.vout[tx_input.vout].pub_key_hash
            if not verify_signature(tx_input.pub_key, tx_copy.serialize(), tx_input.signature):
                return False
            copy_input.pub_key = b""
        return True

    def __str__(self) -> str:
        lines = [f"--- Transaction {self.id.hex()}:"]
        for index, tx_input in enumerate(self.vin):
            lines.append(f"     Input {index}:")
            lines.append(f"       TXID:      {tx_input.txid.hex()}")
            lines.append(f"       Out:       {tx_input.vout}")
            lines.append(f"       Signature: {tx_input.signature.hex()}")
            lines.append(f"       PubKey:    {tx_input.pub_key.hex()}")
        for index, output in enumerate(self.vout):
            lines.append(f"     Output {index}:")
            lines.append(f"       Value:  {output.value}")
            lines.append(f"       Script: {output.pub_key_hash.hex()}")
        return "\n".join(lines)


def new_coinbase_tx(to: str, data: str = "") -> Transaction:
    """A reward transaction paying the subsidy to ``to``."""
    if not data:
        data = secrets.token_bytes(20).hex()
    tx_input = TXInput(b"", -1, b"", data.encode("utf-8"))
    tx = Transaction(b"", [tx_input], [TXOutput.for_address(SUBSIDY, to)])
    tx.id = tx.hash()
    return tx