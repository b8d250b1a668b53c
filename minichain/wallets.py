"""A collection of wallets persisted per node."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from minichain.wallet import Wallet

WALLET_FILE = "wallet_{}.dat"


def wallet_file_path(node_id: str, directory: "str | Path" = ".") -> Path:
    """Location of the wallet file for a node."""
    return Path(directory) / WALLET_FILE.format(node_id)


@dataclass
class Wallets:
    """Wallets keyed by their address."""

    wallets: dict[str, Wallet] = field(default_factory=dict)

    @classmethod
    def load(cls, node_id: str, directory: "str | Path" = ".") -> Wallets:
        """Read the node's wallet file; raises FileNotFoundError if absent."""
        content = wallet_file_path(node_id, directory).read_text(encoding="utf-8")
        try:
            raw = json.loads(content)
            wallets = {address: Wallet.from_dict(entry) for address, entry in raw["wallets"].items()}
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise ValueError(f"corrupt wallet file: {exc}") from exc
        return cls(wallets)

    def create_wallet(self) -> str:
        """Generate a wallet, keep it and return its address."""
        wallet = Wallet.generate()
        address = wallet.address()
        self.wallets[address] = wallet
        return address

    def addresses(self) -> list[str]:
        """All stored addresses."""
        return list(self.wallets)

    def get_wallet(self, address: str) -> Wallet:
        """The wallet for ``address``; raises KeyError if unknown."""
        try:
            return self.wallets[address]
        except KeyError:
            raise KeyError(f"no wallet for address {address}") from None

    def save(self, node_id: str, directory: "str | Path" = ".") -> None:
        """Write all wallets to the node's wallet file."""
        content = {
            "wallets": {address: wallet.to_dict() for address, wallet in self.wallets.items()}
        }
        wallet_file_path(node_id, directory).write_text(json.dumps(content, indent=2), encoding="utf-8")