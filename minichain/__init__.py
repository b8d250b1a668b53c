"""A small proof-of-work blockchain with wallets, a UTXO set and a peer-to-peer node."""

__version__ = "0.1.0"