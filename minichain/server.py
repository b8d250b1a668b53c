"""Peer-to-peer node: message format, handlers and the TCP server loop."""

from __future__ import annotations

import json
import socket
import threading
from typing import Any, Callable, Optional

from minichain.block import Block
from minichain.blockchain import Blockchain, BlockchainError
from minichain.transaction import Transaction, new_coinbase_tx
from minichain.utxo_set import UTXOSet

NODE_VERSION = 1
COMMAND_LENGTH = 12
CENTRAL_NODE = "localhost:3000"

Sender = Callable[[str, bytes], bool]


def command_to_bytes(command: str) -> bytes:
    """The command name as a zero-padded field of fixed length."""
    encoded = command.encode("ascii")
    if len(encoded) > COMMAND_LENGTH:
        raise ValueError(f"command {command!r} is longer than {COMMAND_LENGTH} bytes")
    return encoded.ljust(COMMAND_LENGTH, b"\x00")


def bytes_to_command(data: bytes) -> str:
    """The command name from its zero-padded field."""
    return bytes(data).replace(b"\x00", b"").decode("utf-8", errors="replace")


def _split_address(address: str) -> tuple[str, int]:
    host, _, port = address.rpartition(":")
    if not host or not port.isdigit():
        raise ValueError(f"invalid node address {address!r}")
    return host, int(port)


def _request(command: str, payload: dict[str, Any]) -> bytes:
    return command_to_bytes(command) + json.dumps(payload).encode("utf-8")


def send_data(address: str, data: bytes) -> bool:
    """Deliver ``data`` over one TCP connection; False if the node is unreachable."""
    try:
        connection = socket.create_connection(_split_address(address), timeout=10)
    except OSError:
        return False
    with connection:
        connection.sendall(data)
    return True


def send_tx(address: str, tx: Transaction, from_address: str = "") -> bool:
    """Send a transaction to the node at ``address``."""
    payload = {"addr_from": from_address, "transaction": tx.serialize().hex()}
    return send_data(address, _request("tx", payload))


class Node:
    """State and message handling of one network node."""

    def __init__(
        self,
        node_id: str,
        miner_address: str,
        blockchain: Blockchain,
        send: Sender = send_data,
    ):
        self.node_address = f"localhost:{node_id}"
        self.mining_address = miner_address
        self.blockchain = blockchain
        self.known_nodes: list[str] = [CENTRAL_NODE]
        self.blocks_in_transit: list[bytes] = []
        self.mempool: dict[str, Transaction] = {}
        self._send_fn = send
        self._lock = threading.RLock()

    # outgoing messages

    def _send(self, address: str, command: str, payload: dict[str, Any]) -> None:
        if not self._send_fn(address, _request(command, payload)):
            print(f"{address} is not available")
            self.known_nodes = [node for node in self.known_nodes if node != address]

    def _send_block(self, address: str, block: Block) -> None:
        payload = {"addr_from": self.node_address, "block": block.serialize().hex()}
        self._send(address, "block", payload)

    def _send_inv(self, address: str, kind: str, items: list[bytes]) -> None:
        payload = {
            "addr_from": self.node_address,
            "type": kind,
            "items": [item.hex() for item in items],
        }
        self._send(address, "inv", payload)

    def _send_get_blocks(self, address: str) -> None:
        self._send(address, "getblocks", {"addr_from": self.node_address})

    def _send_get_data(self, address: str, kind: str, item_id: bytes) -> None:
        payload = {"addr_from": self.node_address, "type": kind, "id": item_id.hex()}
        self._send(address, "getdata", payload)

    def _send_tx(self, address: str, tx: Transaction) -> None:
        payload = {"addr_from": self.node_address, "transaction": tx.serialize().hex()}
        self._send(address, "tx", payload)

    def send_version(self, address: str) -> None:
        """Announce this node's version and best height to ``address``."""
        payload = {
            "version": NODE_VERSION,
            "best_height": self.blockchain.best_height(),
            "addr_from": self.node_address,
        }
        self._send(address, "version", payload)

    # incoming messages

    def handle_request(self, request: bytes) -> str:
        """Process one raw message and return its command name."""
        request = bytes(request)
        if len(request) < COMMAND_LENGTH:
            raise ValueError("request is shorter than the command field")
        command = bytes_to_command(request[:COMMAND_LENGTH])
        print(f"Received {command} command")
        handler = self._handlers().get(command)
        if handler is None:
            print("Unknown command!")
            return command
        try:
            payload = json.loads(request[COMMAND_LENGTH:])
        except ValueError as exc:
            raise ValueError(f"malformed {command} payload: {exc}") from exc
        with self._lock:
            try:
                handler(payload)
            except (KeyError, TypeError) as exc:
                raise ValueError(f"malformed {command} payload: {exc}") from exc
        return command

    def _handlers(self) -> dict[str, Callable[[dict[str, Any]], None]]:
        return {
            "addr": self._handle_addr,
            "block": self._handle_block,
            "inv": self._handle_inv,
            "getblocks": self._handle_get_blocks,
            "getdata": self._handle_get_data,
            "tx": self._handle_tx,
            "version": self._handle_version,
        }

    def _handle_addr(self, payload: dict[str, Any]) -> None:
        self.known_nodes.extend(payload["addr_list"])
        print(f"There are {len(self.known_nodes)} known nodes now!")
        for node in list(self.known_nodes):
            self._send_get_blocks(node)

    def _handle_block(self, payload: dict[str, Any]) -> None:
        block = Block.deserialize(bytes.fromhex(payload["block"]))
        print("Received a new block!")
        self.blockchain.add_block(block)
        print(f"Added block {block.hash.hex()}")

        if self.blocks_in_transit:
            block_hash = self.blocks_in_transit.pop(0)
            self._send_get_data(payload["addr_from"], "block", block_hash)
        else:
            UTXOSet(self.blockchain).reindex()

    def _handle_inv(self, payload: dict[str, Any]) -> None:
        items = [bytes.fromhex(item) for item in payload["items"]]
        kind = payload["type"]
        print(f"Received inventory with {len(items)} {kind}")

        if kind == "block" and items:
            block_hash = items[0]
            self._send_get_data(payload["addr_from"], "block", block_hash)
            self.blocks_in_transit = [item for item in items if item != block_hash]

        if kind == "tx" and items:
            tx_id = items[0]
            known = self.mempool.get(tx_id.hex())
            if known is None or not known.id:
                self._send_get_data(payload["addr_from"], "tx", tx_id)

    def _handle_get_blocks(self, payload: dict[str, Any]) -> None:
        self._send_inv(payload["addr_from"], "block", self.blockchain.block_hashes())

    def _handle_get_data(self, payload: dict[str, Any]) -> None:
        item_id = bytes.fromhex(payload["id"])
        if payload["type"] == "block":
            try:
                block = self.blockchain.get_block(item_id)
            except BlockchainError:
                return
            self._send_block(payload["addr_from"], block)

        if payload["type"] == "tx":
            tx = self.mempool.get(item_id.hex())
            if tx is not None:
                self._send_tx(payload["addr_from"], tx)

    def _handle_tx(self, payload: dict[str, Any]) -> None:
        tx = Transaction.deserialize(bytes.fromhex(payload["transaction"]))
        self.mempool[tx.id.hex()] = tx
        addr_from = payload["addr_from"]

        if self.known_nodes and self.node_address == self.known_nodes[0]:
            for node in list(self.known_nodes):
                if node not in (self.node_address, addr_from):
                    self._send_inv(node, "tx", [tx.id])
        elif len(self.mempool) >= 2 and self.mining_address:
            self._mine_mempool()

    def _mine_mempool(self) -> None:
        while True:
            txs = [tx for tx in self.mempool.values() if self.blockchain.verify_transaction(tx)]
            if not txs:
                print("All transactions are invalid! Waiting for new ones...")
                return

            txs.append(new_coinbase_tx(self.mining_address, ""))
            new_block = self.blockchain.mine_block(txs)
            UTXOSet(self.blockchain).reindex()
            print("New block is mined!")

            for tx in txs:
                self.mempool.pop(tx.id.hex(), None)

            for node in list(self.known_nodes):
                if node != self.node_address:
                    self._send_inv(node, "block", [new_block.hash])

            if not self.mempool:
                return

    def _handle_version(self, payload: dict[str, Any]) -> None:
        my_height = self.blockchain.best_height()
        foreign_height = int(payload["best_height"])
        addr_from = payload["addr_from"]

        if my_height < foreign_height:
            self._send_get_blocks(addr_from)
        elif my_height > foreign_height:
            self.send_version(addr_from)

        if addr_from not in self.known_nodes:
            self.known_nodes.append(addr_from)

    # server loop

    def _serve_connection(self, connection: socket.socket) -> None:
        with connection:
            chunks = []
            while chunk := connection.recv(65536):
                chunks.append(chunk)
        try:
            self.handle_request(b"".join(chunks))
        except (ValueError, BlockchainError) as exc:
            print(f"Error: {exc}")

    def serve_forever(self) -> None:
        """Listen on the node address and handle each connection in a thread."""
        with socket.create_server(_split_address(self.node_address)) as listener:
            if self.known_nodes and self.node_address != self.known_nodes[0]:
                self.send_version(self.known_nodes[0])
            while True:
                connection, _ = listener.accept()
                threading.Thread(
                    target=self._serve_connection, args=(connection,), daemon=True
                ).start()


def start_server(node_id: str, miner_address: str = "", directory: Optional[str] = ".") -> None:
    """Open the node's chain and serve it until interrupted."""
    blockchain = Blockchain.open(node_id, directory or ".")
    with blockchain:
        Node(node_id, miner_address, blockchain).serve_forever()