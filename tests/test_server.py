import shutil
import socket
import threading
from collections import deque

import pytest

from minichain.blockchain import Blockchain, db_file_path
from minichain.server import (
    COMMAND_LENGTH,
    Node,
    bytes_to_command,
    command_to_bytes,
    send_data,
    send_tx,
)
from minichain.transaction import new_coinbase_tx
from minichain.utxo_set import UTXOSet, new_utxo_transaction
from minichain.wallet import Wallet

BITS = 8


class Network:
    def __init__(self):
        self.nodes = {}
        self.queue = deque()
        self.sent = []
        self.down = set()

    def send(self, address, data):
        if address in self.down:
            return False
        self.queue.append((address, data))
        self.sent.append((address, data))
        return True

    def run(self, limit=100):
        steps = 0
        while self.queue and steps < limit:
            address, data = self.queue.popleft()
            node = self.nodes.get(address)
            if node is not None:
                node.handle_request(data)
            steps += 1


def capture(send):
    with socket.create_server(("127.0.0.1", 0)) as server:
        port = server.getsockname()[1]
        result = {}

        def accept():
            conn, _ = server.accept()
            with conn:
                chunks = []
                while chunk := conn.recv(4096):
                    chunks.append(chunk)
            result["data"] = b"".join(chunks)

        thread = threading.Thread(target=accept)
        thread.start()
        ok = send(f"127.0.0.1:{port}")
        thread.join(timeout=10)
    return ok, result["data"]


@pytest.fixture
def wallet():
    return Wallet.generate()


@pytest.fixture
def chains(tmp_path, wallet):
    bc = Blockchain.create(wallet.address(), "3000", tmp_path, target_bits=BITS)
    bc.close()
    shutil.copy(db_file_path("3000", tmp_path), db_file_path("3001", tmp_path))
    central = Blockchain.open("3000", tmp_path, target_bits=BITS)
    other = Blockchain.open("3001", tmp_path, target_bits=BITS)
    UTXOSet(central).reindex()
    UTXOSet(other).reindex()
    yield central, other
    central.close()
    other.close()


def test_command_to_bytes_pads_with_zeros():
    assert command_to_bytes("version") == b"version" + b"\x00" * 5
    assert len(command_to_bytes("tx")) == COMMAND_LENGTH


def test_command_round_trip():
    for command in ("addr", "block", "inv", "getblocks", "getdata", "tx", "version"):
        assert bytes_to_command(command_to_bytes(command)) == command


def test_command_too_long_raises():
    with pytest.raises(ValueError):
        command_to_bytes("a" * (COMMAND_LENGTH + 1))


def test_short_request_raises(chains):
    node = Node("3000", "", chains[0], Network().send)
    with pytest.raises(ValueError):
        node.handle_request(b"abc")


def test_unknown_command_sends_nothing(chains):
    network = Network()
    node = Node("3000", "", chains[0], network.send)
    assert node.handle_request(command_to_bytes("bogus") + b"{}") == "bogus"
    assert network.sent == []


def test_send_data_to_closed_port_fails():
    with socket.create_server(("127.0.0.1", 0)) as server:
        port = server.getsockname()[1]
    assert send_data(f"127.0.0.1:{port}", b"hello") is False


def test_send_data_delivers_bytes():
    ok, data = capture(lambda address: send_data(address, b"payload bytes"))
    assert ok is True
    assert data == b"payload bytes"


def test_unavailable_node_is_forgotten(chains):
    network = Network()
    network.down.add("localhost:3000")
    node = Node("3001", "", chains[1], network.send)
    node.send_version("localhost:3000")
    assert node.known_nodes == []


def test_sync_longer_chain(chains, wallet):
    central_bc, other_bc = chains
    other_bc.mine_block([new_coinbase_tx(wallet.address())])
    network = Network()
    central = Node("3000", "", central_bc, network.send)
    other = Node("3001", "", other_bc, network.send)
    network.nodes = {"localhost:3000": central, "localhost:3001": other}

    other.send_version("localhost:3000")
    network.run()

    assert central_bc.best_height() == 1
    assert central_bc.tip == other_bc.tip
    assert "localhost:3001" in central.known_nodes
    assert central.blocks_in_transit == []
    assert UTXOSet(central_bc).count_transactions() == 2


def test_higher_node_answers_with_version(chains, wallet):
    central_bc, other_bc = chains
    other_bc.mine_block([new_coinbase_tx(wallet.address())])
    network = Network()
    central = Node("3000", "", central_bc, network.send)
    other = Node("3001", "", other_bc, network.send)
    network.nodes = {"localhost:3001": other}

    central.send_version("localhost:3001")
    network.run()

    address, data = network.sent[-1]
    assert address == "localhost:3000"
    assert bytes_to_command(data[:COMMAND_LENGTH]) == "version"


def test_central_node_relays_transaction(chains, wallet):
    central_bc, other_bc = chains
    network = Network()
    central = Node("3000", "", central_bc, network.send)
    central.known_nodes = ["localhost:3000", "localhost:3001", "localhost:3002"]
    receiver = Node("3002", "", other_bc, network.send)
    network.nodes = {"localhost:3000": central, "localhost:3002": receiver}

    tx = new_coinbase_tx(wallet.address())
    ok, data = capture(lambda address: send_tx(address, tx, "localhost:3001"))
    assert ok is True

    assert central.handle_request(data) == "tx"
    assert tx.id.hex() in central.mempool
    assert [address for address, _ in network.sent] == ["localhost:3002"]
    assert bytes_to_command(network.sent[0][1][:COMMAND_LENGTH]) == "inv"

    network.run()
    assert receiver.mempool[tx.id.hex()] == tx


def test_miner_mines_mempool(chains, wallet):
    _, other_bc = chains
    network = Network()
    miner_wallet = Wallet.generate()
    miner = Node("3001", miner_wallet.address(), other_bc, network.send)

    utxo = UTXOSet(other_bc)
    recipient = Wallet.generate().address()
    tx1 = new_utxo_transaction(wallet, recipient, 3, utxo)
    tx2 = new_utxo_transaction(wallet, recipient, 4, utxo)

    _, data1 = capture(lambda address: send_tx(address, tx1, "localhost:3000"))
    _, data2 = capture(lambda address: send_tx(address, tx2, "localhost:3000"))

    miner.handle_request(data1)
    assert other_bc.best_height() == 0
    assert len(miner.mempool) == 1

    miner.handle_request(data2)
    assert other_bc.best_height() == 1
    assert miner.mempool == {}
    address, data = network.sent[-1]
    assert address == "localhost:3000"
    assert bytes_to_command(data[:COMMAND_LENGTH]) == "inv"
    assert other_bc.tip.hex().encode() in data