import pytest

from minichain.block import Block
from minichain.merkle_tree import MerkleTree
from minichain.proofofwork import ProofOfWork
from minichain.transaction import new_coinbase_tx
from minichain.wallet import Wallet

BITS = 8


@pytest.fixture
def address():
    return Wallet.generate().address()


def test_mined_block_passes_validation(address):
    block = Block.mine([new_coinbase_tx(address)], b"\x01" * 32, 3, BITS)
    assert block.height == 3
    assert block.prev_block_hash == b"\x01" * 32
    assert len(block.hash) == 32
    assert ProofOfWork(block, BITS).validate() is True


def test_genesis_block(address):
    coinbase = new_coinbase_tx(address, "genesis data")
    block = Block.genesis(coinbase, BITS)
    assert block.transactions == [coinbase]
    assert block.prev_block_hash == b""
    assert block.height == 0


def test_hash_transactions_is_merkle_root(address):
    txs = [new_coinbase_tx(address), new_coinbase_tx(address), new_coinbase_tx(address)]
    block = Block(0, txs)
    assert block.hash_transactions() == MerkleTree(tx.serialize() for tx in txs).root_hash


def test_serialize_round_trip(address):
    block = Block.mine([new_coinbase_tx(address)], b"\x02" * 32, 1, BITS)
    restored = Block.deserialize(block.serialize())
    assert restored == block
    assert ProofOfWork(restored, BITS).validate() is True


def test_deserialize_rejects_garbage():
    with pytest.raises(ValueError):
        Block.deserialize(b"not a block")
    with pytest.raises(ValueError):
        Block.deserialize(b'{"timestamp": 1}')