import pytest

from minichain.tutorial.part1 import Block, BlockChain, main


def test_genesis_block_has_no_predecessor():
    genesis = Block.genesis()
    assert genesis.data == b"Genesis Block"
    assert genesis.prev_block_hash == b""
    assert len(genesis.hash) == 32


def test_set_hash_is_deterministic():
    block = Block(1, b"", b"", b"payload")
    block.set_hash()
    first = block.hash
    block.set_hash()
    assert block.hash == first
    assert len(first) == 32


@pytest.mark.parametrize(
    "changed",
    [
        Block(2, b"", b"", b"payload"),
        Block(1, b"\x01", b"", b"payload"),
        Block(1, b"", b"", b"other"),
    ],
)
def test_hash_depends_on_every_header_field(changed):
    base = Block(1, b"", b"", b"payload")
    base.set_hash()
    changed.set_hash()
    assert changed.hash != base.hash


def test_new_accepts_str_and_bytes():
    assert Block.new("abc", b"").data == Block.new(b"abc", b"").data == b"abc"


def test_chain_links_blocks_in_order():
    chain = BlockChain()
    chain.add_block("Send 1 BTC to Ivan")
    chain.add_block("Send 2 more BTC to Ivan")
    blocks = list(chain)
    assert [block.data for block in blocks] == [
        b"Genesis Block",
        b"Send 1 BTC to Ivan",
        b"Send 2 more BTC to Ivan",
    ]
    for previous, current in zip(blocks, blocks[1:]):
        assert current.prev_block_hash == previous.hash
    assert len(chain) == 3


def test_main_prints_three_blocks(capsys):
    assert main([]) == 0
    out = capsys.readouterr().out
    assert out.count("Prev hash:") == 3
    assert "Data: Send 1 BTC to Ivan" in out
    assert "Data: Send 2 more BTC to Ivan" in out