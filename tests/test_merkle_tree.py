import pytest

from minichain.merkle_tree import MerkleTree, merkle_node

DATA = [b"node1", b"node2", b"node3"]


def _manual_root():
    n1 = merkle_node(None, None, DATA[0])
    n2 = merkle_node(None, None, DATA[1])
    n3 = merkle_node(None, None, DATA[2])
    n4 = merkle_node(None, None, DATA[2])
    n5 = merkle_node(n1, n2, None)
    n6 = merkle_node(n3, n4, None)
    n7 = merkle_node(n5, n6, None)
    return n5, n6, n7


def test_new_merkle_node():
    n5, n6, n7 = _manual_root()
    assert n5.data.hex() == "64b04b718d8b7c5b6fd17f7ec221945c034cfce3be4118da33244966150c4bd4"
    assert n6.data.hex() == "08bd0d1426f87a78bfc2f0b13eccdf6f5b58dac6b37a7b9441c1a2fab415d76c"
    assert n7.data.hex() == "4e3e44e55926330ab6c31892f980f8bfd1a6e910ff1ebc3f778211377f35227e"


def test_new_merkle_tree():
    _, _, n7 = _manual_root()
    tree = MerkleTree(DATA)
    assert tree.root.data.hex() == n7.data.hex()
    assert tree.root_hash == n7.data


def test_tree_keeps_children():
    n5, n6, _ = _manual_root()
    tree = MerkleTree(DATA)
    assert tree.root.left == n5
    assert tree.root.right == n6


def test_single_item_is_paired_with_itself():
    leaf = merkle_node(None, None, b"only")
    assert MerkleTree([b"only"]).root_hash == merkle_node(leaf, leaf).data


def test_four_items_balanced():
    leaves = [merkle_node(None, None, item) for item in (b"a", b"b", b"c", b"d")]
    expected = merkle_node(merkle_node(leaves[0], leaves[1]), merkle_node(leaves[2], leaves[3]))
    assert MerkleTree([b"a", b"b", b"c", b"d"]).root_hash == expected.data


def test_order_matters():
    assert MerkleTree([b"a", b"b"]).root_hash != MerkleTree([b"b", b"a"]).root_hash


def test_larger_inputs_produce_a_root():
    items = [bytes([i]) for i in range(9)]
    tree = MerkleTree(items)
    assert len(tree.root_hash) == len(merkle_node(None, None, b"x").data)
    assert tree.root_hash == MerkleTree(iter(items)).root_hash


def test_empty_input_raises():
    with pytest.raises(ValueError):
        MerkleTree([])


def test_branch_with_one_child_raises():
    leaf = merkle_node(None, None, b"x")
    with pytest.raises(ValueError):
        merkle_node(leaf, None)