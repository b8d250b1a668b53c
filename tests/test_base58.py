import pytest

from minichain.base58 import ALPHABET, base58_decode, base58_encode

RAW_HASH = "00010966776006953D5567439E5E39F86A0D273BEED61967F6"
ENCODED = "16UwLL9Risc3QfPqBUvKofHmBQ7wMtjvM"


def test_encode_known_vector():
    assert base58_encode(bytes.fromhex(RAW_HASH)) == ENCODED


def test_decode_known_vector():
    assert base58_decode(ENCODED.encode()).hex() == RAW_HASH.lower()


def test_decode_accepts_str():
    assert base58_decode(ENCODED) == bytes.fromhex(RAW_HASH)


@pytest.mark.parametrize(
    "payload",
    [b"\x01", b"hello world", b"\xff" * 32, b"\x00\x7f\x80", b"\x00" + bytes(range(1, 40))],
)
def test_round_trip(payload):
    encoded = base58_encode(payload)
    assert set(encoded) <= set(ALPHABET)
    assert base58_decode(encoded) == payload


def test_leading_zero_becomes_leading_one():
    assert base58_encode(b"\x00\x05").startswith(ALPHABET[0])
    assert not base58_encode(b"\x05").startswith(ALPHABET[0])


def test_encode_empty_raises():
    with pytest.raises(ValueError):
        base58_encode(b"")


def test_decode_empty_raises():
    with pytest.raises(ValueError):
        base58_decode("")


@pytest.mark.parametrize("bad", ["0abc", "Iabc", "lab", "O", "ab+"])
def test_decode_invalid_character_raises(bad):
    with pytest.raises(ValueError):
        base58_decode(bad)