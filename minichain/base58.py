"""Base58 encoding as used for wallet addresses."""

ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_INDEX = {char: position for position, char in enumerate(ALPHABET)}


def base58_encode(data: bytes) -> str:
    """Encode bytes to Base58.

    A single leading zero byte is kept as one leading ``1``.
    """
    if not data:
        raise ValueError("cannot encode empty data")
    number = int.from_bytes(data, "big")
    digits = []
    while number:
        number, remainder = divmod(number, len(ALPHABET))
        digits.append(ALPHABET[remainder])
    if data[0] == 0:
        digits.append(ALPHABET[0])
    return "".join(reversed(digits))


def base58_decode(data: "str | bytes") -> bytes:
    """Decode Base58 text (str or ASCII bytes) back to bytes."""
    text = bytes(data).decode("ascii") if isinstance(data, (bytes, bytearray)) else data
    if not text:
        raise ValueError("cannot decode empty data")
    number = 0
    for char in text:
        try:
            number = number * len(ALPHABET) + _INDEX[char]
        except KeyError:
            raise ValueError(f"invalid base58 character {char!r}") from None
    decoded = number.to_bytes((number.bit_length() + 7) // 8, "big")
    if text[0] == ALPHABET[0]:
        decoded = b"\x00" + decoded
    return decoded