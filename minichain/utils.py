"""Small byte helpers shared across the chain code."""


def int_to_hex(num: int) -> bytes:
    """Encode ``num`` as 8 big-endian bytes in two's complement.

    Raises OverflowError when the value does not fit in a signed 64-bit integer.
    """
    return num.to_bytes(8, "big", signed=True)