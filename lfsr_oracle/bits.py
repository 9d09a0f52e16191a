"""
Bit / byte helpers.

Bit sequences are plain lists of 0/1. Byte conversions are MSB-first: the
first bit of a sequence is the most significant bit of the first byte.
State windows are also kept as ints where bit i holds window position i.
"""

from typing import Iterable, List

import numpy as np
from Crypto.Util.number import long_to_bytes


def bits_to_int_msbf(bits: Iterable[int]) -> int:
    v = 0
    for bit in bits:
        v = (v << 1) | (bit & 1)
    return v


def pack_bits(bits: Iterable[int], nbytes: int = None) -> bytes:
    """
    Pack bits into a big-endian byte string, first bit most significant.

    A trailing partial byte is filled with zero bits on the right.
    long_to_bytes() drops leading zero bytes, so the result is padded on the
    left up to ceil(len(bits)/8) bytes (or nbytes when given).
    """
    bits = list(bits)
    needed = (len(bits) + 7) // 8
    if nbytes is None:
        nbytes = needed
    if needed > nbytes:
        raise ValueError(f"{len(bits)} bits do not fit in {nbytes} bytes")
    value = bits_to_int_msbf(bits) << (8 * needed - len(bits))
    if value == 0:
        return bytes(nbytes)
    return long_to_bytes(value).rjust(nbytes, b'\x00')


def window_to_int(window: Iterable[int]) -> int:
    """Window position i -> bit i of the result."""
    v = 0
    for i, bit in enumerate(window):
        if bit & 1:
            v |= (1 << i)
    return v


def int_to_window(value: int, width: int) -> List[int]:
    return [(value >> i) & 1 for i in range(width)]


def taps_to_mask(taps: Iterable[int]) -> int:
    mask = 0
    for tap in taps:
        mask |= (1 << int(tap))
    return mask


def xor_bytes(data: bytes, keystream: bytes) -> bytes:
    """XOR data ^ keystream; both inputs must have equal length."""
    if len(data) != len(keystream):
        raise ValueError(f"length mismatch: {len(data)} != {len(keystream)}")
    data_array = np.frombuffer(data, dtype=np.uint8)
    keystream_array = np.frombuffer(keystream, dtype=np.uint8)
    return np.bitwise_xor(data_array, keystream_array).tobytes()


def parse_bits(s: str) -> List[int]:
    """Parse '0101...' (whitespace and commas ignored) into a bit list."""
    raw = "".join(ch for ch in s if ch not in " ,\t\r\n[]")
    if any(ch not in "01" for ch in raw):
        raise ValueError("bits must be a string of 0 and 1")
    return [int(ch) for ch in raw]


def format_bits(bits: Iterable[int]) -> str:
    return "".join(str(b & 1) for b in bits)
