"""
LFSR keystream and XOR decryption with a phase (offset) search.

Generator construction, shared with the tap recoverer and the oracle service:
  - the state window holds W bits, position 0 is the next output bit
  - each step emits position 0, computes the feedback bit as the XOR of the
    tapped positions, drops position 0 and appends the feedback at W-1

With this construction the first W output bits are the initial window.
Internally the window is an int with position i at bit i.
"""

from typing import Iterator, List, NamedTuple, Sequence

from .bits import int_to_window, pack_bits, taps_to_mask, window_to_int, xor_bytes
from .errors import NoMatchingOffset


class Decryption(NamedTuple):
    offset: int
    plaintext: bytes


def lfsr_step(state: int, mask: int, width: int):
    """Single step. Returns (output_bit, new_state)."""
    out = state & 1
    fb = (state & mask).bit_count() & 1
    state = (state >> 1) | (fb << (width - 1))
    return out, state


class Keystream:
    """Restartable keystream from a (state window, tap set) pair."""

    def __init__(self, state: Sequence[int], taps: Sequence[int]):
        self.width = len(state)
        if self.width == 0:
            raise ValueError("State window cannot be empty")
        if any(t < 0 or t >= self.width for t in taps):
            raise ValueError(f"Taps {list(taps)} out of range for window {self.width}")
        self.taps = tuple(sorted(int(t) for t in taps))
        self.mask = taps_to_mask(self.taps)
        self._state = window_to_int(state)

    @property
    def state(self) -> List[int]:
        return int_to_window(self._state, self.width)

    def generate(self, count: int) -> Iterator[int]:
        """Lazily yield `count` bits; every call starts from the stored window."""
        st = self._state
        mask, width = self.mask, self.width
        for _ in range(count):
            bit, st = lfsr_step(st, mask, width)
            yield bit

    def advance(self, steps: int) -> "Keystream":
        """Return a new keystream `steps` bits further along."""
        st = self._state
        for _ in range(steps):
            _, st = lfsr_step(st, self.mask, self.width)
        ks = Keystream.__new__(Keystream)
        ks.width, ks.taps, ks.mask, ks._state = self.width, self.taps, self.mask, st
        return ks

    def take_bytes(self, nbytes: int) -> bytes:
        return pack_bits(self.generate(8 * nbytes), nbytes)

    def __repr__(self):
        return f"Keystream(taps={list(self.taps)}, state={''.join(map(str, self.state))})"


def encrypt(plaintext: bytes, keystream: Keystream) -> bytes:
    return xor_bytes(plaintext, keystream.take_bytes(len(plaintext)))


decrypt = encrypt


def search_offset(ciphertext: bytes, state: Sequence[int], taps: Sequence[int],
                  signature: bytes, max_offset: int, verbose: bool = False) -> Decryption:
    """
    Try every offset x in [0, max_offset): skip x keystream bits from the
    recovered window, XOR the next 8*len(ciphertext) bits against the
    ciphertext and accept the first plaintext containing `signature`.
    """
    base = Keystream(state, taps)
    ks = base
    for x in range(max_offset):
        plaintext = decrypt(ciphertext, ks)
        if signature in plaintext:
            if verbose:
                print(f"[+] Signature found at offset {x}")
            return Decryption(x, plaintext)
        ks = ks.advance(1)

    raise NoMatchingOffset(
        f"No offset in [0, {max_offset}) yields a plaintext containing {signature!r}",
        tried=max_offset,
    )
