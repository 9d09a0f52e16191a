import random

import pytest

from lfsr_oracle.bits import pack_bits, xor_bytes
from lfsr_oracle.errors import NoMatchingOffset
from lfsr_oracle.keystream import Keystream, decrypt, encrypt, search_offset
from lfsr_oracle.server import seed_window

from conftest import TAPS


def test_known_sequence():
    # [1,0,0] taps {0,1}: emit s0, append s0^s1
    ks = Keystream([1, 0, 0], [0, 1])
    assert list(ks.generate(6)) == [1, 0, 0, 1, 0, 1]


def test_first_window_bits_are_initial_state():
    state = seed_window("7")
    assert list(Keystream(state, TAPS).generate(len(state))) == state


def test_generate_is_restartable():
    ks = Keystream(seed_window("7"), TAPS)
    assert list(ks.generate(50)) == list(ks.generate(50))


def test_advance():
    ks = Keystream(seed_window("7"), TAPS)
    assert list(ks.advance(5).generate(10)) == list(ks.generate(15))[5:]
    # advancing leaves the original untouched
    assert list(ks.generate(3)) == seed_window("7")[:3]


def test_round_trip():
    ks = Keystream(seed_window("11"), TAPS)
    plaintext = b"FLAG{round_trip}"
    ciphertext = encrypt(plaintext, ks)
    assert ciphertext != plaintext
    assert decrypt(ciphertext, ks) == plaintext


def test_take_bytes_leading_zero():
    ks = Keystream([0] * 8 + [1] + [0] * 12, TAPS)
    out = ks.take_bytes(2)
    assert len(out) == 2
    assert out[0] == 0
    assert out[1] == 0x80


def test_invalid_taps():
    with pytest.raises(ValueError):
        Keystream([1, 0, 1], [3])


def test_search_offset_finds_shifted_phase():
    ks = Keystream(seed_window("3"), TAPS)
    plaintext = b"header FLAG{ph4s3} trailer"
    stream = list(ks.generate(10 + 7 + 8 * len(plaintext)))
    ciphertext = xor_bytes(plaintext, pack_bits(stream[17:], len(plaintext)))

    found = search_offset(ciphertext, ks.advance(10).state, TAPS, b"FLAG{", 20)
    assert found.offset == 7
    assert found.plaintext == plaintext


def test_search_offset_no_match():
    rng = random.Random(5)
    ciphertext = bytes(rng.getrandbits(8) for _ in range(24))
    with pytest.raises(NoMatchingOffset) as exc:
        search_offset(ciphertext, seed_window("3"), TAPS, b"FLAG{", 10)
    assert exc.value.tried == 10
