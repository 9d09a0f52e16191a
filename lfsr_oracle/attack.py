"""
End-to-end attack: session pool -> bit extraction -> tap recovery -> decryption.

The online phase needs a pool large enough for the worst case (one fresh
session per 1 bit). The offline phase only needs the bits and the
ciphertext, so it can be re-run from a saved transcript.
"""

import json
import time
from functools import partial
from typing import List, NamedTuple, Optional, Sequence

from . import config
from .bits import format_bits, parse_bits
from .extractor import BitExtractor
from .keystream import Decryption, search_offset
from .pool import SessionPool, populate
from .session import OracleSession
from .taps import Recovery, recover_taps

# Transcript fields
REQUIRED_FIELDS = ["bits", "ciphertext"]


class Transcript(NamedTuple):
    bits: List[int]
    ciphertext: bytes


class AttackResult(NamedTuple):
    transcript: Transcript
    recovery: Recovery
    decryption: Decryption


def collect(host: str = config.HOST, port: int = config.PORT, num_bits: int = config.NUM_BITS,
            pool_size: int = config.POOL_SIZE, workers: int = config.HANDSHAKE_WORKERS,
            timeout: float = config.TIMEOUT, verbose: bool = False) -> Transcript:
    """Online phase: recover the hidden bits and read the trailing ciphertext."""
    connect = partial(OracleSession.connect, host, port, timeout)
    with SessionPool() as pool:
        if verbose:
            print(f"[*] Opening {pool_size} sessions to {host}:{port}...")
        t0 = time.time()
        admitted = populate(pool, connect, pool_size, workers, verbose=verbose)
        if verbose:
            print(f"[*] Handshakes done in {time.time() - t0:.2f}s")
        if admitted < num_bits:
            print(f"[-] Only {admitted} sessions for {num_bits} bits, the pool may run dry")

        extractor = BitExtractor(pool, verbose=verbose)
        bits = extractor.extract(num_bits)
        if verbose:
            print(f"[+] Bits: {format_bits(bits)} ({extractor.sessions_used} sessions used)")

        ciphertext = extractor.finish().recvall()
        if verbose:
            print(f"[+] Ciphertext ({len(ciphertext)} bytes): {ciphertext.hex()}")
    return Transcript(bits, ciphertext)


def crack(bits: Sequence[int], ciphertext: bytes, signature: bytes = config.SIGNATURE,
          width: int = config.WINDOW, taps_count: int = config.TAPS_COUNT,
          processes: int = config.TAP_SEARCH_PROCESSES, strict: bool = False,
          max_offset: Optional[int] = None, verbose: bool = False):
    """Offline phase: recover (taps, state) then search the keystream phase."""
    if verbose:
        print(f"[*] Recovering {taps_count} taps over a {width}-bit window "
              f"from {len(bits)} bits...")
    recovery = recover_taps(bits, width, taps_count, processes=processes,
                            strict=strict, progress=verbose)
    if verbose:
        print(f"[+] Taps: {list(recovery.taps)}")
        print(f"[+] State window: {format_bits(recovery.state)}")

    if max_offset is None:
        max_offset = len(bits)
    decryption = search_offset(ciphertext, recovery.state, recovery.taps, signature,
                               max_offset, verbose=verbose)
    return recovery, decryption


def run_attack(host: str = config.HOST, port: int = config.PORT,
               num_bits: int = config.NUM_BITS, pool_size: int = config.POOL_SIZE,
               signature: bytes = config.SIGNATURE, processes: int = config.TAP_SEARCH_PROCESSES,
               verbose: bool = False) -> AttackResult:
    transcript = collect(host, port, num_bits, pool_size, verbose=verbose)
    recovery, decryption = crack(transcript.bits, transcript.ciphertext, signature,
                                 processes=processes, verbose=verbose)
    return AttackResult(transcript, recovery, decryption)


def save_transcript(path, transcript: Transcript):
    with open(path, "w") as f:
        json.dump({"bits": format_bits(transcript.bits),
                   "ciphertext": transcript.ciphertext.hex()}, f, indent=2)


def load_transcript(path) -> Transcript:
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}")

    for field in REQUIRED_FIELDS:
        if field not in data:
            raise ValueError(f"Missing required field: {field}")

    try:
        return Transcript(parse_bits(data["bits"]), bytes.fromhex(data["ciphertext"]))
    except ValueError as e:
        raise ValueError(f"Invalid data in {path}: {e}")
