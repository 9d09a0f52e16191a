"""
Tap set recovery by brute force.

Given M >= 2W known output bits, the first W bits are the initial state
window. Every K-subset of [0, tap_range) is tried in lexicographic order:
the generator is simulated over positions W..M-1 and the candidate is
dropped at the first predicted bit that differs from the known one.

With processes > 1 the enumeration is cut into ordered batches and checked
by a multiprocessing pool. Batches come back in submission order (imap), so
the first hit is the same candidate the sequential search returns.
"""

import multiprocessing as mp
from itertools import combinations, islice
from math import comb
from typing import Iterator, List, NamedTuple, Optional, Sequence, Tuple

from tqdm import tqdm

from . import config
from .bits import int_to_window, taps_to_mask, window_to_int
from .errors import NoConsistentTaps
from .keystream import lfsr_step


class Recovery(NamedTuple):
    taps: Tuple[int, ...]
    state: List[int]    # window after having consumed all known bits


# Globals that will be set in worker processes by initializer
GV_WINDOW = None
GV_INITIAL = None
GV_CHECKS = None
GV_LIMIT = 1


def init_worker(width, initial, checks, limit=1):
    """Initializer for pool workers: set globals (avoids pickling them each task)."""
    global GV_WINDOW, GV_INITIAL, GV_CHECKS, GV_LIMIT
    GV_WINDOW = width
    GV_INITIAL = initial
    GV_CHECKS = checks
    GV_LIMIT = limit


def simulate(initial: int, mask: int, width: int, checks: Sequence[int]) -> Optional[int]:
    """
    Run the register from `initial`, comparing each feedback bit with the
    known bits in `checks`. Returns the final window or None on mismatch.
    """
    st = initial
    top = width - 1
    for expected in checks:
        fb = (st & mask).bit_count() & 1
        if fb != expected:
            return None
        st = (st >> 1) | (fb << top)
    return st


def worker_check(batch):
    """
    Check a batch of candidate tap sets.
    Returns (hits, tried): up to GV_LIMIT (taps, final_state) pairs in
    enumeration order, and the number of candidates checked.
    """
    hits = []
    tried = 0
    for taps in batch:
        tried += 1
        st = simulate(GV_INITIAL, taps_to_mask(taps), GV_WINDOW, GV_CHECKS)
        if st is not None:
            hits.append((taps, st))
            if len(hits) >= GV_LIMIT:
                break
    return hits, tried


def iter_batches(candidates: Iterator[Tuple[int, ...]], batch_size: int):
    """Yield lists of candidates, preserving enumeration order."""
    while True:
        batch = list(islice(candidates, batch_size))
        if not batch:
            return
        yield batch


def _split(bits: Sequence[int], width: int):
    if len(bits) < 2 * width:
        raise ValueError(f"Need at least {2 * width} known bits, got {len(bits)}")
    if any(b not in (0, 1) for b in bits):
        raise ValueError("Known bits must be 0 or 1")
    return window_to_int(bits[:width]), tuple(bits[width:])


def _search_sequential(initial, checks, width, candidates, total, strict, progress):
    found = []
    for taps in tqdm(candidates, total=total, desc="taps", disable=not progress):
        st = simulate(initial, taps_to_mask(taps), width, checks)
        if st is None:
            continue
        found.append((taps, st))
        if not strict or len(found) > 1:
            break
    return found


def _search_parallel(initial, checks, width, candidates, total, strict, progress,
                     processes, batch_size):
    found = []
    with mp.Pool(processes=processes, initializer=init_worker,
                 initargs=(width, initial, checks, 2 if strict else 1)) as pool:
        bar = tqdm(total=total, desc="taps", disable=not progress)
        try:
            for hits, tried in pool.imap(worker_check, iter_batches(candidates, batch_size)):
                bar.update(tried)
                if not hits:
                    continue
                found.extend(hits)
                if not strict or len(found) > 1:
                    pool.terminate()
                    break
        finally:
            bar.close()
    return found


def recover_taps(bits: Sequence[int], width: int = config.WINDOW,
                 taps_count: int = config.TAPS_COUNT, tap_range: Optional[int] = None,
                 processes: int = 1, strict: bool = False, progress: bool = False,
                 batch_size: int = config.TAP_SEARCH_BATCH) -> Recovery:
    """
    Recover (taps, state) consistent with every known bit.

    Best effort by default: the first surviving candidate in enumeration
    order is returned. With strict=True the search continues and a second
    survivor raises NoConsistentTaps (the known sequence is too short).
    """
    if tap_range is None:
        tap_range = width - 1
    if not 0 < taps_count <= tap_range <= width:
        raise ValueError(f"Invalid sizes: K={taps_count}, tap range={tap_range}, W={width}")

    initial, checks = _split(bits, width)
    total = comb(tap_range, taps_count)
    candidates = combinations(range(tap_range), taps_count)

    if processes > 1:
        found = _search_parallel(initial, checks, width, candidates, total, strict,
                                 progress, processes, batch_size)
    else:
        found = _search_sequential(initial, checks, width, candidates, total, strict, progress)

    if not found:
        raise NoConsistentTaps(
            f"None of the {total} tap sets reproduces the {len(bits)} known bits")
    if strict and len(found) > 1:
        raise NoConsistentTaps(
            f"Tap set is ambiguous for {len(bits)} known bits, need a longer sequence",
            candidates=[taps for taps, _ in found])

    taps, st = found[0]
    return Recovery(tuple(taps), int_to_window(st, width))


def verify(bits: Sequence[int], taps: Sequence[int], width: int = config.WINDOW) -> bool:
    """True when (bits[:width], taps) regenerates all of `bits`."""
    st = window_to_int(bits[:width])
    mask = taps_to_mask(taps)
    for expected in bits:
        out, st = lfsr_step(st, mask, width)
        if out != expected:
            return False
    return True
