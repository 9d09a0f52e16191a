"""
Adaptive extraction of the hidden bit sequence.

Each bit is first guessed as 0 on the current session. A confirmation keeps
the session; a rejection kills it, so a fresh session from the pool replays
every known bit and then answers 1, which must be right.

A rejected 0 on the last requested bit is enough to know it is a 1, so no
session is spent on it. Worst case (all ones) costs one session per bit,
best case (all zeros) a single session for the whole sequence.
"""

from typing import List, Optional

from .errors import PoolExhausted, ReplayInconsistency, TransportError
from .pool import SessionPool
from .session import OracleSession


class BitExtractor:
    def __init__(self, pool: SessionPool, verbose: bool = False):
        self.pool = pool
        self.verbose = verbose
        self.known: List[int] = []
        self.session: Optional[OracleSession] = None
        self.sessions_used = 0

    def _fresh_session(self) -> OracleSession:
        session = self.pool.acquire()
        self.sessions_used += 1
        return session

    def _replay(self, session: OracleSession):
        for i, bit in enumerate(self.known):
            if not session.guess(bit):
                raise ReplayInconsistency(
                    f"Replay of bit {i} ({bit}) rejected in epoch {session.epoch!r}",
                    index=i, known=self.known)

    def _resume(self):
        """Make the current session open and in sync with `known`."""
        if self.session is not None and self.session.is_open:
            return
        self.session = self._fresh_session()
        self._replay(self.session)

    def _reveal_next(self, last: bool) -> int:
        i = len(self.known)
        if self.session.guess(0):
            return 0
        if last:
            return 1

        self.session = self._fresh_session()
        self._replay(self.session)
        if not self.session.guess(1):
            raise ReplayInconsistency(
                f"Bit {i} rejected as both 0 and 1", index=i, known=self.known)
        return 1

    def extract(self, n: int) -> List[int]:
        """
        Reveal bits until `n` are known. Raises PoolExhausted if the pool runs
        dry and TransportError if a stream fails, both with the partial
        sequence attached.
        """
        try:
            if len(self.known) < n:
                self._resume()
            while len(self.known) < n:
                self.known.append(self._reveal_next(last=len(self.known) == n - 1))
                if self.verbose:
                    print(f"[+] bit {len(self.known) - 1:3d} = {self.known[-1]} "
                          f"(sessions used: {self.sessions_used}, left: {self.pool.size()})")
        except (PoolExhausted, TransportError) as e:
            e.known = list(self.known)
            raise
        return list(self.known)

    def finish(self) -> OracleSession:
        """
        Return an open session that has confirmed every known bit, replaying
        them on a fresh session if the last guess closed the current one.
        """
        try:
            self._resume()
        except (PoolExhausted, TransportError) as e:
            e.known = list(self.known)
            raise
        return self.session
