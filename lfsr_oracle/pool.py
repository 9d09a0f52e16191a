"""
Pool of oracle sessions sharing one epoch.

Sessions are opened concurrently (each handshake blocks on the network),
then handed out one at a time to the extractor. A single lock serializes
every pool mutation.
"""

import sys
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Optional

from . import config
from .errors import HandshakeFailed, PoolExhausted
from .session import OracleSession


class SessionPool:
    def __init__(self, epoch: Optional[str] = None):
        self.epoch = epoch
        self._sessions = deque()
        self._lock = threading.Lock()
        self.rejected = 0

    def admit(self, session: OracleSession) -> bool:
        """
        Add an open session. The first admitted epoch is authoritative;
        sessions from another epoch are closed and dropped.
        """
        with self._lock:
            if session.is_open and self.epoch is None:
                self.epoch = session.epoch
            if session.is_open and session.epoch == self.epoch:
                self._sessions.append(session)
                return True
            self.rejected += 1
        session.close()
        return False

    def acquire(self) -> OracleSession:
        """Remove and return the oldest session (FIFO)."""
        with self._lock:
            while self._sessions:
                session = self._sessions.popleft()
                if session.is_open:
                    return session
        raise PoolExhausted("No open session left in the pool")

    def size(self) -> int:
        with self._lock:
            return sum(1 for s in self._sessions if s.is_open)

    __len__ = size

    def close(self):
        with self._lock:
            sessions, self._sessions = list(self._sessions), deque()
        for s in sessions:
            s.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def populate(pool: SessionPool, connect: Callable[[], OracleSession], count: int,
             workers: int = config.HANDSHAKE_WORKERS, verbose: bool = False) -> int:
    """
    Open `count` sessions concurrently and admit them into `pool`.
    Failed handshakes only shrink the pool. Returns the number admitted.
    """
    admitted = 0
    failed = 0
    with ThreadPoolExecutor(max_workers=max(1, min(workers, count))) as executor:
        futures = [executor.submit(connect) for _ in range(count)]
        for fut in as_completed(futures):
            try:
                session = fut.result()
            except HandshakeFailed as e:
                failed += 1
                print(f"[-] Handshake failed: {e}", file=sys.stderr)
                continue
            if pool.admit(session):
                admitted += 1
            else:
                print(f"[-] Dropped session from epoch {session.epoch!r} "
                      f"(pool epoch {pool.epoch!r})", file=sys.stderr)

    if verbose:
        print(f"[*] Pool ready: {admitted}/{count} sessions in epoch {pool.epoch!r} "
              f"({failed} handshakes failed)")
    return admitted
