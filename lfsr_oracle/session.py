"""
One connection to the bit-guessing oracle.

The session wraps any socket-like duplex stream (recv / sendall / close).
It is OPEN after the epoch token has been read and becomes CLOSED the
moment the oracle rejects a guess.
"""

import socket
from enum import Enum

from . import config
from .errors import HandshakeFailed, SessionClosed, TransportError


class SessionState(Enum):
    OPEN = "open"
    CLOSED = "closed"


class OracleSession:
    def __init__(self, stream, epoch: str, buffer: bytes = b""):
        self.stream = stream
        self.epoch = epoch
        self.state = SessionState.OPEN
        self.confirmed = 0
        self._buffer = buffer

    @classmethod
    def handshake(cls, stream):
        """Read the epoch token from a freshly connected stream."""
        try:
            token, leftover = read_until(stream, b"", config.TOKEN_DELIM)
        except (OSError, EOFError) as e:
            stream.close()
            raise HandshakeFailed(f"Could not read epoch token: {e}")
        epoch = token[:-len(config.TOKEN_DELIM)].strip().decode(errors="replace")
        if not epoch:
            stream.close()
            raise HandshakeFailed("Empty epoch token")
        return cls(stream, epoch, leftover)

    @classmethod
    def connect(cls, host=config.HOST, port=config.PORT, timeout=config.TIMEOUT):
        """Open a TCP connection and perform the handshake."""
        try:
            s = socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            raise HandshakeFailed(f"Connection to {host}:{port} failed: {e}")
        return cls.handshake(s)

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    def read_until(self, delim: bytes) -> bytes:
        """Return everything up to and including `delim`."""
        data, self._buffer = read_until(self.stream, self._buffer, delim)
        return data

    def guess(self, bit: int) -> bool:
        """
        Answer the next prompt with `bit`. Returns True if the oracle
        confirmed it; on rejection the session is closed.
        """
        if not self.is_open:
            raise SessionClosed("Guess on a closed session")
        if bit not in (0, 1):
            raise ValueError(f"Guess must be 0 or 1, got {bit!r}")
        try:
            self.read_until(config.PROMPT)
            self.stream.sendall(b"%d\n" % bit)
            reply = self.read_until(b"\n")
        except (ConnectionError, EOFError):
            # the oracle hangs up on a wrong guess, possibly before replying
            self.close()
            return False
        except OSError as e:
            self.close()
            raise TransportError(f"Stream failed while guessing in epoch {self.epoch!r}: {e}")

        if config.CORRECT_MARKER in reply:
            self.confirmed += 1
            return True
        self.close()
        return False

    def recvall(self) -> bytes:
        """Read until the oracle closes the stream (the trailing ciphertext)."""
        chunks = [self._buffer]
        self._buffer = b""
        while True:
            try:
                data = self.stream.recv(4096)
            except OSError as e:
                self.close()
                raise TransportError(f"Stream failed while reading the trailer: {e}")
            if not data:
                break
            chunks.append(data)
        self.close()
        return b"".join(chunks)

    def close(self):
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self.stream.close()

    def __repr__(self):
        return f"OracleSession(epoch={self.epoch!r}, state={self.state.value}, confirmed={self.confirmed})"


def read_until(stream, buffer: bytes, delim: bytes):
    """
    Receive from `stream` until `delim` appears.
    Returns (data up to and including delim, leftover bytes).
    """
    while delim not in buffer:
        data = stream.recv(1024)
        if not data:
            raise EOFError(f"Stream closed while waiting for {delim!r}")
        buffer += data
    idx = buffer.index(delim) + len(delim)
    return buffer[:idx], buffer[idx:]
