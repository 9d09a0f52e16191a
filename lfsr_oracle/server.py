"""
Simulated oracle service.

Each client receives the epoch token, then is asked to guess the hidden
keystream bit by bit. A wrong guess closes the connection. After NUM_BITS
confirmed guesses the flag, XOR-ed with the keystream bits that follow, is
streamed and the connection closed.

The generator seed is derived from the epoch (the clock), so clients
connecting within the same epoch face the same sequence.
"""

import random
import socket
import threading
import time
from typing import Callable, Optional, Sequence

from . import config
from .bits import pack_bits, xor_bytes
from .keystream import Keystream
from .session import read_until


def random_taps(rng: random.Random, width: int = config.WINDOW,
                taps_count: int = config.TAPS_COUNT):
    return tuple(sorted(rng.sample(range(width - 1), taps_count)))


def seed_window(epoch: str, width: int = config.WINDOW):
    """Initial state window for an epoch (never all zero)."""
    rng = random.Random(epoch)
    state = 0
    while state == 0:
        state = rng.getrandbits(width)
    return [(state >> i) & 1 for i in range(width)]


def serve_bits(conn, epoch: str, bits: Sequence[int], trailer: bytes = b"") -> bool:
    """
    Run the guessing protocol for `bits` over one connection.
    Returns True if the client confirmed every bit.
    """
    buffer = b""
    try:
        conn.sendall(epoch.encode() + config.TOKEN_DELIM)
        for bit in bits:
            conn.sendall(config.PROMPT)
            line, buffer = read_until(conn, buffer, b"\n")
            if line.strip() != str(bit).encode():
                conn.sendall(b"wrong\n")
                return False
            conn.sendall(config.CORRECT_MARKER + b"!\n")
        conn.sendall(trailer)
        return True
    except (ConnectionError, EOFError):
        return False
    finally:
        conn.close()


class OracleService:
    def __init__(self, taps: Optional[Sequence[int]] = None, flag: bytes = config.DEMO_FLAG,
                 num_bits: int = config.NUM_BITS, width: int = config.WINDOW,
                 taps_count: int = config.TAPS_COUNT, epoch_seconds: int = config.EPOCH_SECONDS,
                 clock: Callable[[], float] = time.time):
        if taps is None:
            taps = random_taps(random.SystemRandom(), width, taps_count)
        self.taps = tuple(sorted(taps))
        self.flag = flag
        self.num_bits = num_bits
        self.width = width
        self.epoch_seconds = epoch_seconds
        self.clock = clock

    def epoch(self) -> str:
        return str(int(self.clock()) // self.epoch_seconds)

    def keystream(self, epoch: str) -> Keystream:
        return Keystream(seed_window(epoch, self.width), self.taps)

    def challenge(self, epoch: str):
        """Hidden bits for an epoch and the ciphertext sent after them."""
        stream = list(self.keystream(epoch).generate(self.num_bits + 8 * len(self.flag)))
        bits = stream[:self.num_bits]
        ciphertext = xor_bytes(self.flag, pack_bits(stream[self.num_bits:], len(self.flag)))
        return bits, ciphertext

    def handle_client(self, conn, addr=None, verbose: bool = False):
        """Handles a single client connection"""
        epoch = self.epoch()
        bits, ciphertext = self.challenge(epoch)
        won = serve_bits(conn, epoch, bits, ciphertext)
        if verbose:
            print(f"[{'+' if won else '-'}] {addr} epoch {epoch}: "
                  f"{'all bits confirmed' if won else 'wrong guess'}")
        return won


def make_listener(host: str = config.HOST, port: int = config.PORT, backlog: int = 128):
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    s.bind((host, port))
    s.listen(backlog)
    return s


def serve_forever(service: OracleService, listener, verbose: bool = False):
    """Accept clients until the listener is closed, one thread per client."""
    while True:
        try:
            conn, addr = listener.accept()
        except OSError:
            break
        t = threading.Thread(target=service.handle_client, args=(conn, addr, verbose), daemon=True)
        t.start()


def start_server(service: OracleService, host: str = config.HOST, port: int = config.PORT):
    """Starts the oracle server"""
    with make_listener(host, port) as s:
        print(f"[*] Oracle server started on {host}:{port}")
        print(f"[*] Secret taps: {list(service.taps)}")
        print(f"[*] Waiting for connections...")
        try:
            serve_forever(service, s, verbose=True)
        except KeyboardInterrupt:
            print("\n[*] Server shutting down...")
