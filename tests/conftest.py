import socket
import threading

import pytest

from lfsr_oracle.pool import SessionPool
from lfsr_oracle.server import make_listener, serve_bits, serve_forever
from lfsr_oracle.session import OracleSession

FIXED_TIME = 1700000000.0
TAPS = (0, 2, 3, 5, 7, 10, 12, 13, 16, 19)


def scripted_session(bits, epoch="42", trailer=b""):
    """Session whose oracle hides `bits`, served over a socket pair."""
    client, server = socket.socketpair()
    client.settimeout(5)
    t = threading.Thread(target=serve_bits, args=(server, epoch, bits, trailer), daemon=True)
    t.start()
    return OracleSession.handshake(client)


@pytest.fixture
def scripted_pool():
    pools = []

    def make(bits, count, epoch="42", trailer=b""):
        pool = SessionPool()
        for _ in range(count):
            pool.admit(scripted_session(bits, epoch, trailer))
        pools.append(pool)
        return pool

    yield make
    for pool in pools:
        pool.close()


@pytest.fixture
def oracle_server():
    listeners = []

    def start(service):
        listener = make_listener("127.0.0.1", 0)
        t = threading.Thread(target=serve_forever, args=(service, listener), daemon=True)
        t.start()
        listeners.append(listener)
        return listener.getsockname()

    yield start
    for listener in listeners:
        try:
            listener.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        listener.close()
