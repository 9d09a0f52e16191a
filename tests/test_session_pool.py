import socket
import threading

import pytest

from lfsr_oracle.errors import HandshakeFailed, PoolExhausted, SessionClosed
from lfsr_oracle.pool import SessionPool, populate
from lfsr_oracle.server import OracleService
from lfsr_oracle.session import OracleSession, SessionState

from conftest import FIXED_TIME, TAPS, scripted_session


def test_handshake_reads_epoch():
    session = scripted_session([0, 1], epoch="1234")
    assert session.epoch == "1234"
    assert session.state is SessionState.OPEN
    session.close()


def test_correct_guess_keeps_session_open():
    session = scripted_session([1, 0])
    assert session.guess(1)
    assert session.guess(0)
    assert session.is_open
    assert session.confirmed == 2
    session.close()


def test_wrong_guess_closes_session():
    session = scripted_session([1, 0])
    assert not session.guess(0)
    assert session.state is SessionState.CLOSED
    with pytest.raises(SessionClosed):
        session.guess(1)


def test_invalid_guess():
    session = scripted_session([1])
    with pytest.raises(ValueError):
        session.guess(2)
    session.close()


def test_trailer_after_all_bits():
    session = scripted_session([0, 1, 1], trailer=b"\x00ciphertext")
    for bit in (0, 1, 1):
        assert session.guess(bit)
    assert session.recvall() == b"\x00ciphertext"
    assert not session.is_open


def test_handshake_fails_on_silent_peer():
    client, server = socket.socketpair()
    server.close()
    with pytest.raises(HandshakeFailed):
        OracleSession.handshake(client)


def test_connect_refused():
    s = socket.socket()
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    with pytest.raises(HandshakeFailed):
        OracleSession.connect("127.0.0.1", port, timeout=1)


def test_pool_first_epoch_is_authoritative():
    pool = SessionPool()
    first = scripted_session([0], epoch="100")
    other = scripted_session([0], epoch="101")
    same = scripted_session([0], epoch="100")

    assert pool.admit(first)
    assert not pool.admit(other)
    assert not other.is_open
    assert pool.admit(same)
    assert pool.epoch == "100"
    assert pool.size() == 2
    assert pool.rejected == 1
    pool.close()


def test_pool_rejects_closed_session():
    pool = SessionPool()
    session = scripted_session([0])
    session.close()
    assert not pool.admit(session)
    assert len(pool) == 0


def test_pool_fifo_and_exhaustion():
    pool = SessionPool()
    sessions = [scripted_session([0]) for _ in range(3)]
    for s in sessions:
        pool.admit(s)

    assert [pool.acquire() for _ in range(3)] == sessions
    with pytest.raises(PoolExhausted):
        pool.acquire()
    for s in sessions:
        s.close()


def test_pool_skips_sessions_closed_while_pooled():
    pool = SessionPool()
    a, b = scripted_session([0]), scripted_session([0])
    pool.admit(a)
    pool.admit(b)
    a.close()
    assert pool.size() == 1
    assert pool.acquire() is b
    b.close()


def test_populate_degrades_on_failed_handshakes(capsys):
    lock = threading.Lock()
    calls = []

    def connect():
        with lock:
            calls.append(1)
            n = len(calls)
        if n % 3 == 0:
            raise HandshakeFailed("connection reset")
        return scripted_session([0], epoch="7")

    with SessionPool() as pool:
        admitted = populate(pool, connect, 9, workers=4)
        assert admitted == 6
        assert pool.size() == 6
    assert "[-] Handshake failed" in capsys.readouterr().err


def test_populate_against_live_server(oracle_server):
    service = OracleService(taps=TAPS, clock=lambda: FIXED_TIME)
    host, port = oracle_server(service)

    with SessionPool() as pool:
        admitted = populate(pool, lambda: OracleSession.connect(host, port, 5), 8, workers=8)
        assert admitted == 8
        assert pool.epoch == service.epoch()
