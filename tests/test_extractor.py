import socket

import pytest

from lfsr_oracle.errors import PoolExhausted, ReplayInconsistency, TransportError
from lfsr_oracle.extractor import BitExtractor
from lfsr_oracle.pool import SessionPool
from lfsr_oracle.session import OracleSession

from conftest import scripted_session

HIDDEN = [1, 0, 0, 1, 1, 0, 1, 0, 0, 0, 1, 1]


def test_all_ones_costs_one_session_per_bit(scripted_pool):
    pool = scripted_pool([1] * 8, 8)
    extractor = BitExtractor(pool)
    assert extractor.extract(8) == [1] * 8
    assert extractor.sessions_used == 8
    assert pool.size() == 0


def test_all_zeros_costs_one_session(scripted_pool):
    pool = scripted_pool([0] * 8, 3)
    extractor = BitExtractor(pool)
    assert extractor.extract(8) == [0] * 8
    assert extractor.sessions_used == 1
    assert pool.size() == 2


def test_extraction_is_deterministic(scripted_pool):
    first = BitExtractor(scripted_pool(HIDDEN, len(HIDDEN))).extract(len(HIDDEN))
    second = BitExtractor(scripted_pool(HIDDEN, len(HIDDEN))).extract(len(HIDDEN))
    assert first == second == HIDDEN


def test_session_cost_counts_ones(scripted_pool):
    bits = [0, 1, 1, 0, 1, 0]
    extractor = BitExtractor(scripted_pool(bits, 6))
    extractor.extract(len(bits))
    assert extractor.sessions_used == 1 + bits.count(1)


def test_extract_prefix_then_extend(scripted_pool):
    extractor = BitExtractor(scripted_pool(HIDDEN, len(HIDDEN)))
    assert extractor.extract(4) == HIDDEN[:4]
    assert extractor.extract(len(HIDDEN)) == HIDDEN


def test_pool_exhausted_reports_partial_bits(scripted_pool):
    extractor = BitExtractor(scripted_pool([1] * 5, 3))
    with pytest.raises(PoolExhausted) as exc:
        extractor.extract(5)
    assert exc.value.known == [1, 1]


def test_replay_inconsistency():
    # two sessions claiming the same epoch but hiding different bits
    pool = SessionPool()
    pool.admit(scripted_session([0, 1, 0], epoch="5"))
    pool.admit(scripted_session([1, 1, 0], epoch="5"))

    with pytest.raises(ReplayInconsistency) as exc:
        BitExtractor(pool).extract(3)
    assert exc.value.index == 0
    assert exc.value.known == [0]
    pool.close()


def test_finish_reopens_session_for_trailer(scripted_pool):
    pool = scripted_pool([1, 1, 1], 4, trailer=b"ct")
    extractor = BitExtractor(pool)
    extractor.extract(3)
    assert not extractor.session.is_open

    session = extractor.finish()
    assert session.confirmed == 3
    assert session.recvall() == b"ct"
    assert extractor.sessions_used == 4


def test_finish_reuses_open_session(scripted_pool):
    extractor = BitExtractor(scripted_pool([1, 0], 3, trailer=b"ct"))
    extractor.extract(2)
    assert extractor.finish().recvall() == b"ct"
    assert extractor.sessions_used == 2


def test_stalled_oracle_surfaces_transport_error():
    # oracle confirms the first guess, then prompts and never answers
    client, server = socket.socketpair()
    client.settimeout(0.3)
    server.sendall(b"7\n> correct!\n> ")
    pool = SessionPool()
    pool.admit(OracleSession.handshake(client))

    extractor = BitExtractor(pool)
    with pytest.raises(TransportError) as exc:
        extractor.extract(4)
    assert exc.value.known == [0]
    assert exc.value.phase == "transport"
    assert not extractor.session.is_open
    server.close()
