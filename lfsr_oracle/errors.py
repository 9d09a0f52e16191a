"""
Error kinds raised while attacking the oracle.

Protocol-phase errors derive from OracleError, offline cryptanalysis errors
from CryptanalysisError. Each carries enough context (phase, bits known so
far) for the caller to decide how to retry.
"""


class OracleError(Exception):
    """Base class for errors raised while talking to the oracle."""

    phase = "oracle"

    def __init__(self, message, known=None):
        super().__init__(message)
        self.known = list(known) if known is not None else []


class HandshakeFailed(OracleError):
    """Transport failure or unexpected banner while opening a session."""

    phase = "handshake"


class SessionClosed(OracleError):
    """A guess was attempted on a session that was already closed."""

    phase = "guess"


class TransportError(OracleError):
    """The stream failed (timeout, reset) while a session was in use."""

    phase = "transport"


class PoolExhausted(OracleError):
    """Extraction needed a fresh session but the pool is empty."""

    phase = "extraction"


class ReplayInconsistency(OracleError):
    """A bit that must be correct was rejected by the oracle."""

    phase = "extraction"

    def __init__(self, message, index, known=None):
        super().__init__(message, known)
        self.index = index


class CryptanalysisError(Exception):
    """Base class for errors in the offline recovery phases."""

    phase = "cryptanalysis"


class NoConsistentTaps(CryptanalysisError):
    """No tap set (or more than one, in strict mode) explains the bits."""

    phase = "tap recovery"

    def __init__(self, message, candidates=()):
        super().__init__(message)
        self.candidates = list(candidates)


class NoMatchingOffset(CryptanalysisError):
    """No keystream phase produced a plaintext containing the signature."""

    phase = "decryption"

    def __init__(self, message, tried=0):
        super().__init__(message)
        self.tried = tried
