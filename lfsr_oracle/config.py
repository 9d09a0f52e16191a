# lfsr_oracle/config.py
# Configuration shared by the oracle service and the attacker

# Network config
HOST = '127.0.0.1'
PORT = 1337
TIMEOUT = 10.0          # seconds, per socket operation

# Generator sizes
WINDOW = 21             # LFSR state window W
TAPS_COUNT = 10         # number of feedback taps K, drawn from [0, WINDOW-1)
NUM_BITS = 48           # bits the oracle asks about before sending the ciphertext

# Epoch: sessions opened within the same EPOCH_SECONDS share a generator seed
EPOCH_SECONDS = 1

# Protocol markers
TOKEN_DELIM = b'\n'
PROMPT = b'> '
CORRECT_MARKER = b'correct'

# Attacker side
POOL_SIZE = NUM_BITS + 4        # worst case (all ones) needs NUM_BITS sessions
HANDSHAKE_WORKERS = 16
TAP_SEARCH_PROCESSES = 1        # >1 shards the tap search over worker processes
TAP_SEARCH_BATCH = 2000

# Known plaintext used to validate a decryption attempt
SIGNATURE = b'FLAG{'

# Secret served by the simulated oracle
DEMO_FLAG = b'FLAG{l1n34r_f33db4ck_1s_n0t_4_s3cr3t}'
