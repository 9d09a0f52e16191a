"""
LFSR bit-oracle attack

Usage:
  lfsr-oracle serve [--host H] [--port P] [--taps T]
  lfsr-oracle attack [--host H] [--port P] [--pool N] [--output transcript.json]
  lfsr-oracle crack transcript.json [--signature S]
  lfsr-oracle recover BITS
  lfsr-oracle decrypt -t TAPS -s STATE CIPHERTEXT_HEX [--signature S] [--max-offset X]
"""

import argparse
import sys
from typing import List

from . import config
from .attack import crack, load_transcript, run_attack, save_transcript
from .bits import format_bits, parse_bits
from .errors import CryptanalysisError, OracleError
from .keystream import search_offset
from .server import OracleService, start_server
from .taps import recover_taps


def parse_taps_string(s: str) -> List[int]:
    try:
        raw = s.strip()
        if raw.startswith("[") and raw.endswith("]"):
            raw = raw[1:-1]

        if "," in raw:  # split by comma or whitespace
            parts = [p.strip() for p in raw.split(",") if p.strip() != ""]
        else:
            parts = [p for p in raw.split() if p != ""]

        taps = [int(p, 0) for p in parts]
        if not taps or any(t < 0 for t in taps):
            raise ValueError("taps must be non-negative")
        return taps
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid taps format: {e}")


def parse_bits_arg(s: str) -> List[int]:
    try:
        return parse_bits(s)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def parse_signature_arg(s: str) -> bytes:
    s = s.strip()
    if s.startswith("0x"):
        try:
            return bytes.fromhex(s[2:])
        except ValueError:
            raise argparse.ArgumentTypeError("signature must be hex (0x...) or literal text.")
    return s.encode("utf-8")


def parse_hex_arg(s: str) -> bytes:
    try:
        return bytes.fromhex(s[2:] if s.startswith("0x") else s)
    except ValueError:
        raise argparse.ArgumentTypeError("ciphertext must be hex")


def build_argparser():
    p = argparse.ArgumentParser(prog="lfsr-oracle", description="LFSR bit-oracle attack (serve/attack/crack/recover/decrypt).")
    sub = p.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve", help="Run a simulated oracle service.")
    serve.add_argument("--host", default=config.HOST)
    serve.add_argument("--port", type=int, default=config.PORT)
    serve.add_argument("-t", "--taps", type=parse_taps_string, default=None,
                       help=f"Secret taps (default: {config.TAPS_COUNT} random taps)")
    serve.add_argument("--flag", default=config.DEMO_FLAG.decode(), help="Secret flag to encrypt")
    serve.add_argument("-n", "--bits", type=int, default=config.NUM_BITS, help="Bits revealed before the ciphertext")

    attack = sub.add_parser("attack", help="Extract the bits from an oracle and decrypt its ciphertext.")
    attack.add_argument("--host", default=config.HOST)
    attack.add_argument("--port", type=int, default=config.PORT)
    attack.add_argument("-n", "--bits", type=int, default=config.NUM_BITS, help="Bits to extract")
    attack.add_argument("--pool", type=int, default=config.POOL_SIZE, help="Sessions to open up front")
    attack.add_argument("--signature", type=parse_signature_arg, default=config.SIGNATURE)
    attack.add_argument("-j", "--processes", type=int, default=config.TAP_SEARCH_PROCESSES,
                        help="Worker processes for the tap search")
    attack.add_argument("-o", "--output", default=None, help="Write bits and ciphertext to this JSON file")

    crack_p = sub.add_parser("crack", help="Offline attack from a saved transcript.")
    crack_p.add_argument("transcript", help="JSON file written by 'attack --output'")
    crack_p.add_argument("--signature", type=parse_signature_arg, default=config.SIGNATURE)
    crack_p.add_argument("-j", "--processes", type=int, default=config.TAP_SEARCH_PROCESSES)
    crack_p.add_argument("--strict", action="store_true", help="Fail if the tap set is ambiguous")

    recover = sub.add_parser("recover", help="Recover taps and state from known bits.")
    recover.add_argument("bits", type=parse_bits_arg, help="Known output bits, e.g. 0110...")
    recover.add_argument("-w", "--window", type=int, default=config.WINDOW)
    recover.add_argument("-k", "--taps-count", type=int, default=config.TAPS_COUNT)
    recover.add_argument("-j", "--processes", type=int, default=config.TAP_SEARCH_PROCESSES)
    recover.add_argument("--strict", action="store_true", help="Fail if the tap set is ambiguous")

    dec = sub.add_parser("decrypt", help="Decrypt with known taps and state window.")
    dec.add_argument("ciphertext", type=parse_hex_arg, help="Ciphertext (hex)")
    dec.add_argument("-t", "--taps", type=parse_taps_string, required=True)
    dec.add_argument("-s", "--state", type=parse_bits_arg, required=True, help="State window bits")
    dec.add_argument("--signature", type=parse_signature_arg, default=config.SIGNATURE)
    dec.add_argument("--max-offset", type=int, default=config.NUM_BITS,
                     help="Offsets tried are [0, max-offset), normally the number of known bits")
    return p


def main(argv=None):
    parser = build_argparser()
    args = parser.parse_args(argv)
    try:
        if args.cmd == "serve":
            service = OracleService(taps=args.taps, flag=args.flag.encode(), num_bits=args.bits)
            start_server(service, args.host, args.port)

        elif args.cmd == "attack":
            print("[*] Starting bit-oracle attack...")
            result = run_attack(args.host, args.port, args.bits, args.pool, args.signature,
                                args.processes, verbose=True)
            if args.output:
                save_transcript(args.output, result.transcript)
                print(f"[+] Transcript -> {args.output}")
            print(f"\n[+] Recovered plaintext: {result.decryption.plaintext!r}")

        elif args.cmd == "crack":
            transcript = load_transcript(args.transcript)
            _, decryption = crack(transcript.bits, transcript.ciphertext, args.signature,
                                  processes=args.processes, strict=args.strict, verbose=True)
            print(f"\n[+] Recovered plaintext: {decryption.plaintext!r}")

        elif args.cmd == "recover":
            recovery = recover_taps(args.bits, args.window, args.taps_count,
                                    processes=args.processes, strict=args.strict, progress=True)
            print(f"Taps recovered: {list(recovery.taps)}")
            print(f"State window: {format_bits(recovery.state)}")

        elif args.cmd == "decrypt":
            decryption = search_offset(args.ciphertext, args.state, args.taps,
                                       args.signature, args.max_offset)
            print(f"Offset: {decryption.offset}")
            print(f"Plaintext: {decryption.plaintext!r}")

    except (OracleError, CryptanalysisError) as e:
        print(f"[!] {e.phase} failed: {e}", file=sys.stderr)
        known = getattr(e, "known", None)
        if known:
            print(f"[!] Bits known so far ({len(known)}): {format_bits(known)}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"[!] Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
