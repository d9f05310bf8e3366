#!/usr/bin/env python3
"""
keygen.py - Create the Fernet key file used by seal_content.py and the CLI.

Usage:
    python tools/keygen.py --out COURSE.key

An existing key file is never replaced unless --force is given: content
sealed with the old key could not be opened any more.
"""

import argparse
import hashlib
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))
from quizlab.codec import generate_key


def fingerprint(key: bytes) -> str:
    """Short, non-secret identifier for telling key files apart."""
    return hashlib.sha256(key).hexdigest()[:16]


def write_key(output_file: str, force: bool = False) -> bytes:
    """Write a fresh key to output_file and return it."""
    path = Path(output_file)
    if path.exists() and not force:
        print(f"[ERROR] {path} already exists (fingerprint {fingerprint(path.read_bytes())}). "
              f"Use --force to replace it.", file=sys.stderr)
        sys.exit(1)

    key = generate_key()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(key)
    except OSError as e:
        print(f"[ERROR] Cannot write key: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"[OK] Key written to {path}")
    print(f"  Fingerprint: {fingerprint(key)}")
    print("[!] Keep this file private: it unseals every hidden test sealed with it.")
    return key


def main():
    parser = argparse.ArgumentParser(description="Create a key file for sealing quizzes and labs.")
    parser.add_argument("--out", required=True, help="Key file to create (e.g. COURSE.key)")
    parser.add_argument("--force", action="store_true", help="Replace an existing key file")

    args = parser.parse_args()
    write_key(args.out, args.force)


if __name__ == "__main__":
    main()
