#!/usr/bin/env python3
"""
seal_content.py - Encrypt a quiz or lab so hidden tests stay hidden.

Usage with key file:
    python tools/seal_content.py --in fizzbuzz.json --out labs/fizzbuzz.enc --key-file COURSE.key

Usage with password:
    python tools/seal_content.py --in basics.json --out quizzes/basics.enc --password

The input is either a quizlab document ({"format": "quizlab", ...}) or a
bare quiz/lab object together with --type.
"""

import argparse
import getpass
import hashlib
import json
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))
from quizlab.codec import from_envelope, seal
from quizlab.errors import CodecError, InvalidDefinition
from quizlab.models import Lab, Quiz

BARE_TYPES = {"quiz": Quiz, "lab": Lab}


def read_content(in_file: str, content_type: str = None):
    """Parse and validate the plaintext document."""
    with open(in_file, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if isinstance(data, dict) and data.get("format") == "quizlab":
        return from_envelope(data)
    if content_type is None:
        raise CodecError("Input is not a quizlab document; pass --type quiz or --type lab")
    return BARE_TYPES[content_type].from_dict(data)


def seal_content(in_file: str, out_file: str, key_file: str = None,
                 use_password: bool = False, content_type: str = None) -> None:
    """Seal a plaintext quiz or lab."""
    try:
        content = read_content(in_file, content_type)
        print(f"[OK] Input validated: {type(content).__name__} '{content.id}'")

        if use_password:
            password = getpass.getpass("Enter sealing password: ")
            password_confirm = getpass.getpass("Confirm password: ")

            if password != password_confirm:
                print("[ERROR] Passwords do not match", file=sys.stderr)
                sys.exit(1)

            if len(password) < 8:
                print("[ERROR] Password must be at least 8 characters", file=sys.stderr)
                sys.exit(1)

            sealed = seal(content, password=password)
            print("[OK] Using password-based sealing")
        elif key_file:
            with open(key_file, 'rb') as f:
                sealed = seal(content, key=f.read())
            print("[OK] Using key file sealing")
        else:
            print("[ERROR] Must specify either --key-file or --password", file=sys.stderr)
            sys.exit(1)

        sha256_hash = hashlib.sha256(sealed).hexdigest()

        Path(out_file).parent.mkdir(parents=True, exist_ok=True)
        with open(out_file, 'wb') as f:
            f.write(sealed)

        print(f"\n[OK] Success: Content sealed")
        print(f"  Input: {in_file}")
        print(f"  Output: {out_file} ({len(sealed)} bytes)")
        print(f"  SHA256: {sha256_hash}")

    except FileNotFoundError as e:
        print(f"[ERROR] File not found: {e}", file=sys.stderr)
        sys.exit(1)
    except json.JSONDecodeError as e:
        print(f"[ERROR] Invalid JSON in input file: {e}", file=sys.stderr)
        sys.exit(1)
    except (CodecError, InvalidDefinition, KeyError) as e:
        print(f"[ERROR] Invalid content: {e}", file=sys.stderr)
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(
        description="Seal a quiz or lab JSON file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python tools/seal_content.py --in fizzbuzz.json --out labs/fizzbuzz.enc --key-file COURSE.key
  python tools/seal_content.py --in basics.json --type quiz --out quizzes/basics.enc --password

Notes:
  - Content is validated before sealing
  - Output directory will be created if it doesn't exist
  - Produces SHA256 checksum for verification
        """
    )
    parser.add_argument("--in", dest="in_file", required=True, help="Input plaintext JSON file")
    parser.add_argument("--out", required=True, help="Output sealed file (.enc)")
    parser.add_argument("--type", dest="content_type", choices=sorted(BARE_TYPES),
                        help="Content type when the input is a bare object")
    secret = parser.add_mutually_exclusive_group()
    secret.add_argument("--key-file", help="Key file from keygen.py")
    secret.add_argument("--password", action="store_true", help="Seal with a password instead")

    args = parser.parse_args()
    seal_content(args.in_file, args.out, args.key_file, args.password, args.content_type)


if __name__ == "__main__":
    main()
