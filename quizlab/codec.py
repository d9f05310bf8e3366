"""
Versioned encoding of quizlab values, and sealed (encrypted) content.

Plain encoding wraps a value's dictionary form in an envelope:

    {"format": "quizlab", "version": 1, "type": "quiz", "data": {...}}

Sealed content is that JSON encrypted with Fernet, either with a key file or
with a password-derived key. Password-sealed blobs start with b"SALT"
followed by the 16-byte PBKDF2 salt.
"""

import base64
import json
import os
from pathlib import Path
from typing import Any, Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import CodecError, InvalidDefinition
from .models import (
    Answer,
    ExecutionResult,
    Feedback,
    Lab,
    Question,
    Quiz,
    Score,
    TestCase,
    TestResult,
    TestResults,
    TestSuite,
)

FORMAT_NAME = "quizlab"
FORMAT_VERSION = 1

SALT_PREFIX = b"SALT"
SALT_SIZE = 16
KDF_ITERATIONS = 480000

# Envelope type name -> base class; checked in order, so keep bases last
TYPES = (
    ("quiz", Quiz),
    ("lab", Lab),
    ("question", Question),
    ("answer", Answer),
    ("feedback", Feedback),
    ("score", Score),
    ("test_case", TestCase),
    ("test_suite", TestSuite),
    ("test_result", TestResult),
    ("test_results", TestResults),
    ("execution_result", ExecutionResult),
)
_DECODERS = {name: cls.from_dict for name, cls in TYPES}

KeyType = Union[str, bytes]


def type_name(obj: Any) -> str:
    for name, cls in TYPES:
        if isinstance(obj, cls):
            return name
    raise CodecError(f"Cannot encode value of type {type(obj).__name__}")


# ===== PLAIN ENCODING =====

def to_envelope(obj: Any) -> dict:
    return {
        "format": FORMAT_NAME,
        "version": FORMAT_VERSION,
        "type": type_name(obj),
        "data": obj.to_dict(),
    }


def from_envelope(envelope: Any, expected: Optional[str] = None) -> Any:
    """Decode an envelope dictionary, optionally insisting on a type name."""
    if not isinstance(envelope, dict) or envelope.get("format") != FORMAT_NAME:
        raise CodecError("Not a quizlab document")

    version = envelope.get("version")
    if not isinstance(version, int) or version < 1:
        raise CodecError(f"Invalid format version: {version!r}")
    if version > FORMAT_VERSION:
        raise CodecError(
            f"Document version {version} is newer than supported version {FORMAT_VERSION}"
        )

    name = envelope.get("type")
    decoder = _DECODERS.get(name)
    if decoder is None:
        raise CodecError(f"Unknown document type: {name!r}")
    if expected is not None and name != expected:
        raise CodecError(f"Expected a {expected} document, got {name}")

    try:
        return decoder(envelope.get("data") or {})
    except (InvalidDefinition, KeyError, TypeError, ValueError) as e:
        raise CodecError(f"Malformed {name} document: {e}") from e


def dumps(obj: Any, indent: Optional[int] = None) -> str:
    return json.dumps(to_envelope(obj), indent=indent, ensure_ascii=False)


def loads(text: Union[str, bytes], expected: Optional[str] = None) -> Any:
    try:
        envelope = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CodecError(f"Invalid JSON: {e}") from e
    return from_envelope(envelope, expected)


# ===== SEALED CONTENT =====

def generate_key() -> bytes:
    return Fernet.generate_key()


def derive_key_from_password(password: str, salt: bytes) -> bytes:
    """Derive a Fernet key from a password using PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    key_material = kdf.derive(password.encode('utf-8'))
    return base64.urlsafe_b64encode(key_material)


def _fernet(key: KeyType) -> Fernet:
    if isinstance(key, str):
        key = key.strip().encode('utf-8')
    try:
        return Fernet(key.strip())
    except (ValueError, TypeError) as e:
        raise CodecError(f"Invalid key: {e}") from e


def is_password_sealed(blob: bytes) -> bool:
    return blob.startswith(SALT_PREFIX)


def seal(obj: Any, key: Optional[KeyType] = None, password: Optional[str] = None) -> bytes:
    """
    Encrypt a value so its content (e.g. hidden tests) is not readable.

    Exactly one of key and password must be given.
    """
    if (key is None) == (password is None):
        raise CodecError("Specify exactly one of key or password")

    plaintext = dumps(obj).encode('utf-8')
    if password is not None:
        salt = os.urandom(SALT_SIZE)
        token = _fernet(derive_key_from_password(password, salt)).encrypt(plaintext)
        return SALT_PREFIX + salt + token
    return _fernet(key).encrypt(plaintext)


def unseal(
    blob: bytes,
    key: Optional[KeyType] = None,
    password: Optional[str] = None,
    expected: Optional[str] = None
) -> Any:
    """Decrypt and decode sealed content; a wrong key raises CodecError."""
    if is_password_sealed(blob):
        if password is None:
            raise CodecError("Content is password-sealed; a password is required")
        salt = blob[len(SALT_PREFIX):len(SALT_PREFIX) + SALT_SIZE]
        token = blob[len(SALT_PREFIX) + SALT_SIZE:]
        fernet = _fernet(derive_key_from_password(password, salt))
    else:
        if key is None:
            raise CodecError("Content is key-sealed; a key is required")
        token = blob
        fernet = _fernet(key)

    try:
        plaintext = fernet.decrypt(token)
    except InvalidToken:
        raise CodecError("Wrong key or password, or the content is corrupted")
    return loads(plaintext, expected)


# ===== FILES =====

def load_file(
    path: Union[str, Path],
    key: Optional[KeyType] = None,
    password: Optional[str] = None,
    expected: Optional[str] = None
) -> Any:
    """
    Load a document from disk.

    ``.json`` files are plain envelopes; anything else is treated as sealed.
    """
    path = Path(path)
    data = path.read_bytes()
    if path.suffix.lower() == '.json':
        return loads(data, expected)
    return unseal(data, key=key, password=password, expected=expected)
