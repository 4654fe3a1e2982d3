from __future__ import annotations

import hashlib
from typing import Union

from identity_wallet.errors import ErrorKind, RecoveryError

BytesLike = Union[bytes, bytearray, memoryview]

DIGEST_SIZE = 32
USER_ID_HEX_CHARS = 16


def as_bytes(value: Union[str, BytesLike], what: str) -> bytes:
    """Coerce str (UTF-8) or bytes-like input to bytes."""
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise RecoveryError(
        ErrorKind.INVALID_INPUT,
        f"{what} must be str or bytes, got {type(value).__name__}",
    )


def digest(assertion: BytesLike) -> bytes:
    """
    Fixed-length digest of a raw identity assertion (SHA-256, unkeyed).

    Deterministic and total: empty input is valid here. Rejecting empty
    assertions is KeyDeriver's policy, not this function's.
    """
    return hashlib.sha256(assertion).digest()


def user_id(assertion: BytesLike) -> str:
    """Short non-secret display handle for an identity (first 16 hex chars of digest)."""
    return digest(assertion).hex()[:USER_ID_HEX_CHARS]
