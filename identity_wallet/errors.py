"""
Recovery error taxonomy.

Every failure raised by the wallet core is a single RecoveryError tagged
with an ErrorKind. Callers dispatch on ``err.kind``; there are no
subclasses to isinstance-check.

Messages never carry secret material (seeds, passphrases, derived keys,
plaintext).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

# Shared by wrong passphrase and corrupted data so the two stay indistinguishable
AUTH_FAILED_MESSAGE = "Incorrect passphrase or corrupted data"


class ErrorKind(str, Enum):
    """Failure kinds surfaced by derivation, backup and restore."""

    INVALID_INPUT = "invalid_input"  # empty/malformed assertion or plaintext
    WEAK_PASSPHRASE = "weak_passphrase"  # below minimum length policy
    UNSUPPORTED_VERSION = "unsupported_version"  # unknown envelope version tag
    AUTHENTICATION_FAILED = "authentication_failed"  # wrong passphrase or tampered envelope
    IDENTIFIER_MISMATCH = "identifier_mismatch"  # decrypts, but to a different wallet


class RecoveryError(Exception):
    """
    Terminal failure of a wallet core operation.

    Attributes:
        kind: ErrorKind tag
        message: Human-readable description (secret-free)
        data: Optional structured, non-secret context
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.message = message
        self.data: Dict[str, Any] = dict(data or {})

    def __repr__(self) -> str:
        return f"RecoveryError(kind={self.kind.value!r}, message={self.message!r})"


def authentication_failed() -> RecoveryError:
    return RecoveryError(ErrorKind.AUTHENTICATION_FAILED, AUTH_FAILED_MESSAGE)
