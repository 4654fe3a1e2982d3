"""
Passphrase-sealed backup envelopes.

Scheme: envelope version 1
- Key: PBKDF2-HMAC-SHA256(passphrase, "backup-key-v1" || 0x00 || salt)
- AEAD: ChaCha20-Poly1305, 96-bit random nonce, 128-bit tag
- Fresh salt (hence fresh key) on every encrypt call, so a key never sees
  a second nonce
- Associated data binds the ciphertext to its purpose
"""

from __future__ import annotations

import logging
import os
import unicodedata
from typing import Optional, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from identity_wallet import CURRENT_ENVELOPE_VERSION
from identity_wallet.derivation import stretch
from identity_wallet.errors import ErrorKind, RecoveryError, authentication_failed
from identity_wallet.hashing import BytesLike
from identity_wallet.models import BackupEnvelope, check_version
from identity_wallet.settings import MIN_SALT_LENGTH, RecoverySettings
from vault.wipe import zeroize

logger = logging.getLogger(__name__)

BACKUP_KEY_LABEL = b"backup-key-v1"
KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16

Passphrase = Union[str, BytesLike]


def normalize_passphrase(passphrase: Passphrase) -> bytearray:
    """
    Passphrase bytes for key derivation.

    str input is NFKD-normalized and UTF-8 encoded so the same phrase typed
    on different platforms derives the same key. The result is a fresh
    bytearray the caller must zeroize.
    """
    if isinstance(passphrase, str):
        return bytearray(unicodedata.normalize("NFKD", passphrase).encode("utf-8"))
    if isinstance(passphrase, (bytes, bytearray, memoryview)):
        return bytearray(passphrase)
    raise RecoveryError(
        ErrorKind.INVALID_INPUT,
        f"Passphrase must be str or bytes, got {type(passphrase).__name__}",
    )


def new_salt(length: int = MIN_SALT_LENGTH) -> bytes:
    return os.urandom(length)


def seal_bytes(key: BytesLike, plaintext: BytesLike, aad: bytes) -> Tuple[bytes, bytes, bytes]:
    """
    Encrypt with ChaCha20-Poly1305 AEAD.

    Returns (nonce, ciphertext, tag); ciphertext has the plaintext's length.
    """
    aead = ChaCha20Poly1305(key)
    nonce = os.urandom(NONCE_LENGTH)
    sealed = aead.encrypt(nonce, plaintext, aad)
    return nonce, sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]


def open_bytes(key: BytesLike, nonce: bytes, ciphertext: bytes, tag: bytes, aad: bytes) -> bytes:
    """Decrypt with ChaCha20-Poly1305 AEAD. Raises InvalidTag on any mismatch."""
    aead = ChaCha20Poly1305(key)
    return aead.decrypt(nonce, ciphertext + tag, aad)


class BackupCipher:
    """
    Encrypts secret payloads under a passphrase into BackupEnvelopes.

    Stateless apart from its settings; safe to share across threads.
    """

    def __init__(self, settings: Optional[RecoverySettings] = None):
        self.settings = settings or RecoverySettings()

    def derive_key(self, passphrase: BytesLike, salt: bytes) -> bytearray:
        return stretch(
            passphrase,
            BACKUP_KEY_LABEL + b"\x00" + salt,
            iterations=self.settings.BACKUP_ITERATIONS,
            length=KEY_LENGTH,
        )

    def encrypt(
        self,
        plaintext: BytesLike,
        passphrase: Passphrase,
        associated_data: bytes = b"",
    ) -> BackupEnvelope:
        """
        Seal plaintext under a passphrase-derived key.

        Raises:
            RecoveryError(INVALID_INPUT): empty plaintext
        """
        if not isinstance(plaintext, (bytes, bytearray, memoryview)) or len(plaintext) == 0:
            raise RecoveryError(ErrorKind.INVALID_INPUT, "Backup plaintext must be non-empty bytes")

        pw = normalize_passphrase(passphrase)
        key: Optional[bytearray] = None
        try:
            salt = new_salt(self.settings.SALT_LENGTH)
            key = self.derive_key(pw, salt)
            nonce, ciphertext, tag = seal_bytes(key, plaintext, associated_data)
        finally:
            zeroize(pw, key)

        logger.debug(f"Sealed {len(plaintext)} bytes (salt={len(salt)}B, nonce={len(nonce)}B)")
        return BackupEnvelope(
            version=CURRENT_ENVELOPE_VERSION,
            salt=salt,
            nonce=nonce,
            ciphertext=ciphertext,
            auth_tag=tag,
        )

    def decrypt(
        self,
        envelope: BackupEnvelope,
        passphrase: Passphrase,
        associated_data: bytes = b"",
    ) -> bytearray:
        """
        Authenticate and decrypt an envelope.

        Fails closed: no plaintext is returned unless the tag verifies.
        The returned bytearray is the caller's to zeroize.

        Raises:
            RecoveryError(UNSUPPORTED_VERSION): unknown version (before any KDF/AEAD work)
            RecoveryError(AUTHENTICATION_FAILED): wrong passphrase, tampered or malformed envelope
        """
        check_version(envelope.version)
        self._check_lengths(envelope)

        pw = normalize_passphrase(passphrase)
        key: Optional[bytearray] = None
        try:
            key = self.derive_key(pw, envelope.salt)
            plaintext = open_bytes(key, envelope.nonce, envelope.ciphertext, envelope.auth_tag, associated_data)
        except InvalidTag as e:
            logger.debug("Envelope authentication failed")
            raise authentication_failed() from e
        finally:
            zeroize(pw, key)

        return bytearray(plaintext)

    @staticmethod
    def _check_lengths(envelope: BackupEnvelope) -> None:
        if (
            len(envelope.salt) < MIN_SALT_LENGTH
            or len(envelope.nonce) != NONCE_LENGTH
            or len(envelope.auth_tag) != TAG_LENGTH
            or not envelope.ciphertext
        ):
            raise authentication_failed()
