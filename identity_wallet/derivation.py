"""
Deterministic wallet key material from an identity assertion.

    assertion --SHA-256--> digest --PBKDF2-HMAC-SHA256("wallet-seed-v1")--> seed
    seed --Ed25519 public key--> public identifier

Security property: derivation is a pure function of the assertion bytes.
Anyone who can reproduce the assertion can reproduce the seed. This gives
recoverability, not proof of possession; it is NOT a zero-knowledge proof
of identity ownership.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from identity_wallet import hashing
from identity_wallet.errors import ErrorKind, RecoveryError
from identity_wallet.models import SEED_LENGTH, WalletKeyMaterial
from identity_wallet.settings import RecoverySettings
from vault.wipe import zeroize

logger = logging.getLogger(__name__)

# Domain-separation label for wallet seeds (backup keys use their own)
WALLET_SEED_LABEL = b"wallet-seed-v1"


def stretch(secret: hashing.BytesLike, salt: bytes, *, iterations: int, length: int = SEED_LENGTH) -> bytearray:
    """
    Deliberately expensive key stretching (PBKDF2-HMAC-SHA256).

    Shared by wallet seed derivation and backup key derivation; callers pass
    distinct domain-separated salts.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        iterations=iterations,
    )
    return bytearray(kdf.derive(secret))


def public_identifier(seed: hashing.BytesLike) -> bytes:
    """Raw 32-byte Ed25519 public key with the seed as private key."""
    priv = Ed25519PrivateKey.from_private_bytes(bytes(seed))
    return priv.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


class KeyDeriver:
    """Turns identity assertions (or recovered seeds) into WalletKeyMaterial."""

    def __init__(self, settings: Optional[RecoverySettings] = None):
        self.settings = settings or RecoverySettings()

    def derive_wallet(self, assertion: Union[str, hashing.BytesLike]) -> WalletKeyMaterial:
        """
        Derive wallet key material from an identity assertion.

        Same assertion bytes always yield the same material.

        Raises:
            RecoveryError(INVALID_INPUT): empty assertion
        """
        raw = hashing.as_bytes(assertion, "assertion")
        if not raw:
            raise RecoveryError(ErrorKind.INVALID_INPUT, "Identity assertion must not be empty")

        digest = bytearray(hashing.digest(raw))
        try:
            seed = stretch(digest, WALLET_SEED_LABEL, iterations=self.settings.SEED_ITERATIONS)
        finally:
            zeroize(digest)

        material = WalletKeyMaterial(
            seed=seed,
            public_identifier=public_identifier(seed),
            user_id=hashing.user_id(raw),
        )
        logger.debug(f"Derived wallet seed ({self.settings.SEED_ITERATIONS} iterations)")
        logger.info(f"Derived wallet {material.public_identifier_hex[:16]}... for user {material.user_id}")
        return material

    def material_from_seed(self, seed: hashing.BytesLike) -> WalletKeyMaterial:
        """
        Rebuild key material from a recovered seed.

        The seed is copied; the caller keeps ownership of (and wipes) its buffer.

        Raises:
            RecoveryError(INVALID_INPUT): seed is not 32 bytes
        """
        if len(seed) != SEED_LENGTH:
            raise RecoveryError(
                ErrorKind.INVALID_INPUT,
                f"Seed must be {SEED_LENGTH} bytes, got {len(seed)}",
            )
        return WalletKeyMaterial(seed=bytearray(seed), public_identifier=public_identifier(seed))
