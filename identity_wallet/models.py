from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from identity_wallet import SUPPORTED_ENVELOPE_VERSIONS, __schema__
from identity_wallet.errors import ErrorKind, RecoveryError, authentication_failed
from vault.wipe import zeroize

SEED_LENGTH = 32
PUBLIC_IDENTIFIER_LENGTH = 32


def now_utc() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def new_id(prefix: str) -> str:
    """
    Time-ordered ID: {prefix}_{timestamp_ms:013x}_{random:016x}
    """
    timestamp_ms = int(time.time() * 1000)
    random_bits = uuid.uuid4().hex[:16]
    return f"{prefix}_{timestamp_ms:013x}_{random_bits}"


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("utf-8")


def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("utf-8"), validate=True)


@dataclass(eq=False)
class WalletKeyMaterial:
    """
    Wallet seed plus its public identifier.

    The seed is held in a bytearray so it can be zeroed in place; use the
    instance as a context manager (or call wipe()) so it is destroyed on
    every exit path. The public identifier is a pure, one-way function of
    the seed and safe to disclose.

    Attributes:
        seed: 32-byte secret seed (never in repr)
        public_identifier: 32-byte Ed25519 public key of the seed
        user_id: Optional display handle of the identity it was derived from
    """
    seed: bytearray = field(repr=False)
    public_identifier: bytes
    user_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.seed, bytearray):
            self.seed = bytearray(self.seed)

    @property
    def public_identifier_hex(self) -> str:
        return self.public_identifier.hex()

    @property
    def wiped(self) -> bool:
        return not any(self.seed)

    def wipe(self) -> None:
        zeroize(self.seed)

    def __enter__(self) -> WalletKeyMaterial:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.wipe()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WalletKeyMaterial):
            return NotImplemented
        return hmac.compare_digest(bytes(self.seed), bytes(other.seed)) and (
            self.public_identifier == other.public_identifier
        )

    __hash__ = None  # type: ignore[assignment]


class _Reader:
    """Cursor over a serialized envelope; any short read fails closed."""

    def __init__(self, blob: bytes):
        self.blob = blob
        self.pos = 0

    def take(self, n: int) -> bytes:
        if n < 0 or self.pos + n > len(self.blob):
            raise authentication_failed()
        out = self.blob[self.pos:self.pos + n]
        self.pos += n
        return out

    def take_prefixed(self) -> bytes:
        (n,) = self.take(1)
        return self.take(n)

    def rest(self) -> bytes:
        out = self.blob[self.pos:]
        self.pos = len(self.blob)
        return out


def check_version(version: int) -> None:
    if version not in SUPPORTED_ENVELOPE_VERSIONS:
        raise RecoveryError(
            ErrorKind.UNSUPPORTED_VERSION,
            f"Backup envelope version {version} is not supported",
            {"version": version, "supported": list(SUPPORTED_ENVELOPE_VERSIONS)},
        )


class BackupEnvelope(BaseModel):
    """
    Self-describing encrypted backup.

    Wire layout (length-prefixed concatenation):
        [version:1][saltLen:1][salt][nonceLen:1][nonce][authTagLen:1][authTag][ciphertext...]

    Immutable once created. Structure only: cipher-specific length checks
    happen in BackupCipher.decrypt.
    """
    model_config = ConfigDict(frozen=True)

    version: int
    salt: bytes = Field(max_length=255)
    nonce: bytes = Field(max_length=255)
    ciphertext: bytes
    auth_tag: bytes = Field(max_length=255)

    @field_validator("version")
    @classmethod
    def version_fits_header(cls, v: int) -> int:
        # single header byte; anything wider can never be a known version
        if not 0 <= v <= 255:
            check_version(v)
        return v

    def to_bytes(self) -> bytes:
        return b"".join([
            bytes([self.version, len(self.salt)]),
            self.salt,
            bytes([len(self.nonce)]),
            self.nonce,
            bytes([len(self.auth_tag)]),
            self.auth_tag,
            self.ciphertext,
        ])

    @classmethod
    def from_bytes(cls, blob: bytes) -> BackupEnvelope:
        """
        Parse the wire layout.

        Raises:
            RecoveryError(UNSUPPORTED_VERSION): unknown version byte (checked first)
            RecoveryError(AUTHENTICATION_FAILED): truncated or malformed blob
        """
        if not blob:
            raise authentication_failed()
        check_version(blob[0])
        r = _Reader(bytes(blob))
        version = r.take(1)[0]
        salt = r.take_prefixed()
        nonce = r.take_prefixed()
        auth_tag = r.take_prefixed()
        ciphertext = r.rest()
        if not ciphertext:
            raise authentication_failed()
        return cls(version=version, salt=salt, nonce=nonce, ciphertext=ciphertext, auth_tag=auth_tag)

    def to_json_dict(self) -> Dict[str, Any]:
        """Base64 JSON form: {version, salt, iv, ciphertext, tag}."""
        return {
            "version": self.version,
            "salt": b64e(self.salt),
            "iv": b64e(self.nonce),
            "ciphertext": b64e(self.ciphertext),
            "tag": b64e(self.auth_tag),
        }

    @classmethod
    def from_json_dict(cls, data: Dict[str, Any]) -> BackupEnvelope:
        version = data.get("version")
        if not isinstance(version, int) or isinstance(version, bool):
            raise authentication_failed()
        check_version(version)
        try:
            return cls(
                version=version,
                salt=b64d(data["salt"]),
                nonce=b64d(data["iv"]),
                ciphertext=b64d(data["ciphertext"]),
                auth_tag=b64d(data["tag"]),
            )
        except (KeyError, TypeError, AttributeError, ValueError, binascii.Error) as e:
            raise authentication_failed() from e


class BackupDocument(BaseModel):
    """
    Storage wrapper around a wallet backup envelope.

    Carries the (public) identifier of the wallet it protects so a restore
    can verify identity without the caller remembering it. The checksum is
    a non-secret SHA-256 of the serialized envelope; it catches storage
    corruption early and fails the same way as a bad tag.
    """
    kind: Literal["WalletBackup"] = "WalletBackup"
    schema_version: str = Field(default=__schema__, alias="schema")
    backup_id: str = Field(default_factory=lambda: new_id("bk"))
    created_utc: str = Field(default_factory=now_utc)
    public_identifier_hex: str
    envelope_b64: str
    checksum: str

    model_config = {"populate_by_name": True}

    @classmethod
    def from_envelope(cls, envelope: BackupEnvelope, public_identifier: bytes) -> BackupDocument:
        blob = envelope.to_bytes()
        return cls(
            public_identifier_hex=public_identifier.hex(),
            envelope_b64=b64e(blob),
            checksum=hashlib.sha256(blob).hexdigest(),
        )

    @property
    def public_identifier(self) -> bytes:
        try:
            return bytes.fromhex(self.public_identifier_hex)
        except ValueError as e:
            raise RecoveryError(ErrorKind.INVALID_INPUT, "Backup document identifier is not hex") from e

    def envelope(self) -> BackupEnvelope:
        try:
            blob = b64d(self.envelope_b64)
        except (ValueError, binascii.Error) as e:
            raise authentication_failed() from e
        if not hmac.compare_digest(hashlib.sha256(blob).hexdigest(), self.checksum.lower()):
            raise authentication_failed()
        return BackupEnvelope.from_bytes(blob)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> BackupDocument:
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise RecoveryError(ErrorKind.INVALID_INPUT, "Malformed backup document") from e


class RestoreState(str, Enum):
    """Per-attempt restore states; the last four are terminal."""
    PENDING = "pending"
    VERIFYING = "verifying"
    SUCCESS = "success"
    AUTH_FAILED = "auth_failed"
    IDENTIFIER_MISMATCH = "identifier_mismatch"
    REJECTED = "rejected"


@dataclass(frozen=True)
class RestoreResult:
    """Outcome of a restore attempt."""

    state: RestoreState
    material: Optional[WalletKeyMaterial] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.state is RestoreState.SUCCESS
