"""
Wallet recovery orchestration.

RecoveryCoordinator is the public surface for external callers:

- create_wallet:   identity assertion -> WalletKeyMaterial
- backup_wallet:   WalletKeyMaterial + passphrase -> BackupEnvelope
- restore_wallet:  BackupEnvelope + passphrase (+ expected identifier) -> WalletKeyMaterial

Restore attempt state machine:

    PENDING -> VERIFYING -> SUCCESS | AUTH_FAILED | IDENTIFIER_MISMATCH
    PENDING -> REJECTED (unsupported version, weak passphrase)

No retries and no attempt counting happen here; rate limiting repeated
passphrase guesses belongs to the caller. All operations are CPU-bound and
stateless; the *_async variants move the work off the event loop and wipe
key material that a cancelled caller will never receive.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
import threading
from typing import Any, Callable, Optional, TypeVar, Union

from identity_wallet.derivation import KeyDeriver
from identity_wallet.errors import ErrorKind, RecoveryError, authentication_failed
from identity_wallet.hashing import BytesLike
from identity_wallet.models import (
    BackupDocument,
    BackupEnvelope,
    RestoreResult,
    RestoreState,
    WalletKeyMaterial,
    check_version,
)
from identity_wallet.settings import RecoverySettings
from vault.crypto import BackupCipher, Passphrase, normalize_passphrase
from vault.wipe import zeroize

logger = logging.getLogger(__name__)

# Associated data labels: a secret envelope never restores as a wallet and vice versa
WALLET_BACKUP_AAD = b"wallet-backup-v1"
RECOVERY_SECRET_AAD = b"recovery-secret-v1"

_TERMINAL_STATES = {
    ErrorKind.AUTHENTICATION_FAILED: RestoreState.AUTH_FAILED,
    ErrorKind.IDENTIFIER_MISMATCH: RestoreState.IDENTIFIER_MISMATCH,
    ErrorKind.UNSUPPORTED_VERSION: RestoreState.REJECTED,
    ErrorKind.WEAK_PASSPHRASE: RestoreState.REJECTED,
    ErrorKind.INVALID_INPUT: RestoreState.AUTH_FAILED,
}

_T = TypeVar("_T")


class _Handoff:
    """
    Result slot shared by a worker thread and the task awaiting it.

    A cancelled task never sees the worker's result, so whichever side
    comes second wipes any key material left behind.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._result: Any = None
        self._abandoned = False

    def deliver(self, result: _T) -> _T:
        with self._lock:
            if not self._abandoned:
                self._result = result
                return result
        _wipe_result(result)
        return result

    def abandon(self) -> None:
        with self._lock:
            self._abandoned = True
            result, self._result = self._result, None
        _wipe_result(result)


def _wipe_result(result: Any) -> None:
    if isinstance(result, WalletKeyMaterial):
        result.wipe()


async def _off_loop(func: Callable[..., _T], *args: Any) -> _T:
    """Run func in a worker thread; on cancellation, wipe whatever it returns."""
    handoff = _Handoff()

    def call() -> _T:
        return handoff.deliver(func(*args))

    try:
        return await asyncio.to_thread(call)
    except asyncio.CancelledError:
        handoff.abandon()
        raise


class RecoveryCoordinator:
    """
    End-to-end derive / back up / restore flows.

    Usage:
        coordinator = RecoveryCoordinator(RecoverySettings())
        with coordinator.create_wallet(id_token) as material:
            envelope = coordinator.backup_wallet(material, passphrase)
        restored = coordinator.restore_wallet(envelope, passphrase, expected_id)
    """

    def __init__(
        self,
        settings: Optional[RecoverySettings] = None,
        deriver: Optional[KeyDeriver] = None,
        cipher: Optional[BackupCipher] = None,
    ):
        self.settings = settings or RecoverySettings()
        self.deriver = deriver or KeyDeriver(self.settings)
        self.cipher = cipher or BackupCipher(self.settings)

    @classmethod
    def from_env(cls) -> RecoveryCoordinator:
        return cls(RecoverySettings.load())

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def check_passphrase(self, passphrase: Passphrase) -> None:
        """
        Enforce the minimum passphrase length (bytes after normalization).

        Raises:
            RecoveryError(WEAK_PASSPHRASE)
        """
        pw = normalize_passphrase(passphrase)
        try:
            length = len(pw)
        finally:
            zeroize(pw)
        if length < self.settings.MIN_PASSPHRASE_LENGTH:
            raise RecoveryError(
                ErrorKind.WEAK_PASSPHRASE,
                f"Passphrase must be at least {self.settings.MIN_PASSPHRASE_LENGTH} bytes",
                {"min_length": self.settings.MIN_PASSPHRASE_LENGTH},
            )

    # ------------------------------------------------------------------
    # Wallet flows
    # ------------------------------------------------------------------

    def create_wallet(self, assertion: Union[str, BytesLike]) -> WalletKeyMaterial:
        return self.deriver.derive_wallet(assertion)

    def backup_wallet(self, material: WalletKeyMaterial, passphrase: Passphrase) -> BackupEnvelope:
        """
        Encrypt the wallet seed under a passphrase.

        Raises:
            RecoveryError(WEAK_PASSPHRASE): passphrase below policy
            RecoveryError(INVALID_INPUT): material already wiped
        """
        self.check_passphrase(passphrase)
        if material.wiped:
            raise RecoveryError(ErrorKind.INVALID_INPUT, "Wallet key material has been wiped")

        envelope = self.cipher.encrypt(material.seed, passphrase, WALLET_BACKUP_AAD)
        logger.info(f"Backed up wallet {material.public_identifier_hex[:16]}...")
        return envelope

    def restore_wallet(
        self,
        envelope: BackupEnvelope,
        passphrase: Passphrase,
        expected_public_identifier: Optional[bytes] = None,
    ) -> WalletKeyMaterial:
        """
        Decrypt a wallet backup and rebuild its key material.

        When expected_public_identifier is given, the identifier recomputed
        from the recovered seed must equal it.

        Raises:
            RecoveryError(UNSUPPORTED_VERSION | WEAK_PASSPHRASE): rejected before decryption
            RecoveryError(AUTHENTICATION_FAILED): wrong passphrase, corrupted envelope,
                or a payload that is not a wallet seed
            RecoveryError(IDENTIFIER_MISMATCH): envelope belongs to a different wallet
        """
        try:
            check_version(envelope.version)
            self.check_passphrase(passphrase)

            seed = self.cipher.decrypt(envelope, passphrase, WALLET_BACKUP_AAD)
            try:
                material = self.deriver.material_from_seed(seed)
            except RecoveryError:
                # authenticated but not a seed: report like any other failed open
                raise authentication_failed() from None
            finally:
                zeroize(seed)

            if expected_public_identifier is not None and not hmac.compare_digest(
                material.public_identifier, bytes(expected_public_identifier)
            ):
                material.wipe()
                raise RecoveryError(
                    ErrorKind.IDENTIFIER_MISMATCH,
                    "Backup does not belong to the expected wallet",
                    {"expected": bytes(expected_public_identifier).hex()},
                )
        except RecoveryError as e:
            logger.warning(f"Wallet restore failed: {e.kind.value}")
            raise

        logger.info(f"Restored wallet {material.public_identifier_hex[:16]}...")
        return material

    def attempt_restore(
        self,
        envelope: BackupEnvelope,
        passphrase: Passphrase,
        expected_public_identifier: Optional[bytes] = None,
    ) -> RestoreResult:
        """Non-raising restore returning the terminal state of the attempt."""
        state = RestoreState.PENDING
        try:
            check_version(envelope.version)
            self.check_passphrase(passphrase)
        except RecoveryError as e:
            logger.debug(f"Restore {state.value} -> {RestoreState.REJECTED.value}")
            return RestoreResult(RestoreState.REJECTED, reason=e.kind.value)

        state = RestoreState.VERIFYING
        try:
            material = self.restore_wallet(envelope, passphrase, expected_public_identifier)
        except RecoveryError as e:
            terminal = _TERMINAL_STATES[e.kind]
            logger.debug(f"Restore {state.value} -> {terminal.value}")
            return RestoreResult(terminal, reason=e.kind.value)

        logger.debug(f"Restore {state.value} -> {RestoreState.SUCCESS.value}")
        return RestoreResult(RestoreState.SUCCESS, material=material)

    def verify_passphrase(
        self,
        envelope: BackupEnvelope,
        passphrase: Passphrase,
        expected_public_identifier: Optional[bytes] = None,
    ) -> bool:
        """True if the passphrase opens the backup (and it matches the expected wallet)."""
        result = self.attempt_restore(envelope, passphrase, expected_public_identifier)
        if result.material is not None:
            result.material.wipe()
        return result.ok

    # ------------------------------------------------------------------
    # Backup documents
    # ------------------------------------------------------------------

    def export_document(self, material: WalletKeyMaterial, passphrase: Passphrase) -> BackupDocument:
        envelope = self.backup_wallet(material, passphrase)
        return BackupDocument.from_envelope(envelope, material.public_identifier)

    def restore_document(
        self,
        document: BackupDocument,
        passphrase: Passphrase,
        expected_public_identifier: Optional[bytes] = None,
    ) -> WalletKeyMaterial:
        """
        Restore from a BackupDocument.

        The document's own identifier is checked unless the caller supplies one;
        a supplied identifier that disagrees with the document is an
        IDENTIFIER_MISMATCH without any decryption work.
        """
        recorded = document.public_identifier
        if expected_public_identifier is not None and not hmac.compare_digest(
            recorded, bytes(expected_public_identifier)
        ):
            raise RecoveryError(
                ErrorKind.IDENTIFIER_MISMATCH,
                "Backup document belongs to a different wallet",
                {"expected": bytes(expected_public_identifier).hex()},
            )
        return self.restore_wallet(document.envelope(), passphrase, recorded)

    # ------------------------------------------------------------------
    # Other recovery secrets (e.g. mnemonic phrases)
    # ------------------------------------------------------------------

    def backup_secret(self, secret: Union[str, BytesLike], passphrase: Passphrase) -> BackupEnvelope:
        """
        Encrypt an arbitrary recovery secret. str secrets are UTF-8 encoded.

        Raises:
            RecoveryError(WEAK_PASSPHRASE | INVALID_INPUT)
        """
        self.check_passphrase(passphrase)
        data = bytearray(secret.encode("utf-8")) if isinstance(secret, str) else secret
        try:
            return self.cipher.encrypt(data, passphrase, RECOVERY_SECRET_AAD)
        finally:
            if isinstance(secret, str):
                zeroize(data)

    def restore_secret(self, envelope: BackupEnvelope, passphrase: Passphrase) -> bytearray:
        """Decrypt a secret sealed by backup_secret. Caller zeroizes the result."""
        check_version(envelope.version)
        self.check_passphrase(passphrase)
        return self.cipher.decrypt(envelope, passphrase, RECOVERY_SECRET_AAD)

    # ------------------------------------------------------------------
    # Off-loop variants
    # ------------------------------------------------------------------

    async def create_wallet_async(self, assertion: Union[str, BytesLike]) -> WalletKeyMaterial:
        return await _off_loop(self.create_wallet, assertion)

    async def backup_wallet_async(self, material: WalletKeyMaterial, passphrase: Passphrase) -> BackupEnvelope:
        return await _off_loop(self.backup_wallet, material, passphrase)

    async def restore_wallet_async(
        self,
        envelope: BackupEnvelope,
        passphrase: Passphrase,
        expected_public_identifier: Optional[bytes] = None,
    ) -> WalletKeyMaterial:
        return await _off_loop(
            self.restore_wallet, envelope, passphrase, expected_public_identifier
        )
