"""Shared fixtures: low-cost KDF settings so the suites stay fast."""

import pytest

from identity_wallet.derivation import KeyDeriver
from identity_wallet.recovery import RecoveryCoordinator
from identity_wallet.settings import RecoverySettings
from vault.crypto import BackupCipher


@pytest.fixture
def fast_settings():
    return RecoverySettings(SEED_ITERATIONS=1_000, BACKUP_ITERATIONS=1_000)


@pytest.fixture
def deriver(fast_settings):
    return KeyDeriver(fast_settings)


@pytest.fixture
def cipher(fast_settings):
    return BackupCipher(fast_settings)


@pytest.fixture
def coordinator(fast_settings):
    return RecoveryCoordinator(fast_settings)
