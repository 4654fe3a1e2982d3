"""
Wallet core configuration.

Settings are an explicit value handed to RecoveryCoordinator (or KeyDeriver /
BackupCipher) rather than ambient global state. ``RecoverySettings.load()``
reads them from the environment:

- WALLET_MIN_PASSPHRASE_LENGTH: minimum passphrase bytes (default: 8)
- WALLET_SALT_LENGTH: random salt bytes per backup (default: 16)
- WALLET_LOG_LEVEL: logging level for the CLI (default: INFO)

SEED_ITERATIONS and BACKUP_ITERATIONS are fixed for v1: the seed cost decides
which wallet an assertion maps to, and the v1 envelope does not record the
backup cost. They are not read from the environment; WALLET_SEED_ITERATIONS or
WALLET_BACKUP_ITERATIONS set to anything but the v1 value is an error. Lower
costs can only be passed to the constructor (tests do this).
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_ITERATIONS = 100_000
MIN_SALT_LENGTH = 16

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _opt(name: str, default: str) -> str:
    """Get optional environment variable with default."""
    return os.getenv(name, default)


def _opt_int(name: str, default: int) -> int:
    """Parse integer environment variable."""
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return int(v.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {v!r}")


@dataclass(frozen=True)
class RecoverySettings:
    """Cost factors and policy for derivation, backup and restore."""

    MIN_PASSPHRASE_LENGTH: int = 8
    SEED_ITERATIONS: int = DEFAULT_ITERATIONS
    BACKUP_ITERATIONS: int = DEFAULT_ITERATIONS
    SALT_LENGTH: int = MIN_SALT_LENGTH
    LOG_LEVEL: str = "INFO"

    def __post_init__(self) -> None:
        if self.MIN_PASSPHRASE_LENGTH < 1:
            raise ValueError(
                f"MIN_PASSPHRASE_LENGTH must be at least 1, got {self.MIN_PASSPHRASE_LENGTH}"
            )
        if self.SEED_ITERATIONS < 1:
            raise ValueError(f"SEED_ITERATIONS must be positive, got {self.SEED_ITERATIONS}")
        if self.BACKUP_ITERATIONS < 1:
            raise ValueError(f"BACKUP_ITERATIONS must be positive, got {self.BACKUP_ITERATIONS}")
        # salt length is written as a single header byte
        if not MIN_SALT_LENGTH <= self.SALT_LENGTH <= 255:
            raise ValueError(
                f"SALT_LENGTH must be between {MIN_SALT_LENGTH} and 255, got {self.SALT_LENGTH}"
            )
        if self.LOG_LEVEL.upper() not in _VALID_LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(_VALID_LOG_LEVELS)}, got {self.LOG_LEVEL}")

    @property
    def normalized_log_level(self) -> str:
        return self.LOG_LEVEL.upper()

    @staticmethod
    def load() -> RecoverySettings:
        """Load settings from environment variables."""
        for name in ("WALLET_SEED_ITERATIONS", "WALLET_BACKUP_ITERATIONS"):
            if _opt_int(name, DEFAULT_ITERATIONS) != DEFAULT_ITERATIONS:
                raise ValueError(f"{name} is fixed at {DEFAULT_ITERATIONS} for v1 wallets and backups")
        return RecoverySettings(
            MIN_PASSPHRASE_LENGTH=_opt_int("WALLET_MIN_PASSPHRASE_LENGTH", 8),
            SALT_LENGTH=_opt_int("WALLET_SALT_LENGTH", MIN_SALT_LENGTH),
            LOG_LEVEL=_opt("WALLET_LOG_LEVEL", "INFO"),
        )
