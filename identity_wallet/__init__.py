"""
Identity Wallet Vault - identity-derived wallet keys with encrypted backup/restore.

Schema Version: identity-wallet-vault/v1
"""

__version__ = "0.1.0"
__schema__ = "identity-wallet-vault/v1"

# Envelope version tags this build can decrypt
SUPPORTED_ENVELOPE_VERSIONS = (1,)

# Version tag written by new backups
CURRENT_ENVELOPE_VERSION = 1
