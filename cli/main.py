from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
from typing import List, Optional

from identity_wallet import __version__
from identity_wallet.errors import RecoveryError
from identity_wallet.recovery import RecoveryCoordinator
from identity_wallet.settings import RecoverySettings
from vault.store import FileBackupStore, load_envelope, save_envelope


def setup_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def read_assertion(args) -> str:
    if args.assertion_env:
        v = os.getenv(args.assertion_env)
        if not v:
            raise SystemExit(f"❌ Environment variable {args.assertion_env} is not set")
        return v
    if args.assertion:
        return args.assertion
    raise SystemExit("❌ Provide --assertion or --assertion-env")


def read_passphrase(args, confirm: bool = False) -> str:
    if args.passphrase_env:
        v = os.getenv(args.passphrase_env)
        if v is None:
            raise SystemExit(f"❌ Environment variable {args.passphrase_env} is not set")
        return v
    pw = getpass.getpass("Backup passphrase: ")
    if confirm and getpass.getpass("Repeat passphrase: ") != pw:
        raise SystemExit("❌ Passphrases do not match")
    return pw


def parse_identifier(hex_str: Optional[str]) -> Optional[bytes]:
    if hex_str is None:
        return None
    try:
        return bytes.fromhex(hex_str.removeprefix("0x"))
    except ValueError:
        raise SystemExit(f"❌ --expect must be hex, got {hex_str!r}")


def cmd_derive(args, coordinator: RecoveryCoordinator) -> None:
    """Derive a wallet from an identity assertion and print its public identifier."""
    with coordinator.create_wallet(read_assertion(args)) as material:
        print(f"User ID:           {material.user_id}")
        print(f"Public identifier: {material.public_identifier_hex}")


def cmd_backup(args, coordinator: RecoveryCoordinator) -> None:
    """Derive a wallet and store a passphrase-encrypted backup of its seed."""
    store = FileBackupStore(args.store)
    assertion = read_assertion(args)
    passphrase = read_passphrase(args, confirm=True)
    with coordinator.create_wallet(assertion) as material:
        envelope = coordinator.backup_wallet(material, passphrase)
        save_envelope(store, args.name, envelope)
        print(f"✅ Backup '{args.name}' written to {args.store}")
        print(f"   Public identifier: {material.public_identifier_hex}")


def cmd_restore(args, coordinator: RecoveryCoordinator) -> None:
    """Restore a wallet from a stored backup and print its public identifier."""
    store = FileBackupStore(args.store)
    try:
        envelope = load_envelope(store, args.name)
    except KeyError:
        raise SystemExit(f"❌ No backup named '{args.name}' in {args.store}")
    expected = parse_identifier(args.expect)
    passphrase = read_passphrase(args)
    with coordinator.restore_wallet(envelope, passphrase, expected) as material:
        print("✅ Wallet restored")
        print(f"   Public identifier: {material.public_identifier_hex}")


def cmd_verify(args, coordinator: RecoveryCoordinator) -> None:
    """Check a passphrase against a stored backup without keeping the seed."""
    store = FileBackupStore(args.store)
    try:
        envelope = load_envelope(store, args.name)
    except KeyError:
        raise SystemExit(f"❌ No backup named '{args.name}' in {args.store}")
    result = coordinator.attempt_restore(envelope, read_passphrase(args), parse_identifier(args.expect))
    if result.material is not None:
        result.material.wipe()
    if not result.ok:
        raise SystemExit(f"❌ Verification failed: {result.state.value}")
    print("✅ Passphrase opens this backup")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="identity-wallet")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: WALLET_LOG_LEVEL or INFO)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # derive
    d = sub.add_parser("derive", help="Derive wallet public identifier from an identity assertion")
    d.add_argument("--assertion", help="Identity assertion (ID token)")
    d.add_argument("--assertion-env", help="Read the assertion from this environment variable")
    d.set_defaults(func=cmd_derive)

    # backup
    b = sub.add_parser("backup", help="Write an encrypted wallet backup")
    b.add_argument("--assertion", help="Identity assertion (ID token)")
    b.add_argument("--assertion-env", help="Read the assertion from this environment variable")
    b.add_argument("--store", required=True, help="Backup directory")
    b.add_argument("--name", required=True, help="Backup name")
    b.add_argument("--passphrase-env", help="Read the passphrase from this environment variable")
    b.set_defaults(func=cmd_backup)

    # restore
    r = sub.add_parser("restore", help="Restore a wallet from an encrypted backup")
    r.add_argument("--store", required=True, help="Backup directory")
    r.add_argument("--name", required=True, help="Backup name")
    r.add_argument("--expect", help="Expected public identifier (hex)")
    r.add_argument("--passphrase-env", help="Read the passphrase from this environment variable")
    r.set_defaults(func=cmd_restore)

    # verify
    v = sub.add_parser("verify", help="Check a passphrase against a backup")
    v.add_argument("--store", required=True, help="Backup directory")
    v.add_argument("--name", required=True, help="Backup name")
    v.add_argument("--expect", help="Expected public identifier (hex)")
    v.add_argument("--passphrase-env", help="Read the passphrase from this environment variable")
    v.set_defaults(func=cmd_verify)

    return p


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    try:
        settings = RecoverySettings.load()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(args.log_level or settings.normalized_log_level)
    coordinator = RecoveryCoordinator(settings)

    try:
        args.func(args, coordinator)
    except RecoveryError as e:
        raise SystemExit(f"❌ {e.kind.value}: {e.message}")


if __name__ == "__main__":
    main()
