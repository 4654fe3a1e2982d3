"""Backup envelope wire format and backup documents."""

import json

import pytest

from identity_wallet.errors import ErrorKind, RecoveryError
from identity_wallet.models import BackupDocument, BackupEnvelope


def _envelope(**overrides) -> BackupEnvelope:
    fields = dict(
        version=1,
        salt=bytes(range(16)),
        nonce=bytes(range(100, 112)),
        ciphertext=b"ciphertext-bytes",
        auth_tag=bytes(range(200, 216)),
    )
    fields.update(overrides)
    return BackupEnvelope(**fields)


def test_wire_layout():
    env = _envelope()
    blob = env.to_bytes()

    assert blob[0] == 1
    assert blob[1] == 16
    assert blob[2:18] == env.salt
    assert blob[18] == 12
    assert blob[19:31] == env.nonce
    assert blob[31] == 16
    assert blob[32:48] == env.auth_tag
    assert blob[48:] == env.ciphertext


def test_wire_round_trip():
    env = _envelope()
    assert BackupEnvelope.from_bytes(env.to_bytes()) == env


@pytest.mark.parametrize("version", [256, 300, -1])
def test_version_wider_than_header_byte(version):
    with pytest.raises(RecoveryError) as exc:
        _envelope(version=version)
    assert exc.value.kind is ErrorKind.UNSUPPORTED_VERSION
    assert exc.value.data["version"] == version


def test_unknown_version_in_range_is_constructible():
    """Byte-sized versions are left for decrypt to reject before any key work."""
    assert _envelope(version=99).version == 99


def test_unknown_version_byte_rejected_first():
    """Version is read before anything else, even if the rest is garbage."""
    with pytest.raises(RecoveryError) as exc:
        BackupEnvelope.from_bytes(bytes([99]))
    assert exc.value.kind is ErrorKind.UNSUPPORTED_VERSION


@pytest.mark.parametrize("cut", [1, 2, 10, 18, 19, 30, 31, 32, 47, 48])
def test_truncated_blob_fails_closed(cut):
    blob = _envelope().to_bytes()
    with pytest.raises(RecoveryError) as exc:
        BackupEnvelope.from_bytes(blob[:cut])
    assert exc.value.kind is ErrorKind.AUTHENTICATION_FAILED


def test_empty_blob_fails_closed():
    with pytest.raises(RecoveryError) as exc:
        BackupEnvelope.from_bytes(b"")
    assert exc.value.kind is ErrorKind.AUTHENTICATION_FAILED


def test_oversized_length_prefix_fails_closed():
    blob = bytearray(_envelope().to_bytes())
    blob[1] = 255  # salt length beyond the blob
    with pytest.raises(RecoveryError) as exc:
        BackupEnvelope.from_bytes(bytes(blob))
    assert exc.value.kind is ErrorKind.AUTHENTICATION_FAILED


def test_json_form():
    env = _envelope()
    data = env.to_json_dict()
    assert set(data) == {"version", "salt", "iv", "ciphertext", "tag"}
    assert BackupEnvelope.from_json_dict(json.loads(json.dumps(data))) == env


def test_json_form_rejects_unknown_version():
    data = _envelope().to_json_dict()
    data["version"] = 99
    with pytest.raises(RecoveryError) as exc:
        BackupEnvelope.from_json_dict(data)
    assert exc.value.kind is ErrorKind.UNSUPPORTED_VERSION


@pytest.mark.parametrize(
    "mutate",
    [
        lambda d: d.pop("iv"),
        lambda d: d.update(salt="***not base64***"),
        lambda d: d.update(tag=None),
        lambda d: d.update(version="1"),
    ],
    ids=["missing-iv", "bad-base64", "null-tag", "string-version"],
)
def test_json_form_malformed(mutate):
    data = _envelope().to_json_dict()
    mutate(data)
    with pytest.raises(RecoveryError) as exc:
        BackupEnvelope.from_json_dict(data)
    assert exc.value.kind is ErrorKind.AUTHENTICATION_FAILED


def test_document_round_trip():
    env = _envelope()
    doc = BackupDocument.from_envelope(env, b"\xab" * 32)
    raw = doc.to_json()

    assert json.loads(raw)["schema"].startswith("identity-wallet-vault/")
    assert json.loads(raw)["kind"] == "WalletBackup"

    loaded = BackupDocument.from_json(raw)
    assert loaded.public_identifier == b"\xab" * 32
    assert loaded.envelope() == env
    assert loaded.backup_id.startswith("bk_")


def test_document_checksum_mismatch_fails_closed():
    doc = BackupDocument.from_envelope(_envelope(), b"\xab" * 32)
    bad = doc.model_copy(update={"checksum": "0" * 64})
    with pytest.raises(RecoveryError) as exc:
        bad.envelope()
    assert exc.value.kind is ErrorKind.AUTHENTICATION_FAILED


def test_document_malformed_json():
    with pytest.raises(RecoveryError) as exc:
        BackupDocument.from_json('{"kind": "WalletBackup"}')
    assert exc.value.kind is ErrorKind.INVALID_INPUT


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
